"""
Tests for the sbr-extractor command line.

The CLI is driven through ``main(args)`` with backup files in a temporary
directory; exit codes and the printed summary are checked.
"""

import os

import pytest

from sbr_extractor.cli import EXIT_CONFIGURATION, EXIT_FAILURES, EXIT_OK, build_parser, main
from sbr_extractor.config.config_manager import reset_config_manager
from tests.helpers import messages_document, sms_xml, write_backup


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SBR_EXTRACTOR_"):
            monkeypatch.delenv(name)
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "out"


def test_parser_flags():
    args = build_parser().parse_args(["--no-attachments", "--log-level", "debug", "sms-1.xml"])
    assert args.no_attachments
    assert args.log_level == "DEBUG"
    assert args.files == ["sms-1.xml"]


def test_successful_run(tmp_path, output_dir, capsys):
    path = write_backup(tmp_path, "sms-1.xml", messages_document(sms_xml(), sms_xml()))

    assert main(["-d", str(output_dir), str(path)]) == EXIT_OK

    out = capsys.readouterr().out
    assert "SMS BACKUP EXTRACTION SUMMARY" in out
    assert "OK      sms-1.xml (sms: 2, mms: 0; count check: OK)" in out
    assert " Files: 1/1 succeeded" in out
    assert (output_dir / "sms.tsv").exists()
    assert (output_dir / "result.db").exists()


def test_failed_file_exits_with_failure(tmp_path, output_dir, capsys):
    good = write_backup(tmp_path, "sms-1.xml", messages_document(sms_xml()))
    broken = write_backup(tmp_path, "sms-2.xml", messages_document(sms_xml())[:-20])

    assert main(["-d", str(output_dir), "--no-relational", str(good), str(broken)]) == EXIT_FAILURES

    out = capsys.readouterr().out
    assert "FAILED  sms-2.xml [parsing]" in out
    assert " Files: 1/2 succeeded" in out
    assert not (output_dir / "result.db").exists()


def test_every_output_disabled(tmp_path, capsys):
    code = main(["--no-flat-file", "--no-relational", "--no-attachments", "--no-contacts",
                 str(tmp_path / "sms-1.xml")])

    assert code == EXIT_CONFIGURATION
    assert "Configuration error" in capsys.readouterr().err


def test_missing_config_file(tmp_path, capsys):
    code = main(["--config", str(tmp_path / "missing.yaml"), str(tmp_path / "sms-1.xml")])

    assert code == EXIT_CONFIGURATION
    assert "Configuration error" in capsys.readouterr().err


def test_debug_logging_lists_defaults(tmp_path, output_dir, caplog):
    path = write_backup(tmp_path, "sms-1.xml", messages_document(sms_xml()))

    assert main(["-d", str(output_dir), "--log-level", "debug", str(path)]) == EXIT_OK
    assert "Processing Configuration Defaults:" in caplog.text
    assert "DEFAULT_REGION: US" in caplog.text


def test_config_file_and_arguments(tmp_path, output_dir):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"output:\n  output_dir: {tmp_path / 'unused'}\n  enable_attachments: false\n",
                           encoding="utf-8")
    path = write_backup(tmp_path, "sms-1.xml", messages_document(sms_xml()))

    assert main(["--config", str(config_file), "-d", str(output_dir), str(path)]) == EXIT_OK
    assert (output_dir / "sms.tsv").exists()
    assert not (tmp_path / "unused").exists()
    assert not (output_dir / "images").exists()
