"""
Unit tests for attachment extraction.

Tests verify:
- Deterministic file naming (name, message index, part index, extension)
- Which parts count as binary attachments
- Last-write-wins when two parts derive the same file name
- Undecodable payloads become ATTACHMENT_ERROR diagnostics, not failures
"""

import base64

import pytest

from sbr_extractor.models import BackupInfo, MMS, Part, SMS
from sbr_extractor.sinks.attachment_sink import AttachmentSink, derive_attachment_name, is_binary_part
from sbr_extractor.validation.diagnostics import DiagnosticCategory, DiagnosticLog
from tests.helpers import PNG_BASE64, PNG_BYTES


def image_part(name="IMG_0001.png", data=PNG_BASE64, content_type="image/png"):
    return Part(content_type=content_type, name=name, data=data)


def message_with(*parts):
    smil = Part(content_type="application/smil", text="<smil/>")
    text = Part(content_type="text/plain", text="look")
    return MMS(parts=[smil, text, *parts])


class TestAttachmentNaming:
    """derive_attachment_name and is_binary_part."""

    def test_name_from_part_name(self):
        part = Part(content_type="image/jpeg", name="IMG_0042.jpg")
        assert derive_attachment_name(part, 3, 1) == "IMG_0042_3-1.jpg"

    def test_placeholder_name_and_guessed_extension(self):
        part = Part(content_type="image/png", name="null")
        assert derive_attachment_name(part, 0, 2) == "attachment_0-2.png"

    def test_file_name_used_when_name_missing(self):
        part = Part(content_type="image/gif", name="null", file_name="Photo.GIF")
        assert derive_attachment_name(part, 5, 0) == "Photo_5-0.gif"

    def test_path_components_and_unsafe_characters_are_removed(self):
        part = Part(content_type="image/jpeg", name="../../tmp/my photo (1).jpg")
        assert derive_attachment_name(part, 1, 1) == "my_photo_1_1-1.jpg"

    def test_unknown_content_type_uses_bin(self):
        part = Part(content_type="application/x-sbr-unregistered")
        assert derive_attachment_name(part, 0, 0) == "attachment_0-0.bin"

    @pytest.mark.parametrize("content_type,data,expected", [
        ("image/jpeg", PNG_BASE64, True),
        ("image/jpeg; name=x.jpg", PNG_BASE64, True),
        ("video/3gpp", PNG_BASE64, True),
        ("audio/amr", PNG_BASE64, True),
        ("application/pdf", PNG_BASE64, True),
        ("application/smil", PNG_BASE64, False),
        ("text/plain", PNG_BASE64, False),
        ("text/x-vCard", PNG_BASE64, False),
        ("image/jpeg", "null", False),
        ("image/jpeg", "", False),
    ])
    def test_is_binary_part(self, content_type, data, expected):
        assert is_binary_part(Part(content_type=content_type, data=data)) is expected


class TestAttachmentSink:
    """Extraction to disk."""

    def test_extracts_binary_parts_only(self, tmp_path):
        directory = tmp_path / "images"
        sink = AttachmentSink(directory)
        sink.begin("sms-1.xml", BackupInfo())
        sink.accept(message_with(image_part()))
        sink.commit()
        sink.close()

        assert directory.is_dir()
        assert sorted(p.name for p in directory.iterdir()) == ["IMG_0001_0-2.png"]
        assert (directory / "IMG_0001_0-2.png").read_bytes() == PNG_BYTES
        assert (sink.parts_identified, sink.parts_written, sink.errors) == (1, 1, [])

    def test_message_index_counts_mms_only_and_continues_across_files(self, tmp_path):
        sink = AttachmentSink(tmp_path)
        sink.begin("sms-1.xml", BackupInfo())
        sink.accept(SMS(body="not an mms"))
        sink.accept(message_with(image_part(name="a.png")))
        sink.commit()
        sink.begin("sms-2.xml", BackupInfo())
        sink.accept(message_with(image_part(name="b.png")))
        sink.commit()

        assert (tmp_path / "a_0-2.png").exists()
        assert (tmp_path / "b_1-2.png").exists()

    def test_colliding_names_last_write_wins(self, tmp_path):
        first_bytes = b"first attachment"
        second_bytes = b"second attachment"
        first = AttachmentSink(tmp_path)
        first.begin("sms-1.xml", BackupInfo())
        first.accept(message_with(image_part(name="same.png", data=base64.b64encode(first_bytes).decode())))

        second = AttachmentSink(tmp_path)
        second.begin("sms-2.xml", BackupInfo())
        second.accept(message_with(image_part(name="same.png", data=base64.b64encode(second_bytes).decode())))

        assert [p.name for p in tmp_path.iterdir()] == ["same_0-2.png"]
        assert (tmp_path / "same_0-2.png").read_bytes() == second_bytes

    def test_undecodable_payload_is_a_diagnostic(self, tmp_path):
        diagnostics = DiagnosticLog()
        sink = AttachmentSink(tmp_path, diagnostics)
        sink.begin("sms-1.xml", BackupInfo())
        sink.accept(message_with(image_part(name="broken.png", data="abcde"), image_part(name="good.png")))

        assert sink.parts_identified == 2
        assert sink.parts_written == 1
        assert len(sink.errors) == 1
        assert (tmp_path / "good_0-3.png").exists()
        assert not (tmp_path / "broken_0-2.png").exists()

        reported = diagnostics.by_category(DiagnosticCategory.ATTACHMENT_ERROR)
        assert len(reported) == 1
        assert reported[0].source_file == "sms-1.xml"
        assert reported[0].record_index == 0
        assert reported[0].field_name == "parts[2]"

    def test_rollback_keeps_extracted_files(self, tmp_path):
        sink = AttachmentSink(tmp_path)
        sink.begin("sms-1.xml", BackupInfo())
        sink.accept(message_with(image_part()))
        sink.rollback()
        assert (tmp_path / "IMG_0001_0-2.png").exists()
