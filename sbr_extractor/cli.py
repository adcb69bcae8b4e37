"""
Command-line interface for the SMS Backup & Restore extraction system.

Usage:
    sbr-extractor [-d OUTPUT_DIR] [--no-flat-file] [--no-relational]
                  [--no-attachments] [--no-contacts] [--database PATH]
                  [--connection-string ODBC] [--config FILE]
                  [--log-level LEVEL] [--log-file FILE] FILE...

Exit codes:
    0  every file was processed successfully
    1  at least one file failed, or the run was interrupted
    2  invalid configuration
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config.config_manager import ConfigManager, VALID_LOG_LEVELS
from .config.processing_defaults import ProcessingDefaults
from .exceptions import ConfigurationError
from .models import ProcessingResult
from .processing.batch_processor import BatchProcessor

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIGURATION = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sbr-extractor",
        description="Convert SMS Backup & Restore XML exports into TSV files, a SQL database and attachment files."
    )
    parser.add_argument("files", nargs="+", metavar="FILE",
                        help="Backup files (sms-*.xml, calls-*.xml, or a .zip holding one of them)")
    parser.add_argument("-d", "--output-dir",
                        help=f"Directory for parsed output (default: {ProcessingDefaults.OUTPUT_DIR})")
    parser.add_argument("--no-flat-file", action="store_true", help="Do not write TSV files")
    parser.add_argument("--no-relational", action="store_true", help="Do not write the SQL database")
    parser.add_argument("--no-attachments", action="store_true", help="Do not extract MMS attachments")
    parser.add_argument("--no-contacts", action="store_true", help="Do not derive the contact directory")
    parser.add_argument("--database",
                        help=f"SQLite database file (default: {ProcessingDefaults.DATABASE_FILE_NAME} "
                             f"in the output directory)")
    parser.add_argument("--connection-string",
                        help="ODBC connection string; writes to SQL Server instead of SQLite")
    parser.add_argument("--config", help="JSON or YAML configuration file")
    parser.add_argument("--log-level", type=str.upper, choices=VALID_LOG_LEVELS,
                        help=f"Logging level (default: {ProcessingDefaults.LOG_LEVEL})")
    parser.add_argument("--log-file", help="Also write the log to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_config(args: argparse.Namespace) -> ConfigManager:
    """
    Resolve configuration from the environment, the config file and arguments.

    Raises:
        ConfigurationError: If any layer holds an invalid value
    """
    config_manager = ConfigManager(args.config)
    config_manager.apply_overrides({
        'output': {
            'output_dir': args.output_dir,
            'enable_flat_file': False if args.no_flat_file else None,
            'enable_relational': False if args.no_relational else None,
            'enable_attachments': False if args.no_attachments else None,
            'enable_contacts': False if args.no_contacts else None,
            'database_path': args.database,
        },
        'database': {
            'connection_string': args.connection_string,
        },
        'processing': {
            'log_level': args.log_level,
        },
    }, origin="command line")
    config_manager.validate_configuration()
    return config_manager


def configure_logging(log_level: str, log_file: Optional[str] = None) -> None:
    """Install console (and optional file) handlers unless the root logger already has some."""
    root_logger = logging.getLogger()
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
        if log_file:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.WARNING))
    logging.getLogger('sbr_extractor').setLevel(getattr(logging, log_level.upper(), logging.WARNING))


def print_summary(result: ProcessingResult, output_dir: Path) -> None:
    print("\n" + "=" * 72)
    print(" SMS BACKUP EXTRACTION SUMMARY")
    print("=" * 72)
    for file_result in result.file_results:
        name = Path(file_result.source_file).name
        if file_result.success:
            counts = ", ".join(f"{kind}: {count}" for kind, count in file_result.record_counts.items())
            print(f" OK      {name} ({counts}; count check: {file_result.count_check})")
        else:
            print(f" FAILED  {name} [{file_result.error_stage}] {file_result.error}")

    print("-" * 72)
    print(f" Files: {result.files_successful}/{result.files_processed} succeeded")
    print(f" Records: {result.records_processed}")
    print(f" Contacts: {result.contacts_resolved}")
    attachments = result.performance_metrics.get('attachments')
    if attachments:
        print(f" Attachments: {attachments['parts_written']}/{attachments['parts_identified']} written")
    if result.diagnostic_summary:
        diagnostics = ", ".join(f"{name}: {total}" for name, total in sorted(result.diagnostic_summary.items()))
        print(f" Diagnostics: {diagnostics}")
    if result.cancelled:
        print(" Run was cancelled before every file was processed")
    print(f" Completed in {result.processing_time_seconds:.2f} seconds")
    print(f" Output saved to {output_dir}")
    print("=" * 72)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI application.

    Args:
        args: Optional command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 if any file failed, 2 for configuration errors)
    """
    if args is None:
        args = sys.argv[1:]
    parsed = build_parser().parse_args(args)

    try:
        config_manager = build_config(parsed)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION

    configure_logging(config_manager.processing_params.log_level, parsed.log_file)
    logger = logging.getLogger(__name__)
    logger.info(f"SMS Backup Extractor v{__version__}")
    if logger.isEnabledFor(logging.DEBUG):
        ProcessingDefaults.log_summary(logger)
        logger.debug(f"Configuration: {config_manager.get_configuration_summary()}")

    try:
        processor = BatchProcessor(config_manager)
        result = processor.process_files(parsed.files)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except KeyboardInterrupt:
        print("\n Processing interrupted by user", file=sys.stderr)
        return EXIT_FAILURES

    print_summary(result, config_manager.output_dir)

    if result.files_failed or result.cancelled or result.errors:
        return EXIT_FAILURES
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
