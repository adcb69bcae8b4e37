"""
Custom exceptions for the SMS Backup & Restore extraction system.

This module defines specific exception types for the fatal error conditions
that can occur while decoding a backup file and writing its records. Non-fatal
conditions (field fallbacks, contact ambiguity) are reported as diagnostics
instead; see ``sbr_extractor.validation.diagnostics``.
"""

from typing import Optional, Tuple


class BackupExtractionError(Exception):
    """Base exception for all backup extraction related errors."""

    def __init__(self, message: str, source_file: str = None):
        """
        Initialize backup extraction error.

        Args:
            message: Error description
            source_file: Optional identity of the backup file being processed
        """
        super().__init__(message)
        self.source_file = source_file


class StructuralError(BackupExtractionError):
    """
    Exception raised when a backup stream has no usable document structure.

    Covers an empty or unreadable stream, a document whose root element is not
    the expected backup root, a zip archive that does not hold exactly one
    member, and a file name that does not identify a backup kind.
    """
    pass


class ParseError(BackupExtractionError):
    """Exception raised when the XML becomes malformed part way through a document."""

    def __init__(self, message: str, element: str = None,
                 position: Optional[Tuple[int, int]] = None, source_file: str = None):
        """
        Initialize parse error.

        Args:
            message: Error description
            element: Name of the element being decoded when the error occurred
            position: Optional (line, column) of the offending input
            source_file: Optional identity of the backup file
        """
        super().__init__(message, source_file)
        self.element = element
        self.position = position


class SinkError(BackupExtractionError):
    """Exception raised when a sink cannot accept, commit or roll back records."""

    def __init__(self, message: str, sink_name: str = None, source_file: str = None):
        """
        Initialize sink error.

        Args:
            message: Error description
            sink_name: Name of the sink that failed
            source_file: Optional identity of the backup file
        """
        super().__init__(message, source_file)
        self.sink_name = sink_name


class DatabaseConnectionError(SinkError):
    """Exception raised when the relational store cannot be opened."""
    pass


class ConfigurationError(BackupExtractionError):
    """Exception raised when configuration is invalid or missing."""
    pass


class DecoderConfigurationError(ConfigurationError):
    """Exception raised when a decoder is created without any record handler."""
    pass


class ProcessingCancelled(BackupExtractionError):
    """Exception raised when the progress callback asks the run to stop."""
    pass
