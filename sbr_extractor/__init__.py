"""
SMS Backup & Restore Extraction System

A streaming converter that turns SMS Backup & Restore XML exports into TSV
files, a relational database, extracted MMS attachments and a best-effort
contact directory.
"""

__version__ = "1.0.0"

# Import core models and interfaces for easy access
from .models import (
    BackupKind,
    RecordKind,
    BackupInfo,
    SMS,
    MMS,
    Address,
    Part,
    Call,
    Contact,
    CodedValue,
    SmsType,
    SmsStatus,
    ReadState,
    CallType,
    AddressType,
    FileResult,
    ProcessingResult,
)

from .interfaces import (
    RecordSinkInterface,
    BatchProcessorInterface,
)

from .exceptions import (
    BackupExtractionError,
    StructuralError,
    ParseError,
    SinkError,
    DatabaseConnectionError,
    ConfigurationError,
    DecoderConfigurationError,
    ProcessingCancelled,
)

__all__ = [
    # Core models
    "BackupKind",
    "RecordKind",
    "BackupInfo",
    "SMS",
    "MMS",
    "Address",
    "Part",
    "Call",
    "Contact",
    "CodedValue",
    "SmsType",
    "SmsStatus",
    "ReadState",
    "CallType",
    "AddressType",
    "FileResult",
    "ProcessingResult",

    # Interfaces
    "RecordSinkInterface",
    "BatchProcessorInterface",

    # Exceptions
    "BackupExtractionError",
    "StructuralError",
    "ParseError",
    "SinkError",
    "DatabaseConnectionError",
    "ConfigurationError",
    "DecoderConfigurationError",
    "ProcessingCancelled",
]
