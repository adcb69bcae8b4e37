"""
Core data models for the SMS Backup & Restore extraction system.

This module defines the typed records produced by the stream decoder, the
closed code enumerations used by the export format, the derived contact
aggregate, and the result structures reported by the batch processor.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Dict, Any

from .utils import StringUtils, ValidationUtils, DateUtils


class BackupKind(Enum):
    """Kinds of backup document the exporting app produces."""
    MESSAGES = "messages"
    CALLS = "calls"


class RecordKind(Enum):
    """Record kinds emitted by the stream decoder."""
    SMS = "sms"
    MMS = "mms"
    CALL = "call"


class CodeEnum(Enum):
    """
    Base for closed code enumerations.

    Member values are the canonical source codes. Every subclass defines an
    ``UNKNOWN`` member (value None) that absorbs codes it does not recognize.
    """

    @classmethod
    def from_code(cls, raw: Any) -> 'CodedValue':
        """
        Decode a raw source code without ever failing.

        Integer-looking codes are compared in canonical form, so ``"01"`` and
        ``" 1"`` decode like ``"1"``.

        Args:
            raw: Raw attribute text (None when the attribute is absent)

        Returns:
            CodedValue holding the matched member, or UNKNOWN plus the raw code
        """
        text = '' if raw is None else str(raw).strip()
        number = ValidationUtils.safe_int_conversion(text)
        code = str(number) if number is not None else text
        for member in cls:
            if member.value is not None and member.value == code:
                return CodedValue(member, text)
        return CodedValue(cls['UNKNOWN'], text)

    @property
    def label(self) -> str:
        """Display label used in tabular output."""
        return self.name.replace('_', ' ').title()


class SmsType(CodeEnum):
    """Message box of a single-recipient message."""
    RECEIVED = "1"
    SENT = "2"
    DRAFT = "3"
    OUTBOX = "4"
    FAILED = "5"
    QUEUED = "6"
    UNKNOWN = None


class SmsStatus(CodeEnum):
    """Delivery status of a single-recipient message."""
    NONE = "-1"
    COMPLETE = "0"
    PENDING = "32"
    FAILED = "64"
    UNKNOWN = None


class ReadState(CodeEnum):
    """Tri-state read flag; anything but 0/1 is UNKNOWN."""
    UNREAD = "0"
    READ = "1"
    UNKNOWN = None


class CallType(CodeEnum):
    """Direction or outcome of a call log entry."""
    INCOMING = "1"
    OUTGOING = "2"
    MISSED = "3"
    VOICEMAIL = "4"
    REJECTED = "5"
    BLOCKED = "6"
    UNKNOWN = None


class AddressType(CodeEnum):
    """PDU header type of a multi-recipient message address."""
    BCC = "129"
    CC = "130"
    FROM = "137"
    TO = "151"
    UNKNOWN = None

    @property
    def label(self) -> str:
        return self.name.upper() if self.name in ('BCC', 'CC') else self.name.title()


@dataclass(frozen=True)
class CodedValue:
    """
    A decoded enumeration field.

    Attributes:
        member: The matched enum member, or its UNKNOWN member
        raw: The raw source text, kept for diagnostics and storage
    """
    member: CodeEnum
    raw: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.member.name == 'UNKNOWN'

    def __str__(self) -> str:
        if self.is_unknown:
            return f"Unknown({self.raw})"
        return self.member.label


@dataclass
class BackupInfo:
    """
    Attributes of a backup document's root element.

    Attributes:
        count: Reported record count as written in the source (may be unparseable)
        backup_set: Opaque backup set identifier
        backup_date: Backup time in epoch milliseconds (0 when absent)
    """
    count: str = ""
    backup_set: str = ""
    backup_date: int = 0

    @property
    def expected_count(self) -> Optional[int]:
        """Reported record count, or None when it is absent or not a number."""
        return ValidationUtils.safe_int_conversion(self.count)


@dataclass
class SMS:
    """A single-recipient text message."""
    kind: ClassVar[RecordKind] = RecordKind.SMS

    protocol: str = ""
    address: str = ""
    type: CodedValue = field(default_factory=lambda: SmsType.from_code(None))
    subject: str = ""
    body: str = ""
    service_center: str = ""
    status: CodedValue = field(default_factory=lambda: SmsStatus.from_code(None))
    read: CodedValue = field(default_factory=lambda: ReadState.from_code(None))
    date: int = 0
    locked: bool = False
    date_sent: int = 0
    readable_date: str = ""
    contact_name: str = ""

    @property
    def formatted_date(self) -> str:
        return DateUtils.format_epoch_millis(self.date)

    @property
    def formatted_date_sent(self) -> str:
        return DateUtils.format_epoch_millis(self.date_sent)


@dataclass
class Address:
    """One recipient entry of a multi-recipient message."""
    address: str = ""
    type: CodedValue = field(default_factory=lambda: AddressType.from_code(None))
    charset: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by the flat-file and relational sinks."""
        return {
            'address': StringUtils.format_phone_number(self.address),
            'raw_address': self.address,
            'type': str(self.type),
            'charset': self.charset,
        }


@dataclass
class Part:
    """
    One payload unit of a multi-recipient message.

    The attachment body stays base64 text; sinks that need bytes decode it.
    """
    content_type: str = ""
    name: str = ""
    file_name: str = ""
    content_display: str = ""
    text: str = ""
    data: str = ""

    @property
    def has_payload(self) -> bool:
        return not StringUtils.is_null_text(self.data)


@dataclass
class MMS:
    """A multi-recipient message with its recipient addresses and parts."""
    kind: ClassVar[RecordKind] = RecordKind.MMS

    ADDRESS_DELIMITER: ClassVar[str] = "~"
    CONTACT_DELIMITER: ClassVar[str] = ","

    text_only: bool = False
    read: CodedValue = field(default_factory=lambda: ReadState.from_code(None))
    date: int = 0
    locked: bool = False
    date_sent: int = 0
    readable_date: str = ""
    contact_name: str = ""
    seen: bool = False
    from_address: str = ""
    address: str = ""
    message_classifier: str = ""
    message_size: int = 0
    addresses: List[Address] = field(default_factory=list)
    parts: List[Part] = field(default_factory=list)

    def split_addresses(self) -> List[str]:
        """Raw recipient numbers from the tilde-joined ``address`` text."""
        return StringUtils.split_joined(self.address, self.ADDRESS_DELIMITER)

    def split_contact_names(self) -> List[str]:
        """
        Display names from the comma-joined ``contact_name`` text.

        Commas before name suffixes are removed first. A display name that
        contains any other comma still splits in two; callers compare the
        result against ``split_addresses()`` to detect that.
        """
        cleaned = StringUtils.remove_commas_before_suffixes(self.contact_name)
        return StringUtils.split_joined(cleaned, self.CONTACT_DELIMITER)

    def serialize_addresses(self) -> str:
        """JSON list of recipient entries in source order."""
        return json.dumps([address.to_dict() for address in self.addresses])

    @property
    def formatted_date(self) -> str:
        return DateUtils.format_epoch_millis(self.date)

    @property
    def formatted_date_sent(self) -> str:
        return DateUtils.format_epoch_millis(self.date_sent)


@dataclass
class Call:
    """A call log entry."""
    kind: ClassVar[RecordKind] = RecordKind.CALL

    number: str = ""
    duration: int = 0
    date: int = 0
    type: CodedValue = field(default_factory=lambda: CallType.from_code(None))
    readable_date: str = ""
    contact_name: str = ""

    @property
    def formatted_date(self) -> str:
        return DateUtils.format_epoch_millis(self.date)


UNKNOWN_CONTACT_NAME = "(Unknown)"


@dataclass
class Contact:
    """
    A contact identity derived from message records.

    Attributes:
        name: Display name ("(Unknown)" when no record named the number)
        canonical_number: Normalized number used as the merge key
        raw_numbers: Distinct raw spellings observed, in first-seen order
    """
    name: str
    canonical_number: str
    raw_numbers: List[str] = field(default_factory=list)

    def add_raw_number(self, raw: str) -> None:
        if raw not in self.raw_numbers:
            self.raw_numbers.append(raw)

    @property
    def has_unknown_name(self) -> bool:
        return is_unknown_name(self.name)


def is_unknown_name(name: Optional[str]) -> bool:
    """True for the "(Unknown)" sentinel and for names that are blank."""
    return name is None or name.strip() in ('', UNKNOWN_CONTACT_NAME)


@dataclass
class FileResult:
    """
    Outcome of processing one backup file.

    Attributes:
        source_file: Path of the backup file
        backup_kind: Messages or calls (None when the kind could not be detected)
        backup_info: Root attributes (None when the root was never reached)
        record_counts: Records dispatched per record kind value
        success: Whether every sink committed
        error: Error description for failed files
        error_stage: Where the failure happened (detection, structure, parsing, sink, ...)
        count_check: 'OK', 'DISCREPANCY DETECTED' or 'UNAVAILABLE'
        processing_time_seconds: Wall time spent on the file
    """
    source_file: str
    backup_kind: Optional[BackupKind] = None
    backup_info: Optional[BackupInfo] = None
    record_counts: Dict[str, int] = field(default_factory=dict)
    success: bool = False
    error: Optional[str] = None
    error_stage: Optional[str] = None
    count_check: str = "UNAVAILABLE"
    processing_time_seconds: float = 0.0

    @property
    def total_records(self) -> int:
        return sum(self.record_counts.values())


@dataclass
class ProcessingResult:
    """
    Results from a processing operation.

    Attributes:
        records_processed: Total number of records dispatched across all files
        files_processed: Number of files attempted
        files_failed: Number of files that ended in a fatal error
        processing_time_seconds: Total processing time
        errors: List of error messages encountered
        performance_metrics: Dictionary of performance metrics
        file_results: Per-file outcomes in processing order
        diagnostic_summary: Non-fatal diagnostic counts per category
        contacts_resolved: Size of the resolved contact directory
        cancelled: Whether the run stopped on a cancellation request
    """
    records_processed: int = 0
    files_processed: int = 0
    files_failed: int = 0
    processing_time_seconds: float = 0.0
    errors: List[str] = None
    performance_metrics: Dict[str, Any] = None
    file_results: List[FileResult] = None
    diagnostic_summary: Dict[str, int] = None
    contacts_resolved: int = 0
    cancelled: bool = False

    def __post_init__(self):
        """Initialize default values for mutable fields."""
        if self.errors is None:
            self.errors = []
        if self.performance_metrics is None:
            self.performance_metrics = {}
        if self.file_results is None:
            self.file_results = []
        if self.diagnostic_summary is None:
            self.diagnostic_summary = {}

    @property
    def files_successful(self) -> int:
        return self.files_processed - self.files_failed

    @property
    def success_rate(self) -> float:
        """Calculate the file success rate as a percentage."""
        if self.files_processed == 0:
            return 0.0
        return (self.files_successful / self.files_processed) * 100.0
