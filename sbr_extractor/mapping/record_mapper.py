"""
Record mapping for SMS Backup & Restore elements.

Turns one decoded XML element (``sms``, ``mms`` or ``call``) into its typed
record. Mapping is lenient: a value that cannot be decoded is replaced by a
sentinel and reported as a FIELD_FALLBACK diagnostic, and the element is
still emitted.

Sentinels:
- integer fields (dates, durations, sizes): 0
- bool-like fields: False
- enum fields: the enum's UNKNOWN member carrying the raw code
- text fields: kept verbatim, including the app's literal ``null``
"""

import logging
from typing import Any, Mapping, Optional, Type

from ..models import (
    BackupInfo, SMS, MMS, Address, Part, Call, CodeEnum, CodedValue,
    SmsType, SmsStatus, ReadState, CallType, AddressType, RecordKind
)
from ..utils import StringUtils, ValidationUtils
from ..validation.diagnostics import DiagnosticLog, DiagnosticCategory


class RecordMapper:
    """
    Maps element attributes and nested children to typed records.

    One mapper is used per backup file. It tracks the current element's
    position so diagnostics can point back at the source element.
    """

    def __init__(self, diagnostics: Optional[DiagnosticLog] = None, source_file: Optional[str] = None):
        """
        Initialize the mapper.

        Args:
            diagnostics: Optional collector for field fallback diagnostics
            source_file: Identity of the backup file, used in diagnostics
        """
        self.logger = logging.getLogger(__name__)
        self.diagnostics = diagnostics
        self.source_file = source_file
        self.fallback_count = 0
        self._record_kind: Optional[RecordKind] = None
        self._record_index: Optional[int] = None

    def map_backup_info(self, attrib: Mapping[str, str]) -> BackupInfo:
        """
        Map root element attributes to BackupInfo.

        Args:
            attrib: Root element attributes

        Returns:
            BackupInfo; absent attributes leave their defaults
        """
        self._record_kind = None
        self._record_index = None
        return BackupInfo(
            count=attrib.get('count', ''),
            backup_set=attrib.get('backup_set', ''),
            backup_date=self._int(attrib, 'backup_date'),
        )

    def map_sms(self, element, index: Optional[int] = None) -> SMS:
        """
        Map an ``<sms>`` element.

        Args:
            element: lxml element for the message
            index: Position of the element among the root's children

        Returns:
            SMS record
        """
        self._begin(RecordKind.SMS, index)
        attrib = element.attrib
        return SMS(
            protocol=attrib.get('protocol', ''),
            address=attrib.get('address', ''),
            type=self._enum(SmsType, attrib, 'type'),
            subject=attrib.get('subject', ''),
            body=attrib.get('body', ''),
            service_center=attrib.get('service_center', ''),
            status=self._enum(SmsStatus, attrib, 'status'),
            read=self._enum(ReadState, attrib, 'read'),
            date=self._int(attrib, 'date'),
            locked=self._flag(attrib, 'locked'),
            date_sent=self._int(attrib, 'date_sent'),
            readable_date=attrib.get('readable_date', ''),
            contact_name=attrib.get('contact_name', ''),
        )

    def map_mms(self, element, index: Optional[int] = None) -> MMS:
        """
        Map an ``<mms>`` element including its nested addresses and parts.

        Nested ``<addrs>/<addr>`` and ``<parts>/<part>`` entries keep their
        source order. Other nested elements are ignored.

        Args:
            element: lxml element for the message
            index: Position of the element among the root's children

        Returns:
            MMS record
        """
        self._begin(RecordKind.MMS, index)
        attrib = element.attrib

        addresses = [
            Address(
                address=addr.get('address', ''),
                type=self._enum(AddressType, addr.attrib, 'type', field_name='addr.type'),
                charset=addr.get('charset', ''),
            )
            for addr in element.iterfind('addrs/addr')
        ]
        parts = [
            Part(
                content_type=part.get('ct', ''),
                name=part.get('name', ''),
                file_name=part.get('fn', ''),
                content_display=part.get('cd', ''),
                text=part.get('text', ''),
                data=part.get('data', ''),
            )
            for part in element.iterfind('parts/part')
        ]

        return MMS(
            text_only=self._flag(attrib, 'text_only'),
            read=self._enum(ReadState, attrib, 'read'),
            date=self._int(attrib, 'date'),
            locked=self._flag(attrib, 'locked'),
            date_sent=self._int(attrib, 'date_sent'),
            readable_date=attrib.get('readable_date', ''),
            contact_name=attrib.get('contact_name', ''),
            seen=self._flag(attrib, 'seen'),
            from_address=attrib.get('from_address', ''),
            address=attrib.get('address', ''),
            message_classifier=attrib.get('m_cls', ''),
            message_size=self._int(attrib, 'm_size'),
            addresses=addresses,
            parts=parts,
        )

    def map_call(self, element, index: Optional[int] = None) -> Call:
        """
        Map a ``<call>`` element.

        Args:
            element: lxml element for the call
            index: Position of the element among the root's children

        Returns:
            Call record
        """
        self._begin(RecordKind.CALL, index)
        attrib = element.attrib
        return Call(
            number=attrib.get('number', ''),
            duration=self._int(attrib, 'duration'),
            date=self._int(attrib, 'date'),
            type=self._enum(CallType, attrib, 'type'),
            readable_date=attrib.get('readable_date', ''),
            contact_name=attrib.get('contact_name', ''),
        )

    def _begin(self, kind: RecordKind, index: Optional[int]) -> None:
        self._record_kind = kind
        self._record_index = index

    def _int(self, attrib: Mapping[str, str], name: str) -> int:
        raw = attrib.get(name)
        if StringUtils.is_null_text(raw):
            return 0
        value = ValidationUtils.safe_int_conversion(raw)
        if value is None:
            self._fallback(name, raw, "not an integer, using 0")
            return 0
        return value

    def _flag(self, attrib: Mapping[str, str], name: str) -> bool:
        raw = attrib.get(name)
        value = ValidationUtils.parse_flag(raw)
        if value is None:
            self._fallback(name, raw, "not a recognized flag, using False")
            return False
        return value

    def _enum(self, enum_cls: Type[CodeEnum], attrib: Mapping[str, str], name: str,
              field_name: Optional[str] = None) -> CodedValue:
        raw = attrib.get(name)
        value = enum_cls.from_code(raw)
        if value.is_unknown and not StringUtils.is_null_text(raw):
            self._fallback(field_name or name, raw, f"unrecognized {enum_cls.__name__} code")
        return value

    def _fallback(self, field_name: str, raw: Any, reason: str) -> None:
        self.fallback_count += 1
        if self.diagnostics is None:
            self.logger.debug(f"Field fallback {field_name}={raw!r}: {reason}")
            return
        self.diagnostics.report(
            DiagnosticCategory.FIELD_FALLBACK,
            f"{field_name}={raw!r} {reason}",
            source_file=self.source_file,
            record_kind=self._record_kind.value if self._record_kind else None,
            record_index=self._record_index,
            field_name=field_name,
            raw_value=raw,
        )
