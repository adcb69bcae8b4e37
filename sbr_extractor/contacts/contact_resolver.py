"""
Contact Resolver - best-effort contact directory from message records.

Builds a map from canonical phone number to Contact:

1. Each SMS contributes its single address and display name.
2. Each MMS splits its tilde-joined addresses and comma-joined names and
   pairs them positionally. When the two lists differ in length the pairing
   is unknowable (a name containing a comma is the usual cause); the record
   is skipped with a CONTACT_SPLIT_MISMATCH diagnostic.

Naming conflicts on one canonical number are resolved as follows:
- the "(Unknown)" sentinel (or a blank name) never replaces a real name
- a real name replaces the sentinel
- two different real names keep the first and report CONTACT_CONFLICT

The resolver never raises for ambiguous input.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..interfaces import RecordSinkInterface
from ..models import (
    BackupInfo, Contact, MMS, RecordKind, SMS, UNKNOWN_CONTACT_NAME, is_unknown_name
)
from ..validation.diagnostics import DiagnosticLog, DiagnosticCategory, DiagnosticSeverity
from .phone_numbers import normalize_phone_number

COMMA_IN_NAME_REASON = "A contact probably has a comma"
MISSING_NAME_REASON = "A number probably doesn't have a known contact"


class ContactResolver:
    """
    Accumulates the canonical contact map across any number of backup files.

    Attributes:
        contacts: Canonical number -> Contact, in first-seen order
        records_skipped: MMS records excluded because their lists could not be paired
    """

    def __init__(self, default_region: str = "US", diagnostics: Optional[DiagnosticLog] = None):
        self.logger = logging.getLogger(__name__)
        self.default_region = default_region
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self.contacts: Dict[str, Contact] = {}
        self.records_skipped = 0

    def resolve(self, sms_records: Iterable[SMS] = (), mms_records: Iterable[MMS] = ()) -> Dict[str, Contact]:
        """
        Merge materialized records into the map: every SMS first, then every MMS.

        Args:
            sms_records: Single-recipient messages
            mms_records: Multi-recipient messages

        Returns:
            The accumulated canonical map
        """
        for sms in sms_records:
            self.add_sms(sms.address, sms.contact_name)
        for index, mms in enumerate(mms_records):
            self.add_mms(mms.split_addresses(), mms.split_contact_names(), record_index=index)
        return self.contacts

    def add_sms(self, address: str, name: str, source_file: Optional[str] = None,
                record_index: Optional[int] = None) -> None:
        """Merge one (address, name) pair from a single-recipient message."""
        self._merge(address, name, source_file, RecordKind.SMS, record_index)

    def add_mms(self, addresses: List[str], names: List[str], source_file: Optional[str] = None,
                record_index: Optional[int] = None) -> bool:
        """
        Merge the positional pairs of one multi-recipient message.

        Args:
            addresses: Result of ``MMS.split_addresses()``
            names: Result of ``MMS.split_contact_names()``
            source_file: Backup file the record came from
            record_index: Position of the record, for diagnostics

        Returns:
            False when the record was skipped
        """
        if len(addresses) != len(names):
            reason = MISSING_NAME_REASON if len(addresses) > len(names) else COMMA_IN_NAME_REASON
            self.records_skipped += 1
            self.diagnostics.report(
                DiagnosticCategory.CONTACT_SPLIT_MISMATCH,
                f"mms has {len(addresses)} numbers, but {len(names)} contact names. {reason}",
                source_file=source_file,
                record_kind=RecordKind.MMS.value,
                record_index=record_index,
                field_name="contact_name",
                raw_value=", ".join(names),
                additional_context={'addresses': addresses, 'names': names},
            )
            return False

        for address, name in zip(addresses, names):
            self._merge(address, name, source_file, RecordKind.MMS, record_index)
        return True

    def sorted_contacts(self) -> List[Contact]:
        """Contacts ordered by name, then canonical number."""
        return sorted(self.contacts.values(), key=lambda contact: (contact.name.lower(), contact.canonical_number))

    def _merge(self, raw_number: str, name: str, source_file: Optional[str],
               record_kind: RecordKind, record_index: Optional[int]) -> None:
        canonical = normalize_phone_number(raw_number, self.default_region)
        if not canonical:
            self.diagnostics.report(
                DiagnosticCategory.NORMALIZATION,
                f"Address '{raw_number}' has no usable number",
                severity=DiagnosticSeverity.INFO,
                source_file=source_file,
                record_kind=record_kind.value,
                record_index=record_index,
                field_name="address",
                raw_value=raw_number,
            )
            return

        name = UNKNOWN_CONTACT_NAME if is_unknown_name(name) else name.strip()
        contact = self.contacts.get(canonical)
        if contact is None:
            self.contacts[canonical] = Contact(name=name, canonical_number=canonical, raw_numbers=[raw_number])
            return

        contact.add_raw_number(raw_number)
        if contact.name == name or is_unknown_name(name):
            return
        if contact.has_unknown_name:
            contact.name = name
            return
        self.diagnostics.report(
            DiagnosticCategory.CONTACT_CONFLICT,
            f"{canonical} has multiple names: {contact.name} and {name}",
            source_file=source_file,
            record_kind=record_kind.value,
            record_index=record_index,
            field_name="contact_name",
            raw_value=name,
        )


@dataclass
class _PendingContact:
    kind: RecordKind
    index: int
    addresses: Tuple[str, ...]
    names: Tuple[str, ...]


class ContactCollectorSink(RecordSinkInterface):
    """
    Feeds the resolver from the live record stream.

    Only the (address, name) projections of SMS and MMS records are kept,
    and only until the file ends: a committed file is merged into the
    resolver, a rolled-back file contributes nothing. SMS pairs are merged
    before MMS pairs within each file.
    """

    name = "contacts"

    def __init__(self, resolver: ContactResolver):
        self.logger = logging.getLogger(__name__)
        self.resolver = resolver
        self.source_file: Optional[str] = None
        self._pending: List[_PendingContact] = []
        self._counts = {RecordKind.SMS: 0, RecordKind.MMS: 0}

    def begin(self, source_file: str, backup_info: BackupInfo) -> None:
        self.source_file = source_file
        self._pending = []
        self._counts = {RecordKind.SMS: 0, RecordKind.MMS: 0}

    def accept(self, record) -> None:
        if record.kind is RecordKind.SMS:
            projection = ((record.address,), (record.contact_name,))
        elif record.kind is RecordKind.MMS:
            projection = (tuple(record.split_addresses()), tuple(record.split_contact_names()))
        else:
            return
        index = self._counts[record.kind]
        self._counts[record.kind] = index + 1
        self._pending.append(_PendingContact(record.kind, index, *projection))

    def commit(self) -> None:
        before = len(self.resolver.contacts)
        for kind in (RecordKind.SMS, RecordKind.MMS):
            for pending in self._pending:
                if pending.kind is not kind:
                    continue
                if kind is RecordKind.SMS:
                    self.resolver.add_sms(pending.addresses[0], pending.names[0],
                                          self.source_file, pending.index)
                else:
                    self.resolver.add_mms(list(pending.addresses), list(pending.names),
                                          self.source_file, pending.index)
        self.logger.debug(
            f"{self.source_file}: {len(self.resolver.contacts) - before} new contacts "
            f"({len(self.resolver.contacts)} total)"
        )
        self._pending = []

    def rollback(self) -> None:
        self._pending = []

    def close(self) -> None:
        self._pending = []
