"""
Flat-file sink: tab-separated output, one row per record.

Files and column order:
- sms.tsv: SMS Index #, Protocol, Address, Type, Subject, Body, Service Center,
  Status, Read, Date, Locked, Date Sent, Readable Date, Contact Name
- mms.tsv: MMS Index #, Text Only, Read, Date, Locked, Date Sent, Readable Date,
  Contact Name, Seen, From Address, Address, Message Classifier, Message Size,
  Addresses
- calls.tsv: Call Index #, Number, Duration (Seconds), Date, Type,
  Readable Date, Contact Name
- contacts.tsv (end of run): Name, Canonical Number, Raw Numbers

The header is written when the sink is created. Index numbers start at 0 per
record kind and continue across the files of one run. There is no rollback
of written rows; an aborted file keeps every complete row and loses only a
torn trailing row, which is truncated away.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from ..exceptions import SinkError
from ..interfaces import RecordSinkInterface
from ..models import BackupInfo, BackupKind, RecordKind, Contact, SMS, MMS, Call
from ..utils import StringUtils


SMS_HEADERS = [
    "SMS Index #", "Protocol", "Address", "Type", "Subject", "Body", "Service Center",
    "Status", "Read", "Date", "Locked", "Date Sent", "Readable Date", "Contact Name",
]
MMS_HEADERS = [
    "MMS Index #", "Text Only", "Read", "Date", "Locked", "Date Sent", "Readable Date",
    "Contact Name", "Seen", "From Address", "Address", "Message Classifier", "Message Size",
    "Addresses",
]
CALL_HEADERS = [
    "Call Index #", "Number", "Duration (Seconds)", "Date", "Type", "Readable Date", "Contact Name",
]
CONTACT_HEADERS = ["Name", "Canonical Number", "Raw Numbers"]

FILE_LAYOUT = {
    RecordKind.SMS: ("sms.tsv", SMS_HEADERS),
    RecordKind.MMS: ("mms.tsv", MMS_HEADERS),
    RecordKind.CALL: ("calls.tsv", CALL_HEADERS),
}
KINDS_BY_BACKUP = {
    BackupKind.MESSAGES: (RecordKind.SMS, RecordKind.MMS),
    BackupKind.CALLS: (RecordKind.CALL,),
}
CONTACTS_FILE_NAME = "contacts.tsv"


class TsvFile:
    """
    Append-only TSV file that never leaves a torn row on disk.

    Rows are encoded whole and buffered; the buffer only ever holds complete
    rows. ``durable_size`` is the byte length of the rows known to be on
    disk. If a write fails part way, the file is truncated back to that size.
    """

    def __init__(self, path: Union[str, Path], headers: Sequence[str], buffer_size: int = 64 * 1024):
        self.path = Path(path)
        self.buffer_size = buffer_size
        self._handle = open(self.path, 'wb', buffering=0)
        self._pending = bytearray()
        self.durable_size = 0
        self.rows_written = 0
        self._append(headers)
        self.flush()

    def write_row(self, values: Sequence) -> None:
        self._append(values)
        self.rows_written += 1
        if len(self._pending) >= self.buffer_size:
            self.flush()

    def flush(self) -> None:
        if not self._pending:
            return
        written = 0
        try:
            with memoryview(self._pending) as view:
                while written < len(view):
                    written += self._handle.write(view[written:])
        except OSError:
            # Drop whatever part of the failed batch reached the disk
            self._handle.truncate(self.durable_size)
            self._handle.seek(self.durable_size)
            raise
        self.durable_size += written
        self._pending.clear()

    def close(self) -> None:
        try:
            self.flush()
        finally:
            self._handle.close()

    def _append(self, values: Sequence) -> None:
        line = '\t'.join(StringUtils.escape_cell(value) for value in values) + '\n'
        self._pending += line.encode('utf-8')


class FlatFileSink(RecordSinkInterface):
    """
    TSV writer for one backup kind.

    A messages sink owns sms.tsv and mms.tsv; a calls sink owns calls.tsv.
    Existing files of the same name are replaced when the sink is created.
    """

    name = "flat_file"

    def __init__(self, output_dir: Union[str, Path], backup_kind: BackupKind,
                 buffer_size: int = 64 * 1024):
        """
        Create the output files and write their headers.

        Args:
            output_dir: Existing directory to write into
            backup_kind: Which record kinds this sink writes
            buffer_size: Bytes buffered before a write to disk

        Raises:
            SinkError: If an output file cannot be created
        """
        self.logger = logging.getLogger(__name__)
        self.output_dir = Path(output_dir)
        self.backup_kind = backup_kind
        self.source_file: Optional[str] = None
        self._files: Dict[RecordKind, TsvFile] = {}
        self._next_index: Dict[RecordKind, int] = {}
        self._writers = {
            RecordKind.SMS: self._sms_row,
            RecordKind.MMS: self._mms_row,
            RecordKind.CALL: self._call_row,
        }

        try:
            for kind in KINDS_BY_BACKUP[backup_kind]:
                file_name, headers = FILE_LAYOUT[kind]
                self._files[kind] = TsvFile(self.output_dir / file_name, headers, buffer_size)
                self._next_index[kind] = 0
        except OSError as e:
            self.close()
            raise SinkError(f"Unable to create flat file in {self.output_dir}: {e}", sink_name=self.name)

        self.logger.info(
            f"Flat-file sink writing {', '.join(str(f.path.name) for f in self._files.values())} "
            f"to {self.output_dir}"
        )

    @property
    def paths(self) -> Dict[RecordKind, Path]:
        return {kind: tsv.path for kind, tsv in self._files.items()}

    def rows_written(self, kind: RecordKind) -> int:
        return self._next_index.get(kind, 0)

    def begin(self, source_file: str, backup_info: BackupInfo) -> None:
        self.source_file = source_file

    def accept(self, record) -> None:
        tsv = self._files.get(record.kind)
        if tsv is None:
            return
        index = self._next_index[record.kind]
        try:
            tsv.write_row(self._writers[record.kind](index, record))
        except OSError as e:
            raise SinkError(
                f"Unable to write {record.kind.value} row {index} to {tsv.path.name}: {e}",
                sink_name=self.name, source_file=self.source_file
            )
        self._next_index[record.kind] = index + 1

    def commit(self) -> None:
        try:
            for tsv in self._files.values():
                tsv.flush()
        except OSError as e:
            raise SinkError(f"Unable to flush flat files: {e}", sink_name=self.name, source_file=self.source_file)

    def rollback(self) -> None:
        # Complete rows are kept; a failed flush has already truncated its torn tail
        for tsv in self._files.values():
            try:
                tsv.flush()
            except OSError as e:
                self.logger.error(f"Unable to flush {tsv.path.name} after failure in {self.source_file}: {e}")

    def close(self) -> None:
        for tsv in self._files.values():
            try:
                tsv.close()
            except OSError as e:
                self.logger.error(f"Unable to close {tsv.path.name}: {e}")
        self._files = {}

    def write_contacts(self, contacts: Iterable[Contact]) -> None:
        """Write the resolved contact directory to contacts.tsv (messages sink only)."""
        if self.backup_kind is not BackupKind.MESSAGES:
            return
        path = self.output_dir / CONTACTS_FILE_NAME
        contacts_file = TsvFile(path, CONTACT_HEADERS)
        try:
            for contact in contacts:
                contacts_file.write_row([contact.name, contact.canonical_number, ', '.join(contact.raw_numbers)])
        finally:
            contacts_file.close()
        self.logger.info(f"Wrote {contacts_file.rows_written} contacts to {path}")

    @staticmethod
    def _flag(value: bool) -> str:
        return "true" if value else "false"

    def _sms_row(self, index: int, sms: SMS) -> List:
        return [
            index,
            sms.protocol,
            sms.address,
            sms.type,
            sms.subject,
            sms.body,
            sms.service_center,
            sms.status,
            sms.read,
            sms.formatted_date,
            self._flag(sms.locked),
            sms.formatted_date_sent,
            sms.readable_date,
            StringUtils.remove_commas_before_suffixes(sms.contact_name),
        ]

    def _mms_row(self, index: int, mms: MMS) -> List:
        return [
            index,
            self._flag(mms.text_only),
            mms.read,
            mms.formatted_date,
            self._flag(mms.locked),
            mms.formatted_date_sent,
            mms.readable_date,
            StringUtils.remove_commas_before_suffixes(mms.contact_name),
            self._flag(mms.seen),
            mms.from_address,
            mms.address,
            mms.message_classifier,
            mms.message_size,
            mms.serialize_addresses(),
        ]

    def _call_row(self, index: int, call: Call) -> List:
        return [
            index,
            call.number,
            call.duration,
            call.formatted_date,
            call.type,
            call.readable_date,
            StringUtils.remove_commas_before_suffixes(call.contact_name),
        ]

