"""
Relational Sink - transactional per-file import into a SQL store.

Each backup file is imported inside one transaction: the ``backup_files`` row,
every record and every MMS part are inserted between ``begin`` and
``commit``. Any failure before commit rolls the whole file back, so readers
of the store never see a partially imported file.

Column conventions:
- "" and "null" source strings are stored as NULL
- enum columns hold the same rendering as the flat files (label or Unknown(code))
- flags are stored as 0/1 integers
- MMS recipient lists are stored as one JSON text column
- part payloads are base64-decoded here; an undecodable payload fails the file
"""

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..exceptions import SinkError
from ..interfaces import RecordSinkInterface
from ..models import BackupInfo, BackupKind, RecordKind, Contact, SMS, MMS, Call
from ..utils import StringUtils
from .connection import open_database
from .dialects import SqlDialect


class RelationalSink(RecordSinkInterface):
    """
    Writes records to SQLite or SQL Server with all-or-nothing semantics per file.

    Row indices (``idx``) are sequential per record kind from 0 and continue
    across the files of a run; a rolled-back file gives its indices back.
    """

    name = "relational"

    def __init__(self, connection, dialect: SqlDialect, backup_kind: Optional[BackupKind] = None):
        """
        Create the schema if absent.

        Args:
            connection: Open DB-API connection (see ``open_database``)
            dialect: SQL rendering for the connection's backend
            backup_kind: Kind of backup files this sink receives (informational)

        Raises:
            SinkError: If the schema cannot be created
        """
        self.logger = logging.getLogger(__name__)
        self.connection = connection
        self.dialect = dialect
        self.backup_kind = backup_kind
        self.source_file: Optional[str] = None
        self.backup_file_id: Optional[int] = None
        self._cursor = None
        self._in_transaction = False
        self._next_index: Dict[RecordKind, int] = {kind: 0 for kind in RecordKind}
        self._index_at_begin: Dict[RecordKind, int] = dict(self._next_index)
        self.files_committed = 0
        self.files_rolled_back = 0

        self._create_schema()

    @classmethod
    def open(cls, database_path: Optional[Union[str, Path]] = None,
             connection_string: Optional[str] = None,
             backup_kind: Optional[BackupKind] = None,
             timeout: int = 30, schema: str = "dbo") -> 'RelationalSink':
        """Open the configured store and build a sink on it."""
        connection, dialect = open_database(database_path, connection_string, timeout, schema)
        try:
            return cls(connection, dialect, backup_kind)
        except SinkError:
            connection.close()
            raise

    def _create_schema(self) -> None:
        cursor = self.connection.cursor()
        try:
            for statement in self.dialect.schema_statements():
                cursor.execute(statement)
            if self.dialect.name != "sqlite":
                self.connection.commit()
        except self.dialect.driver_error as e:
            raise SinkError(f"Failed to create relational schema: {e}", sink_name=self.name)
        finally:
            cursor.close()
        self.logger.debug(f"Relational schema ready ({self.dialect.name})")

    def rows_written(self, kind: RecordKind) -> int:
        return self._next_index[kind]

    def begin(self, source_file: str, backup_info: BackupInfo) -> None:
        self.source_file = source_file
        self._index_at_begin = dict(self._next_index)
        try:
            self.dialect.begin(self.connection)
            self._in_transaction = True
            self._cursor = self.connection.cursor()
            self.backup_file_id = self.dialect.insert(self._cursor, 'backup_files', {
                'file_name': Path(source_file).name,
                'backup_kind': self.backup_kind.value if self.backup_kind else None,
                'backup_set': StringUtils.none_if_null(backup_info.backup_set),
                'backup_date': backup_info.backup_date,
                'reported_count': StringUtils.none_if_null(backup_info.count),
                'imported_at': datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S'),
            })
        except self.dialect.driver_error as e:
            if self._in_transaction:
                self.rollback()
            raise SinkError(f"Failed to start import of {source_file}: {e}",
                            sink_name=self.name, source_file=source_file)
        self.logger.debug(f"Started transaction for {source_file} (backup_file_id={self.backup_file_id})")

    def accept(self, record) -> None:
        if self._cursor is None:
            raise SinkError("Record received outside a file transaction",
                            sink_name=self.name, source_file=self.source_file)
        kind = record.kind
        index = self._next_index[kind]
        try:
            if kind is RecordKind.SMS:
                self._insert_sms(index, record)
            elif kind is RecordKind.MMS:
                self._insert_mms(index, record)
            else:
                self._insert_call(index, record)
        except self.dialect.driver_error as e:
            raise SinkError(f"Failed to insert {kind.value} {index}: {e}",
                            sink_name=self.name, source_file=self.source_file)
        self._next_index[kind] = index + 1

    def commit(self) -> None:
        try:
            self._close_cursor()
            self.dialect.commit(self.connection)
        except self.dialect.driver_error as e:
            raise SinkError(f"Failed to commit {self.source_file}: {e}",
                            sink_name=self.name, source_file=self.source_file)
        self._in_transaction = False
        self._index_at_begin = dict(self._next_index)
        self.files_committed += 1
        self.logger.info(f"Committed {self.source_file} to relational store")

    def rollback(self) -> None:
        self._next_index = dict(self._index_at_begin)
        if not self._in_transaction:
            return
        try:
            self._close_cursor()
            self.dialect.rollback(self.connection)
        except self.dialect.driver_error as e:
            self.logger.critical(f"ROLLBACK FAILED for {self.source_file} - store may be inconsistent: {e}")
        self._in_transaction = False
        self.files_rolled_back += 1
        self.logger.error(f"Rolled back relational import of {self.source_file}")

    def write_contacts(self, contacts: Iterable[Contact]) -> None:
        """
        Replace the contacts table with the resolved directory in one transaction.

        Raises:
            SinkError: If the contacts cannot be written
        """
        written = 0
        try:
            self.dialect.begin(self.connection)
            self._in_transaction = True
            cursor = self.connection.cursor()
            try:
                cursor.execute(f"DELETE FROM {self.dialect.table_name('contacts')}")
                for contact in contacts:
                    self.dialect.insert(cursor, 'contacts', {
                        'canonical_number': contact.canonical_number,
                        'name': contact.name,
                        'raw_numbers': json.dumps(contact.raw_numbers),
                    })
                    written += 1
            finally:
                cursor.close()
            self.dialect.commit(self.connection)
            self._in_transaction = False
        except self.dialect.driver_error as e:
            try:
                self.dialect.rollback(self.connection)
            except self.dialect.driver_error as rollback_error:
                self.logger.critical(f"ROLLBACK FAILED for contacts: {rollback_error}")
            self._in_transaction = False
            raise SinkError(f"Failed to write contacts: {e}", sink_name=self.name)
        self.logger.info(f"Wrote {written} contacts to relational store")

    def close(self) -> None:
        if self._in_transaction:
            self.rollback()
        try:
            self.connection.close()
        except self.dialect.driver_error as e:
            self.logger.error(f"Failed to close database connection: {e}")

    def _close_cursor(self) -> None:
        if self._cursor is not None:
            cursor, self._cursor = self._cursor, None
            cursor.close()

    def _insert_sms(self, index: int, sms: SMS) -> None:
        self.dialect.insert(self._cursor, 'sms', {
            'backup_file_id': self.backup_file_id,
            'idx': index,
            'protocol': StringUtils.none_if_null(sms.protocol),
            'address': StringUtils.none_if_null(sms.address),
            'ty': str(sms.type),
            'subject': StringUtils.none_if_null(sms.subject),
            'body': sms.body,
            'service_center': StringUtils.none_if_null(sms.service_center),
            'status': str(sms.status),
            'read': str(sms.read),
            'date': sms.date,
            'locked': int(sms.locked),
            'date_sent': sms.date_sent,
            'readable_date': StringUtils.none_if_null(sms.readable_date),
            'contact_name': StringUtils.none_if_null(sms.contact_name),
        })

    def _insert_mms(self, index: int, mms: MMS) -> None:
        mms_id = self.dialect.insert(self._cursor, 'mms', {
            'backup_file_id': self.backup_file_id,
            'idx': index,
            'text_only': int(mms.text_only),
            'read': str(mms.read),
            'date': mms.date,
            'locked': int(mms.locked),
            'date_sent': mms.date_sent,
            'readable_date': StringUtils.none_if_null(mms.readable_date),
            'contact_name': StringUtils.none_if_null(mms.contact_name),
            'seen': int(mms.seen),
            'from_address': StringUtils.none_if_null(mms.from_address),
            'address': StringUtils.none_if_null(mms.address),
            'message_classifier': StringUtils.none_if_null(mms.message_classifier),
            'message_size': mms.message_size,
            'addresses': mms.serialize_addresses(),
        })

        for seq, part in enumerate(mms.parts):
            raw_data = None
            if part.has_payload:
                try:
                    raw_data = base64.b64decode(part.data)
                except (binascii.Error, ValueError) as e:
                    raise SinkError(f"Undecodable payload in mms {index} part {seq}: {e}",
                                    sink_name=self.name, source_file=self.source_file)
            self.dialect.insert(self._cursor, 'mms_parts', {
                'mms_id': mms_id,
                'seq': seq,
                'content_type': StringUtils.none_if_null(part.content_type),
                'name': StringUtils.none_if_null(part.name),
                'file_name': StringUtils.none_if_null(part.file_name),
                'content_display': StringUtils.none_if_null(part.content_display),
                'text': StringUtils.none_if_null(part.text),
                'raw_data': raw_data,
            })

    def _insert_call(self, index: int, call: Call) -> None:
        self.dialect.insert(self._cursor, 'calls', {
            'backup_file_id': self.backup_file_id,
            'idx': index,
            'number': StringUtils.none_if_null(call.number),
            'duration': call.duration,
            'date': call.date,
            'ty': str(call.type),
            'readable_date': StringUtils.none_if_null(call.readable_date),
            'contact_name': StringUtils.none_if_null(call.contact_name),
        })
