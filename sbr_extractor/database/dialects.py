"""
SQL dialects for the relational sink.

The table layout is declared once (``SCHEMA``) and rendered per dialect:

- SQLiteDialect: the default store, a single database file
- SqlServerDialect: an ODBC target, every table qualified with a schema name

Tables:
    backup_files  one row per imported backup file
    sms           single-recipient messages
    mms           multi-recipient messages; ``addresses`` holds a JSON list
    mms_parts     parts of an mms row, in source order (``seq``)
    calls         call log entries
    contacts      resolved contact directory, rewritten at the end of a run
    mms_view      mms joined with its parts
"""

import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type


@dataclass(frozen=True)
class Column:
    """
    Logical column definition.

    ``type`` is one of ``id`` (generated key), ``key`` (text primary key),
    ``integer``, ``text`` or ``blob``.
    """
    name: str
    type: str
    references: Optional[str] = None


@dataclass(frozen=True)
class Table:
    name: str
    columns: Tuple[Column, ...]

    @property
    def insert_columns(self) -> List[str]:
        """Columns supplied on insert (everything but the generated key)."""
        return [column.name for column in self.columns if column.type != 'id']


def _columns(*definitions) -> Tuple[Column, ...]:
    return tuple(Column(*definition) for definition in definitions)


SCHEMA: Tuple[Table, ...] = (
    Table('backup_files', _columns(
        ('id', 'id'),
        ('file_name', 'text'),
        ('backup_kind', 'text'),
        ('backup_set', 'text'),
        ('backup_date', 'integer'),
        ('reported_count', 'text'),
        ('imported_at', 'text'),
    )),
    Table('sms', _columns(
        ('id', 'id'),
        ('backup_file_id', 'integer', 'backup_files'),
        ('idx', 'integer'),
        ('protocol', 'text'),
        ('address', 'text'),
        ('ty', 'text'),
        ('subject', 'text'),
        ('body', 'text'),
        ('service_center', 'text'),
        ('status', 'text'),
        ('read', 'text'),
        ('date', 'integer'),
        ('locked', 'integer'),
        ('date_sent', 'integer'),
        ('readable_date', 'text'),
        ('contact_name', 'text'),
    )),
    Table('mms', _columns(
        ('id', 'id'),
        ('backup_file_id', 'integer', 'backup_files'),
        ('idx', 'integer'),
        ('text_only', 'integer'),
        ('read', 'text'),
        ('date', 'integer'),
        ('locked', 'integer'),
        ('date_sent', 'integer'),
        ('readable_date', 'text'),
        ('contact_name', 'text'),
        ('seen', 'integer'),
        ('from_address', 'text'),
        ('address', 'text'),
        ('message_classifier', 'text'),
        ('message_size', 'integer'),
        ('addresses', 'text'),
    )),
    Table('mms_parts', _columns(
        ('id', 'id'),
        ('mms_id', 'integer', 'mms'),
        ('seq', 'integer'),
        ('content_type', 'text'),
        ('name', 'text'),
        ('file_name', 'text'),
        ('content_display', 'text'),
        ('text', 'text'),
        ('raw_data', 'blob'),
    )),
    Table('calls', _columns(
        ('id', 'id'),
        ('backup_file_id', 'integer', 'backup_files'),
        ('idx', 'integer'),
        ('number', 'text'),
        ('duration', 'integer'),
        ('date', 'integer'),
        ('ty', 'text'),
        ('readable_date', 'text'),
        ('contact_name', 'text'),
    )),
    Table('contacts', _columns(
        ('canonical_number', 'key'),
        ('name', 'text'),
        ('raw_numbers', 'text'),
    )),
)

TABLES: Dict[str, Table] = {table.name: table for table in SCHEMA}

VIEW_NAME = 'mms_view'
_VIEW_PART_COLUMNS = ('seq', 'content_type', 'name', 'file_name', 'content_display', 'text', 'raw_data')


class SqlDialect(ABC):
    """Renders the shared schema and runs the statements one backend needs."""

    name = "generic"
    placeholder = "?"
    type_names: Dict[str, str] = {}
    driver_error: Type[BaseException] = Exception

    def quote(self, identifier: str) -> str:
        return f'"{identifier}"'

    def table_name(self, name: str) -> str:
        return self.quote(name)

    def column_definition(self, column: Column) -> str:
        definition = f"{self.quote(column.name)} {self.type_names[column.type]}"
        if column.references:
            definition += f" NOT NULL REFERENCES {self.table_name(column.references)}({self.quote('id')})"
        return definition

    @abstractmethod
    def create_table(self, table: Table) -> str:
        pass

    @abstractmethod
    def create_view(self) -> str:
        pass

    def view_select(self) -> str:
        part_columns = ', '.join(
            f"p.{self.quote(column)} AS {self.quote('part_' + column)}" for column in _VIEW_PART_COLUMNS
        )
        return (
            f"SELECT m.*, p.{self.quote('id')} AS {self.quote('part_id')}, {part_columns} "
            f"FROM {self.table_name('mms')} m "
            f"JOIN {self.table_name('mms_parts')} p ON m.{self.quote('id')} = p.{self.quote('mms_id')}"
        )

    def schema_statements(self) -> List[str]:
        """Idempotent DDL for every table and the view, in foreign-key order."""
        return [self.create_table(table) for table in SCHEMA] + [self.create_view()]

    def insert_sql(self, table: Table) -> str:
        columns = ', '.join(self.quote(name) for name in table.insert_columns)
        markers = ', '.join(self.placeholder for _ in table.insert_columns)
        return f"INSERT INTO {self.table_name(table.name)} ({columns}) VALUES ({markers})"

    @abstractmethod
    def insert(self, cursor, table_name: str, values: Dict[str, Any]) -> Optional[int]:
        """
        Insert one row.

        Args:
            cursor: Open cursor inside the current transaction
            table_name: Name of a table in SCHEMA
            values: Column values keyed by column name (missing columns are NULL)

        Returns:
            The generated id, or None for tables without one
        """
        pass

    @abstractmethod
    def begin(self, connection) -> None:
        pass

    def commit(self, connection) -> None:
        connection.commit()

    def rollback(self, connection) -> None:
        connection.rollback()

    @staticmethod
    def _row(table: Table, values: Dict[str, Any]) -> Sequence[Any]:
        return [values.get(name) for name in table.insert_columns]


class SQLiteDialect(SqlDialect):
    """
    SQLite rendering.

    The connection is opened with ``isolation_level=None`` so the sink owns
    transaction boundaries through explicit BEGIN / COMMIT / ROLLBACK.
    """

    name = "sqlite"
    type_names = {
        'id': 'INTEGER PRIMARY KEY AUTOINCREMENT',
        'key': 'TEXT PRIMARY KEY',
        'integer': 'INTEGER',
        'text': 'TEXT',
        'blob': 'BLOB',
    }

    driver_error = sqlite3.Error

    def create_table(self, table: Table) -> str:
        columns = ', '.join(self.column_definition(column) for column in table.columns)
        return f"CREATE TABLE IF NOT EXISTS {self.table_name(table.name)} ({columns})"

    def create_view(self) -> str:
        return f"CREATE VIEW IF NOT EXISTS {self.table_name(VIEW_NAME)} AS {self.view_select()}"

    def insert(self, cursor, table_name: str, values: Dict[str, Any]) -> Optional[int]:
        table = TABLES[table_name]
        cursor.execute(self.insert_sql(table), self._row(table, values))
        return cursor.lastrowid if table.columns[0].type == 'id' else None

    def begin(self, connection) -> None:
        connection.execute("BEGIN")

    def commit(self, connection) -> None:
        connection.execute("COMMIT")

    def rollback(self, connection) -> None:
        if connection.in_transaction:
            connection.execute("ROLLBACK")


class SqlServerDialect(SqlDialect):
    """
    SQL Server rendering for ODBC connections opened with ``autocommit=False``.

    Every object lives in ``schema``; tables are created only when
    ``OBJECT_ID`` does not find them. Generated ids come back through
    ``OUTPUT INSERTED.id``.
    """

    name = "sqlserver"
    type_names = {
        'id': 'BIGINT IDENTITY(1,1) PRIMARY KEY',
        'key': 'NVARCHAR(64) PRIMARY KEY',
        'integer': 'BIGINT',
        'text': 'NVARCHAR(MAX)',
        'blob': 'VARBINARY(MAX)',
    }

    def __init__(self, schema: str = "dbo", driver_error: Type[BaseException] = Exception):
        self.schema = schema
        self.driver_error = driver_error

    def quote(self, identifier: str) -> str:
        return f"[{identifier}]"

    def table_name(self, name: str) -> str:
        return f"[{self.schema}].[{name}]"

    def create_table(self, table: Table) -> str:
        columns = ', '.join(self.column_definition(column) for column in table.columns)
        return (
            f"IF OBJECT_ID(N'{self.schema}.{table.name}', N'U') IS NULL "
            f"CREATE TABLE {self.table_name(table.name)} ({columns})"
        )

    def create_view(self) -> str:
        # CREATE VIEW must be alone in its batch, hence EXEC
        return (
            f"IF OBJECT_ID(N'{self.schema}.{VIEW_NAME}', N'V') IS NULL "
            f"EXEC('CREATE VIEW {self.table_name(VIEW_NAME)} AS {self.view_select()}')"
        )

    def insert_sql(self, table: Table) -> str:
        if table.columns[0].type != 'id':
            return super().insert_sql(table)
        columns = ', '.join(self.quote(name) for name in table.insert_columns)
        markers = ', '.join(self.placeholder for _ in table.insert_columns)
        return (
            f"INSERT INTO {self.table_name(table.name)} ({columns}) "
            f"OUTPUT INSERTED.{self.quote('id')} VALUES ({markers})"
        )

    def insert(self, cursor, table_name: str, values: Dict[str, Any]) -> Optional[int]:
        table = TABLES[table_name]
        cursor.execute(self.insert_sql(table), self._row(table, values))
        if table.columns[0].type != 'id':
            return None
        return int(cursor.fetchone()[0])

    def begin(self, connection) -> None:
        # autocommit=False: the driver opens the transaction on the first statement
        pass
