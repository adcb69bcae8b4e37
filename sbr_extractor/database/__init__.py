"""
Relational storage: SQL dialects, connection factory and the transactional sink.
"""

from .connection import connect_sqlite, connect_odbc, open_database
from .dialects import SCHEMA, TABLES, VIEW_NAME, SqlDialect, SQLiteDialect, SqlServerDialect
from .relational_sink import RelationalSink

__all__ = [
    'connect_sqlite',
    'connect_odbc',
    'open_database',
    'SCHEMA',
    'TABLES',
    'VIEW_NAME',
    'SqlDialect',
    'SQLiteDialect',
    'SqlServerDialect',
    'RelationalSink',
]
