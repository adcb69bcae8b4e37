"""
Connection factory for the relational sink.

SQLite is the default store. When an ODBC connection string is configured
the sink talks to SQL Server through pyodbc instead; pyodbc is imported only
on that path so a SQLite-only run does not need an ODBC driver manager.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional, Tuple, Union

from ..exceptions import DatabaseConnectionError
from .dialects import SqlDialect, SQLiteDialect, SqlServerDialect

logger = logging.getLogger(__name__)


def connect_sqlite(path: Union[str, Path]) -> sqlite3.Connection:
    """
    Open (or create) a SQLite database file.

    Args:
        path: Database file path

    Returns:
        Connection with foreign keys enforced and explicit transaction control

    Raises:
        DatabaseConnectionError: If the file cannot be opened
    """
    try:
        connection = sqlite3.connect(str(path), isolation_level=None)
        connection.execute("PRAGMA foreign_keys=ON")
    except sqlite3.Error as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Failed to open SQLite database {path}: {e}", sink_name="relational")
    logger.debug(f"Opened SQLite database {path}")
    return connection


def connect_odbc(connection_string: str, timeout: int = 30):
    """
    Open an ODBC connection with explicit transaction control.

    Args:
        connection_string: ODBC connection string
        timeout: Login timeout in seconds

    Returns:
        Tuple of (pyodbc.Connection, pyodbc.Error)

    Raises:
        DatabaseConnectionError: If pyodbc is unavailable or the connection fails
    """
    try:
        import pyodbc
    except ImportError as e:
        raise DatabaseConnectionError(f"pyodbc is required for ODBC connections: {e}", sink_name="relational")

    try:
        connection = pyodbc.connect(connection_string, autocommit=False, timeout=timeout)
        connection.setdecoding(pyodbc.SQL_CHAR, encoding='utf-8')
        connection.setdecoding(pyodbc.SQL_WCHAR, encoding='utf-8')
        connection.setencoding(encoding='utf-8')
    except pyodbc.Error as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Failed to connect to database: {e}", sink_name="relational")
    return connection, pyodbc.Error


def open_database(database_path: Optional[Union[str, Path]] = None,
                  connection_string: Optional[str] = None,
                  timeout: int = 30,
                  schema: str = "dbo") -> Tuple[object, SqlDialect]:
    """
    Open the configured relational store.

    Args:
        database_path: SQLite file used when no connection string is given
        connection_string: Optional ODBC connection string (SQL Server)
        timeout: ODBC login timeout in seconds
        schema: SQL Server schema holding the tables

    Returns:
        Tuple of (connection, dialect)

    Raises:
        DatabaseConnectionError: If neither target is configured or the connection fails
    """
    if connection_string:
        connection, driver_error = connect_odbc(connection_string, timeout)
        logger.info(f"Relational sink using SQL Server schema [{schema}] over ODBC")
        return connection, SqlServerDialect(schema=schema, driver_error=driver_error)

    if database_path is None:
        raise DatabaseConnectionError("No database path or connection string configured", sink_name="relational")
    logger.info(f"Relational sink using SQLite database {database_path}")
    return connect_sqlite(database_path), SQLiteDialect()
