"""
Tests for the relational connection factory.

SQLite connections are opened for real in a temporary directory. ODBC
connections are exercised with pyodbc.connect mocked out; those tests are
skipped when pyodbc cannot be imported (no ODBC driver manager installed).
"""

import pytest
from unittest.mock import MagicMock, patch

from sbr_extractor.database.connection import connect_odbc, connect_sqlite, open_database
from sbr_extractor.database.dialects import SQLiteDialect, SqlServerDialect
from sbr_extractor.exceptions import DatabaseConnectionError, SinkError


@pytest.fixture
def pyodbc_module():
    return pytest.importorskip("pyodbc")


class TestSQLiteConnection:
    """SQLite is the default store."""

    def test_connect_sqlite(self, tmp_path):
        connection = connect_sqlite(tmp_path / "result.db")
        try:
            assert connection.isolation_level is None
            assert connection.execute("PRAGMA foreign_keys").fetchone() == (1,)
        finally:
            connection.close()
        assert (tmp_path / "result.db").exists()

    def test_connect_sqlite_failure(self, tmp_path):
        with pytest.raises(DatabaseConnectionError) as exc_info:
            connect_sqlite(tmp_path / "missing" / "result.db")
        assert exc_info.value.sink_name == "relational"
        assert isinstance(exc_info.value, SinkError)

    def test_open_database_defaults_to_sqlite(self, tmp_path):
        connection, dialect = open_database(database_path=tmp_path / "result.db")
        connection.close()
        assert isinstance(dialect, SQLiteDialect)

    def test_open_database_without_target(self):
        with pytest.raises(DatabaseConnectionError, match="No database path or connection string"):
            open_database()


class TestODBCConnection:
    """SQL Server over pyodbc, with the driver mocked."""

    def test_connect_odbc(self, pyodbc_module):
        connection = MagicMock()
        with patch.object(pyodbc_module, "connect", return_value=connection) as mock_connect:
            result, driver_error = connect_odbc("DSN=sms", timeout=5)

        assert result is connection
        assert driver_error is pyodbc_module.Error
        mock_connect.assert_called_once_with("DSN=sms", autocommit=False, timeout=5)
        connection.setencoding.assert_called_once_with(encoding="utf-8")
        assert connection.setdecoding.call_count == 2

    def test_connect_odbc_failure(self, pyodbc_module):
        with patch.object(pyodbc_module, "connect", side_effect=pyodbc_module.Error("08001", "login timeout")):
            with pytest.raises(DatabaseConnectionError, match="Failed to connect to database"):
                connect_odbc("DSN=sms")

    def test_open_database_prefers_connection_string(self, pyodbc_module, tmp_path):
        with patch.object(pyodbc_module, "connect", return_value=MagicMock()):
            connection, dialect = open_database(
                database_path=tmp_path / "result.db", connection_string="DSN=sms", schema="archive"
            )

        assert isinstance(dialect, SqlServerDialect)
        assert dialect.schema == "archive"
        assert dialect.driver_error is pyodbc_module.Error
        assert not (tmp_path / "result.db").exists()
