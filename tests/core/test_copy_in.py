"""
Tests for the PostgreSQL COPY inserter.

psycopg is replaced by a stand-in module so these tests run without a
PostgreSQL server or the driver installed.
"""
import builtins
import threading
from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy.dialects.postgresql import psycopg as pg_psycopg
from sqlalchemy.exc import ProgrammingError

from datapipe.core import copy_in
from datapipe.core.copy_in import CopyInInserter
from datapipe.core.exceptions import (
    CancelledError, CopyError, DatabaseError, ScanError, StatementError
)


class FakePsycopgError(Exception):
    pass


@pytest.fixture
def fake_psycopg():
    module = SimpleNamespace(Error=FakePsycopgError)
    with patch.object(copy_in, "_import_psycopg", return_value=module):
        yield module


@pytest.fixture
def pg_conn():
    conn = MagicMock()
    conn.dialect = pg_psycopg.dialect()
    conn.in_transaction.return_value = False
    conn.execute.return_value = [("amount", "numeric"), ("label", "text"), ("id", "integer")]
    return conn


def _copy_stream(conn):
    return conn.connection.cursor.return_value.copy.return_value.__enter__.return_value


class TestCopyInInserter:
    """Test the COPY lifecycle against a mocked psycopg cursor."""

    def test_construction(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")

        cursor = pg_conn.connection.cursor.return_value
        cursor.copy.assert_called_once_with('COPY "public"."orders" (amount,label,id) FROM STDIN')
        pg_conn.begin.assert_called_once()
        assert inserter.type_tags == ["numeric", "text", "integer"]
        assert [c.name for c in inserter.columns] == ["amount", "label", "id"]
        assert inserter.kind == "copy_in"

    def test_rows_coerced_and_written(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")

        inserter.append((b"42.5", b"abc", None))
        inserter.append((1.5, "def", 2))

        stream = _copy_stream(pg_conn)
        assert stream.write_row.call_args_list[0].args[0] == [42.5, "abc", None]
        assert stream.write_row.call_args_list[1].args[0] == [1.5, "def", 2]
        assert inserter.total_row_count == 2

    def test_flush_then_close_commits(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")
        inserter.append((b"1", b"a", 1))

        assert inserter.flush() == 1
        copy_cm = pg_conn.connection.cursor.return_value.copy.return_value
        # ExitStack binds the context manager as the first argument
        assert copy_cm.__exit__.call_count == 1
        assert copy_cm.__exit__.call_args.args[-3:] == (None, None, None)

        inserter.close()
        pg_conn.connection.cursor.return_value.close.assert_called_once()
        pg_conn.begin.return_value.commit.assert_called_once()

    def test_zero_rows(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")

        assert inserter.flush() == 0
        inserter.close()

        _copy_stream(pg_conn).write_row.assert_not_called()
        pg_conn.begin.return_value.commit.assert_called_once()

    def test_flush_twice_finishes_once(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")
        inserter.flush()
        inserter.flush()

        copy_cm = pg_conn.connection.cursor.return_value.copy.return_value
        assert copy_cm.__exit__.call_count == 1

    def test_append_after_flush(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")
        inserter.flush()

        with pytest.raises(CopyError):
            inserter.append((1, "a", 1))

    def test_bad_numeric_value(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")

        with pytest.raises(ScanError):
            inserter.append((b"abc", b"a", 1))
        assert inserter.total_row_count == 0

    def test_write_failure(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")
        _copy_stream(pg_conn).write_row.side_effect = FakePsycopgError("connection lost")

        with pytest.raises(StatementError) as exc_info:
            inserter.append((1, "a", 1))
        assert "connection lost" in exc_info.value.message

    def test_copy_start_failure_closes_cursor(self, fake_psycopg, pg_conn):
        cursor = pg_conn.connection.cursor.return_value
        cursor.copy.side_effect = FakePsycopgError("relation does not exist")

        with pytest.raises(StatementError):
            CopyInInserter(pg_conn, ["amount"], "public", "orders")
        cursor.close.assert_called_once()
        pg_conn.begin.return_value.rollback.assert_called_once()

    def test_type_lookup_failure_rolls_back(self, fake_psycopg, pg_conn):
        pg_conn.execute.side_effect = ProgrammingError("SELECT", {}, Exception("permission denied"))

        with pytest.raises(DatabaseError):
            CopyInInserter(pg_conn, ["amount"], "public", "orders")

        pg_conn.begin.return_value.rollback.assert_called_once()
        pg_conn.connection.cursor.assert_not_called()

    def test_untyped_columns_logged(self, fake_psycopg, pg_conn, caplog):
        pg_conn.execute.return_value = [("amount", "numeric")]

        inserter = CopyInInserter(pg_conn, ["amount", "label"], "public", "orders")

        assert inserter.type_tags == ["numeric", ""]
        assert "label" in caplog.text

    def test_abort_rolls_back(self, fake_psycopg, pg_conn):
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders")
        inserter.append((1, "a", 1))

        inserter.abort()

        copy_cm = pg_conn.connection.cursor.return_value.copy.return_value
        exit_args = copy_cm.__exit__.call_args.args
        assert exit_args[-3] is CopyError
        pg_conn.begin.return_value.rollback.assert_called_once()
        pg_conn.begin.return_value.commit.assert_not_called()

        # a later close is a no-op
        inserter.close()
        pg_conn.begin.return_value.commit.assert_not_called()

    def test_cancelled(self, fake_psycopg, pg_conn):
        cancel = threading.Event()
        inserter = CopyInInserter(pg_conn, ["amount", "label", "id"], "public", "orders", cancel_event=cancel)
        cancel.set()

        with pytest.raises(CancelledError):
            inserter.append((1, "a", 1))
        _copy_stream(pg_conn).write_row.assert_not_called()


class TestImportPsycopg:
    """Test the missing driver message."""

    def test_missing_driver(self):
        real_import = builtins.__import__

        def fake_import(name, *args, **kwargs):
            if name == "psycopg":
                raise ImportError("No module named 'psycopg'")
            return real_import(name, *args, **kwargs)

        with patch("builtins.__import__", side_effect=fake_import):
            with pytest.raises(CopyError) as exc_info:
                copy_in._import_psycopg()

        assert "pip install" in exc_info.value.message
