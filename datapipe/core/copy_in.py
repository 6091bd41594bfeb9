"""
datapipe Native Copy Inserter

PostgreSQL strategy using COPY FROM STDIN through psycopg 3. Each row is
coerced to its destination column type and written to the COPY stream
immediately; the protocol does its own batching on the wire. The whole
copy runs in the single transaction opened at construction.
"""

import threading
from contextlib import ExitStack
from typing import Any, List, Optional, Sequence

from sqlalchemy.engine import Connection

from datapipe.core.bulk import scan_row
from datapipe.core.column_types import coerce_row, find_column_types
from datapipe.core.exceptions import CopyError, StatementError
from datapipe.core.logger import get_logger
from datapipe.core.statement import StatementBuilder
from datapipe.core.transaction import TransactionController
from datapipe.core.types import Column
from datapipe.core.utils import check_cancelled

logger = get_logger(__name__)


def _import_psycopg():
    try:
        import psycopg
    except ImportError:
        raise CopyError("psycopg not installed. Install with: pip install 'psycopg[binary]'")
    return psycopg


class CopyInInserter:
    """COPY-protocol writer for one PostgreSQL table."""

    kind = "copy_in"

    def __init__(
        self,
        conn: Connection,
        columns: Sequence[str],
        schema: str,
        table: str,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._psycopg = _import_psycopg()

        self.conn = conn
        self.cancel_event = cancel_event
        self.builder = StatementBuilder(conn.dialect, schema, table, columns)
        self.table_name = self.builder.qualified_table
        self.total_row_count = 0

        self.tx = TransactionController(conn, None, cancel_event, self.table_name)
        self.tx.ensure_open()
        try:
            self._start(conn, schema, table, columns)
        except Exception:
            self.tx.rollback()
            raise

        self._finished = False
        self._closed = False

    def _start(self, conn: Connection, schema: str, table: str, columns: Sequence[str]) -> None:
        check_cancelled(self.cancel_event, f"column type lookup for {self.table_name}")
        type_tags = find_column_types(conn, schema, table, columns)
        self.columns: List[Column] = [Column(name, tag) for name, tag in zip(columns, type_tags)]
        self.type_tags = type_tags

        untyped = [c.name for c in self.columns if not c.type_tag]
        if untyped:
            logger.warning(
                "No declared type found for %s on %s; byte values will be sent as text",
                ", ".join(untyped), self.table_name
            )

        stmt = self.builder.build_copy()
        self._stack = ExitStack()
        self.cursor = conn.connection.cursor()
        try:
            self.copy = self._stack.enter_context(self.cursor.copy(stmt))
        except self._psycopg.Error as e:
            self.cursor.close()
            raise StatementError(
                f"Failed to start COPY into {self.table_name}: {str(e)}",
                stmt
            ) from e

    def append(self, row: Any) -> None:
        """Coerce one row and send it down the COPY stream."""
        if self._finished:
            raise CopyError("COPY stream already finished", f"table {self.table_name}")

        values = coerce_row(scan_row(row, len(self.columns)), self.type_tags)

        check_cancelled(self.cancel_event, f"copy into {self.table_name}")
        try:
            self.copy.write_row(values)
        except self._psycopg.Error as e:
            raise StatementError(
                f"COPY into {self.table_name} failed: {str(e)}",
                f"{self.total_row_count} rows written"
            ) from e

        self.total_row_count += 1

    def flush(self) -> int:
        """Finish the COPY frame and return the number of rows sent."""
        if not self._finished:
            check_cancelled(self.cancel_event, f"finishing copy into {self.table_name}")
            self._finished = True
            try:
                self._stack.close()
            except self._psycopg.Error as e:
                raise StatementError(
                    f"Finishing COPY into {self.table_name} failed: {str(e)}",
                    f"{self.total_row_count} rows written"
                ) from e

        return self.total_row_count

    def close(self) -> None:
        """Close the COPY cursor and commit the copy transaction."""
        if self._closed:
            return
        self._closed = True
        self.cursor.close()
        self.tx.commit(self.total_row_count)

    def abort(self) -> None:
        """Cancel the COPY in progress and roll the transaction back."""
        if self._closed:
            return
        self._closed = True
        try:
            if not self._finished:
                self._finished = True
                err = CopyError("Copy aborted", f"table {self.table_name}")
                self._stack.__exit__(CopyError, err, None)
            self.cursor.close()
        finally:
            self.tx.rollback()
