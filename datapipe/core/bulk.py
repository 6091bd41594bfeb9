"""
datapipe Generic Batch Inserter

Default insertion strategy: rows are buffered locally and written as one
multi-row INSERT per full buffer, inside transactions committed every
``max_row_tx_commit`` appended rows. Works with any SQLAlchemy dialect.
"""

import threading
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from datapipe.core.buffer import BatchBuffer
from datapipe.core.exceptions import CopyError, ScanError, StatementError
from datapipe.core.logger import get_logger
from datapipe.core.statement import StatementBuilder
from datapipe.core.transaction import TransactionController
from datapipe.core.utils import check_cancelled

logger = get_logger(__name__)

DEFAULT_BATCH_ROWS = 100
DEFAULT_MAX_ROW_TX_COMMIT = 500


def scan_row(row: Any, column_count: int) -> List[Any]:
    """Read a cursor row into a fresh list of column values."""
    try:
        values = list(row)
    except TypeError as e:
        raise ScanError(f"Cannot read row values: {str(e)}") from e
    if len(values) != column_count:
        raise ScanError(f"Row has {len(values)} values, expected {column_count}")
    return values


class BulkInserter:
    """
    Buffered multi-row INSERT writer for one destination table.

    Call ``append`` once per row, then ``flush`` exactly once, then
    ``close``. The instance is bound to one table and must not be reused.
    """

    kind = "bulk"

    def __init__(
        self,
        conn: Connection,
        columns: Sequence[str],
        schema: str,
        table: str,
        batch_rows: int = DEFAULT_BATCH_ROWS,
        max_row_tx_commit: int = DEFAULT_MAX_ROW_TX_COMMIT,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.conn = conn
        self.columns = list(columns)
        self.cancel_event = cancel_event

        self.builder = StatementBuilder(conn.dialect, schema, table, self.columns)
        self.table_name = self.builder.qualified_table
        self.buffer = BatchBuffer(len(self.columns), batch_rows)
        self.tx = TransactionController(conn, max_row_tx_commit, cancel_event, self.table_name)

        self.total_row_count = 0
        self.statement_count = 0
        self.remainder_count = 0

        # full-batch statement, reused for every full buffer
        self.stmt: Optional[str] = self.builder.build_insert(batch_rows)
        self._closed = False

    def append(self, row: Any) -> None:
        """Buffer one row, committing and flushing at their boundaries."""
        if self._closed:
            raise CopyError("Inserter is closed", f"table {self.table_name}")

        values = scan_row(row, len(self.columns))
        self.buffer.append(values)
        self.total_row_count += 1

        self.tx.on_row_appended(self.total_row_count)

        if self.buffer.is_full:
            self.tx.ensure_open(self.total_row_count)
            self._execute(self.stmt, self.buffer.values(), self.buffer.row_pos)
            self.statement_count += 1
            self.buffer.reset()

    def flush(self) -> int:
        """Write the partial final batch, commit, and return the total row count."""
        if not self.buffer.is_empty:
            remaining = self.buffer.row_pos
            stmt = self.builder.build_insert(remaining)

            self.tx.ensure_open(self.total_row_count)
            self._execute(stmt, self.buffer.values(), remaining)
            self.remainder_count += 1
            self.buffer.reset()

        # zero source rows means no transaction was ever opened
        self.tx.commit(self.total_row_count)

        logger.debug(
            "Flushed %s: %d rows, %d full batches, %d remainder statements",
            self.table_name, self.total_row_count, self.statement_count, self.remainder_count
        )
        return self.total_row_count

    def close(self) -> None:
        """Release the full-batch statement. Does not commit."""
        self.stmt = None
        self._closed = True

    def abort(self) -> None:
        """Drop buffered rows and roll back the uncommitted batches."""
        self.buffer.reset()
        self.close()
        self.tx.rollback()

    def _execute(self, stmt: str, values: Tuple[Any, ...], row_count: int) -> None:
        check_cancelled(self.cancel_event, f"insert into {self.table_name}")
        try:
            self.conn.exec_driver_sql(stmt, values)
        except SQLAlchemyError as e:
            raise StatementError(
                f"Bulk insert into {self.table_name} failed: {str(e)}",
                f"{row_count} rows in statement, {self.total_row_count} rows appended"
            ) from e
