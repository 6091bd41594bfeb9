"""
datapipe Transaction/Commit Controller

Owns the destination transaction across buffer flushes. A transaction is
opened lazily right before a statement must run and committed each time
the total appended row count reaches a multiple of the commit threshold,
independently of where the buffer flush boundaries fall.
"""

import threading
from typing import Optional

from sqlalchemy.engine import Connection, Transaction
from sqlalchemy.exc import SQLAlchemyError

from datapipe.core.exceptions import TransactionError
from datapipe.core.logger import get_logger
from datapipe.core.utils import check_cancelled, validate_positive_int

logger = get_logger(__name__)


class TransactionController:
    """Two-state (no transaction / transaction open) commit policy."""

    def __init__(
        self,
        conn: Connection,
        max_row_tx_commit: Optional[int],
        cancel_event: Optional[threading.Event] = None,
        table: str = "",
    ):
        self.conn = conn
        # None disables threshold commits (single transaction)
        if max_row_tx_commit is not None:
            validate_positive_int(max_row_tx_commit, "max_row_tx_commit")
        self.max_row_tx_commit = max_row_tx_commit
        self.cancel_event = cancel_event
        self.table = table
        self.tx: Optional[Transaction] = None
        self.begin_count = 0
        self.commit_count = 0

    @property
    def is_open(self) -> bool:
        return self.tx is not None

    def ensure_open(self, total_row_count: int = 0) -> None:
        """Open a transaction if none is active."""
        if self.tx is not None:
            return

        check_cancelled(self.cancel_event, "begin transaction")
        try:
            if self.conn.in_transaction():
                # adopt the transaction SQLAlchemy autobegan on this connection
                self.tx = self.conn.get_transaction()
            else:
                self.tx = self.conn.begin()
        except SQLAlchemyError as e:
            raise TransactionError(
                f"Failed to begin transaction: {str(e)}",
                f"table {self.table}, after {total_row_count} rows"
            ) from e

        self.begin_count += 1
        logger.debug("Transaction opened on %s after %d rows", self.table, total_row_count)

    def on_row_appended(self, total_row_count: int) -> bool:
        """Commit when total_row_count hits the threshold; True if committed."""
        if self.tx is None or self.max_row_tx_commit is None:
            # nothing executed since the last commit
            return False
        if total_row_count > 0 and total_row_count % self.max_row_tx_commit == 0:
            self.commit(total_row_count)
            return True
        return False

    def commit(self, total_row_count: int = 0) -> None:
        """Commit the open transaction; no-op when none is open."""
        if self.tx is None:
            return

        check_cancelled(self.cancel_event, "commit")
        try:
            self.tx.commit()
        except SQLAlchemyError as e:
            raise TransactionError(
                f"Failed to commit transaction: {str(e)}",
                f"table {self.table}, at {total_row_count} rows"
            ) from e

        self.tx = None
        self.commit_count += 1
        logger.debug("Committed %s at %d rows", self.table, total_row_count)

    def rollback(self) -> None:
        """Abandon the open transaction, if any."""
        if self.tx is None:
            return
        tx, self.tx = self.tx, None
        try:
            tx.rollback()
        except SQLAlchemyError as e:
            logger.warning("Rollback on %s failed: %s", self.table, e)
