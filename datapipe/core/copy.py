"""
datapipe Core Copy Operations

Copy orchestrator: runs the source query, feeds every row to the selected
inserter and reports the number of rows written. The first error from any
stage aborts the copy; nothing is retried.
"""

import threading
import time
from contextlib import ExitStack
from datetime import datetime
from typing import Any, Iterable, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, CursorResult
from sqlalchemy.exc import SQLAlchemyError

from datapipe.core.config import CopyConfig
from datapipe.core.exceptions import DatabaseError
from datapipe.core.logger import get_logger
from datapipe.core.statement import build_truncate
from datapipe.core.streaming import Inserter, create_inserter, detect_database_type
from datapipe.core.types import DatabaseType
from datapipe.core.utils import check_cancelled

logger = get_logger(__name__)

# optional dependency group that installs each DBAPI driver
DRIVER_EXTRAS = {
    DatabaseType.POSTGRESQL: "postgres",
    DatabaseType.MYSQL: "mysql",
    DatabaseType.MSSQL: "mssql",
    DatabaseType.ORACLE: "oracle",
}


def run(
    config: CopyConfig,
    src_conn: Optional[Connection] = None,
    dst_conn: Optional[Connection] = None,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """
    Copy the result of the source query into the destination table.

    Connections passed in are used as-is and left open; connections opened
    here from the configured URIs are closed when the copy ends.

    Args:
        config: Copy configuration
        src_conn: Existing source connection (overrides src_db_uri)
        dst_conn: Existing destination connection (overrides dst_db_uri)
        cancel_event: Set to stop the copy at the next database call

    Returns:
        Number of rows copied

    Raises:
        DataPipeError: On the first failure of any stage
    """
    config = config.validate(need_src_uri=src_conn is None, need_dst_uri=dst_conn is None)

    with ExitStack() as stack:
        if src_conn is None:
            src_conn = stack.enter_context(_OwnedConnection(config.src_db_uri, "source"))
        if dst_conn is None:
            dst_conn = stack.enter_context(_OwnedConnection(config.dst_db_uri, "destination"))

        logger.info("Copying into %s (%s destination)", config.dst_table, dst_conn.dialect.name)

        if config.truncate:
            clear_table(dst_conn, config, cancel_event)

        return copy_table(src_conn, dst_conn, config, cancel_event)


class _OwnedConnection:
    """Engine + connection opened from a URI, disposed on exit."""

    def __init__(self, url: str, role: str):
        self.url = url
        self.role = role
        self.engine = None
        self.conn = None

    def __enter__(self) -> Connection:
        try:
            self.engine = create_engine(self.url)
            self.conn = self.engine.connect()
        except SQLAlchemyError as e:
            if self.engine is not None:
                self.engine.dispose()
            raise DatabaseError(f"Failed to connect to {self.role} database: {str(e)}") from e
        except ImportError as e:
            extra = DRIVER_EXTRAS.get(detect_database_type(self.url))
            hint = f"pip install 'datapipe[{extra}]'" if extra else "install the DBAPI driver named in the URL"
            raise DatabaseError(f"Database driver for {self.role} database not installed: {str(e)}", hint) from e
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            # closing rolls back anything left uncommitted
            self.conn.close()
        finally:
            self.engine.dispose()


def clear_table(dst_conn: Connection, config: CopyConfig,
                cancel_event: Optional[threading.Event] = None) -> None:
    """Empty the destination table before copying."""
    stmt = build_truncate(dst_conn.dialect, config.dst_schema, config.dst_table)
    check_cancelled(cancel_event, "clearing destination table")
    try:
        dst_conn.exec_driver_sql(stmt)
        dst_conn.commit()
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to clear table {config.dst_table}: {str(e)}", stmt) from e
    logger.info("Cleared destination table %s", config.dst_table)


def copy_table(
    src_conn: Connection,
    dst_conn: Connection,
    config: CopyConfig,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """Run the source query and stream its rows into the destination."""
    read_start = time.perf_counter()

    check_cancelled(cancel_event, "source query")
    try:
        rows: CursorResult = src_conn.execution_options(stream_results=True).exec_driver_sql(
            config.src_select_sql
        )
        columns = list(rows.keys())
    except SQLAlchemyError as e:
        raise DatabaseError(f"Source query failed: {str(e)}", config.src_select_sql) from e

    read_duration = time.perf_counter() - read_start

    try:
        start_ts = datetime.now()
        write_start = time.perf_counter()

        inserter = create_inserter(dst_conn, columns, config, cancel_event)
        try:
            row_count = copy_rows(
                _iter_source_rows(rows), inserter,
                progress_interval=config.progress_interval,
                cancel_event=cancel_event,
            )
            inserter.close()
        except Exception:
            _abort(inserter)
            raise

        write_duration = time.perf_counter() - write_start
    finally:
        rows.close()

    throughput = row_count / write_duration if write_duration > 0 else 0.0
    logger.info(
        "Copied %s rows into %s | Query: %.2fs | Write: %.2fs (%.2f rows/s) | Start: %s",
        f"{row_count:,}", config.dst_table, read_duration, write_duration, throughput,
        start_ts.isoformat(timespec='seconds')
    )
    return row_count


def copy_rows(
    rows: Iterable[Any],
    inserter: Inserter,
    progress_interval: int = 1000,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """Append every row, then flush; returns the flushed row count."""
    appended = 0
    for row in rows:
        check_cancelled(cancel_event, f"row {appended + 1}")
        inserter.append(row)
        appended += 1

        if progress_interval and appended % progress_interval == 0:
            logger.info("... %s rows", f"{appended:,}")

    return inserter.flush()


def _iter_source_rows(result: CursorResult) -> Iterator[Any]:
    try:
        for row in result:
            yield row
    except SQLAlchemyError as e:
        raise DatabaseError(f"Reading source rows failed: {str(e)}") from e


def _abort(inserter: Inserter) -> None:
    abort = getattr(inserter, 'abort', None)
    if abort is None:
        return
    try:
        abort()
    except Exception as e:
        logger.warning("Cleanup after failed copy raised: %s", e)
