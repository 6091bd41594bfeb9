"""
datapipe Inserter Selection

Picks the insertion strategy for a destination connection: the native
COPY inserter for PostgreSQL over psycopg 3, batched INSERTs otherwise.
"""

import threading
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy.engine import Connection

from datapipe.core.bulk import BulkInserter
from datapipe.core.config import CopyConfig
from datapipe.core.copy_in import CopyInInserter
from datapipe.core.exceptions import ValidationError
from datapipe.core.logger import get_logger
from datapipe.core.types import DatabaseType, InserterKind, NativeCopyMode
from datapipe.core.utils import validate_native_copy_mode

logger = get_logger(__name__)


class Inserter(Protocol):
    """Contract the orchestrator drives: append*, flush once, close once."""

    def append(self, row: Any) -> None:
        ...

    def flush(self) -> int:
        ...

    def close(self) -> None:
        ...


def detect_database_type(connection_url: str) -> DatabaseType:
    """
    Detect database type from connection URL.

    Args:
        connection_url: SQLAlchemy connection URL

    Returns:
        DatabaseType, UNKNOWN when the scheme is not recognised
    """
    scheme = (connection_url or '').split('://', 1)[0].lower()

    if scheme.startswith('postgresql') or scheme.startswith('postgres'):
        return DatabaseType.POSTGRESQL
    elif scheme.startswith('oracle'):
        return DatabaseType.ORACLE
    elif scheme.startswith('mysql') or scheme.startswith('mariadb'):
        return DatabaseType.MYSQL
    elif scheme.startswith('mssql') or scheme.startswith('sqlserver'):
        return DatabaseType.MSSQL
    elif scheme.startswith('sqlite'):
        return DatabaseType.SQLITE
    else:
        return DatabaseType.UNKNOWN


def supports_native_copy(dialect_name: str, driver: str) -> bool:
    """True when the destination can take COPY FROM STDIN through psycopg 3."""
    return dialect_name == 'postgresql' and driver == 'psycopg'


def select_inserter_kind(conn: Connection, native_copy: Any = NativeCopyMode.AUTO) -> InserterKind:
    mode = validate_native_copy_mode(native_copy)
    dialect = conn.dialect
    driver = getattr(dialect, 'driver', '')

    if mode == NativeCopyMode.NEVER:
        return InserterKind.BULK

    native = supports_native_copy(dialect.name, driver)
    if mode == NativeCopyMode.ALWAYS and not native:
        raise ValidationError(
            f"Native copy requested but {dialect.name}+{driver} does not support it",
            "use postgresql+psycopg:// for the destination"
        )
    return InserterKind.COPY_IN if native else InserterKind.BULK


def create_inserter(
    conn: Connection,
    columns: Sequence[str],
    config: CopyConfig,
    cancel_event: Optional[threading.Event] = None,
) -> Inserter:
    """Instantiate the inserter for the destination table in config."""
    kind = select_inserter_kind(conn, config.native_copy)
    logger.info("Using %s inserter for %s", kind.value, config.dst_table)

    if kind == InserterKind.COPY_IN:
        return CopyInInserter(
            conn, columns,
            config.dst_schema, config.dst_table,
            cancel_event=cancel_event,
        )

    return BulkInserter(
        conn, columns,
        config.dst_schema, config.dst_table,
        batch_rows=config.max_row_buf_sz,
        max_row_tx_commit=config.max_row_tx_commit,
        cancel_event=cancel_event,
    )
