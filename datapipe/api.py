"""
datapipe API - Programmatic interface for datapipe

This module provides functions for running copies from Python code
without going through the command-line interface. Functions return an
OperationResult instead of raising.
"""

import threading
from typing import Optional

from sqlalchemy.engine import Connection

from datapipe.core import copy as core_copy
from datapipe.core.config import CopyConfig, load_config
from datapipe.core.types import OperationResult
from datapipe.core.utils import create_success_result, handle_exception, validate_required_params


def copy_with_config(
    config: CopyConfig,
    src_conn: Optional[Connection] = None,
    dst_conn: Optional[Connection] = None,
    cancel_event: Optional[threading.Event] = None,
) -> OperationResult:
    """
    Run a copy described by a CopyConfig.

    Args:
        config: Copy configuration
        src_conn: Existing source connection (overrides config.src_db_uri)
        dst_conn: Existing destination connection (overrides config.dst_db_uri)
        cancel_event: Set from another thread to stop the copy

    Returns:
        OperationResult with the copied row count
    """
    try:
        row_count = core_copy.run(config, src_conn=src_conn, dst_conn=dst_conn, cancel_event=cancel_event)
        return create_success_result(
            f"Successfully copied {row_count} records to table '{config.dst_table}'",
            record_count=row_count
        )
    except Exception as e:
        return handle_exception(e, "database to database copy")


def copy_db_to_db(
    source_url: str,
    query: str,
    target_url: str,
    table: str,
    schema: str = "",
    batch_size: int = 100,
    commit_size: int = 500,
    truncate: bool = True,
    native_copy: str = "auto",
    cancel_event: Optional[threading.Event] = None,
) -> OperationResult:
    """
    Copy the result of a query into a table of another database.

    Args:
        source_url: SQLAlchemy URL of the source database
        query: SQL query to execute on source
        target_url: SQLAlchemy URL of the destination database
        table: Target table name
        schema: Target schema; empty for the connection default
        batch_size: Rows per multi-row INSERT
        commit_size: Rows per destination transaction
        truncate: Whether to empty the target table first
        native_copy: 'auto', 'always' or 'never' use PostgreSQL COPY
        cancel_event: Set from another thread to stop the copy

    Returns:
        OperationResult with the copied row count
    """
    try:
        validate_required_params(
            {'source_url': source_url, 'query': query, 'target_url': target_url, 'table': table},
            ['source_url', 'query', 'target_url', 'table']
        )
    except Exception as e:
        return handle_exception(e, "database to database copy")

    config = CopyConfig(
        max_row_buf_sz=batch_size,
        max_row_tx_commit=commit_size,
        src_db_uri=source_url,
        src_select_sql=query,
        dst_db_uri=target_url,
        dst_schema=schema,
        dst_table=table,
        truncate=truncate,
        native_copy=native_copy,
    )
    return copy_with_config(config, cancel_event=cancel_event)


__all__ = ['copy_db_to_db', 'copy_with_config', 'load_config']
