"""
datapipe core: the batched bulk-loading engine used by the API and CLI.
"""

from datapipe.core.bulk import BulkInserter
from datapipe.core.config import CopyConfig, load_config
from datapipe.core.copy import run, copy_table, copy_rows, clear_table
from datapipe.core.copy_in import CopyInInserter
from datapipe.core.statement import StatementBuilder, fq_schema_table

__all__ = [
    'BulkInserter',
    'CopyInInserter',
    'CopyConfig',
    'StatementBuilder',
    'clear_table',
    'copy_rows',
    'copy_table',
    'fq_schema_table',
    'load_config',
    'run',
]
