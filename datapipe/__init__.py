"""
datapipe - copy query results between relational databases in batches.

Programmatic entry points live in datapipe.api; the command line interface
is datapipe.datapipe:cli.
"""

__version__ = "0.3.0"

from datapipe.api import (
    copy_db_to_db,
    copy_with_config,
    load_config,
)

__all__ = [
    '__version__',
    'copy_db_to_db',
    'copy_with_config',
    'load_config',
]
