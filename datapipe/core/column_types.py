"""
datapipe Column Type Resolver

Looks up the declared destination type of each copied column, and coerces
untyped byte values delivered by the source driver into values the COPY
protocol accepts: numeric columns as floats, everything else as text.
"""

from typing import Any, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from datapipe.core.exceptions import DatabaseError, ScanError

NUMERIC_TYPES = frozenset(['numeric', 'decimal', 'real', 'double precision'])

COLUMN_TYPES_SQL = (
    "SELECT column_name AS name, data_type AS type "
    "FROM information_schema.columns "
    "WHERE table_schema = COALESCE(NULLIF(:schema, ''), current_schema()) "
    "AND table_name = :table"
)


def _unquote(identifier: str) -> str:
    if len(identifier) >= 2 and identifier[0] == identifier[-1] == '"':
        return identifier[1:-1]
    return identifier


def find_column_types(conn: Connection, schema: str, table: str, columns: Sequence[str]) -> List[str]:
    """
    Resolve the declared type of each column from the schema catalog.

    Args:
        conn: Destination connection
        schema: Destination schema; empty means the current schema
        table: Destination table
        columns: Column names in cursor order

    Returns:
        Type tags aligned with columns; '' for columns the catalog does not list
    """
    type_tags = [''] * len(columns)
    wanted = [_unquote(c) for c in columns]

    try:
        result = conn.execute(
            text(COLUMN_TYPES_SQL),
            {'schema': _unquote(schema or ''), 'table': _unquote(table)}
        )
        for name, col_type in result:
            for i, col in enumerate(wanted):
                if name == col:
                    type_tags[i] = str(col_type).lower()
    except SQLAlchemyError as e:
        raise DatabaseError(
            f"Failed to resolve column types: {str(e)}",
            f"table {schema}.{table}" if schema else f"table {table}"
        ) from e

    return type_tags


def coerce_value(value: Any, type_tag: Optional[str]) -> Any:
    """Convert byte values according to the column type; pass others through."""
    if value is None:
        return None
    if not isinstance(value, (bytes, bytearray, memoryview)):
        return value

    raw = bytes(value)
    if type_tag in NUMERIC_TYPES:
        try:
            return float(raw.decode('ascii'))
        except (UnicodeDecodeError, ValueError) as e:
            raise ScanError(f"Cannot parse {raw!r} as {type_tag}: {str(e)}") from e

    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError as e:
        raise ScanError(f"Cannot decode {raw!r} as text: {str(e)}") from e


def coerce_row(values: Sequence[Any], type_tags: Sequence[Optional[str]]) -> List[Any]:
    return [coerce_value(value, tag) for value, tag in zip(values, type_tags)]
