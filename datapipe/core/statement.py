"""
datapipe SQL Statement Builder

Builds the SQL text the inserters send to the destination: multi-row
INSERT statements sized to the rows being flushed, the COPY statement for
the native copy path and the TRUNCATE used to clear the table.
Quoting and placeholder syntax follow the destination SQLAlchemy dialect.
"""

from typing import List, Optional, Sequence

from sqlalchemy.engine import Dialect

from datapipe.core.exceptions import ValidationError
from datapipe.core.utils import validate_positive_int


def _is_quoted(identifier: str, quote_open: str, quote_close: str) -> bool:
    return (
        len(identifier) >= len(quote_open) + len(quote_close)
        and identifier.startswith(quote_open)
        and identifier.endswith(quote_close)
    )


def quote_identifier(identifier: str, quote_open: str = '"', quote_close: Optional[str] = None) -> str:
    """Wrap an identifier in quotes unless the caller already did."""
    quote_close = quote_close or quote_open
    if _is_quoted(identifier, quote_open, quote_close):
        return identifier
    return f"{quote_open}{identifier}{quote_close}"


def fq_schema_table(schema: str, table: str, quote_open: str = '"', quote_close: Optional[str] = None) -> str:
    """
    Concatenate schema and table into a qualified, quoted name.

    Each part is quoted only if it is not quoted already, and an empty
    schema yields the quoted table name on its own.

    Args:
        schema: Schema name, possibly empty or already quoted
        table: Table name, possibly already quoted
        quote_open: Opening quote character of the dialect
        quote_close: Closing quote character (defaults to quote_open)

    Returns:
        Qualified table name, e.g. '"public"."orders"'
    """
    if not table:
        raise ValidationError("Table name is required")

    table = quote_identifier(table, quote_open, quote_close)
    if not schema:
        return table
    return f"{quote_identifier(schema, quote_open, quote_close)}.{table}"


class StatementBuilder:
    """SQL text generator bound to one destination table."""

    def __init__(self, dialect: Dialect, schema: str, table: str, columns: Sequence[str]):
        if not columns:
            raise ValidationError("At least one column is required", f"table {table}")

        self.dialect = dialect
        self.schema = schema or ""
        self.table = table
        self.columns = list(columns)

        preparer = dialect.identifier_preparer
        self.quote_open = preparer.initial_quote
        self.quote_close = preparer.final_quote
        self.paramstyle = dialect.paramstyle
        self._preparer = preparer

    @property
    def qualified_table(self) -> str:
        return fq_schema_table(self.schema, self.table, self.quote_open, self.quote_close)

    def column_list(self) -> str:
        quoted = []
        for name in self.columns:
            if _is_quoted(name, self.quote_open, self.quote_close):
                quoted.append(name)
            else:
                quoted.append(self._preparer.quote(name))
        return ",".join(quoted)

    def placeholders(self, row_count: int) -> List[str]:
        """One placeholder group per row, numbered across the whole statement."""
        col_count = len(self.columns)
        groups = []
        pos = 1
        for _ in range(row_count):
            marks = []
            for _ in range(col_count):
                marks.append(self._placeholder(pos))
                pos += 1
            groups.append("(" + ",".join(marks) + ")")
        return groups

    def _placeholder(self, pos: int) -> str:
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle in ("format", "pyformat"):
            return "%s"
        if self.paramstyle in ("numeric", "named"):
            return f":{pos}"
        if self.paramstyle == "numeric_dollar":
            return f"${pos}"
        raise ValidationError(f"Unsupported parameter style '{self.paramstyle}'")

    def build_insert(self, row_count: int) -> str:
        """INSERT statement with exactly row_count value groups."""
        validate_positive_int(row_count, "row_count")
        return (
            f"INSERT INTO {self.qualified_table} ({self.column_list()}) VALUES "
            + ",".join(self.placeholders(row_count))
        )

    def build_copy(self) -> str:
        return f"COPY {self.qualified_table} ({self.column_list()}) FROM STDIN"


def build_truncate(dialect: Dialect, schema: str, table: str) -> str:
    """Statement that empties the destination table before a copy."""
    preparer = dialect.identifier_preparer
    qualified = fq_schema_table(schema, table, preparer.initial_quote, preparer.final_quote)
    # SQLite has no TRUNCATE
    if dialect.name == "sqlite":
        return f"DELETE FROM {qualified}"
    return f"TRUNCATE TABLE {qualified}"
