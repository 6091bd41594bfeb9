"""
datapipe Batch Buffer

Fixed-capacity store of pending row values, flushed to the destination as
one multi-row statement. Values are kept flat, in row-major order, so the
whole buffer can be bound as the positional arguments of an INSERT.
"""

from typing import Any, List, Sequence, Tuple

from datapipe.core.exceptions import CopyError, ScanError
from datapipe.core.utils import validate_positive_int


class BatchBuffer:
    """Pending values for the batch in progress.

    ``buf_pos`` is the fill position in the flat value list and ``row_pos``
    the number of buffered rows; ``buf_pos == row_pos * column_count``
    always holds. The buffer never overflows on its own: callers check
    ``is_full`` after every append and drain before appending again.
    """

    def __init__(self, column_count: int, batch_rows: int):
        self.column_count = validate_positive_int(column_count, "column_count")
        self.batch_rows = validate_positive_int(batch_rows, "batch_rows")
        self.capacity = self.column_count * self.batch_rows
        self._values: List[Any] = []
        self.buf_pos = 0
        self.row_pos = 0

    def append(self, values: Sequence[Any]) -> None:
        """Copy one already-scanned row into the buffer."""
        if len(values) != self.column_count:
            raise ScanError(
                f"Row has {len(values)} values, expected {self.column_count}"
            )
        if self.is_full:
            raise CopyError(
                "Batch buffer is full",
                f"{self.row_pos} rows pending; flush before appending"
            )

        self._values.extend(values)
        self.buf_pos += self.column_count
        self.row_pos += 1

    @property
    def is_full(self) -> bool:
        return self.buf_pos >= self.capacity

    @property
    def is_empty(self) -> bool:
        return self.buf_pos == 0

    def values(self) -> Tuple[Any, ...]:
        """Pending values as one tuple, in bind order.

        This is the only copy made per statement; the tuple is passed to the
        driver as the positional parameter set.
        """
        return tuple(self._values)

    def rows(self) -> List[tuple]:
        """Pending values grouped per row, indexed by row then column.

        The inserters bind the flat ``values()``; this view is for callers
        that inspect a batch row by row.
        """
        width = self.column_count
        return [tuple(self._values[i:i + width]) for i in range(0, self.buf_pos, width)]

    def drain(self) -> List[Any]:
        """Hand over the pending values and reset the buffer.

        The returned list is the buffer's own storage; no copy is made.
        """
        pending = self._values
        self.reset()
        return pending

    def reset(self) -> None:
        self._values = []
        self.buf_pos = 0
        self.row_pos = 0

    def __len__(self) -> int:
        return self.row_pos
