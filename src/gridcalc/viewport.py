"""Viewport windowing over variable-size rows and columns.

Only the rows and columns whose pixel span intersects the viewport (plus
a small buffer on each side) are materialized for rendering.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterator

from pydantic import BaseModel

from gridcalc.cells import CellPos

DEFAULT_ROW_HEIGHT = 25
DEFAULT_COL_WIDTH = 120
DEFAULT_ROW_COUNT = 100
DEFAULT_COL_COUNT = 26
DEFAULT_BUFFER = 5


class AxisSizes:
    """Sizes along one axis: a default plus sparse per-index overrides."""

    def __init__(self, count: int, default: int, overrides: dict[int, int] | None = None) -> None:
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        if default <= 0:
            raise ValueError(f"default size must be > 0, got {default}")
        self.count = count
        self.default = default
        self.overrides: dict[int, int] = {}
        self._offsets: list[int] | None = None
        for index, size in (overrides or {}).items():
            self.set_size(index, size)

    def set_size(self, index: int, size: int) -> None:
        """Override the size of one row/column.

        Raises:
            ValueError: Index outside the axis or a non-positive size.
        """
        if not 0 <= index < self.count:
            raise ValueError(f"Index {index} out of range [0, {self.count})")
        if size <= 0:
            raise ValueError(f"Size must be > 0, got {size}")
        self.overrides[index] = size
        self._offsets = None

    def size(self, index: int) -> int:
        return self.overrides.get(index, self.default)

    def offsets(self) -> list[int]:
        """Prefix sums: ``offsets()[i]`` is the start of index ``i``; length ``count + 1``."""
        if self._offsets is None:
            cumulative = [0] * (self.count + 1)
            for i in range(self.count):
                cumulative[i + 1] = cumulative[i] + self.size(i)
            self._offsets = cumulative
        return self._offsets

    def total(self) -> int:
        return self.offsets()[self.count]


def visible_range(sizes: AxisSizes, offset: float, viewport: float, buffer: int = DEFAULT_BUFFER) -> tuple[int, int]:
    """Half-open ``[start, end)`` band of indices intersecting the viewport, padded by *buffer*.

    ``start`` is the first index whose end lies past *offset*; ``end`` is
    one past the first index whose end lies past ``offset + viewport``
    (or ``count``).  Both are padded and clamped to ``[0, count]``.
    """
    count = sizes.count
    if count == 0:
        return 0, 0
    offsets = sizes.offsets()
    offset = max(0.0, offset)

    # First i with offsets[i + 1] > offset
    start = min(bisect_right(offsets, offset, 1) - 1, count)
    target = offset + max(0.0, viewport)
    first_past = bisect_right(offsets, target, 1) - 1
    end = first_past + 1 if first_past < count else count

    return max(0, start - buffer), min(count, max(end, start) + buffer)


class Window(BaseModel):
    """Materialized row/column band (half-open on both axes)."""

    row_start: int
    row_end: int
    col_start: int
    col_end: int

    def rows(self) -> range:
        return range(self.row_start, self.row_end)

    def cols(self) -> range:
        return range(self.col_start, self.col_end)

    def cells(self) -> Iterator[CellPos]:
        for r in self.rows():
            for c in self.cols():
                yield CellPos(row=r, col=c)

    def contains(self, row: int, col: int) -> bool:
        return self.row_start <= row < self.row_end and self.col_start <= col < self.col_end


class ViewportWindower:
    """Computes the materialized window for a scroll position."""

    def __init__(self, rows: AxisSizes, cols: AxisSizes, buffer: int = DEFAULT_BUFFER) -> None:
        self.rows = rows
        self.cols = cols
        self.buffer = buffer

    def window(self, scroll_top: float, scroll_left: float, height: float, width: float) -> Window:
        row_start, row_end = visible_range(self.rows, scroll_top, height, self.buffer)
        col_start, col_end = visible_range(self.cols, scroll_left, width, self.buffer)
        return Window(row_start=row_start, row_end=row_end, col_start=col_start, col_end=col_end)
