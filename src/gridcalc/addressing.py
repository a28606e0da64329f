"""A1-style address codec.

The only place where user-facing references (1-based rows, lettered
columns) are converted to the engine's 0-based ``(row, col)`` integers.
"""

from __future__ import annotations

import re

from gridcalc.cells import CellPos, SelectionRange

_ADDR_RE = re.compile(r"^([A-Z]+)(\d+)$")


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    if idx < 0:
        raise ValueError(f"Column index must be >= 0, got {idx}")
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


def position_to_ref(row: int, col: int) -> str:
    """Build an ``A1`` label from 0-based row/col.

    Raises:
        ValueError: If either coordinate is negative.
    """
    if row < 0 or col < 0:
        raise ValueError(f"Coordinates must be >= 0, got ({row}, {col})")
    return f"{index_to_col_letter(col)}{row + 1}"


def ref_to_position(ref: str | None) -> CellPos | None:
    """Parse ``"A1"`` (any case, surrounding whitespace ignored) to a 0-based position.

    Returns ``None`` for anything that is not a single valid reference,
    including row ``0``.
    """
    if not ref:
        return None
    m = _ADDR_RE.match(ref.strip().upper())
    if not m:
        return None
    row_number = int(m.group(2))
    if row_number <= 0:
        return None
    return CellPos(row=row_number - 1, col=col_letter_to_index(m.group(1)))


def parse_addr(addr: str) -> tuple[int, int]:
    """Parse 'A1' -> (row_0based, col_0based).

    Raises ValueError on bad address.
    """
    pos = ref_to_position(addr)
    if pos is None:
        raise ValueError(f"Invalid cell address: {addr!r}")
    return pos.row, pos.col


def parse_range(text: str | None) -> SelectionRange | None:
    """Parse ``"A1"`` or ``"A1:B5"`` into a (non-normalized) range."""
    if not text:
        return None
    parts = text.split(":")
    if len(parts) == 1:
        pos = ref_to_position(parts[0])
        return SelectionRange.single(pos) if pos is not None else None
    if len(parts) != 2:
        return None
    start = ref_to_position(parts[0])
    end = ref_to_position(parts[1])
    if start is None or end is None:
        return None
    return SelectionRange(start=start, end=end)


def range_label(rng: SelectionRange) -> str:
    """Label a range as ``A1`` (single cell) or ``A1:B5`` (normalized corners)."""
    top, left, bottom, right = rng.bounds()
    first = position_to_ref(top, left)
    if (top, left) == (bottom, right):
        return first
    return f"{first}:{position_to_ref(bottom, right)}"


def cell_key(row: int, col: int) -> str:
    """Canonical ``"row-col"`` key used by the store and the dependency graph."""
    return f"{row}-{col}"


def parse_key(key: str) -> tuple[int, int]:
    row, col = key.split("-", 1)
    return int(row), int(col)


def ref_to_key(ref: str) -> str | None:
    pos = ref_to_position(ref)
    return cell_key(pos.row, pos.col) if pos is not None else None
