"""Reference extraction from formula text.

Two scanners with deliberately different breadth:

- :func:`extract_references` finds both ``cell("A1")`` calls and bare
  ``A1`` / ``A1:B5`` tokens.  It is used for highlighting while a formula
  is edited and works on incomplete text.
- :func:`extract_dependency_keys` only honours the accessor form.  Its
  result drives the dependency graph, so a bare ``A1`` in a formula is
  highlighted but never triggers recalculation.
"""

from __future__ import annotations

import re

from gridcalc.addressing import cell_key, parse_range
from gridcalc.cells import SelectionRange

# cell("A1") / cell('a1:b5'), any case, optional whitespace
_ACCESSOR_RE = re.compile(
    r"""cell\s*\(\s*["']([a-z]+\d+(?::[a-z]+\d+)?)["']\s*\)""",
    re.IGNORECASE,
)

# Accessor ranges larger than this are rejected instead of expanded
MAX_RANGE_CELLS = 100_000

# Bare A1 / A1:B5 not glued to a surrounding word
_BARE_RE = re.compile(
    r"(?:^|[^\w])([a-z]+\d+(?::[a-z]+\d+)?)(?=[^\w]|$)",
    re.IGNORECASE,
)


def extract_references(formula: str | None) -> list[SelectionRange]:
    """Return every range a formula mentions, deduplicated by label.

    Accessor matches come first, then bare references, each in order of
    appearance.  Corners are kept as written (not normalized).  Text that
    does not start with ``=`` has no references.
    """
    if not formula or not formula.startswith("="):
        return []

    labels: dict[str, None] = {}
    for m in _ACCESSOR_RE.finditer(formula):
        labels.setdefault(m.group(1).upper(), None)
    for m in _BARE_RE.finditer(formula):
        labels.setdefault(m.group(1).upper(), None)

    ranges: list[SelectionRange] = []
    for label in labels:
        rng = parse_range(label)
        if rng is not None:
            ranges.append(rng)
    return ranges


def range_fits(rng: SelectionRange, max_rows: int | None = None, max_cols: int | None = None) -> bool:
    """True if *rng* lies inside the grid and spans at most ``MAX_RANGE_CELLS`` cells."""
    top, left, bottom, right = rng.bounds()
    if max_rows is not None and bottom >= max_rows:
        return False
    if max_cols is not None and right >= max_cols:
        return False
    return (bottom - top + 1) * (right - left + 1) <= MAX_RANGE_CELLS


def extract_dependency_keys(
    formula: str | None,
    *,
    max_rows: int | None = None,
    max_cols: int | None = None,
) -> list[str]:
    """Return the cell keys a formula depends on through ``cell()`` calls.

    Ranges are expanded to every cell in the (normalized) rectangle.  Keys
    are unique and ordered by first appearance.  Ranges rejected by
    :func:`range_fits` add no keys; evaluation reports them instead.
    """
    if not formula:
        return []

    keys: dict[str, None] = {}
    for m in _ACCESSOR_RE.finditer(formula):
        rng = parse_range(m.group(1))
        if rng is None or not range_fits(rng, max_rows, max_cols):
            continue
        for pos in rng.positions():
            keys.setdefault(cell_key(pos.row, pos.col), None)
    return list(keys)
