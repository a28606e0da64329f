"""Cell selection state, including reference insertion while editing a formula.

Selections are lists of ranges so that modifier-click can add disjoint
blocks.  While a formula is being edited, a drag started with
``inserting=True`` does not move the cursor cell; releasing it splices a
``cell("A1:B5")`` call into the formula text at the caret.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterator

from pydantic import BaseModel

from gridcalc.addressing import position_to_ref, range_label
from gridcalc.cells import CellPos, SelectionRange
from gridcalc.logging.events import EventType, emit_info
from gridcalc.signals import EngineSignals, ReferenceInsert

if TYPE_CHECKING:
    from gridcalc.logging.sink import EventSink

__all__ = [
    "FormulaEdit",
    "SelectionModel",
    "insert_cell_reference",
]

# A cell("...") call ending exactly at the caret
_TRAILING_CELL_RE = re.compile(r"""cell\(\s*(['"])([A-Za-z0-9:]+)\1\s*\)$""", re.IGNORECASE)


class FormulaEdit(BaseModel):
    """Formula text being edited in one cell, with its caret position."""

    row: int
    col: int
    text: str
    cursor_pos: int


def insert_cell_reference(edit: FormulaEdit | ReferenceInsert, ref: str) -> ReferenceInsert:
    """Splice ``cell("REF")`` into the edited text at the caret.

    A ``cell(...)`` call that ends exactly at the caret is replaced
    instead, so repeated drags refine the same reference.  The returned
    caret sits right after the inserted call.
    """
    text = edit.text
    cursor = max(0, min(edit.cursor_pos, len(text)))
    insert = f'cell("{ref}")'
    before, after = text[:cursor], text[cursor:]

    m = _TRAILING_CELL_RE.search(before)
    if m:
        before = before[: m.start()]
    new_before = before + insert
    return ReferenceInsert(text=new_before + after, cursor_pos=len(new_before))


class SelectionModel:
    """Ordered selection ranges plus the current cell."""

    def __init__(self, signals: EngineSignals | None = None, *, sink: EventSink | None = None) -> None:
        self.signals = signals if signals is not None else EngineSignals()
        self.sink = sink
        self.ranges: list[SelectionRange] = []
        self.current: CellPos | None = None
        self.is_selecting = False
        self.edit: FormulaEdit | None = None
        self._anchor: CellPos | None = None
        self._inserting = False

    @property
    def is_inserting(self) -> bool:
        return self._inserting

    # ------------------------------------------------------------------
    # Mouse-driven selection
    # ------------------------------------------------------------------

    def start_selection(self, cell: CellPos, extend: bool = False, inserting: bool = False) -> None:
        """Begin a drag at *cell*.

        With *extend* a new independent range is appended; otherwise the
        selection is reset to this one cell.  *inserting* only has an
        effect while a formula edit is active.
        """
        rng = SelectionRange.single(cell)
        self.ranges = [*self.ranges, rng] if extend else [rng]
        self._anchor = cell
        self._inserting = inserting and self.edit is not None
        if not self._inserting:
            self.current = cell
        self.is_selecting = True

    def extend_selection(self, cell: CellPos) -> None:
        """Stretch the last range from the mouse-down cell to *cell*, normalized."""
        if not self.ranges:
            return
        anchor = self._anchor or self.ranges[-1].start
        self.ranges[-1] = SelectionRange(
            start=CellPos(row=min(anchor.row, cell.row), col=min(anchor.col, cell.col)),
            end=CellPos(row=max(anchor.row, cell.row), col=max(anchor.col, cell.col)),
        )

    def end_selection(self) -> ReferenceInsert | None:
        """Finish the drag.

        Returns the reference insertion (also published on
        ``signals.reference_insert``) when the drag was a formula
        reference insertion, else ``None``.
        """
        self.is_selecting = False
        if not self._inserting or self.edit is None or not self.ranges:
            self._inserting = False
            return None

        self._inserting = False
        ref = range_label(self.ranges[-1])
        message = insert_cell_reference(self.edit, ref)
        self.edit = self.edit.model_copy(update={"text": message.text, "cursor_pos": message.cursor_pos})
        emit_info(
            self.sink,
            EventType.reference_inserted,
            f"Inserted {ref} into formula of {position_to_ref(self.edit.row, self.edit.col)}",
            {"ref": position_to_ref(self.edit.row, self.edit.col), "inserted": ref},
        )
        self.signals.reference_insert.publish(message)
        return message

    def clear_selection(self) -> None:
        self.ranges = []
        self.is_selecting = False
        self._inserting = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_cell_selected(self, row: int, col: int) -> bool:
        return any(rng.contains(row, col) for rng in self.ranges)

    def selected_cells(self) -> Iterator[CellPos]:
        """Every selected cell once, range by range in row-major order."""
        seen: set[tuple[int, int]] = set()
        for rng in self.ranges:
            for pos in rng.normalized().positions():
                if (pos.row, pos.col) in seen:
                    continue
                seen.add((pos.row, pos.col))
                yield pos

    def labels(self) -> list[str]:
        return [range_label(rng) for rng in self.ranges]

    # ------------------------------------------------------------------
    # Formula editing
    # ------------------------------------------------------------------

    def begin_formula_edit(self, row: int, col: int, text: str, cursor_pos: int | None = None) -> FormulaEdit:
        """Start editing a formula; the caret defaults to the end of *text*."""
        pos = len(text) if cursor_pos is None else cursor_pos
        self.edit = FormulaEdit(row=row, col=col, text=text, cursor_pos=pos)
        return self.edit

    def update_formula_edit(self, text: str, cursor_pos: int) -> FormulaEdit:
        """Record new editor text and caret.

        Raises:
            ValueError: If no formula edit is active.
        """
        if self.edit is None:
            raise ValueError("No formula edit in progress")
        self.edit = self.edit.model_copy(update={"text": text, "cursor_pos": cursor_pos})
        return self.edit

    def stop_formula_edit(self) -> FormulaEdit | None:
        """End editing and return the final edit state."""
        edit, self.edit = self.edit, None
        self._inserting = False
        return edit
