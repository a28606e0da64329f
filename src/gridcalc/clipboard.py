"""Copy, cut and paste of rectangular cell blocks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from gridcalc.addressing import range_label
from gridcalc.cells import (
    EMPTY,
    CellPos,
    CellValue,
    DataType,
    EmptyValue,
    Format,
    SelectionRange,
    format_options,
)
from gridcalc.logging.events import EventType, emit_info

if TYPE_CHECKING:
    from gridcalc.store import CellStore


class ClipboardCell(BaseModel):
    """Snapshot of one cell at copy time."""

    value: CellValue = Field(default_factory=lambda: EMPTY)
    formula: str | None = None
    style: dict[str, Any] = Field(default_factory=dict)
    formatting: Format = Format.general
    data_type_override: DataType | None = None

    @property
    def is_blank(self) -> bool:
        return (
            isinstance(self.value, EmptyValue)
            and self.formula is None
            and not self.style
            and self.formatting == Format.general
            and self.data_type_override is None
        )


class ClipboardData(BaseModel):
    """A rectangular block of cell snapshots.

    ``source`` is the normalized rectangle the block was taken from; a
    cut clipboard clears it (outside the paste destination) on paste.
    """

    source: SelectionRange
    is_cut: bool = False
    cells: list[list[ClipboardCell]]

    @property
    def n_rows(self) -> int:
        return len(self.cells)

    @property
    def n_cols(self) -> int:
        return len(self.cells[0]) if self.cells else 0


def copy_range(store: CellStore, rng: SelectionRange, *, cut: bool = False) -> ClipboardData:
    """Snapshot every cell of *rng* (normalized) in row-major order."""
    source = rng.normalized()
    top, left, bottom, right = source.bounds()
    rows: list[list[ClipboardCell]] = []
    for r in range(top, bottom + 1):
        row: list[ClipboardCell] = []
        for c in range(left, right + 1):
            cell = store.get_cell(r, c)
            if cell is None:
                row.append(ClipboardCell())
                continue
            row.append(
                ClipboardCell(
                    value=cell.raw_value,
                    formula=cell.formula,
                    style=dict(cell.style),
                    formatting=cell.formatting,
                    data_type_override=cell.data_type_override,
                )
            )
        rows.append(row)
    return ClipboardData(source=source, is_cut=cut, cells=rows)


def paste(store: CellStore, clipboard: ClipboardData, at: CellPos) -> ClipboardData:
    """Write *clipboard* with its top-left corner at *at*.

    Formulas are re-issued unchanged (references are not shifted).
    Returns the clipboard to keep: after a cut it becomes a plain copy.
    """
    dest = SelectionRange(
        start=at,
        end=CellPos(
            row=at.row + max(clipboard.n_rows - 1, 0),
            col=at.col + max(clipboard.n_cols - 1, 0),
        ),
    )
    for i, row in enumerate(clipboard.cells):
        for j, snap in enumerate(row):
            _paste_cell(store, at.row + i, at.col + j, snap)

    if clipboard.is_cut:
        for pos in clipboard.source.positions():
            if dest.contains(pos.row, pos.col) or store.get_cell(pos.row, pos.col) is None:
                continue
            _paste_cell(store, pos.row, pos.col, ClipboardCell())

    emit_info(
        store.sink,
        EventType.clipboard_paste,
        f"Pasted {range_label(clipboard.source)} at {range_label(dest)}",
        {
            "source": range_label(clipboard.source),
            "dest": range_label(dest),
            "cut": clipboard.is_cut,
        },
    )
    if clipboard.is_cut:
        return clipboard.model_copy(update={"is_cut": False})
    return clipboard


def _paste_cell(store: CellStore, row: int, col: int, snap: ClipboardCell) -> None:
    if snap.is_blank and store.get_cell(row, col) is None:
        return
    store.set_cell_data_type(row, col, snap.data_type_override)
    if snap.formula is not None:
        store.set_cell_formula(row, col, snap.formula)
    else:
        store.set_cell(row, col, snap.value)
    store.set_cell_style(row, col, snap.style, replace=True)
    cell = store.get_cell(row, col)
    if cell is not None and snap.formatting in format_options(cell.data_type):
        store.set_cell_formatting(row, col, snap.formatting)
    else:
        store.set_cell_formatting(row, col, Format.general)
