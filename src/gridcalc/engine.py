"""Spreadsheet engine service object.

One :class:`SpreadsheetEngine` owns a complete grid: cell store,
dependency graph, recalculation, selection, axis sizes and boundary
signals.  Construct one per grid and pass it to consumers; there is no
module-level state.  Every public call is serialized by a re-entrant
lock, so an engine can be shared between threads (e.g. the HTTP
service's worker pool).
"""

from __future__ import annotations

import functools
import threading
from typing import Any, Callable, TypeVar

import polars as pl
from pydantic import BaseModel, Field

from gridcalc.addressing import index_to_col_letter, parse_addr, parse_range, position_to_ref
from gridcalc.cell_graph import DependencyGraph
from gridcalc.cells import Cell, CellError, CellPos, DataType, Format, SelectionRange
from gridcalc.clipboard import ClipboardData
from gridcalc.config import DEFAULT_CONFIG, validate_config
from gridcalc.formulas.references import extract_references
from gridcalc.logging.events import EventType, configure_sink, emit_info
from gridcalc.logging.sink import EventSink
from gridcalc.selection import FormulaEdit, SelectionModel
from gridcalc.signals import EngineSignals, ReferenceInsert
from gridcalc.store import CellStore
from gridcalc.viewport import AxisSizes, ViewportWindower, Window

F = TypeVar("F", bound=Callable[..., Any])


def _locked(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: SpreadsheetEngine, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class CellView(BaseModel):
    """Read-only snapshot of one cell for callers outside the engine."""

    ref: str
    row: int
    col: int
    value: Any = None
    display: str = ""
    formula: str | None = None
    data_type: DataType = DataType.null
    data_type_override: DataType | None = None
    formatting: Format = Format.general
    computed: bool = False
    error: CellError | None = None
    style: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def of(cls, row: int, col: int, cell: Cell | None) -> CellView:
        ref = position_to_ref(row, col)
        if cell is None:
            return cls(ref=ref, row=row, col=col)
        return cls(
            ref=ref,
            row=row,
            col=col,
            value=cell.value,
            display=cell.display_value,
            formula=cell.formula,
            data_type=cell.data_type,
            data_type_override=cell.data_type_override,
            formatting=cell.formatting,
            computed=cell.computed,
            error=cell.error,
            style=dict(cell.style),
        )


class SheetView(BaseModel):
    """A viewport window plus the materialized cells inside it."""

    window: Window
    cells: list[CellView]


class SpreadsheetEngine:
    """A complete in-memory grid.

    Usage::

        engine = SpreadsheetEngine()
        engine.set_ref("A1", 10)
        engine.set_ref("B1", '=cell("A1") * 2')
        engine.get_ref("B1").display_value   # "20"
    """

    def __init__(self, config: dict[str, Any] | None = None, *, sink: EventSink | None = None) -> None:
        self.config = validate_config({**DEFAULT_CONFIG, **(config or {})})
        self._lock = threading.RLock()

        if sink is None and self.config["logging_enabled"] and self.config["logging_dir"]:
            sink = configure_sink(self.config["logging_dir"], self.config)
        self.sink = sink

        self.signals = EngineSignals()
        self.graph = DependencyGraph()
        self.store = CellStore(
            graph=self.graph,
            signals=self.signals,
            sink=sink,
            max_rows=self.config["row_count"],
            max_cols=self.config["col_count"],
        )
        self.recalc = self.store.recalc
        self.selection = SelectionModel(self.signals, sink=sink)
        self.rows = AxisSizes(self.config["row_count"], self.config["default_row_height"])
        self.cols = AxisSizes(self.config["col_count"], self.config["default_col_width"])
        self.windower = ViewportWindower(self.rows, self.cols, self.config["buffer"])

        emit_info(
            sink,
            EventType.engine_started,
            f"Engine started ({self.rows.count} rows x {self.cols.count} cols)",
            {"rows": self.rows.count, "cols": self.cols.count},
        )

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def _check_bounds(self, row: int, col: int) -> None:
        if not (0 <= row < self.rows.count and 0 <= col < self.cols.count):
            raise ValueError(
                f"Cell ({row}, {col}) is outside the grid "
                f"({self.rows.count} rows x {self.cols.count} cols)"
            )

    def _check_range(self, rng: SelectionRange) -> None:
        top, left, bottom, right = rng.bounds()
        self._check_bounds(top, left)
        self._check_bounds(bottom, right)

    # ------------------------------------------------------------------
    # Cells
    # ------------------------------------------------------------------

    @_locked
    def set_cell(self, row: int, col: int, value: Any) -> None:
        self._check_bounds(row, col)
        self.store.set_cell(row, col, value)

    @_locked
    def set_cell_formula(self, row: int, col: int, formula: str) -> None:
        self._check_bounds(row, col)
        self.store.set_cell_formula(row, col, formula)

    @_locked
    def clear_cell(self, row: int, col: int) -> None:
        self._check_bounds(row, col)
        self.store.clear_cell(row, col)

    @_locked
    def set_cell_style(self, row: int, col: int, style: dict[str, Any]) -> None:
        self._check_bounds(row, col)
        self.store.set_cell_style(row, col, style)

    @_locked
    def set_cell_data_type(self, row: int, col: int, data_type: DataType | str | None) -> None:
        self._check_bounds(row, col)
        self.store.set_cell_data_type(row, col, data_type)

    @_locked
    def set_cell_formatting(self, row: int, col: int, formatting: Format | str) -> None:
        self._check_bounds(row, col)
        self.store.set_cell_formatting(row, col, formatting)

    @_locked
    def recalculate_cell(self, row: int, col: int) -> list[str]:
        return self.recalc.recalculate_cell(row, col)

    @_locked
    def get_cell(self, row: int, col: int) -> Cell | None:
        return self.store.get_cell(row, col)

    @_locked
    def get_value(self, row: int, col: int) -> Any:
        return self.store.get_value(row, col)

    @_locked
    def view(self, row: int, col: int) -> CellView:
        return CellView.of(row, col, self.store.get_cell(row, col))

    @_locked
    def set_ref(self, ref: str, value: Any) -> None:
        """``set_cell`` addressed by an ``A1`` label.

        Raises:
            ValueError: Malformed reference or outside the grid.
        """
        row, col = parse_addr(ref)
        self.set_cell(row, col, value)

    @_locked
    def get_ref(self, ref: str) -> Cell | None:
        row, col = parse_addr(ref)
        return self.store.get_cell(row, col)

    def references(self, formula: str) -> list[SelectionRange]:
        """Ranges to highlight while *formula* is edited."""
        return extract_references(formula)

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    @_locked
    def copy_range(self, rng: SelectionRange, *, cut: bool = False) -> ClipboardData:
        self._check_range(rng)
        return self.store.copy_range(rng, cut=cut)

    @_locked
    def paste(self, clipboard: ClipboardData, at: CellPos) -> ClipboardData:
        self._check_bounds(at.row, at.col)
        self._check_bounds(at.row + clipboard.n_rows - 1, at.col + clipboard.n_cols - 1)
        return self.store.paste(clipboard, at)

    # ------------------------------------------------------------------
    # Selection and formula editing
    # ------------------------------------------------------------------

    @_locked
    def start_selection(self, cell: CellPos, extend: bool = False, inserting: bool = False) -> None:
        self._check_bounds(cell.row, cell.col)
        self.selection.start_selection(cell, extend=extend, inserting=inserting)

    @_locked
    def extend_selection(self, cell: CellPos) -> None:
        self._check_bounds(cell.row, cell.col)
        self.selection.extend_selection(cell)

    @_locked
    def end_selection(self) -> ReferenceInsert | None:
        return self.selection.end_selection()

    @_locked
    def clear_selection(self) -> None:
        self.selection.clear_selection()

    @_locked
    def is_cell_selected(self, row: int, col: int) -> bool:
        return self.selection.is_cell_selected(row, col)

    @_locked
    def begin_formula_edit(self, row: int, col: int, text: str | None = None, cursor_pos: int | None = None) -> FormulaEdit:
        """Start editing; *text* defaults to the cell's current formula."""
        self._check_bounds(row, col)
        if text is None:
            cell = self.store.get_cell(row, col)
            text = (cell.formula if cell is not None else None) or "="
        return self.selection.begin_formula_edit(row, col, text, cursor_pos)

    @_locked
    def update_formula_edit(self, text: str, cursor_pos: int) -> FormulaEdit:
        return self.selection.update_formula_edit(text, cursor_pos)

    @_locked
    def commit_formula_edit(self) -> FormulaEdit | None:
        """Stop editing and write the edited text to its cell."""
        edit = self.selection.stop_formula_edit()
        if edit is not None:
            self.store.set_cell(edit.row, edit.col, edit.text)
        return edit

    @_locked
    def cancel_formula_edit(self) -> FormulaEdit | None:
        return self.selection.stop_formula_edit()

    # ------------------------------------------------------------------
    # Axis sizes and viewport
    # ------------------------------------------------------------------

    @_locked
    def set_row_height(self, index: int, height: int) -> None:
        self.rows.set_size(index, height)

    @_locked
    def set_col_width(self, index: int, width: int) -> None:
        self.cols.set_size(index, width)

    @_locked
    def window(self, scroll_top: float, scroll_left: float, height: float, width: float) -> Window:
        return self.windower.window(scroll_top, scroll_left, height, width)

    @_locked
    def viewport(self, scroll_top: float, scroll_left: float, height: float, width: float) -> SheetView:
        """Window for a scroll position plus every materialized cell inside it."""
        win = self.windower.window(scroll_top, scroll_left, height, width)
        cells = [
            CellView.of(pos.row, pos.col, cell)
            for pos, cell in self.store.cells()
            if win.contains(pos.row, pos.col)
        ]
        return SheetView(window=win, cells=cells)

    @_locked
    def window_frame(self, window: Window) -> pl.DataFrame:
        """Display values of *window* as a frame: a ``row`` label column then one column per letter."""
        rows = list(window.rows())
        data: dict[str, list[Any]] = {"row": [r + 1 for r in rows]}
        schema: dict[str, Any] = {"row": pl.Int64}
        for c in window.cols():
            letter = index_to_col_letter(c)
            column: list[Any] = []
            for r in rows:
                cell = self.store.get_cell(r, c)
                column.append(cell.display_value if cell is not None else "")
            data[letter] = column
            schema[letter] = pl.Utf8
        return pl.DataFrame(data, schema=schema)

    @_locked
    def range_frame(self, label: str) -> pl.DataFrame:
        """:meth:`window_frame` for an ``A1:C5`` label.

        Raises:
            ValueError: Malformed range.
        """
        rng = parse_range(label)
        if rng is None:
            raise ValueError(f"Invalid range: {label!r}")
        top, left, bottom, right = rng.bounds()
        return self.window_frame(
            Window(row_start=top, row_end=bottom + 1, col_start=left, col_end=right + 1)
        )
