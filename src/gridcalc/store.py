"""Sparse cell storage and the write operations that drive recalculation.

Cells are materialized lazily on first write and addressed internally by
``"row-col"`` keys.  Every mutating call completes its whole
recalculation cascade before returning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator

from gridcalc.addressing import cell_key, parse_key, parse_range, position_to_ref
from gridcalc.cell_graph import DependencyGraph
from gridcalc.cells import (
    EMPTY,
    Cell,
    CellPos,
    DataType,
    EmptyValue,
    ErrorKind,
    Format,
    SelectionRange,
    detect_data_type,
    format_options,
    parse_literal,
    to_cell_value,
)
from gridcalc.formatting import render_cell
from gridcalc.formulas.errors import FormulaError, FormulaRefError
from gridcalc.formulas.parser import is_formula
from gridcalc.formulas.references import MAX_RANGE_CELLS, extract_dependency_keys, range_fits
from gridcalc.logging.events import TYPE_MISMATCH, EventType, emit_info, emit_warning
from gridcalc.recalc import RecalcEngine, apply_value
from gridcalc.signals import CellCommitted, EngineSignals

if TYPE_CHECKING:
    from gridcalc.clipboard import ClipboardData
    from gridcalc.logging.sink import EventSink


def _check_coords(row: int, col: int) -> None:
    if row < 0 or col < 0:
        raise ValueError(f"Coordinates must be >= 0, got ({row}, {col})")


class CellStore:
    """Sparse mapping of cells plus the dependency graph over their formulas.

    Usage::

        store = CellStore()
        store.set_cell(0, 0, 10)
        store.set_cell_formula(0, 1, '=cell("A1") * 2')
        store.get_value(0, 1)   # 20
        store.set_cell(0, 0, 7)
        store.get_value(0, 1)   # 14
    """

    def __init__(
        self,
        *,
        graph: DependencyGraph | None = None,
        signals: EngineSignals | None = None,
        sink: EventSink | None = None,
        max_rows: int | None = None,
        max_cols: int | None = None,
    ) -> None:
        self._cells: dict[str, Cell] = {}
        self.max_rows = max_rows
        self.max_cols = max_cols
        self.graph = graph if graph is not None else DependencyGraph()
        self.signals = signals if signals is not None else EngineSignals()
        self.recalc = RecalcEngine(self, self.graph, sink=sink)

    @property
    def sink(self) -> EventSink | None:
        return self.recalc.sink

    @sink.setter
    def sink(self, value: EventSink | None) -> None:
        self.recalc.sink = value

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_cell(self, row: int, col: int) -> Cell | None:
        return self._cells.get(cell_key(row, col))

    def get_value(self, row: int, col: int) -> Any:
        """Native value of a cell; ``None`` when empty or never written."""
        cell = self._cells.get(cell_key(row, col))
        return cell.value if cell is not None else None

    def cells(self) -> Iterator[tuple[CellPos, Cell]]:
        """Materialized cells in row-major order."""
        for key in sorted(self._cells, key=parse_key):
            row, col = parse_key(key)
            yield CellPos(row=row, col=col), self._cells[key]

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, pos: object) -> bool:
        if isinstance(pos, CellPos):
            return cell_key(pos.row, pos.col) in self._cells
        return False

    def resolve_ref(self, ref: str) -> Any:
        """Read ``"A1"`` or ``"A1:B5"`` for the formula evaluator.

        A single cell yields its value, a single row or column a flat
        list, and a true rectangle a list of row lists.  Corners are
        normalized.

        Raises:
            FormulaRefError: If *ref* is not a valid reference, lies outside
                the grid or spans more than ``MAX_RANGE_CELLS`` cells.
            FormulaError: If a referenced cell holds an evaluation error.
        """
        rng = parse_range(ref.strip()) if isinstance(ref, str) else None
        if rng is None:
            raise FormulaRefError(str(ref), f"Invalid cell reference: {ref!r}")
        if not range_fits(rng, self.max_rows, self.max_cols):
            raise FormulaRefError(ref, self._unreadable_range(ref, rng))
        top, left, bottom, right = rng.bounds()
        if top == bottom and left == right:
            return self._read(top, left)
        if top == bottom:
            return [self._read(top, c) for c in range(left, right + 1)]
        if left == right:
            return [self._read(r, left) for r in range(top, bottom + 1)]
        return [[self._read(r, c) for c in range(left, right + 1)] for r in range(top, bottom + 1)]

    def _read(self, row: int, col: int) -> Any:
        cell = self._cells.get(cell_key(row, col))
        if cell is None:
            return None
        # Type mismatches keep a readable value; evaluation failures propagate.
        if cell.error is not None and cell.error.kind != ErrorKind.type_mismatch:
            raise FormulaError(f"{position_to_ref(row, col)} has an error: {cell.error.message}")
        return cell.value

    def _unreadable_range(self, ref: str, rng: SelectionRange) -> str:
        _, _, bottom, right = rng.bounds()
        label = ref.strip().upper()
        if (self.max_rows is not None and bottom >= self.max_rows) or (
            self.max_cols is not None and right >= self.max_cols
        ):
            return f"Reference {label} is outside the grid ({self.max_rows} rows x {self.max_cols} cols)"
        return f"Range {label} spans more than {MAX_RANGE_CELLS} cells"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _ensure(self, row: int, col: int) -> Cell:
        _check_coords(row, col)
        key = cell_key(row, col)
        cell = self._cells.get(key)
        if cell is None:
            cell = Cell()
            self._cells[key] = cell
        return cell

    def set_cell(self, row: int, col: int, value: Any) -> None:
        """Write a literal or, for text starting with ``=``, a formula.

        ``None``, ``""`` and the empty value clear the cell.  Literal text
        is parsed with the fixed literal table (numbers, booleans, dates);
        other Python values are stored by their own type.

        Raises:
            ValueError: Negative coordinates.
            TypeError: A value with no cell representation.
        """
        _check_coords(row, col)
        if value is None or value == "" or isinstance(value, EmptyValue):
            self.clear_cell(row, col)
            return
        if is_formula(value):
            self.set_cell_formula(row, col, value)
            return

        typed = parse_literal(value) if isinstance(value, str) else to_cell_value(value)
        key = cell_key(row, col)
        cell = self._ensure(row, col)
        if cell.computed:
            self.graph.clear_dependencies(key)
        cell.computed = False
        cell.formula = None
        apply_value(cell, typed)
        if cell.error is not None and cell.error.kind == ErrorKind.type_mismatch:
            emit_warning(
                self.sink,
                EventType.cell_error,
                cell.error.message,
                {"ref": position_to_ref(row, col), "kind": cell.error.kind.value},
                error_code=TYPE_MISMATCH,
            )
        self.recalc.recalculate_dependents(key)
        self._committed(row, col, cell)

    def set_cell_formula(self, row: int, col: int, formula: str) -> None:
        """Store *formula*, rewire its dependency edges and evaluate it.

        Raises:
            ValueError: If *formula* does not start with ``=``.
        """
        _check_coords(row, col)
        if not is_formula(formula):
            raise ValueError(f"Formula must start with '=': {formula!r}")
        key = cell_key(row, col)
        self.graph.set_dependencies(
            key,
            extract_dependency_keys(formula, max_rows=self.max_rows, max_cols=self.max_cols),
        )
        cell = self._ensure(row, col)
        cell.computed = True
        cell.formula = formula
        self.recalc.recalculate_cell(row, col)
        self._committed(row, col, cell)

    def clear_cell(self, row: int, col: int) -> None:
        """Reset a cell to the empty literal state and cascade.

        Style, formatting and the pinned data type are kept.
        """
        _check_coords(row, col)
        key = cell_key(row, col)
        cell = self._cells.get(key)
        if cell is not None:
            if cell.computed:
                self.graph.clear_dependencies(key)
            cell.computed = False
            cell.formula = None
            apply_value(cell, EMPTY)
        self.recalc.recalculate_dependents(key)
        self._committed(row, col, cell)

    def set_cell_style(self, row: int, col: int, style: dict[str, Any], *, replace: bool = False) -> None:
        """Merge *style* into the cell's presentational attributes."""
        cell = self._ensure(row, col)
        if replace:
            cell.style = dict(style)
        else:
            cell.style.update(style)

    def set_cell_data_type(self, row: int, col: int, data_type: DataType | str | None) -> None:
        """Pin the cell's data type (``None`` removes the pin) and re-validate.

        Raises:
            ValueError: Unknown data type name.
        """
        pinned = DataType(data_type) if data_type is not None else None
        cell = self._ensure(row, col)
        cell.data_type_override = pinned
        if cell.computed:
            # Re-evaluate from the formula; the stored value may carry an earlier coercion.
            self.recalc.recalculate_cell(row, col)
            if cell.error is None or cell.error.kind == ErrorKind.type_mismatch:
                if cell.formatting not in format_options(cell.data_type):
                    cell.formatting = Format.general
                    cell.display_value = render_cell(cell)
                return
        if cell.error is not None and cell.error.kind != ErrorKind.type_mismatch:
            # Evaluation failure: keep the error, only refresh type and display.
            cell.data_type = pinned or detect_data_type(cell.raw_value)
            if cell.formatting not in format_options(cell.data_type):
                cell.formatting = Format.general
            cell.display_value = render_cell(cell)
            return
        apply_value(cell, cell.raw_value)
        if cell.formatting not in format_options(cell.data_type):
            cell.formatting = Format.general
            cell.display_value = render_cell(cell)
        # Coercion may have changed the stored value.
        self.recalc.recalculate_dependents(cell_key(row, col))

    def set_cell_formatting(self, row: int, col: int, formatting: Format | str) -> None:
        """Set the display format.

        Raises:
            ValueError: Unknown format, or one not allowed for the cell's type.
        """
        fmt = Format(formatting)
        _check_coords(row, col)
        existing = self.get_cell(row, col)
        data_type = existing.data_type if existing is not None else DataType.null
        if fmt not in format_options(data_type):
            allowed = ", ".join(f.value for f in format_options(data_type))
            raise ValueError(f"Format {fmt.value!r} is not valid for {data_type.value} cells (allowed: {allowed})")
        cell = self._ensure(row, col)
        cell.formatting = fmt
        cell.display_value = render_cell(cell)

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    def copy_range(self, rng: SelectionRange, *, cut: bool = False) -> ClipboardData:
        from gridcalc.clipboard import copy_range

        return copy_range(self, rng, cut=cut)

    def paste(self, clipboard: ClipboardData, at: CellPos) -> ClipboardData:
        from gridcalc.clipboard import paste

        return paste(self, clipboard, at)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _committed(self, row: int, col: int, cell: Cell | None) -> None:
        ref = position_to_ref(row, col)
        context: dict[str, Any] = {"ref": ref}
        if cell is not None:
            context["display"] = cell.display_value
            if cell.formula is not None:
                context["formula"] = cell.formula
            if cell.error is not None:
                context["error_kind"] = cell.error.kind.value
        emit_info(self.sink, EventType.cell_committed, f"Committed {ref}", context)
        self.signals.cell_committed.publish(CellCommitted(row=row, col=col, ref=ref))
