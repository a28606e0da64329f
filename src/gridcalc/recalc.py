"""Recalculation of formula cells after a write.

Each write triggers one cascade: the written cell (when it holds a
formula) and every transitive listener are evaluated exactly once, in
topological order.  Cells that sit on or below a dependency cycle are
not evaluated; they receive a ``circular`` error naming the cycle.
Evaluation failures are stored on the failing cell and never raised to
the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gridcalc.addressing import cell_key, parse_key, position_to_ref
from gridcalc.cell_graph import DependencyGraph, key_label
from gridcalc.cells import (
    Cell,
    CellError,
    CellValue,
    EmptyValue,
    ErrorKind,
    Format,
    coerce_to_type,
    detect_data_type,
    format_options,
    validate_type,
)
from gridcalc.formatting import render_cell, render_natural
from gridcalc.formulas.errors import ENGINE_ERRORS, FormulaRefError
from gridcalc.formulas.evaluator import evaluate
from gridcalc.logging.events import (
    CIRCULAR_REFERENCE,
    FORMULA_EVAL_ERROR,
    FORMULA_REF_ERROR,
    EventType,
    emit_info,
    emit_warning,
)

if TYPE_CHECKING:
    from gridcalc.logging.sink import EventSink
    from gridcalc.store import CellStore


def apply_value(cell: Cell, value: CellValue) -> None:
    """Store *value* on *cell*, honouring a pinned data type.

    A value incompatible with the pinned type is still stored; the cell
    gets a ``type-mismatch`` error instead.
    """
    cell.error = None
    expected = cell.data_type_override
    if expected is None:
        data_type = detect_data_type(value)
    else:
        data_type = expected
        if not isinstance(value, EmptyValue):
            if validate_type(value, expected):
                value = coerce_to_type(value, expected)
            else:
                cell.error = CellError(
                    message=(
                        f"Value {render_natural(value)!r} is not a valid {expected.value} "
                        f"(got {detect_data_type(value).value})"
                    ),
                    kind=ErrorKind.type_mismatch,
                )
    cell.raw_value = value
    cell.data_type = data_type
    if not isinstance(value, EmptyValue) and cell.formatting not in format_options(data_type):
        cell.formatting = Format.general
    cell.display_value = render_cell(cell)


def fail_cell(cell: Cell, message: str, kind: ErrorKind) -> None:
    """Flag *cell* as errored; its last good raw value is kept."""
    cell.error = CellError(message=message, kind=kind)
    cell.display_value = render_cell(cell)


class RecalcEngine:
    """Evaluates formula cells of a :class:`CellStore` along the dependency graph."""

    def __init__(
        self,
        store: CellStore,
        graph: DependencyGraph,
        *,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._graph = graph
        self.sink = sink

    def recalculate_cell(self, row: int, col: int) -> list[str]:
        """Evaluate one computed cell, then its dependents.

        No-op for cells that do not hold a formula.

        Returns:
            Keys of the cells that were evaluated, in evaluation order.
        """
        cell = self._store.get_cell(row, col)
        if cell is None or not cell.computed:
            return []
        return self._cascade(cell_key(row, col), include_root=True)

    def recalculate_dependents(self, key: str) -> list[str]:
        """Evaluate every transitive listener of *key* once, in topological order."""
        return self._cascade(key, include_root=False)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _cascade(self, root: str, *, include_root: bool) -> list[str]:
        order, blocked = self._graph.cascade_order(root)
        evaluated: list[str] = []
        for key in order:
            if key == root and not include_root:
                continue
            if self._evaluate(key):
                evaluated.append(key)
        if blocked:
            self._flag_circular(blocked)
        if len(evaluated) + len(blocked) > 1:
            emit_info(
                self.sink,
                EventType.recalc_completed,
                f"Recalculated {len(evaluated)} cell(s) from {key_label(root)}",
                {
                    "ref": key_label(root),
                    "evaluated": len(evaluated),
                    "blocked": len(blocked),
                },
            )
        return evaluated

    def _evaluate(self, key: str) -> bool:
        row, col = parse_key(key)
        cell = self._store.get_cell(row, col)
        if cell is None or not cell.computed or cell.formula is None:
            return False
        ref = position_to_ref(row, col)
        try:
            value = evaluate(cell.formula, self._store.resolve_ref)
        except FormulaRefError as exc:
            fail_cell(cell, str(exc), ErrorKind.reference)
            self._log_error(ref, cell, FORMULA_REF_ERROR)
        except ENGINE_ERRORS as exc:
            fail_cell(cell, str(exc), ErrorKind.formula)
            self._log_error(ref, cell, FORMULA_EVAL_ERROR)
        else:
            apply_value(cell, value)
        return True

    def _flag_circular(self, blocked: list[str]) -> None:
        upstream = None
        errors = {}
        for key in blocked:
            err = self._graph.cycle_error(key)
            errors[key] = err
            if upstream is None and err is not None:
                upstream = err

        for key in blocked:
            row, col = parse_key(key)
            cell = self._store.get_cell(row, col)
            if cell is None or not cell.computed:
                continue
            err = errors[key]
            if err is not None:
                message = str(err)
            elif upstream is not None:
                message = f"Depends on a circular reference: {' -> '.join(upstream.cycle_path)}"
            else:
                message = "Depends on a circular reference"
            fail_cell(cell, message, ErrorKind.circular)

        emit_warning(
            self.sink,
            EventType.circular_reference,
            str(upstream) if upstream is not None else "Circular reference",
            {
                "cells": [key_label(k) for k in blocked],
                "cycle": upstream.cycle_path if upstream is not None else [],
            },
            error_code=CIRCULAR_REFERENCE,
        )

    def _log_error(self, ref: str, cell: Cell, code: str) -> None:
        assert cell.error is not None
        emit_warning(
            self.sink,
            EventType.cell_error,
            cell.error.message,
            {"ref": ref, "formula": cell.formula, "kind": cell.error.kind.value},
            error_code=code,
        )
