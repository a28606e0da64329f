"""Dependency graph and recalculation cascades."""

from __future__ import annotations

import pytest

from gridcalc.cell_graph import CellCycleError, DependencyGraph, key_label
from gridcalc.cells import ErrorKind
from gridcalc.store import CellStore


@pytest.fixture
def store() -> CellStore:
    return CellStore()


def _count_evaluations(store: CellStore, monkeypatch: pytest.MonkeyPatch) -> dict[str, int]:
    """Patch the recalc engine so each evaluated key is tallied."""
    counts: dict[str, int] = {}
    original = store.recalc._evaluate

    def counting(key: str) -> bool:
        counts[key] = counts.get(key, 0) + 1
        return original(key)

    monkeypatch.setattr(store.recalc, "_evaluate", counting)
    return counts


# ────────────────────────────────────────────────────────────────
# DependencyGraph
# ────────────────────────────────────────────────────────────────


class TestDependencyGraph:
    def test_edges(self) -> None:
        g = DependencyGraph()
        g.set_dependencies("0-1", ["0-0", "1-0", "0-0"])
        assert g.dependencies("0-1") == ["0-0", "1-0"]
        assert g.listeners("0-0") == ["0-1"]
        assert g.edge_count() == 2
        assert "0-1" in g

    def test_rewrite_drops_old_edges(self) -> None:
        g = DependencyGraph()
        g.set_dependencies("0-1", ["0-0"])
        g.set_dependencies("0-1", ["2-2"])
        assert g.listeners("0-0") == []
        assert g.listeners("2-2") == ["0-1"]

    def test_clear(self) -> None:
        g = DependencyGraph()
        g.set_dependencies("0-1", ["0-0"])
        g.clear_dependencies("0-1")
        assert g.edge_count() == 0
        assert "0-1" not in g

    def test_cascade_order_is_topological(self) -> None:
        g = DependencyGraph()
        # B1 = A1, C1 = A1 + B1, D1 = C1
        g.set_dependencies("0-1", ["0-0"])
        g.set_dependencies("0-2", ["0-0", "0-1"])
        g.set_dependencies("0-3", ["0-2"])
        order, blocked = g.cascade_order("0-0")
        assert blocked == []
        assert order == ["0-0", "0-1", "0-2", "0-3"]

    def test_cascade_order_blocks_cycle(self) -> None:
        g = DependencyGraph()
        g.set_dependencies("0-0", ["0-1"])
        g.set_dependencies("0-1", ["0-0"])
        g.set_dependencies("0-2", ["0-1"])
        order, blocked = g.cascade_order("0-0")
        assert order == []
        assert set(blocked) == {"0-0", "0-1", "0-2"}

    def test_find_cycle(self) -> None:
        g = DependencyGraph()
        g.set_dependencies("0-0", ["0-1"])
        g.set_dependencies("0-1", ["0-0"])
        assert g.find_cycle("0-0") == ["0-0", "0-1", "0-0"]
        err = g.cycle_error("0-0")
        assert isinstance(err, CellCycleError)
        assert err.cycle_path == ["A1", "B1", "A1"]
        assert "A1 -> B1 -> A1" in str(err)

    def test_no_cycle(self) -> None:
        g = DependencyGraph()
        g.set_dependencies("0-1", ["0-0"])
        assert g.find_cycle("0-0") is None
        assert g.cycle_error("0-0") is None

    def test_key_label(self) -> None:
        assert key_label("0-1") == "B1"
        assert key_label("9-26") == "AA10"


# ────────────────────────────────────────────────────────────────
# Propagation
# ────────────────────────────────────────────────────────────────


class TestPropagation:
    def test_simple_chain(self, store: CellStore) -> None:
        store.set_cell(0, 0, 10)
        store.set_cell_formula(0, 1, '=cell("A1") * 2')
        assert store.get_value(0, 1) == 20
        store.set_cell(0, 0, 7)
        assert store.get_value(0, 1) == 14

    def test_range_sum(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell(0, 1, 2)
        store.set_cell(0, 2, 3)
        store.set_cell_formula(1, 0, '=sum(cell("A1:C1"))')
        assert store.get_value(1, 0) == 6
        store.set_cell(0, 2, 10)
        assert store.get_value(1, 0) == 13

    def test_single_row_range_is_flat(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell(0, 1, 2)
        assert store.resolve_ref("A1:B1") == [1, 2]
        assert store.resolve_ref("B1:A1") == [1, 2]

    def test_rectangle_is_nested(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell(1, 1, 4)
        assert store.resolve_ref("A1:B2") == [[1, None], [None, 4]]

    def test_long_chain(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        for r in range(1, 50):
            store.set_cell_formula(r, 0, f'=cell("A{r}") + 1')
        assert store.get_value(49, 0) == 50
        store.set_cell(0, 0, 101)
        assert store.get_value(49, 0) == 150

    def test_bare_reference_does_not_subscribe(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell_formula(0, 1, "=A1 + 1")
        assert store.graph.listeners("0-0") == []

    def test_formula_rewrite_rewires(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell(1, 0, 100)
        store.set_cell_formula(0, 1, '=cell("A1")')
        store.set_cell_formula(0, 1, '=cell("A2")')
        store.set_cell(0, 0, 5)
        assert store.get_value(0, 1) == 100

    def test_recalculate_cell_noop_for_literal(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        assert store.recalc.recalculate_cell(0, 0) == []

    def test_recalculate_cell_returns_order(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell_formula(0, 1, '=cell("A1")')
        store.set_cell_formula(0, 2, '=cell("B1")')
        assert store.recalc.recalculate_cell(0, 1) == ["0-1", "0-2"]


class TestDiamond:
    def test_each_cell_evaluated_once(self, store: CellStore, monkeypatch: pytest.MonkeyPatch) -> None:
        # A1 -> B1, A1 -> C1, (B1, C1) -> D1
        store.set_cell(0, 0, 1)
        store.set_cell_formula(0, 1, '=cell("A1") + 1')
        store.set_cell_formula(0, 2, '=cell("A1") * 10')
        store.set_cell_formula(0, 3, '=cell("B1") + cell("C1")')
        assert store.get_value(0, 3) == 12

        counts = _count_evaluations(store, monkeypatch)
        store.set_cell(0, 0, 2)
        assert counts == {"0-1": 1, "0-2": 1, "0-3": 1}
        assert store.get_value(0, 3) == 23

    def test_dependent_sees_final_values(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell_formula(0, 1, '=cell("A1") * 2')
        store.set_cell_formula(0, 2, '=cell("A1") + cell("B1")')
        store.set_cell(0, 0, 4)
        assert store.get_value(0, 2) == 12


# ────────────────────────────────────────────────────────────────
# Cycles
# ────────────────────────────────────────────────────────────────


class TestCycles:
    def test_self_reference(self, store: CellStore) -> None:
        store.set_cell_formula(0, 0, '=cell("A1") + 1')
        cell = store.get_cell(0, 0)
        assert cell.error is not None
        assert cell.error.kind == ErrorKind.circular
        assert "A1 -> A1" in cell.error.message
        assert cell.display_value == "#CIRC!"

    def test_two_cell_cycle_terminates(self, store: CellStore) -> None:
        store.set_cell_formula(0, 0, '=cell("B1")')
        store.set_cell_formula(0, 1, '=cell("A1")')
        a1 = store.get_cell(0, 0)
        b1 = store.get_cell(0, 1)
        assert a1.error.kind == ErrorKind.circular
        assert b1.error.kind == ErrorKind.circular
        assert "B1 -> A1 -> B1" in b1.error.message

    def test_downstream_of_cycle_is_flagged(self, store: CellStore) -> None:
        store.set_cell_formula(0, 2, '=cell("B1") + 1')
        store.set_cell_formula(0, 0, '=cell("B1")')
        store.set_cell_formula(0, 1, '=cell("A1")')
        c1 = store.get_cell(0, 2)
        assert c1.error.kind == ErrorKind.circular
        assert c1.error.message.startswith("Depends on a circular reference")

    def test_breaking_cycle_recovers(self, store: CellStore) -> None:
        store.set_cell_formula(0, 0, '=cell("B1")')
        store.set_cell_formula(0, 1, '=cell("A1")')
        store.set_cell(0, 0, 3)
        b1 = store.get_cell(0, 1)
        assert b1.error is None
        assert b1.value == 3

    def test_cycle_does_not_touch_unrelated_cells(self, store: CellStore) -> None:
        store.set_cell(5, 5, 1)
        store.set_cell_formula(5, 6, '=cell("F6") + 1')
        store.set_cell_formula(0, 0, '=cell("A1")')
        assert store.get_cell(5, 6).error is None
        assert store.get_value(5, 6) == 2


# ────────────────────────────────────────────────────────────────
# Errors along the cascade
# ────────────────────────────────────────────────────────────────


class TestErrorPropagation:
    def test_upstream_error_reaches_dependent(self, store: CellStore) -> None:
        store.set_cell(0, 0, 0)
        store.set_cell_formula(0, 1, '=1 / cell("A1")')
        store.set_cell_formula(0, 2, '=cell("B1") + 1')
        assert store.get_cell(0, 1).error.kind == ErrorKind.formula
        c1 = store.get_cell(0, 2)
        assert c1.error.kind == ErrorKind.formula
        assert "B1 has an error" in c1.error.message

    def test_fixing_upstream_clears_dependents(self, store: CellStore) -> None:
        store.set_cell(0, 0, 0)
        store.set_cell_formula(0, 1, '=1 / cell("A1")')
        store.set_cell_formula(0, 2, '=cell("B1") * 4')
        store.set_cell(0, 0, 2)
        assert store.get_cell(0, 2).error is None
        assert store.get_value(0, 2) == 2

    def test_type_mismatch_value_stays_readable(self, store: CellStore) -> None:
        store.set_cell_data_type(0, 0, "number")
        store.set_cell(0, 0, "abc")
        store.set_cell_formula(0, 1, '=upper(cell("A1"))')
        assert store.get_value(0, 1) == "ABC"

    def test_mixed_type_operands(self, store: CellStore) -> None:
        store.set_cell(0, 0, "abc")
        store.set_cell_formula(0, 1, '=cell("A1") + 1')
        cell = store.get_cell(0, 1)
        assert cell.error.kind == ErrorKind.formula
        assert cell.display_value == "#ERR!"

    def test_reference_error_marker(self, store: CellStore) -> None:
        store.set_cell_formula(0, 0, "=B1")
        cell = store.get_cell(0, 0)
        assert cell.error.kind == ErrorKind.reference
        assert cell.display_value == "#REF!"
