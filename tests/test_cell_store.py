"""CellStore writes: literals, formulas, types, formats and styles."""

from __future__ import annotations

import datetime

import pytest

from gridcalc.cells import DataType, ErrorKind, Format, NumberValue, TextValue
from gridcalc.signals import CellCommitted
from gridcalc.store import CellStore


@pytest.fixture
def store() -> CellStore:
    return CellStore()


# ────────────────────────────────────────────────────────────────
# Literals
# ────────────────────────────────────────────────────────────────


class TestLiterals:
    def test_numeric_text(self, store: CellStore) -> None:
        store.set_cell(0, 0, "5")
        cell = store.get_cell(0, 0)
        assert cell is not None
        assert cell.raw_value == NumberValue(value=5)
        assert cell.value == 5
        assert cell.data_type == DataType.number
        assert cell.display_value == "5"
        assert cell.computed is False
        assert cell.formula is None

    def test_python_values(self, store: CellStore) -> None:
        store.set_cell(0, 0, 2.5)
        store.set_cell(1, 0, True)
        store.set_cell(2, 0, datetime.date(2024, 1, 31))
        assert store.get_value(0, 0) == 2.5
        assert store.get_cell(1, 0).display_value == "TRUE"
        assert store.get_cell(2, 0).data_type == DataType.date
        assert store.get_cell(2, 0).display_value == "2024-01-31"

    def test_text(self, store: CellStore) -> None:
        store.set_cell(0, 0, "hello")
        assert store.get_cell(0, 0).raw_value == TextValue(value="hello")
        assert store.get_cell(0, 0).data_type == DataType.string

    def test_cells_are_sparse(self, store: CellStore) -> None:
        assert len(store) == 0
        assert store.get_cell(50, 20) is None
        assert store.get_value(50, 20) is None
        store.set_cell(3, 2, 1)
        assert len(store) == 1

    def test_empty_write_clears(self, store: CellStore) -> None:
        store.set_cell(0, 0, "x")
        store.set_cell(0, 0, "")
        cell = store.get_cell(0, 0)
        assert cell is not None
        assert cell.is_empty
        assert cell.display_value == ""
        assert cell.data_type == DataType.null
        store.set_cell(0, 0, None)
        assert store.get_value(0, 0) is None

    def test_empty_write_does_not_materialize(self, store: CellStore) -> None:
        store.set_cell(4, 4, None)
        assert len(store) == 0

    def test_negative_coordinates(self, store: CellStore) -> None:
        with pytest.raises(ValueError):
            store.set_cell(-1, 0, 1)

    def test_unsupported_value(self, store: CellStore) -> None:
        with pytest.raises(TypeError):
            store.set_cell(0, 0, {"a": 1})

    def test_cells_iteration_row_major(self, store: CellStore) -> None:
        store.set_cell(1, 0, 1)
        store.set_cell(0, 2, 2)
        store.set_cell(0, 1, 3)
        order = [(pos.row, pos.col) for pos, _ in store.cells()]
        assert order == [(0, 1), (0, 2), (1, 0)]


# ────────────────────────────────────────────────────────────────
# Formulas
# ────────────────────────────────────────────────────────────────


class TestFormulas:
    def test_formula_via_set_cell(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 + 2")
        cell = store.get_cell(0, 0)
        assert cell.computed is True
        assert cell.formula == "=1 + 2"
        assert cell.value == 3
        assert cell.display_value == "3"

    def test_set_cell_formula_requires_equals(self, store: CellStore) -> None:
        with pytest.raises(ValueError):
            store.set_cell_formula(0, 0, "1 + 2")

    def test_formula_error_is_stored_not_raised(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 / 0")
        cell = store.get_cell(0, 0)
        assert cell.error is not None
        assert cell.error.kind == ErrorKind.formula
        assert "zero" in cell.error.message.lower()
        assert cell.display_value == "#ERR!"

    def test_parse_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 +")
        assert store.get_cell(0, 0).error.kind == ErrorKind.formula

    def test_bare_reference_is_reference_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell(0, 1, "=A1 * 2")
        cell = store.get_cell(0, 1)
        assert cell.error.kind == ErrorKind.reference
        assert cell.display_value == "#REF!"

    def test_malformed_accessor_is_reference_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, '=cell("not a ref")')
        assert store.get_cell(0, 0).error.kind == ErrorKind.reference

    def test_oversized_range_is_reference_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, '=sum(cell("B1:ZZ100000"))')
        cell = store.get_cell(0, 0)
        assert cell.error.kind == ErrorKind.reference
        assert "spans more than" in cell.error.message
        assert store.graph.edge_count() == 0

    def test_bounded_store_rejects_reference_past_grid(self) -> None:
        bounded = CellStore(max_rows=10, max_cols=3)
        bounded.set_cell(0, 0, '=cell("D1")')
        cell = bounded.get_cell(0, 0)
        assert cell.error.kind == ErrorKind.reference
        assert cell.error.message == "Reference D1 is outside the grid (10 rows x 3 cols)"

    def test_errored_cell_keeps_last_good_value(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=2 * 3")
        store.set_cell(0, 0, "=2 / 0")
        cell = store.get_cell(0, 0)
        assert cell.value == 6
        assert cell.formula == "=2 / 0"
        assert cell.display_value == "#ERR!"

    def test_fixing_formula_clears_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=2 / 0")
        store.set_cell(0, 0, "=2 / 1")
        cell = store.get_cell(0, 0)
        assert cell.error is None
        assert cell.value == 2

    def test_literal_replaces_formula(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell(0, 1, '=cell("A1")')
        store.set_cell(0, 1, 5)
        cell = store.get_cell(0, 1)
        assert cell.computed is False
        assert cell.formula is None
        assert store.graph.listeners("0-0") == []

    def test_reading_errored_cell_propagates(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 / 0")
        store.set_cell(0, 1, '=cell("A1") + 1')
        cell = store.get_cell(0, 1)
        assert cell.error is not None
        assert "A1" in cell.error.message

    def test_iferror_catches_upstream_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 / 0")
        store.set_cell(0, 1, '=iferror(cell("A1"), -1)')
        assert store.get_value(0, 1) == -1

    def test_empty_cell_reads_as_none(self, store: CellStore) -> None:
        store.set_cell(0, 1, '=cell("A1")')
        cell = store.get_cell(0, 1)
        assert cell.error is None
        assert cell.value is None
        assert cell.display_value == ""


# ────────────────────────────────────────────────────────────────
# Data types
# ────────────────────────────────────────────────────────────────


class TestDataTypeOverride:
    def test_type_mismatch_does_not_block_write(self, store: CellStore) -> None:
        store.set_cell_data_type(0, 1, DataType.number)
        store.set_cell(0, 1, "abc")
        cell = store.get_cell(0, 1)
        assert cell.raw_value == TextValue(value="abc")
        assert cell.error is not None
        assert cell.error.kind == ErrorKind.type_mismatch
        assert cell.display_value == "abc"

    def test_compatible_write_is_coerced(self, store: CellStore) -> None:
        store.set_cell_data_type(0, 0, "string")
        store.set_cell(0, 0, "42")
        cell = store.get_cell(0, 0)
        assert cell.raw_value == TextValue(value="42")
        assert cell.data_type == DataType.string
        assert cell.error is None

    def test_pinning_existing_value_revalidates(self, store: CellStore) -> None:
        store.set_cell(0, 0, "abc")
        store.set_cell_data_type(0, 0, DataType.boolean)
        assert store.get_cell(0, 0).error.kind == ErrorKind.type_mismatch
        store.set_cell_data_type(0, 0, None)
        cell = store.get_cell(0, 0)
        assert cell.error is None
        assert cell.data_type == DataType.string

    def test_unknown_type(self, store: CellStore) -> None:
        with pytest.raises(ValueError):
            store.set_cell_data_type(0, 0, "money")

    def test_type_change_resets_incompatible_format(self, store: CellStore) -> None:
        store.set_cell(0, 0, 5)
        store.set_cell_formatting(0, 0, Format.currency)
        store.set_cell_data_type(0, 0, DataType.string)
        assert store.get_cell(0, 0).formatting == Format.general

    def test_type_change_keeps_formula(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 + 1")
        store.set_cell_data_type(0, 0, DataType.number)
        assert store.get_cell(0, 0).formula == "=1 + 1"

    def test_unpinning_formula_cell_restores_evaluated_type(self, store: CellStore) -> None:
        store.set_cell(0, 0, 10)
        store.set_cell(0, 1, '=cell("A1") * 2')
        store.set_cell(0, 2, '=cell("B1") + 1')

        store.set_cell_data_type(0, 1, DataType.string)
        pinned = store.get_cell(0, 1)
        assert pinned.raw_value == TextValue(value="20")
        assert pinned.data_type == DataType.string
        assert store.get_cell(0, 2).error is not None

        store.set_cell_data_type(0, 1, None)
        cell = store.get_cell(0, 1)
        assert cell.raw_value == NumberValue(value=20)
        assert cell.data_type == DataType.number
        assert cell.error is None
        assert store.get_value(0, 2) == 21
        assert store.get_cell(0, 2).error is None

    def test_pinning_errored_formula_cell_keeps_error(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=1 / 0")
        store.set_cell_data_type(0, 0, DataType.string)
        cell = store.get_cell(0, 0)
        assert cell.error.kind == ErrorKind.formula
        assert cell.data_type == DataType.string
        assert cell.display_value == "#ERR!"


# ────────────────────────────────────────────────────────────────
# Formatting and style
# ────────────────────────────────────────────────────────────────


class TestFormatting:
    def test_currency(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1234.5)
        store.set_cell_formatting(0, 0, "currency")
        assert store.get_cell(0, 0).display_value == "$1,234.50"

    def test_format_survives_new_value(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        store.set_cell_formatting(0, 0, Format.decimal2)
        store.set_cell(0, 0, 3)
        assert store.get_cell(0, 0).display_value == "3.00"

    def test_invalid_format_for_type(self, store: CellStore) -> None:
        store.set_cell(0, 0, "text")
        with pytest.raises(ValueError, match="not valid"):
            store.set_cell_formatting(0, 0, Format.currency)

    def test_unknown_format(self, store: CellStore) -> None:
        store.set_cell(0, 0, 1)
        with pytest.raises(ValueError):
            store.set_cell_formatting(0, 0, "fancy")

    def test_date_format(self, store: CellStore) -> None:
        store.set_cell(0, 0, "2024-12-25")
        store.set_cell_formatting(0, 0, Format.DDMMYYYY)
        assert store.get_cell(0, 0).display_value == "25/12/2024"

    def test_style_merges(self, store: CellStore) -> None:
        store.set_cell_style(0, 0, {"bold": True})
        store.set_cell_style(0, 0, {"color": "red"})
        assert store.get_cell(0, 0).style == {"bold": True, "color": "red"}

    def test_style_does_not_touch_value(self, store: CellStore) -> None:
        store.set_cell(0, 0, "=2 + 2")
        store.set_cell_style(0, 0, {"bold": True})
        cell = store.get_cell(0, 0)
        assert cell.formula == "=2 + 2"
        assert cell.value == 4


# ────────────────────────────────────────────────────────────────
# Signals
# ────────────────────────────────────────────────────────────────


class TestSignals:
    def test_cell_committed_published(self, store: CellStore) -> None:
        seen: list[CellCommitted] = []
        store.signals.cell_committed.connect(seen.append)
        store.set_cell(0, 0, 1)
        store.set_cell_formula(1, 2, "=1")
        assert [m.ref for m in seen] == ["A1", "C2"]
        assert seen[1].row == 1 and seen[1].col == 2

    def test_disconnect(self, store: CellStore) -> None:
        seen: list[CellCommitted] = []
        store.signals.cell_committed.connect(seen.append)
        store.signals.cell_committed.disconnect(seen.append)
        store.set_cell(0, 0, 1)
        assert seen == []
