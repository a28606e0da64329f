"""Cell value variant, literal parsing, type validation and display rendering."""

from __future__ import annotations

import datetime

import pytest

from gridcalc.cells import (
    BoolValue,
    Cell,
    CellError,
    DataType,
    EmptyValue,
    ErrorKind,
    Format,
    NumberValue,
    SequenceValue,
    TableValue,
    TextValue,
    TimestampValue,
    coerce_to_type,
    detect_data_type,
    format_options,
    parse_literal,
    to_cell_value,
    validate_type,
)
from gridcalc.formatting import render, render_cell, render_natural


# ────────────────────────────────────────────────────────────────
# Value variant
# ────────────────────────────────────────────────────────────────


class TestToCellValue:
    def test_natives(self) -> None:
        assert to_cell_value(None) == EmptyValue()
        assert to_cell_value(True) == BoolValue(value=True)
        assert to_cell_value(3) == NumberValue(value=3.0)
        assert to_cell_value("x") == TextValue(value="x")
        when = datetime.datetime(2024, 1, 2, 3, 4)
        assert to_cell_value(when) == TimestampValue(value=when)

    def test_date_becomes_midnight_timestamp(self) -> None:
        value = to_cell_value(datetime.date(2024, 1, 2))
        assert value == TimestampValue(value=datetime.datetime(2024, 1, 2))

    def test_lists(self) -> None:
        assert isinstance(to_cell_value([1, 2]), SequenceValue)
        assert isinstance(to_cell_value([[1], [2]]), TableValue)
        assert to_cell_value([[1, None], [3, 4]]).to_python() == [[1, None], [3, 4]]

    def test_unsupported(self) -> None:
        with pytest.raises(TypeError):
            to_cell_value({"a": 1})
        with pytest.raises(TypeError):
            to_cell_value(float("nan"))
        with pytest.raises(TypeError):
            to_cell_value(float("inf"))

    def test_integral_numbers_round_trip_as_int(self) -> None:
        assert NumberValue(value=5.0).to_python() == 5
        assert isinstance(NumberValue(value=5.0).to_python(), int)
        assert NumberValue(value=5.5).to_python() == 5.5

    def test_detect_data_type(self) -> None:
        assert detect_data_type(EmptyValue()) == DataType.null
        assert detect_data_type(NumberValue(value=1)) == DataType.number
        assert detect_data_type(TextValue(value="a")) == DataType.string
        assert detect_data_type(BoolValue(value=False)) == DataType.boolean
        assert detect_data_type(to_cell_value([1])) == DataType.array
        assert detect_data_type(to_cell_value([[1]])) == DataType.array


class TestParseLiteral:
    def test_numbers(self) -> None:
        assert parse_literal("5") == NumberValue(value=5)
        assert parse_literal("-2.5") == NumberValue(value=-2.5)
        assert parse_literal("1e3") == NumberValue(value=1000)

    def test_booleans(self) -> None:
        assert parse_literal("TRUE") == BoolValue(value=True)
        assert parse_literal("false") == BoolValue(value=False)

    def test_dates(self) -> None:
        assert parse_literal("2024-03-01") == TimestampValue(value=datetime.datetime(2024, 3, 1))
        assert parse_literal("2024-03-01 09:30") == TimestampValue(value=datetime.datetime(2024, 3, 1, 9, 30))

    def test_text_kept_verbatim(self) -> None:
        assert parse_literal(" hello ") == TextValue(value=" hello ")
        assert parse_literal("12abc") == TextValue(value="12abc")
        assert parse_literal("1,000") == TextValue(value="1,000")


class TestValidateType:
    def test_number(self) -> None:
        assert validate_type(NumberValue(value=1), DataType.number)
        assert validate_type(TextValue(value="42"), DataType.number)
        assert not validate_type(TextValue(value="abc"), DataType.number)

    def test_string_accepts_everything(self) -> None:
        assert validate_type(NumberValue(value=1), DataType.string)
        assert validate_type(BoolValue(value=True), DataType.string)

    def test_date(self) -> None:
        assert validate_type(TextValue(value="2024-01-01"), DataType.date)
        assert not validate_type(TextValue(value="yesterday"), DataType.date)

    def test_exact_match_types(self) -> None:
        assert validate_type(BoolValue(value=True), DataType.boolean)
        assert not validate_type(NumberValue(value=1), DataType.boolean)

    def test_null_accepts_anything(self) -> None:
        assert validate_type(TextValue(value="x"), DataType.null)

    def test_coerce(self) -> None:
        assert coerce_to_type(TextValue(value="42"), DataType.number) == NumberValue(value=42)
        assert coerce_to_type(NumberValue(value=1.5), DataType.string) == TextValue(value="1.5")

    def test_format_options(self) -> None:
        assert Format.currency in format_options(DataType.number)
        assert Format.DDMMYYYY in format_options(DataType.date)
        assert format_options(DataType.boolean) == (Format.general,)


# ────────────────────────────────────────────────────────────────
# Rendering
# ────────────────────────────────────────────────────────────────


class TestRender:
    def _num(self, v: float, fmt: Format) -> str:
        return render(NumberValue(value=v), DataType.number, fmt)

    def test_general_numbers(self) -> None:
        assert self._num(5, Format.general) == "5"
        assert self._num(2.5, Format.general) == "2.5"
        assert self._num(0.1 + 0.2, Format.general) == "0.3"

    def test_number_formats(self) -> None:
        assert self._num(2.5, Format.integer) == "3"
        assert self._num(3.14159, Format.decimal) == "3.1"
        assert self._num(3.14159, Format.decimal2) == "3.14"
        assert self._num(3.14159, Format.decimal4) == "3.1416"
        assert self._num(1234.5, Format.currency) == "$1,234.50"
        assert self._num(-1234.5, Format.currency) == "-$1,234.50"
        assert self._num(0.125, Format.percentage) == "12.50%"
        assert self._num(12345, Format.scientific) == "1.23e+04"

    def test_dates(self) -> None:
        day = TimestampValue(value=datetime.datetime(2024, 3, 5))
        stamp = TimestampValue(value=datetime.datetime(2024, 3, 5, 14, 7, 9))
        assert render(day, DataType.date) == "2024-03-05"
        assert render(stamp, DataType.date) == "2024-03-05 14:07:09"
        assert render(day, DataType.date, Format.DDMMYYYY) == "05/03/2024"
        assert render(day, DataType.date, Format.MMDDYYYY) == "03/05/2024"
        assert render(stamp, DataType.date, Format.time) == "14:07:09"

    def test_other_kinds(self) -> None:
        assert render(BoolValue(value=True), DataType.boolean) == "TRUE"
        assert render(EmptyValue(), DataType.null) == ""
        assert render(to_cell_value([1, 2, 3]), DataType.array) == "[1,2,3]"
        assert render(to_cell_value([[1, "a"], [2, None]]), DataType.array) == '[[1,"a"],[2,null]]'

    def test_mismatched_kind_renders_naturally(self) -> None:
        assert render(TextValue(value="abc"), DataType.number, Format.currency) == "abc"

    def test_render_natural(self) -> None:
        assert render_natural(NumberValue(value=7)) == "7"
        assert render_natural(TextValue(value="t")) == "t"


class TestRenderCell:
    def test_error_markers(self) -> None:
        cell = Cell(raw_value=NumberValue(value=1), data_type=DataType.number)
        cell.error = CellError(message="boom", kind=ErrorKind.formula)
        assert render_cell(cell) == "#ERR!"
        cell.error = CellError(message="bad ref", kind=ErrorKind.reference)
        assert render_cell(cell) == "#REF!"
        cell.error = CellError(message="loop", kind=ErrorKind.circular)
        assert render_cell(cell) == "#CIRC!"

    def test_type_mismatch_keeps_value(self) -> None:
        cell = Cell(raw_value=TextValue(value="abc"), data_type=DataType.number)
        cell.error = CellError(message="not a number", kind=ErrorKind.type_mismatch)
        assert render_cell(cell) == "abc"
