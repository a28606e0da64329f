"""Display rendering of cell values under a data type and display format."""

from __future__ import annotations

import datetime
import json
import math
from typing import Any

from gridcalc.cells import (
    BoolValue,
    Cell,
    CellValue,
    DataType,
    EmptyValue,
    ErrorKind,
    Format,
    NumberValue,
    SequenceValue,
    TableValue,
    TextValue,
    TimestampValue,
)

ERROR_MARKERS: dict[ErrorKind, str] = {
    ErrorKind.formula: "#ERR!",
    ErrorKind.reference: "#REF!",
    ErrorKind.circular: "#CIRC!",
}

_DATE_PATTERNS: dict[Format, str] = {
    Format.DDMMYYYY: "%d/%m/%Y",
    Format.MMDDYYYY: "%m/%d/%Y",
    Format.YYYYMMDD: "%Y-%m-%d",
    Format.DDMM: "%d/%m",
    Format.MMDD: "%m/%d",
    Format.time: "%H:%M:%S",
    Format.datetime: "%d/%m/%Y %H:%M",
}

_FIXED_DECIMALS: dict[Format, int] = {
    Format.decimal: 1,
    Format.decimal2: 2,
    Format.decimal3: 3,
    Format.decimal4: 4,
    Format.decimal6: 6,
}


def format_general_number(val: float) -> str:
    """Integral floats print without a decimal point, others with 10 significant digits."""
    if val == int(val):
        return str(int(val))
    return f"{val:.10g}"


def format_number(val: float, fmt: Format) -> str:
    if fmt == Format.integer:
        return str(math.floor(val + 0.5))
    if fmt in _FIXED_DECIMALS:
        return f"{val:.{_FIXED_DECIMALS[fmt]}f}"
    if fmt == Format.currency:
        sign = "-" if val < 0 else ""
        return f"{sign}${abs(val):,.2f}"
    if fmt == Format.percentage:
        return f"{val * 100:.2f}%"
    if fmt == Format.scientific:
        return f"{val:.2e}"
    return format_general_number(val)


def format_date(val: datetime.datetime, fmt: Format) -> str:
    pattern = _DATE_PATTERNS.get(fmt)
    if pattern is not None:
        return val.strftime(pattern)
    if val.time() == datetime.time():
        return val.strftime("%Y-%m-%d")
    return val.strftime("%Y-%m-%d %H:%M:%S")


def _json_default(obj: Any) -> str:
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    return str(obj)


def render_natural(value: CellValue) -> str:
    """Render a value by its own kind, ignoring any pinned type or format."""
    if isinstance(value, EmptyValue):
        return ""
    if isinstance(value, NumberValue):
        return format_general_number(value.value)
    if isinstance(value, TextValue):
        return value.value
    if isinstance(value, BoolValue):
        return "TRUE" if value.value else "FALSE"
    if isinstance(value, TimestampValue):
        return format_date(value.value, Format.general)
    if isinstance(value, (SequenceValue, TableValue)):
        return json.dumps(value.to_python(), separators=(",", ":"), default=_json_default)
    return str(value)


def render(value: CellValue, data_type: DataType, formatting: Format = Format.general) -> str:
    """Render *value* for display.

    Formats only apply when the value kind matches the effective data
    type; a mismatched value (e.g. text in a cell pinned to ``number``)
    falls back to its natural rendering.  Never raises.
    """
    try:
        if data_type == DataType.number and isinstance(value, NumberValue):
            return format_number(value.value, formatting)
        if data_type == DataType.date and isinstance(value, TimestampValue):
            return format_date(value.value, formatting)
    except (ValueError, OverflowError):
        pass
    return render_natural(value)


def render_cell(cell: Cell) -> str:
    """Compute ``display_value`` for a cell, including error markers."""
    if cell.error is not None and cell.error.kind in ERROR_MARKERS:
        return ERROR_MARKERS[cell.error.kind]
    return render(cell.raw_value, cell.data_type, cell.formatting)
