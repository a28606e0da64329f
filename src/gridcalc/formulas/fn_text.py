"""Text formula functions: concat, upper, lower, trim."""

from __future__ import annotations

import datetime
from typing import Any

from gridcalc.cells import Format
from gridcalc.formatting import format_date, format_general_number
from gridcalc.formulas.errors import FormulaFunctionError, FormulaTypeError


def to_text(val: Any) -> str:
    """Natural text form of a native value, as concat() joins it."""
    if val is None:
        return ""
    if isinstance(val, bool):
        return "TRUE" if val else "FALSE"
    if isinstance(val, (int, float)):
        return format_general_number(val)
    if isinstance(val, datetime.datetime):
        return format_date(val, Format.general)
    if isinstance(val, list):
        return ",".join(to_text(v) for v in val)
    return str(val)


def _single_text(func: str, args: list) -> str:
    if len(args) != 1:
        raise FormulaFunctionError(func, f"{func} requires exactly 1 argument")
    if not isinstance(args[0], str):
        raise FormulaTypeError(f"{func}: expected text, got {type(args[0]).__name__}")
    return args[0]


def _fn_concat(args: list, resolve: Any) -> str:
    """concat(a, b, ...): join the text form of every argument."""
    return "".join(to_text(a) for a in args)


def _fn_upper(args: list, resolve: Any) -> str:
    return _single_text("upper", args).upper()


def _fn_lower(args: list, resolve: Any) -> str:
    return _single_text("lower", args).lower()


def _fn_trim(args: list, resolve: Any) -> str:
    return _single_text("trim", args).strip()


TEXT_FUNCTIONS: dict[str, Any] = {
    "concat": _fn_concat,
    "upper": _fn_upper,
    "lower": _fn_lower,
    "trim": _fn_trim,
}
