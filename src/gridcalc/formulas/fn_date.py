"""Date formula functions: now, today, date, year, month, day, eomonth."""

from __future__ import annotations

import calendar
import datetime
from typing import Any

from gridcalc.cells import parse_date_text
from gridcalc.formulas.errors import FormulaFunctionError, FormulaTypeError


def _coerce_date(func: str, val: Any) -> datetime.datetime:
    """Convert a value to a datetime.

    Accepts:
    - datetime / date objects
    - ISO date text ("2024-03-01", "2024-03-01 09:30")
    """
    if isinstance(val, datetime.datetime):
        return val
    if isinstance(val, datetime.date):
        return datetime.datetime.combine(val, datetime.time())
    if isinstance(val, str):
        parsed = parse_date_text(val)
        if parsed is None:
            raise FormulaFunctionError(func, f"Cannot parse date string: {val!r}")
        return parsed
    raise FormulaTypeError(f"{func}: cannot coerce {type(val).__name__} to date")


def _fn_now(args: list, resolve: Any) -> datetime.datetime:
    """now(): current local date and time."""
    if args:
        raise FormulaFunctionError("now", "now takes no arguments")
    return datetime.datetime.now()


def _fn_today(args: list, resolve: Any) -> datetime.datetime:
    """today(): current local date at midnight."""
    if args:
        raise FormulaFunctionError("today", "today takes no arguments")
    return datetime.datetime.combine(datetime.date.today(), datetime.time())


def _fn_date(args: list, resolve: Any) -> datetime.datetime:
    """date(year, month, day): construct a date."""
    if len(args) != 3:
        raise FormulaFunctionError("date", "date requires exactly 3 arguments (year, month, day)")
    year, month, day = int(args[0]), int(args[1]), int(args[2])
    try:
        return datetime.datetime(year, month, day)
    except ValueError as exc:
        raise FormulaFunctionError("date", f"Invalid date: {exc}")


def _fn_year(args: list, resolve: Any) -> int:
    """year(date): extract year from a date."""
    if len(args) != 1:
        raise FormulaFunctionError("year", "year requires exactly 1 argument")
    return _coerce_date("year", args[0]).year


def _fn_month(args: list, resolve: Any) -> int:
    if len(args) != 1:
        raise FormulaFunctionError("month", "month requires exactly 1 argument")
    return _coerce_date("month", args[0]).month


def _fn_day(args: list, resolve: Any) -> int:
    if len(args) != 1:
        raise FormulaFunctionError("day", "day requires exactly 1 argument")
    return _coerce_date("day", args[0]).day


def _fn_eomonth(args: list, resolve: Any) -> datetime.datetime:
    """eomonth(start_date, months): last day of the month, offset by N months."""
    if len(args) != 2:
        raise FormulaFunctionError("eomonth", "eomonth requires exactly 2 arguments (start_date, months)")
    d = _coerce_date("eomonth", args[0])
    months = int(args[1])
    total_months = d.year * 12 + (d.month - 1) + months
    target_year, target_month = divmod(total_months, 12)
    target_month += 1
    last_day = calendar.monthrange(target_year, target_month)[1]
    return datetime.datetime(target_year, target_month, last_day)


DATE_FUNCTIONS: dict[str, Any] = {
    "now": _fn_now,
    "today": _fn_today,
    "date": _fn_date,
    "year": _fn_year,
    "month": _fn_month,
    "day": _fn_day,
    "eomonth": _fn_eomonth,
}
