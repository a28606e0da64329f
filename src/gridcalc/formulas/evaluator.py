"""Tree-walking evaluator for parsed formula expressions.

Formulas are evaluated against a fixed function namespace only; the sole
way to read another cell is the ``cell("REF")`` accessor, which calls
the ``resolve_cell`` callback supplied by the caller.

Values inside the evaluator are plain Python objects (``None`` for an
empty cell, ``int``/``float``, ``str``, ``bool``, ``datetime``, lists).
:func:`evaluate` converts the final result into a :data:`CellValue`.
"""

from __future__ import annotations

import datetime
import math
from typing import Any, Callable

from lark import Token, Tree

from gridcalc.cells import CellValue, to_cell_value
from gridcalc.formulas.errors import (
    ENGINE_ERRORS,
    FormulaError,
    FormulaFunctionError,
    FormulaRefError,
    FormulaTypeError,
)
from gridcalc.formulas.fn_date import DATE_FUNCTIONS
from gridcalc.formulas.fn_text import TEXT_FUNCTIONS
from gridcalc.formulas.parser import parse_formula, unquote

# resolve_cell("A1") -> value, resolve_cell("A1:B3") -> list / list of rows
ResolveCell = Callable[[str], Any]

# Upper bound on range(start, end) so a typo cannot exhaust memory.
_MAX_SEQUENCE = 1_000_000

# Integer powers stay exact only while the result fits a float's range.
_MAX_POWER_BITS = 1024


def evaluate(formula: str, resolve_cell: ResolveCell) -> CellValue:
    """Parse and evaluate *formula*, returning a typed cell value.

    Raises:
        FormulaError: Parse, reference, function or type failures.
        ZeroDivisionError, OverflowError, ValueError: Arithmetic failures.
    """
    tree = parse_formula(formula)
    result = evaluate_formula(tree, resolve_cell)
    try:
        return to_cell_value(result)
    except TypeError as exc:
        raise FormulaTypeError(str(exc)) from exc


def evaluate_formula(tree: Tree, resolve_cell: ResolveCell) -> Any:
    """Evaluate a parsed formula tree.

    Args:
        tree: Parse tree from ``parse_formula()``.
        resolve_cell: Callback that reads a cell or range by label.

    Returns:
        The computed native value.
    """
    return _eval(tree, resolve_cell)


def type_name(value: Any) -> str:
    """User-facing name of a native value's type, for error messages."""
    if value is None:
        return "empty"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "text"
    if isinstance(value, (datetime.date, datetime.datetime)):
        return "date"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_numbers(op: str, left: Any, right: Any) -> None:
    if not (is_number(left) and is_number(right)):
        raise FormulaTypeError(
            f"Cannot apply '{op}' to {type_name(left)} and {type_name(right)}"
        )


def _eval(node: Tree | Token, resolve: ResolveCell) -> Any:
    """Recursively evaluate a tree node."""
    if isinstance(node, Token):
        return _eval_token(node)

    rule = node.data

    # Start rule just wraps expr
    if rule == "start":
        return _eval(node.children[0], resolve)

    # Lazy control flow
    if rule == "cond":
        if _eval(node.children[0], resolve):
            return _eval(node.children[1], resolve)
        return _eval(node.children[2], resolve)
    # && and || yield the deciding operand, not a coerced boolean
    if rule == "and_op":
        left = _eval(node.children[0], resolve)
        return _eval(node.children[1], resolve) if left else left
    if rule == "or_op":
        left = _eval(node.children[0], resolve)
        return left if left else _eval(node.children[1], resolve)

    # Arithmetic
    if rule == "add":
        left = _eval(node.children[0], resolve)
        right = _eval(node.children[1], resolve)
        if isinstance(left, str) and isinstance(right, str):
            return left + right
        _require_numbers("+", left, right)
        return left + right
    if rule == "sub":
        left = _eval(node.children[0], resolve)
        right = _eval(node.children[1], resolve)
        _require_numbers("-", left, right)
        return left - right
    if rule == "mul":
        left = _eval(node.children[0], resolve)
        right = _eval(node.children[1], resolve)
        _require_numbers("*", left, right)
        return left * right
    if rule == "div":
        left = _eval(node.children[0], resolve)
        right = _eval(node.children[1], resolve)
        _require_numbers("/", left, right)
        if right == 0:
            raise ZeroDivisionError("Division by zero in formula")
        return left / right
    if rule == "mod":
        left = _eval(node.children[0], resolve)
        right = _eval(node.children[1], resolve)
        _require_numbers("%", left, right)
        if right == 0:
            raise ZeroDivisionError("Modulo by zero in formula")
        return math.fmod(left, right)
    if rule == "pow":
        base = _eval(node.children[0], resolve)
        exp = _eval(node.children[1], resolve)
        _require_numbers("**", base, exp)
        exact = isinstance(base, int) and isinstance(exp, int) and exp >= 0
        if exact and _exact_power_fits(base, exp):
            return base ** exp
        return math.pow(base, exp)
    if rule == "neg":
        val = _eval(node.children[0], resolve)
        if not is_number(val):
            raise FormulaTypeError(f"Cannot negate {type_name(val)}")
        return -val
    if rule == "pos":
        val = _eval(node.children[0], resolve)
        if not is_number(val):
            raise FormulaTypeError(f"Cannot apply unary '+' to {type_name(val)}")
        return val
    if rule == "not_op":
        return not _eval(node.children[0], resolve)

    # Comparison
    if rule == "eq":
        return _eval(node.children[0], resolve) == _eval(node.children[1], resolve)
    if rule == "neq":
        return _eval(node.children[0], resolve) != _eval(node.children[1], resolve)
    if rule in ("gt", "lt", "gte", "lte"):
        return _compare(rule, _eval(node.children[0], resolve), _eval(node.children[1], resolve))

    # Literals
    if rule == "number":
        return _parse_number(node.children[0])
    if rule == "boolean":
        return str(node.children[0]).lower() == "true"
    if rule == "string":
        return unquote(str(node.children[0]))
    if rule == "array":
        return [_eval(child, resolve) for child in node.children[0].children]

    # Bare references parse (for highlighting) but never resolve
    if rule == "cell_ref":
        ref = str(node.children[0]).upper()
        raise FormulaRefError(ref, f'Bare reference {ref} is not supported; use cell("{ref}")')
    if rule == "ref_bare":
        raise FormulaRefError(str(node.children[0]))

    # Function call
    if rule == "func_call":
        return _eval_func(node, resolve)

    # args nodes are consumed by their parent
    if rule == "args":
        return [_eval(child, resolve) for child in node.children]

    raise FormulaError(f"Unknown node type: {rule}")


def _eval_token(token: Token) -> Any:
    """Evaluate a bare token (shouldn't normally happen at top level)."""
    if token.type == "NUMBER":
        return _parse_number(token)
    if token.type == "BOOL":
        return str(token).lower() == "true"
    if token.type == "STRING":
        return unquote(str(token))
    return str(token)


def _parse_number(token: Token) -> int | float:
    """Parse a NUMBER token to int or float."""
    s = str(token)
    if "." in s or "e" in s.lower():
        return float(s)
    return int(s)


def _exact_power_fits(base: int, exp: int) -> bool:
    """True when ``base ** exp`` is small enough to compute as an exact int."""
    if abs(base) < 2:
        return True
    return exp * math.log2(abs(base)) < _MAX_POWER_BITS


_ORDERED_OPS = {
    "gt": (">", lambda a, b: a > b),
    "lt": ("<", lambda a, b: a < b),
    "gte": (">=", lambda a, b: a >= b),
    "lte": ("<=", lambda a, b: a <= b),
}


def _compare(rule: str, left: Any, right: Any) -> bool:
    symbol, op = _ORDERED_OPS[rule]
    comparable = (
        (is_number(left) and is_number(right))
        or (isinstance(left, str) and isinstance(right, str))
        or (isinstance(left, datetime.datetime) and isinstance(right, datetime.datetime))
    )
    if not comparable:
        raise FormulaTypeError(
            f"Cannot compare {type_name(left)} {symbol} {type_name(right)}"
        )
    return op(left, right)


# ---------- Function dispatch ----------

_LAZY_FUNCTIONS = {"if", "iferror", "iserror"}


def _eval_func(node: Tree, resolve: ResolveCell) -> Any:
    """Evaluate a function call node."""
    func_name = str(node.children[0]).lower()
    args_node = node.children[1]
    raw_args = args_node.children if args_node.children else []

    if func_name not in _FUNC_TABLE:
        raise FormulaFunctionError(func_name)

    # Lazy functions receive unevaluated AST nodes
    if func_name in _LAZY_FUNCTIONS:
        return _FUNC_TABLE[func_name](raw_args, resolve)

    evaluated_args = [_eval(arg, resolve) for arg in raw_args]
    return _FUNC_TABLE[func_name](evaluated_args, resolve)


def flatten(values: list) -> list:
    """Flatten nested lists (sequences and tables) into one list."""
    result: list = []
    for v in values:
        if isinstance(v, list):
            result.extend(flatten(v))
        else:
            result.append(v)
    return result


def _numbers(func: str, args: list) -> list[int | float]:
    """Flatten aggregate arguments, skip empty cells, reject anything non-numeric."""
    nums = []
    for v in flatten(args):
        if v is None:
            continue
        if not is_number(v):
            raise FormulaTypeError(f"{func}: expected numbers, got {type_name(v)} {v!r}")
        nums.append(v)
    return nums


def _single_number(func: str, args: list) -> int | float:
    if len(args) != 1:
        raise FormulaFunctionError(func, f"{func} requires exactly 1 argument")
    if not is_number(args[0]):
        raise FormulaTypeError(f"{func}: expected a number, got {type_name(args[0])}")
    return args[0]


def _fn_sum(args: list, resolve: ResolveCell) -> int | float:
    return sum(_numbers("sum", args))


def _fn_avg(args: list, resolve: ResolveCell) -> float:
    nums = _numbers("avg", args)
    if not nums:
        raise FormulaFunctionError("avg", "avg requires at least 1 number")
    return sum(nums) / len(nums)


def _fn_min(args: list, resolve: ResolveCell) -> int | float:
    nums = _numbers("min", args)
    if not nums:
        raise FormulaFunctionError("min", "min requires at least 1 number")
    return min(nums)


def _fn_max(args: list, resolve: ResolveCell) -> int | float:
    nums = _numbers("max", args)
    if not nums:
        raise FormulaFunctionError("max", "max requires at least 1 number")
    return max(nums)


def _fn_round(args: list, resolve: ResolveCell) -> int | float:
    """round(x [, digits]): rounds half up."""
    if len(args) < 1 or len(args) > 2:
        raise FormulaFunctionError("round", "round requires 1-2 arguments")
    x = _single_number("round", args[:1])
    digits = int(_single_number("round", args[1:])) if len(args) == 2 else 0
    scale = 10 ** digits
    rounded = math.floor(x * scale + 0.5) / scale
    return int(rounded) if digits <= 0 else rounded


def _fn_floor(args: list, resolve: ResolveCell) -> int:
    return math.floor(_single_number("floor", args))


def _fn_ceil(args: list, resolve: ResolveCell) -> int:
    return math.ceil(_single_number("ceil", args))


def _fn_abs(args: list, resolve: ResolveCell) -> int | float:
    return abs(_single_number("abs", args))


def _fn_range(args: list, resolve: ResolveCell) -> list[int]:
    """range(start, end): inclusive integer sequence."""
    if len(args) != 2:
        raise FormulaFunctionError("range", "range requires exactly 2 arguments (start, end)")
    for v in args:
        if not is_number(v) or v != int(v):
            raise FormulaTypeError(f"range: expected integers, got {v!r}")
    start, end = int(args[0]), int(args[1])
    if end - start + 1 > _MAX_SEQUENCE:
        raise FormulaFunctionError("range", f"range is limited to {_MAX_SEQUENCE} items")
    return list(range(start, end + 1))


def _fn_cell(args: list, resolve: ResolveCell) -> Any:
    """cell("A1") or cell("A1:B5"): read a cell value or a range."""
    if len(args) != 1:
        raise FormulaFunctionError("cell", "cell requires exactly 1 argument")
    if not isinstance(args[0], str):
        raise FormulaTypeError(f"cell: expected a reference string, got {type_name(args[0])}")
    return resolve(args[0])


def _fn_if(raw_args: list, resolve: ResolveCell) -> Any:
    """if(condition, then_value [, else_value]): lazy evaluation."""
    if len(raw_args) < 2 or len(raw_args) > 3:
        raise FormulaFunctionError("if", "if requires 2-3 arguments")
    if _eval(raw_args[0], resolve):
        return _eval(raw_args[1], resolve)
    if len(raw_args) == 3:
        return _eval(raw_args[2], resolve)
    return False


def _fn_iferror(raw_args: list, resolve: ResolveCell) -> Any:
    """iferror(value, fallback): catches errors in first arg."""
    if len(raw_args) != 2:
        raise FormulaFunctionError("iferror", "iferror requires exactly 2 arguments")
    try:
        return _eval(raw_args[0], resolve)
    except ENGINE_ERRORS:
        return _eval(raw_args[1], resolve)


def _fn_iserror(raw_args: list, resolve: ResolveCell) -> bool:
    if len(raw_args) != 1:
        raise FormulaFunctionError("iserror", "iserror requires exactly 1 argument")
    try:
        _eval(raw_args[0], resolve)
    except ENGINE_ERRORS:
        return True
    return False


def _fn_and(args: list, resolve: ResolveCell) -> bool:
    if not args:
        raise FormulaFunctionError("and", "and requires at least 1 argument")
    return all(flatten(args))


def _fn_or(args: list, resolve: ResolveCell) -> bool:
    if not args:
        raise FormulaFunctionError("or", "or requires at least 1 argument")
    return any(flatten(args))


def _fn_not(args: list, resolve: ResolveCell) -> bool:
    if len(args) != 1:
        raise FormulaFunctionError("not", "not requires exactly 1 argument")
    return not args[0]


_FUNC_TABLE: dict[str, Any] = {
    "sum": _fn_sum,
    "avg": _fn_avg,
    "min": _fn_min,
    "max": _fn_max,
    "round": _fn_round,
    "floor": _fn_floor,
    "ceil": _fn_ceil,
    "abs": _fn_abs,
    "range": _fn_range,
    "cell": _fn_cell,
    "if": _fn_if,
    "iferror": _fn_iferror,
    "iserror": _fn_iserror,
    "and": _fn_and,
    "or": _fn_or,
    "not": _fn_not,
    **TEXT_FUNCTIONS,
    **DATE_FUNCTIONS,
}


def function_names() -> list[str]:
    """Names available to formulas, sorted."""
    return sorted(_FUNC_TABLE)
