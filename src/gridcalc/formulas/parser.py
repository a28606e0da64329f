"""Lark-based parser for cell formulas.

Supports:
- Arithmetic ``+ - * / %`` and power ``**`` (right-associative)
- Comparisons ``== === != !== < > <= >=`` and logical ``&& || !``
- Ternary ``cond ? a : b``
- Number, string (single or double quoted), boolean and array literals
- Calls into the fixed function namespace, including ``cell("A1:B2")``
- Bare cell references (``F2``) and bare names, which parse but do not
  resolve at evaluation time
"""

from __future__ import annotations

from functools import lru_cache

from lark import Lark, Tree
from lark.exceptions import LarkError

from gridcalc.formulas.errors import FormulaParseError

# LALR(1) grammar.
# Operator precedence (lowest to highest):
#   1. Ternary: ? :
#   2. Logical or: ||
#   3. Logical and: &&
#   4. Comparison: == === != !== > < >= <=
#   5. Addition/subtraction: + -
#   6. Multiplication/division/modulo: * / %
#   7. Unary: - + !
#   8. Power: ** (right-associative)
#   9. Atoms: literal, call, reference, array, parenthesized expr
GRAMMAR = r"""
start: "=" expr

?expr: ternary

?ternary: or_expr
    | or_expr "?" expr ":" expr   -> cond

?or_expr: and_expr
    | or_expr "||" and_expr       -> or_op

?and_expr: comparison
    | and_expr "&&" comparison    -> and_op

?comparison: addition
    | comparison "==" addition    -> eq
    | comparison "===" addition   -> eq
    | comparison "!=" addition    -> neq
    | comparison "!==" addition   -> neq
    | comparison ">" addition     -> gt
    | comparison "<" addition     -> lt
    | comparison ">=" addition    -> gte
    | comparison "<=" addition    -> lte

?addition: multiplication
    | addition "+" multiplication  -> add
    | addition "-" multiplication  -> sub

?multiplication: unary
    | multiplication "*" unary  -> mul
    | multiplication "/" unary  -> div
    | multiplication "%" unary  -> mod

?unary: power
    | "-" unary  -> neg
    | "+" unary  -> pos
    | "!" unary  -> not_op

?power: atom
    | atom "**" unary  -> pow

?atom: NUMBER                   -> number
    | BOOL                      -> boolean
    | STRING                    -> string
    | NAME "(" args ")"         -> func_call
    | CELL_REF                  -> cell_ref
    | NAME                      -> ref_bare
    | "[" args "]"              -> array
    | "(" expr ")"

args: expr ("," expr)*
    |

BOOL.3: /(?i:true|false)(?![A-Za-z0-9_])/

// Bare cell ref: A1, f2, AA10 (either case)
CELL_REF.2: /[A-Za-z]+[0-9]+(?![A-Za-z0-9_])/

NAME.1: /[A-Za-z_][A-Za-z0-9_]*/

STRING: /"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'/

%import common.NUMBER
%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")


def is_formula(value: object) -> bool:
    """True iff *value* is text that starts with ``=``."""
    return isinstance(value, str) and value.startswith("=")


@lru_cache(maxsize=2048)
def _parse(text: str) -> Tree:
    return _parser.parse(text)


def parse_formula(text: str) -> Tree:
    """Parse a formula string (must start with ``=``) into a Lark Tree.

    Args:
        text: The formula text, e.g. ``'=sum(cell("A1:A3")) * 2'``.

    Returns:
        A Lark parse tree.  Trees are cached per formula text and must be
        treated as read-only.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = text.strip()
    if not text.startswith("="):
        raise FormulaParseError("Formula must start with '='", position=0)
    try:
        return _parse(text)
    except LarkError as exc:
        pos = getattr(exc, "column", None)
        raise FormulaParseError(str(exc), position=pos) from exc


def unquote(token_text: str) -> str:
    """Strip the quotes of a STRING token and resolve backslash escapes."""
    body = token_text[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append({"n": "\n", "t": "\t"}.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)
