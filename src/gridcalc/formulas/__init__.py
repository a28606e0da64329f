"""Formula parsing, reference extraction and evaluation.

Public API::

    from gridcalc.formulas import parse_formula, evaluate, extract_references
"""

from gridcalc.formulas.errors import (
    ENGINE_ERRORS,
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
    FormulaTypeError,
)
from gridcalc.formulas.evaluator import evaluate, evaluate_formula, function_names
from gridcalc.formulas.parser import is_formula, parse_formula
from gridcalc.formulas.references import extract_dependency_keys, extract_references

__all__ = [
    "ENGINE_ERRORS",
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "FormulaTypeError",
    "evaluate",
    "evaluate_formula",
    "extract_dependency_keys",
    "extract_references",
    "function_names",
    "is_formula",
    "parse_formula",
]
