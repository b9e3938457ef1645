from __future__ import annotations

import ast
import logging
import operator
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..excel.values import parse_float_prefix, parse_number
from ..models.calculation import Thresholds
from ..models.sheet import Row

"""User formulas over row columns: ``[Nilai Pasar] - [Ekuitas] * 0.2``.

References are ``[COLUMN]`` (same row) or ``[SHEET.COLUMN]`` (looked up in a
context mapping of sheet name -> row). After substitution the expression may
contain only numbers, ``+ - * / %`` and parentheses; it is parsed with ``ast``
and walked, never passed to ``eval``.
"""

__all__ = [
    "FormulaError",
    "FormulaResult",
    "RowFormulaError",
    "RowsFormulaResult",
    "FormulaPreview",
    "evaluate_formula",
    "evaluate_formula_for_rows",
    "preview_formula",
]

logger = logging.getLogger(__name__)

_REFERENCE_RE = re.compile(r"\[([^\]]+)\]")
_ALLOWED_RE = re.compile(r"^[\d\s+\-*/%().eE]+$")

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class FormulaError(ValueError):
    """Formula cannot be evaluated against the given row."""


@dataclass(frozen=True)
class FormulaResult:
    success: bool
    value: float | None
    error: str | None = None


@dataclass(frozen=True)
class RowFormulaError:
    row: int  # 1-based
    error: str


@dataclass(frozen=True)
class RowsFormulaResult:
    rows: list[Row]
    success_count: int
    error_count: int
    errors: list[RowFormulaError] = field(default_factory=list)


@dataclass(frozen=True)
class FormulaPreview:
    success: bool
    result: float | None = None
    expression: str | None = None
    error: str | None = None


def _numeric(reference: str, value: Any) -> float:
    if value is None:
        raise FormulaError(f'column "{reference}" not found or null')
    if isinstance(value, bool):
        raise FormulaError(f'value of column "{reference}" is not a number: {value}')
    num = float(value) if isinstance(value, (int, float)) else parse_float_prefix(str(value))
    if num is None or num != num:  # unparsable or NaN
        raise FormulaError(f'value of column "{reference}" is not a number: {value}')
    return num


def _resolve(reference: str, row: Mapping[str, Any], context: Mapping[str, Mapping[str, Any]] | None) -> float:
    if reference in row:
        return _numeric(reference, row[reference])
    if "." in reference:
        sheet, column = reference.split(".", 1)
        if context is None or sheet not in context:
            raise FormulaError(f'sheet "{sheet}" or column "{column}" not found')
        return _numeric(reference, context[sheet].get(column))
    raise FormulaError(f'column "{reference}" not found or null')


def _substitute(formula: str, row: Mapping[str, Any], context: Mapping[str, Mapping[str, Any]] | None) -> str:
    if not _REFERENCE_RE.search(formula):
        raise FormulaError("formula has no column reference")
    expression = _REFERENCE_RE.sub(lambda m: repr(_resolve(m.group(1), row, context)), formula)
    if not _ALLOWED_RE.match(expression):
        raise FormulaError("formula contains characters other than numbers and arithmetic operators")
    return expression


def _walk(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _walk(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return float(node.value)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_walk(node.left), _walk(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_walk(node.operand))
    raise FormulaError(f"unsupported expression element: {type(node).__name__}")


def _compute(expression: str) -> float:
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        raise FormulaError(f"invalid formula: {expression}") from e
    try:
        value = _walk(tree)
    except ZeroDivisionError as e:
        raise FormulaError("division by zero") from e
    if value != value or value in (float("inf"), float("-inf")):
        raise FormulaError("formula result is not a valid number")
    return value


def evaluate_formula(
    formula: str,
    row: Mapping[str, Any],
    context: Mapping[str, Mapping[str, Any]] | None = None,
) -> FormulaResult:
    """Evaluate ``formula`` for one row. Failures are returned, not raised."""
    try:
        value = _compute(_substitute(formula, row, context))
    except FormulaError as e:
        return FormulaResult(False, None, str(e))
    return FormulaResult(True, value)


def _is_ranking_column(name: str) -> bool:
    lower = name.lower()
    return "rangking" in lower and "liabilities" in lower


def _percentage_column(rows: Sequence[Mapping[str, Any]]) -> str | None:
    if not rows:
        return None
    for column in rows[0]:
        lower = column.lower()
        if ("persentase" in lower or "persen" in lower) and ("pasar" in lower or "modal" in lower):
            return column
    return None


def evaluate_formula_for_rows(
    formula: str,
    rows: Sequence[Mapping[str, Any]],
    target_column: str,
    thresholds: Thresholds | None = None,
) -> RowsFormulaResult:
    """Apply ``formula`` to every row, writing ``target_column``.

    A ranking-liabilities target is gated by the ownership percentage: rows
    below the threshold get 0 without evaluating the formula. Rows that fail
    keep their previous value and are listed in ``errors``.
    """
    thresholds = thresholds or Thresholds()
    pct_column = _percentage_column(rows) if _is_ranking_column(target_column) else None

    out: list[Row] = []
    errors: list[RowFormulaError] = []
    success = 0
    for idx, row in enumerate(rows):
        if pct_column is not None and parse_number(row.get(pct_column)) < thresholds.ownership_threshold:
            out.append({**row, target_column: 0})
            success += 1
            continue
        result = evaluate_formula(formula, row)
        if result.success:
            out.append({**row, target_column: result.value})
            success += 1
        else:
            out.append(dict(row))
            errors.append(RowFormulaError(idx + 1, result.error or "unknown error"))
    if errors:
        logger.warning("formula %r failed on %d of %d rows", formula, len(errors), len(rows))
    return RowsFormulaResult(rows=out, success_count=success, error_count=len(errors), errors=errors)


def preview_formula(formula: str, sample_row: Mapping[str, Any]) -> FormulaPreview:
    """Evaluate against one sample row, returning the substituted expression too."""
    try:
        expression = _substitute(formula, sample_row, None)
        value = _compute(expression)
    except FormulaError as e:
        return FormulaPreview(False, error=str(e))
    return FormulaPreview(True, result=value, expression=expression)
