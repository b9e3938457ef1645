from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..excel.values import cell_text, parse_number, row_text
from ..models.sheet import Row
from .column_aliases import AMOUNT_COLUMN, TOTAL_COLUMN
from .formula_chain import ChainInput, ChainStep, FormulaChain
from .row_classifier import PhraseRule, find_last_row

"""Net adjusted working capital form (VD59): MKBD from the ranking total.

Chain::

    base      = total current assets - total liabilities - ranking liabilities
    net       = base + subordinated debt
    adjusted  = net - sum(risk deductions, rows 30-90)
    excess    = adjusted - required MKBD

Rows are located by marker phrase, except the "net working capital (line 18)"
row, the adjusted-MKBD row and the section header row, which are resolved by
position heuristics and then updated by explicit post-processing rules.
"""

__all__ = [
    "WORKING_CAPITAL_CHAIN",
    "RISK_DEDUCTION_ROWS",
    "HEADER_SECTION_END",
    "ForceOverwriteRule",
    "WorkingCapitalRows",
    "WorkingCapitalResult",
    "locate_rows",
    "sum_risk_deductions",
    "update_working_capital",
]

logger = logging.getLogger(__name__)

# 0-based, inclusive: report lines 30-90 hold the risk deductions
RISK_DEDUCTION_ROWS = (29, 89)
# the adjusted-MKBD phrase above this index is the section title, below it the result line
HEADER_SECTION_END = 50
# report years that appear as plain numbers in the deduction section
_YEAR_VALUES = {2024, 2025, 2026}
_PLAUSIBLE_MIN = 1000

ADJUSTED_PHRASE = "MODAL KERJA BERSIH DISESUAIKAN"

WORKING_CAPITAL_CHAIN = FormulaChain(
    label="VD59",
    inputs=(
        ChainInput("current_assets", PhraseRule(all_of=("TOTAL ASET LANCAR",))),
        ChainInput("total_liabilities", PhraseRule(all_of=("TOTAL LIABILITAS",), none_of=("RANKING",))),
        ChainInput(
            "subordinated_debt",
            PhraseRule.one_of("UTANG SUB-ORDINASI", "UTANG SUBORDINASI"),
            first_match=True,
        ),
    ),
    steps=(
        ChainStep(
            "ranking_liabilities",
            ("grand_total",),
            lambda total: total,
            PhraseRule(all_of=("TOTAL RANKING LIABILITIES",)),
        ),
        ChainStep(
            "base_working_capital",
            ("current_assets", "total_liabilities", "ranking_liabilities"),
            lambda assets, liab, ranking: assets - liab - ranking,
            PhraseRule(all_of=("TOTAL MODAL KERJA",), any_of=(("DIKURANGI", "BARIS 9", "BARIS 13"),)),
        ),
        ChainStep(
            "net_working_capital_line",
            ("base_working_capital",),
            lambda base: base,
            PhraseRule(all_of=("TOTAL MODAL KERJA BERSIH", "15", "17")),
        ),
        ChainStep(
            "net_working_capital",
            ("base_working_capital", "subordinated_debt"),
            lambda base, sub: base + sub,
        ),
    ),
)

NET_LINE_18_RULE = PhraseRule(all_of=("TOTAL MODAL KERJA BERSIH", "18"), none_of=("15",))
REQUIRED_RULE = PhraseRule.one_of("NILAI MKBD YANG DIWAJIBKAN", "MKBD YANG DIWAJIBKAN")
EXCESS_RULES = (
    PhraseRule.one_of("LEBIH (KURANG) MKBD"),
    PhraseRule(all_of=("LEBIH", "KURANG")),
)


@dataclass(frozen=True)
class ForceOverwriteRule:
    """Overwrite every numeric, non-label cell of one resolved row.

    Net working capital can show up duplicated in unexpected columns of the
    line-18 row; every positive numeric cell gets the recomputed figure while
    cells holding the row label are kept.
    """
    label_phrases: tuple[str, ...] = ("TOTAL MODAL", "BARIS 18")

    def is_label(self, value: Any) -> bool:
        text = cell_text(value).upper()
        return any(p in text for p in self.label_phrases)

    def apply(self, row: Mapping[str, Any], value: float, columns: Sequence[str]) -> Row:
        new_row = dict(row)
        for column in columns:
            new_row[column] = value
        for key, cell in list(new_row.items()):
            if self.is_label(cell):
                continue
            if parse_number(cell) > 0:
                new_row[key] = value
        return new_row


@dataclass(frozen=True)
class WorkingCapitalRows:
    net_line_18: int = -1
    adjusted: int = -1
    section_header: int = -1
    required: int = -1
    excess: int = -1


@dataclass(frozen=True)
class WorkingCapitalResult:
    rows: list[Row]
    amount_column: str | None
    total_column: str | None
    values: dict[str, float] = field(default_factory=dict)
    located: WorkingCapitalRows = field(default_factory=WorkingCapitalRows)
    warnings: list[str] = field(default_factory=list)


def locate_rows(rows: Sequence[Mapping[str, Any]]) -> WorkingCapitalRows:
    net_line_18 = find_last_row(rows, NET_LINE_18_RULE)
    section_header = -1
    adjusted = -1
    for idx, row in enumerate(rows):
        if ADJUSTED_PHRASE in row_text(row):
            if idx < HEADER_SECTION_END:
                section_header = idx
            else:
                adjusted = idx
    if adjusted == -1:
        for idx in range(len(rows) - 1, HEADER_SECTION_END, -1):
            text = row_text(rows[idx])
            if ADJUSTED_PHRASE in text or "MKBD" in text:
                adjusted = idx
                break
    return WorkingCapitalRows(
        net_line_18=net_line_18,
        adjusted=adjusted,
        section_header=section_header,
        required=find_last_row(rows, REQUIRED_RULE),
        excess=max(find_last_row(rows, rule) for rule in EXCESS_RULES),
    )


def _first_nonzero(row: Mapping[str, Any], columns: Sequence[str | None]) -> float:
    for column in columns:
        if column:
            value = parse_number(row.get(column))
            if value != 0:
                return value
    return 0


def sum_risk_deductions(
    rows: Sequence[Mapping[str, Any]],
    total_column: str | None,
    amount_column: str | None,
    base_working_capital: float,
) -> float:
    """Sum the deduction lines, one value per row.

    Per row: the total column, else the amount column, else the largest
    plausible number in the row (above 1000, below the base figure, not a
    report year).
    """
    start, end = RISK_DEDUCTION_ROWS
    end = min(end, len(rows) - 1)
    total = 0.0
    for i in range(start, end + 1):
        row = rows[i]
        text = row_text(row)
        if not text.strip() or ADJUSTED_PHRASE in text:
            continue
        value = _first_nonzero(row, (total_column, amount_column))
        if value == 0:
            for cell in row.values():
                num = parse_number(cell)
                if _PLAUSIBLE_MIN < num < base_working_capital and num not in _YEAR_VALUES:
                    value = max(value, num)
        if value > 0:
            total += value
    return total


def _required_value(row: Mapping[str, Any], total_column: str | None, amount_column: str | None) -> float:
    value = _first_nonzero(row, (total_column, amount_column))
    if value == 0:
        for cell in row.values():
            num = parse_number(cell)
            if num > _PLAUSIBLE_MIN:
                value = num
    return value


def update_working_capital(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    grand_total_ranking: float,
    overwrite_rule: ForceOverwriteRule | None = None,
) -> WorkingCapitalResult:
    """Propagate the ranking total through the VD59 chain."""
    amount_column = AMOUNT_COLUMN.resolve(headers)
    if amount_column is None:
        msg = "VD59: no JUMLAH column; sheet left unchanged"
        logger.warning(msg)
        return WorkingCapitalResult([dict(r) for r in rows], None, None, warnings=[msg])
    total_column = TOTAL_COLUMN.resolve(headers) or amount_column
    columns = list(dict.fromkeys((total_column, amount_column)))
    overwrite_rule = overwrite_rule or ForceOverwriteRule()

    def reader(row: Mapping[str, Any]) -> float:
        return _first_nonzero(row, (amount_column, total_column))

    outcome = WORKING_CAPITAL_CHAIN.run(
        rows, amount_column, constants={"grand_total": grand_total_ranking}, reader=reader
    )
    values = outcome.values
    warnings = list(outcome.warnings)
    updated = outcome.rows

    if total_column != amount_column:
        for idx in outcome.written.get("net_working_capital_line", []):
            updated[idx][total_column] = None

    base = values["base_working_capital"]
    risk_sum = sum_risk_deductions(rows, total_column, amount_column, base)
    adjusted = values["net_working_capital"] - risk_sum
    values["risk_deductions"] = risk_sum
    values["adjusted_mkbd"] = adjusted

    located = locate_rows(rows)
    if located.net_line_18 >= 0:
        updated[located.net_line_18] = overwrite_rule.apply(updated[located.net_line_18], base, columns)
    else:
        warnings.append("VD59: net working capital (line 18) row not found")

    if located.adjusted >= 0:
        for column in columns:
            updated[located.adjusted][column] = adjusted
    else:
        warnings.append("VD59: adjusted MKBD row not found")

    if located.section_header >= 0:
        for column in columns:
            updated[located.section_header][column] = None

    if located.required >= 0 and located.excess >= 0:
        required = _required_value(updated[located.required], total_column, amount_column)
        excess = adjusted - required
        values["required_mkbd"] = required
        values["excess_mkbd"] = excess
        for column in columns:
            updated[located.excess][column] = excess
    else:
        warnings.append("VD59: required / excess MKBD rows not found")

    for w in warnings[len(outcome.warnings):]:
        logger.warning(w)
    logger.info(
        "VD59 base=%s adjusted=%s risk_deductions=%s",
        f"{base:,.2f}", f"{adjusted:,.2f}", f"{risk_sum:,.2f}",
    )
    return WorkingCapitalResult(
        rows=updated,
        amount_column=amount_column,
        total_column=total_column,
        values=values,
        located=located,
        warnings=warnings,
    )
