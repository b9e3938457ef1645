from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..excel.values import parse_number
from ..models.calculation import Thresholds
from ..models.sheet import Row
from .column_aliases import DESCRIPTION_COLUMN, PERCENTAGE_COLUMN, RANKING_COLUMN
from .enrichment import GROUP_VALUE_FIELD
from .row_classifier import PhraseRule, RowClassifier, RowTag, find_row

"""Ranking liabilities calculation (VD510, TABEL 10C).

For every instrument row::

    ranking = max(0, group_market_value - equity_factor * total_equity)

gated by the ownership percentage (below the threshold -> 0) and by duplicate
group suppression: when several rows carry the same group market value only
the row with the highest percentage contributes. The portfolio total row
receives the sum of all computed values.
"""

__all__ = [
    "EQUITY_MARKERS",
    "CURRENT_ASSET_MARKERS",
    "PORTFOLIO_TOTAL_MARKERS",
    "SUBTOTAL_MARKER",
    "TOTAL_ROW_CAPTION",
    "DEFAULT_RANKING_COLUMN",
    "RANKING_CLASSIFIER",
    "MarkerTotal",
    "RankingResult",
    "extract_marker_total",
    "extract_equity_total",
    "extract_current_assets_total",
    "calculate_ranking_liabilities",
]

logger = logging.getLogger(__name__)

EQUITY_MARKERS = ("TOTAL EKUITAS",)
CURRENT_ASSET_MARKERS = ("TOTAL ASET LANCAR", "TOTAL AKTIVA LANCAR")

PORTFOLIO_TOTAL_MARKERS = (
    "portfolio tidak terkonsentrasi",
    "total portfolio",
    "total portofolio milik",
    "total portofolio",
)
SUBTOTAL_MARKER = "sub total"
TOTAL_ROW_CAPTION = "TOTAL PORTOFOLIO MILIK (Nilai Rangking Liabilities)"
DEFAULT_RANKING_COLUMN = "Nilai Rangking Liabilities"

RANKING_CLASSIFIER = RowClassifier(
    rules=(
        (RowTag.TOTAL, PhraseRule.one_of(*PORTFOLIO_TOTAL_MARKERS)),
        (RowTag.SUBTOTAL, PhraseRule.one_of(SUBTOTAL_MARKER)),
    )
)


@dataclass(frozen=True)
class MarkerTotal:
    value: float
    row_index: int  # -1 when no row matched

    @property
    def found(self) -> bool:
        return self.row_index >= 0


def extract_marker_total(rows: Sequence[Mapping[str, Any]], markers: Sequence[str]) -> MarkerTotal:
    """Largest numeric cell of the first row containing any of ``markers``.

    The value column of these summary rows differs between forms, so the whole
    row is scanned rather than one column. Non-positive values count as 0.
    """
    idx = find_row(rows, PhraseRule.one_of(*markers))
    if idx < 0:
        logger.warning("row with %s not found", " / ".join(markers))
        return MarkerTotal(0.0, -1)
    best = 0.0
    for value in rows[idx].values():
        num = parse_number(value)
        if num > best:
            best = num
    logger.info("%s = %s (row %d)", markers[0], f"{best:,.2f}", idx + 1)
    return MarkerTotal(best, idx)


def extract_equity_total(rows: Sequence[Mapping[str, Any]]) -> MarkerTotal:
    return extract_marker_total(rows, EQUITY_MARKERS)


def extract_current_assets_total(rows: Sequence[Mapping[str, Any]]) -> MarkerTotal:
    return extract_marker_total(rows, CURRENT_ASSET_MARKERS)


@dataclass(frozen=True)
class RankingResult:
    rows: list[Row]
    headers: list[str]
    grand_total: float
    ranking_column: str
    total_row_indices: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _group_value(row: Mapping[str, Any]) -> float:
    if GROUP_VALUE_FIELD in row:
        return parse_number(row[GROUP_VALUE_FIELD])
    fallback = next((k for k in row if "GRUP" in k and "NILAI" in k), None)
    return parse_number(row[fallback]) if fallback else 0


def _percentage(row: Mapping[str, Any], column: str | None) -> float:
    if column is None or column not in row:
        return 0
    return parse_number(row[column])


def _select_representatives(
    rows: Sequence[Mapping[str, Any]], tags: Sequence[RowTag], pct_column: str | None
) -> dict[float, int]:
    """Group value -> index of the row holding the highest percentage (first on ties)."""
    best: dict[float, tuple[float, int]] = {}
    for idx, row in enumerate(rows):
        if tags[idx] in (RowTag.TOTAL, RowTag.SUBTOTAL):
            continue
        group_value = _group_value(row)
        if group_value == 0:
            continue
        pct = _percentage(row, pct_column)
        current = best.get(group_value)
        if current is None or pct > current[0]:
            best[group_value] = (pct, idx)
    return {gv: idx for gv, (_, idx) in best.items()}


def calculate_ranking_liabilities(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    equity_total: float,
    thresholds: Thresholds | None = None,
) -> RankingResult:
    """Compute the ranking liabilities column and the portfolio grand total."""
    thresholds = thresholds or Thresholds()
    deduction = equity_total * thresholds.equity_factor
    warnings: list[str] = []

    out_headers = list(headers)
    ranking_column = RANKING_COLUMN.resolve(headers)
    if ranking_column is None:
        ranking_column = DEFAULT_RANKING_COLUMN
        out_headers.append(ranking_column)
        warnings.append(f"ranking column not found, writing to '{ranking_column}'")

    pct_column = PERCENTAGE_COLUMN.resolve(headers)
    if pct_column is None:
        warnings.append("percentage column not found; every row is below the threshold")

    tags = [RANKING_CLASSIFIER.classify(row) for row in rows]
    representatives = _select_representatives(rows, tags, pct_column)

    grand_total = 0.0
    total_rows: list[int] = []
    new_rows: list[Row] = []
    for idx, row in enumerate(rows):
        new_row = dict(row)
        new_row.setdefault(ranking_column, None)
        tag = tags[idx]
        if tag == RowTag.TOTAL:
            total_rows.append(idx)
        elif tag != RowTag.SUBTOTAL:
            group_value = _group_value(row)
            pct = _percentage(row, pct_column)
            value = 0.0
            if group_value > 0 and group_value in representatives and representatives[group_value] != idx:
                logger.debug("row %d: duplicate group value %s suppressed", idx + 1, group_value)
            elif pct < thresholds.ownership_threshold:
                pass
            elif group_value > 0:
                value = max(0.0, group_value - deduction)
            new_row[ranking_column] = value
            grand_total += value
        new_rows.append(new_row)

    if total_rows:
        desc_column = DESCRIPTION_COLUMN.resolve(headers)
        if desc_column is None and len(headers) > 1:
            desc_column = headers[1]
        for idx in total_rows:
            new_rows[idx][ranking_column] = grand_total
            if desc_column:
                new_rows[idx][desc_column] = TOTAL_ROW_CAPTION
    else:
        warnings.append("portfolio total row not found")

    logger.info("ranking liabilities total = %s", f"{grand_total:,.2f}")
    return RankingResult(
        rows=new_rows,
        headers=out_headers,
        grand_total=grand_total,
        ranking_column=ranking_column,
        total_row_indices=total_rows,
        warnings=warnings,
    )
