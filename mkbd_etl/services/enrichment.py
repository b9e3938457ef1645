from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..excel.values import parse_number
from ..models.master_entry import normalize_code
from ..models.sheet import EnrichmentStats, Row
from .column_aliases import CODE_COLUMN, MARKET_VALUE_COLUMN, FieldAliases
from .master_data import NON_GROUP, MasterDataCache, master_data

"""Enrichment (VLOOKUP against reference data) and group aggregation.

Step A attaches the issuer's group, name and category to every row. Step B sums
the market value per group and writes the group total back onto each member
row; ``Non-Grup`` rows keep their own value instead of the sentinel group's sum.
"""

__all__ = [
    "GROUP_FIELD",
    "ISSUER_NAME_FIELD",
    "CATEGORY_FIELD",
    "CLEAN_VALUE_FIELD",
    "GROUP_VALUE_FIELD",
    "EnrichResult",
    "AggregateResult",
    "PipelineResult",
    "enrich_with_group_data",
    "calculate_group_aggregates",
    "process_enrichment_pipeline",
]

logger = logging.getLogger(__name__)

GROUP_FIELD = "GRUP_EMITEN"
ISSUER_NAME_FIELD = "NAMA_EMITEN_MASTER"
CATEGORY_FIELD = "KATEGORI_EMITEN"
CLEAN_VALUE_FIELD = "NILAI_PASAR_WAJAR_CLEAN"
GROUP_VALUE_FIELD = "GRUP_NILAI_PASAR_WAJAR"

ENRICHMENT_FIELDS = (GROUP_FIELD, ISSUER_NAME_FIELD, CATEGORY_FIELD)
AGGREGATION_FIELDS = (CLEAN_VALUE_FIELD, GROUP_VALUE_FIELD)


@dataclass(frozen=True)
class EnrichResult:
    rows: list[Row]
    headers: list[str]
    code_column: str | None
    matched_count: int
    unmatched_count: int


@dataclass(frozen=True)
class AggregateResult:
    rows: list[Row]
    headers: list[str]
    value_column: str | None
    group_totals: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineResult:
    rows: list[Row]
    headers: list[str]
    stats: EnrichmentStats
    warnings: list[str] = field(default_factory=list)


def _extend_headers(headers: Sequence[str], extra: Sequence[str]) -> list[str]:
    out = list(headers)
    out.extend(h for h in extra if h not in out)
    return out


def _group_of(row: Mapping[str, Any]) -> str:
    value = row.get(GROUP_FIELD)
    return str(value) if value else NON_GROUP


def enrich_with_group_data(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    cache: MasterDataCache | None = None,
    code_aliases: FieldAliases = CODE_COLUMN,
) -> EnrichResult:
    """Attach group / issuer name / category from the reference cache.

    Without loaded reference data or a recognizable code column the rows are
    returned unchanged and every row counts as unmatched.
    """
    cache = cache if cache is not None else master_data
    if not cache.is_loaded():
        logger.warning("master data not loaded; skipping enrichment")
        return EnrichResult([dict(r) for r in rows], list(headers), None, 0, len(rows))

    code_column = code_aliases.resolve(headers)
    if code_column is None:
        logger.debug("no issuer code column found; skipping enrichment")
        return EnrichResult([dict(r) for r in rows], list(headers), None, 0, len(rows))

    matched = 0
    enriched: list[Row] = []
    for row in rows:
        entry = cache.lookup(normalize_code(row.get(code_column)))
        new_row = dict(row)
        if entry is not None:
            matched += 1
            new_row[GROUP_FIELD] = entry.primary_group
            new_row[ISSUER_NAME_FIELD] = entry.name
            new_row[CATEGORY_FIELD] = entry.category
        else:
            new_row[GROUP_FIELD] = NON_GROUP
            new_row[ISSUER_NAME_FIELD] = ""
            new_row[CATEGORY_FIELD] = ""
        enriched.append(new_row)

    return EnrichResult(
        rows=enriched,
        headers=_extend_headers(headers, ENRICHMENT_FIELDS),
        code_column=code_column,
        matched_count=matched,
        unmatched_count=len(rows) - matched,
    )


def calculate_group_aggregates(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    value_aliases: FieldAliases = MARKET_VALUE_COLUMN,
) -> AggregateResult:
    """Project each group's summed market value onto its member rows."""
    value_column = value_aliases.resolve(headers)
    if value_column is None:
        logger.debug("no market value column found; skipping aggregation")
        return AggregateResult([dict(r) for r in rows], list(headers), None)

    totals: dict[str, float] = {}
    for row in rows:
        group = _group_of(row)
        totals[group] = totals.get(group, 0) + parse_number(row.get(value_column))

    aggregated: list[Row] = []
    for row in rows:
        group = _group_of(row)
        own_value = parse_number(row.get(value_column))
        if group == NON_GROUP:
            group_value = own_value
        else:
            group_value = totals.get(group) or own_value
        new_row = dict(row)
        new_row[CLEAN_VALUE_FIELD] = own_value
        new_row[GROUP_VALUE_FIELD] = group_value
        aggregated.append(new_row)

    return AggregateResult(
        rows=aggregated,
        headers=_extend_headers(headers, AGGREGATION_FIELDS),
        value_column=value_column,
        group_totals=totals,
    )


def process_enrichment_pipeline(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    cache: MasterDataCache | None = None,
) -> PipelineResult:
    """Enrichment followed by aggregation, with observability stats.

    Output columns are only added when their step ran, so every row always
    carries exactly the returned header set. Re-running on already enriched
    rows recomputes the same group values (no double summation).
    """
    enriched = enrich_with_group_data(rows, headers, cache)
    aggregated = calculate_group_aggregates(enriched.rows, enriched.headers)

    warnings: list[str] = []
    if enriched.code_column is None:
        warnings.append("enrichment skipped: no issuer code column or master data")
    if aggregated.value_column is None:
        warnings.append("aggregation skipped: no market value column")

    stats = EnrichmentStats(
        code_column=enriched.code_column,
        value_column=aggregated.value_column,
        matched_count=enriched.matched_count,
        unmatched_count=enriched.unmatched_count,
        group_count=len(aggregated.group_totals),
        total_group_value=sum(aggregated.group_totals.values()),
    )
    return PipelineResult(
        rows=aggregated.rows,
        headers=aggregated.headers,
        stats=stats,
        warnings=warnings,
    )
