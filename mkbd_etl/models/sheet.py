from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Sheet models for the MKBD extraction pipeline.

``SheetData`` is what the extractor produces from one raw workbook sheet;
``ProcessedSheet`` is the cleaned / enriched / calculated artifact handed to the
caller. Rows are plain dicts keyed by sanitized header; every row carries the
full header set (missing cells are None). Passes build new rows instead of
mutating earlier ones.
"""

__all__ = [
    "Row",
    "SheetData",
    "EnrichmentStats",
    "SheetMetadata",
    "ProcessedSheet",
]

Row = dict[str, Any]


@dataclass(frozen=True)
class SheetData:
    """Raw extraction output for one sheet."""
    sheet_name: str
    headers: list[str]
    rows: list[Row]
    original_headers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class EnrichmentStats:
    """Observability figures from one enrichment + aggregation call."""
    code_column: str | None
    value_column: str | None
    matched_count: int
    unmatched_count: int
    group_count: int
    total_group_value: float


@dataclass(frozen=True)
class SheetMetadata:
    source_file_name: str
    processed_at: str  # ISO8601 UTC
    original_row_count: int
    cleaned_row_count: int
    enrichment_stats: EnrichmentStats | None = None


@dataclass(frozen=True)
class ProcessedSheet:
    sheet_name: str
    table_name: str
    headers: list[str]
    rows: list[Row]
    metadata: SheetMetadata

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def with_rows(self, rows: list[Row]) -> ProcessedSheet:
        """Copy of this sheet carrying ``rows`` (headers and metadata unchanged)."""
        return ProcessedSheet(
            sheet_name=self.sheet_name,
            table_name=self.table_name,
            headers=list(self.headers),
            rows=rows,
            metadata=self.metadata,
        )
