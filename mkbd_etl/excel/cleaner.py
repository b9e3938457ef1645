from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .values import cell_text, is_empty

"""Row / column cleaner for extracted report sheets.

Report forms carry letterheads, footnotes and print footers around the real
table. Cleaning happens in two passes over the *original* rows:

1. columns that are (almost) never filled are dropped
2. rows that are blank, nearly blank, or footer/note text are dropped
"""

__all__ = [
    "CleaningResult",
    "JUNK_KEYWORDS",
    "clean_rows",
    "find_data_start_row",
]

JUNK_KEYWORDS: tuple[str, ...] = (
    "apabila diperlukan",
    "baris baru dapat ditambahkan",
    "catatan:",
    "note:",
    "*)",
    "**)",
    "***)",
    "****)",
    "*****)",
    "peringatan:",
    "keterangan:",
    "halaman",
    "page",
    "dicetak pada",
    "printed on",
)

UNNAMED_PREFIX = "Unnamed_"
UNNAMED_MIN_FILL = 0.20
COLUMN_MIN_FILL = 0.05
ROW_MIN_FILL = 0.10
ROW_FILL_MIN_HEADERS = 5

DEFAULT_HEADER_ROW = 6

_COLUMN_INDICATOR_RE = re.compile(r"^(?:[A-Za-z]|[0-9])$")


@dataclass(frozen=True)
class CleaningResult:
    rows: list[dict[str, Any]]
    headers: list[str]
    removed_row_count: int
    removed_columns: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _column_fill_ratio(rows: Sequence[Mapping[str, Any]], header: str) -> float:
    if not rows:
        return 0.0
    filled = sum(1 for row in rows if not is_empty(row.get(header)))
    return filled / len(rows)


def _junk_keyword(row: Mapping[str, Any]) -> str | None:
    text = " ".join(v for v in row.values() if isinstance(v, str)).lower()
    for keyword in JUNK_KEYWORDS:
        if keyword in text:
            return keyword
    return None


def clean_rows(rows: Sequence[Mapping[str, Any]], headers: Sequence[str]) -> CleaningResult:
    """Drop sparse columns and junk rows; rows are copied, never mutated."""
    removed_columns: list[str] = []
    kept_headers: list[str] = []
    for header in headers:
        ratio = _column_fill_ratio(rows, header)
        unnamed = header.startswith(UNNAMED_PREFIX)
        if (unnamed and ratio < UNNAMED_MIN_FILL) or ratio < COLUMN_MIN_FILL:
            removed_columns.append(header)
        else:
            kept_headers.append(header)

    warnings: list[str] = []
    kept_rows: list[dict[str, Any]] = []
    removed = 0
    for index, row in enumerate(rows):
        filled = sum(1 for v in row.values() if not is_empty(v))
        if filled == 0:
            removed += 1
            continue
        if len(kept_headers) > ROW_FILL_MIN_HEADERS and filled / len(kept_headers) < ROW_MIN_FILL:
            removed += 1
            continue
        keyword = _junk_keyword(row)
        if keyword is not None:
            removed += 1
            warnings.append(f'row {index + 1} removed (contains: "{keyword}")')
            continue
        kept_rows.append({h: row.get(h) for h in kept_headers})

    return CleaningResult(
        rows=kept_rows,
        headers=kept_headers,
        removed_row_count=removed,
        removed_columns=removed_columns,
        warnings=warnings,
    )


def find_data_start_row(raw_rows: Sequence[Sequence[Any]], max_scan: int = 15) -> int:
    """Locate the header row of a report grid.

    Report forms put a column-indicator row (``A B C`` or ``1 2 3``) right above
    the real header; the first such row past the letterhead wins. Without one
    the letterhead is assumed to take the first six rows.
    """
    for i, row in enumerate(raw_rows[:max_scan]):
        first_cells = [cell_text(c).strip() for c in list(row)[:5]]
        if i > 3 and any(_COLUMN_INDICATOR_RE.match(c) for c in first_cells):
            return i + 1
    return DEFAULT_HEADER_ROW
