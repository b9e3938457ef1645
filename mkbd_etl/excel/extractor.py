from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from ..models.sheet import Row, SheetData
from .cleaner import find_data_start_row
from .sanitizer import sanitize_headers
from .values import cell_text, row_text

"""Sheet extractor: raw grid -> ``SheetData``.

Two strategies:

- standard: header row located by ``find_data_start_row``; every later raw row
  becomes a record.
- bounded region (VD510 only): the TABEL 10C sub-table is cut out of the larger
  form between its title row and the next table title / footnote.
"""

__all__ = [
    "SheetExtractionError",
    "FormPatterns",
    "FORM_PATTERNS",
    "REGION_START_MARKER",
    "REGION_STOP_MARKERS",
    "REGION_SUFFIX",
    "extract_standard",
    "extract_bounded_region",
    "extract_sheet",
    "matches_form",
]


class SheetExtractionError(Exception):
    """Raised when a single sheet cannot be turned into records."""


class FormPatterns:
    """Report-form sheet name patterns (``VD510``, ``vd5-10``, ``Formulir 10`` ...)."""
    VD510 = re.compile(r"vd510|vd5[\-_]?10|formulir[\s_\-]*10", re.IGNORECASE)
    VD59 = re.compile(r"vd59|vd5[\-_]?9|formulir[\s_\-]*9", re.IGNORECASE)
    VD58 = re.compile(r"vd58|vd5[\-_]?8|formulir[\s_\-]*8", re.IGNORECASE)
    VD52 = re.compile(r"vd52|vd5[\-_]?2|formulir[\s_\-]*2", re.IGNORECASE)


FORM_PATTERNS: dict[str, re.Pattern[str]] = {
    "VD510": FormPatterns.VD510,
    "VD59": FormPatterns.VD59,
    "VD58": FormPatterns.VD58,
    "VD52": FormPatterns.VD52,
}

REGION_START_MARKER = "TABEL 10C"
REGION_STOP_MARKERS: tuple[str, ...] = ("TABEL 10D", "TABEL 10E", "Apabila diperlukan")
REGION_SUFFIX = "_TABEL_10C"


def matches_form(form: str, name: str) -> bool:
    return bool(FORM_PATTERNS[form].search(name))


def _build_sheet(
    sheet_name: str, header_row: Sequence[Any], data_rows: Sequence[Sequence[Any]]
) -> SheetData:
    sanitized = sanitize_headers(list(header_row))
    headers = sanitized.headers
    rows: list[Row] = []
    for raw in data_rows:
        raw = list(raw)
        rows.append({h: (raw[i] if i < len(raw) else None) for i, h in enumerate(headers)})
    return SheetData(
        sheet_name=sheet_name,
        headers=headers,
        rows=rows,
        original_headers=[cell_text(h) for h in header_row],
        warnings=list(sanitized.warnings),
    )


def extract_standard(grid: Sequence[Sequence[Any]], sheet_name: str) -> SheetData:
    if not grid:
        return SheetData(sheet_name=sheet_name, headers=[], rows=[])
    header_index = min(find_data_start_row(grid), len(grid) - 1)
    return _build_sheet(sheet_name, grid[header_index], grid[header_index + 1 :])


def _region_bounds(grid: Sequence[Sequence[Any]]) -> tuple[int, int]:
    start = -1
    end = len(grid)
    stops = [m.upper() for m in REGION_STOP_MARKERS]
    for i, raw in enumerate(grid):
        text = row_text(raw)
        if start == -1:
            if REGION_START_MARKER in text:
                start = i
            continue
        if any(stop in text for stop in stops):
            end = i
            break
    return start, end


def extract_bounded_region(grid: Sequence[Sequence[Any]], sheet_name: str) -> SheetData:
    """Extract the TABEL 10C region, falling back to standard extraction."""
    start, end = _region_bounds(grid)
    if start == -1:
        return extract_standard(grid, sheet_name)
    header_index = start + 1
    region_name = f"{sheet_name}{REGION_SUFFIX}"
    if header_index >= len(grid) or header_index >= end:
        return SheetData(sheet_name=region_name, headers=[], rows=[])
    return _build_sheet(region_name, grid[header_index], grid[header_index + 1 : end])


def extract_sheet(grid: Sequence[Sequence[Any]], sheet_name: str) -> SheetData:
    """Pick the extraction strategy for a sheet by its report-form name."""
    try:
        if matches_form("VD510", sheet_name):
            return extract_bounded_region(grid, sheet_name)
        return extract_standard(grid, sheet_name)
    except Exception as e:
        raise SheetExtractionError(f"sheet '{sheet_name}': {e}") from e
