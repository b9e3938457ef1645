from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .values import cell_text, parse_float_prefix

"""Header and table-name sanitizer.

Raw header cells from report workbooks are frequently blank, duplicated or
purely numeric (column index rows such as ``8.0``). ``sanitize_headers`` turns
them into stable identifiers that are safe as record keys and column names.
"""

__all__ = [
    "SanitizedHeaders",
    "sanitize_headers",
    "sanitize_table_name",
    "MAX_NAME_LENGTH",
]

MAX_NAME_LENGTH = 64

_NUMERIC_HEADER_RE = re.compile(r"^[\d.]+$")
_SPECIAL_RE = re.compile(r"[^\w\sÀ-ɏ]", re.ASCII)
_TABLE_SPECIAL_RE = re.compile(r"[^\w\s]", re.ASCII)
_SPACE_RE = re.compile(r"\s+")
_MULTI_UNDERSCORE_RE = re.compile(r"_+")


@dataclass(frozen=True)
class SanitizedHeaders:
    headers: list[str]
    warnings: list[str] = field(default_factory=list)
    # original column position -> sanitized name
    index_map: dict[int, str] = field(default_factory=dict)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _collapse(text: str, special: re.Pattern[str]) -> str:
    text = special.sub("_", text)
    text = _SPACE_RE.sub("_", text)
    text = _MULTI_UNDERSCORE_RE.sub("_", text)
    return text.strip("_")


def _sanitize_single(header: Any, index: int) -> str:
    fallback = f"Unnamed_{index + 1}"
    text = cell_text(header).strip()
    if not text:
        return fallback

    if _NUMERIC_HEADER_RE.match(text):
        number = parse_float_prefix(text)
        if number is not None:
            return f"Meta_Baris_{_round_half_up(number)}"

    cleaned = _collapse(text, _SPECIAL_RE)
    if cleaned[:1].isdigit():
        cleaned = f"Col_{cleaned}"
    cleaned = cleaned[:MAX_NAME_LENGTH]
    return cleaned or fallback


def sanitize_headers(raw_headers: Sequence[Any]) -> SanitizedHeaders:
    """Sanitize a header row, renaming duplicates ``X``, ``X_1``, ``X_2`` ...

    Duplicate detection is case-insensitive and follows the original column
    order. A renamed duplicate that would still collide with an earlier name
    keeps counting up, so the returned headers are always unique.
    """
    headers: list[str] = []
    warnings: list[str] = []
    index_map: dict[int, str] = {}
    seen_counts: dict[str, int] = {}
    taken: set[str] = set()

    for index, raw in enumerate(raw_headers):
        base = _sanitize_single(raw, index)
        key = base.lower()
        counter = seen_counts.get(key, 0)
        name = base
        if counter > 0 or key in taken:
            counter = max(counter, 1)
            name = f"{base}_{counter}"
            while name.lower() in taken:
                counter += 1
                name = f"{base}_{counter}"
            warnings.append(f'duplicate column "{cell_text(raw)}" renamed to "{name}"')
        seen_counts[key] = counter + 1
        taken.add(name.lower())
        headers.append(name)
        index_map[index] = name

    return SanitizedHeaders(headers=headers, warnings=warnings, index_map=index_map)


def sanitize_table_name(sheet_name: str) -> str:
    """Lower-case identifier for a sheet, e.g. ``"VD5-10 (Rev)"`` -> ``"vd5_10_rev"``."""
    sanitized = _collapse(str(sheet_name).lower(), _TABLE_SPECIAL_RE)
    if sanitized[:1].isdigit():
        sanitized = f"table_{sanitized}"
    return sanitized or "unknown_table"
