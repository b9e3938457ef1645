from __future__ import annotations

import math
import numbers
import re
from collections.abc import Iterable, Mapping
from typing import Any

"""Cell value helpers shared by the extractor, cleaner and calculators.

Report workbooks mix Indonesian (1.234.567,89) and US (1,234,567.89) number
formats, currency prefixes and accounting negatives, so every numeric read goes
through ``parse_number`` which degrades to 0 instead of raising.
"""

__all__ = [
    "parse_number",
    "parse_float_prefix",
    "cell_text",
    "row_text",
    "is_empty",
]

_CURRENCY_RE = re.compile(r"Rp\.?|IDR|[$€¥£]", re.IGNORECASE)
_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")
_FLOAT_PREFIX_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def parse_float_prefix(text: str) -> float | None:
    """Parse the longest numeric prefix of ``text`` (``"1.5abc"`` -> 1.5).

    Returns None when no digits lead the string.
    """
    m = _FLOAT_PREFIX_RE.match(text)
    if m is None:
        return None
    try:
        return float(m.group(1))
    except ValueError:  # pragma: no cover - regex guarantees a float literal
        return None


def parse_number(value: Any) -> float:
    """Convert a raw cell value into a number, returning 0 when unparsable."""
    if value is None:
        return 0
    if isinstance(value, numbers.Number) and not isinstance(value, bool):
        try:
            if math.isnan(value):  # type: ignore[arg-type]
                return 0
        except TypeError:
            return 0
        return value  # type: ignore[return-value]

    text = str(value).strip()
    if not text:
        return 0

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()

    text = _CURRENCY_RE.sub("", text).strip()

    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma > last_dot and last_comma > len(text) - 4:
        # Indonesian / European: dots group thousands, comma is the decimal mark
        text = text.replace(".", "").replace(",", ".", 1)
    else:
        text = text.replace(",", "")

    text = _NON_NUMERIC_RE.sub("", text)
    parsed = parse_float_prefix(text)
    if parsed is None or math.isnan(parsed):
        return 0
    return -parsed if negative else parsed


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip() == ""


def cell_text(value: Any) -> str:
    """Render a cell the way it reads on the sheet (integral floats without ``.0``)."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def row_text(row: Mapping[str, Any] | Iterable[Any], sep: str = " ") -> str:
    """Upper-cased concatenation of every non-empty cell of a row."""
    values = row.values() if isinstance(row, Mapping) else row
    return sep.join(t for t in (cell_text(v) for v in values) if t).upper()
