from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..excel.values import row_text

"""Marker-phrase row classification.

Report rows are recognised by phrases in their concatenated (upper-cased) text,
e.g. ``TOTAL PORTOFOLIO`` or ``DIKURANGI UTANG SUB-ORDINASI``. ``PhraseRule``
captures one such predicate; ``RowClassifier`` maps a row to a ``RowTag`` by
trying its rules in priority order.
"""

__all__ = [
    "RowTag",
    "PhraseRule",
    "RowClassifier",
    "find_row",
    "find_last_row",
]


class RowTag(Enum):
    TOTAL = "total"
    SUBTOTAL = "subtotal"
    TARGET = "target"
    NONE = "none"


@dataclass(frozen=True)
class PhraseRule:
    """Phrase predicate over a row's upper-cased text.

    - ``all_of``: every phrase present
    - ``any_of``: each group needs at least one of its phrases present
    - ``none_of``: no phrase present
    """
    all_of: tuple[str, ...] = ()
    any_of: tuple[tuple[str, ...], ...] = ()
    none_of: tuple[str, ...] = ()

    def matches_text(self, text: str) -> bool:
        text = text.upper()
        if not all(p.upper() in text for p in self.all_of):
            return False
        if not all(any(p.upper() in text for p in group) for group in self.any_of):
            return False
        return not any(p.upper() in text for p in self.none_of)

    def matches(self, row: Mapping[str, Any]) -> bool:
        return self.matches_text(row_text(row))

    @staticmethod
    def one_of(*phrases: str) -> PhraseRule:
        return PhraseRule(any_of=(tuple(phrases),))


@dataclass(frozen=True)
class RowClassifier:
    rules: tuple[tuple[RowTag, PhraseRule], ...]

    def classify(self, row: Mapping[str, Any]) -> RowTag:
        text = row_text(row)
        for tag, rule in self.rules:
            if rule.matches_text(text):
                return tag
        return RowTag.NONE


def find_row(rows: Sequence[Mapping[str, Any]], rule: PhraseRule) -> int:
    """Index of the first row matching ``rule``; -1 when none does."""
    for idx, row in enumerate(rows):
        if rule.matches(row):
            return idx
    return -1


def find_last_row(rows: Sequence[Mapping[str, Any]], rule: PhraseRule) -> int:
    found = -1
    for idx, row in enumerate(rows):
        if rule.matches(row):
            found = idx
    return found
