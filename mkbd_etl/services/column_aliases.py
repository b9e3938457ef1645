from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

"""Declarative column resolution.

Each semantic field (issuer code, market value, percentage, ranking output ...)
is described once as an ordered list of header predicates. Resolution walks the
headers in sheet order and returns the first header accepted by any predicate;
results are cached per header tuple.
"""

__all__ = [
    "HeaderPredicate",
    "FieldAliases",
    "contains",
    "equals",
    "contains_all",
    "contains_any",
    "CODE_COLUMN",
    "MARKET_VALUE_COLUMN",
    "PERCENTAGE_COLUMN",
    "RANKING_COLUMN",
    "DESCRIPTION_COLUMN",
    "VALUE_COLUMN",
    "AMOUNT_COLUMN",
    "TOTAL_COLUMN",
]

HeaderPredicate = Callable[[str], bool]


def contains(alias: str) -> HeaderPredicate:
    needle = alias.lower()
    return lambda header: needle in header.lower()


def equals(alias: str) -> HeaderPredicate:
    needle = alias.strip().lower()
    return lambda header: header.strip().lower() == needle


def contains_all(*groups: Sequence[str]) -> HeaderPredicate:
    """Header must contain at least one alias of every group."""
    lowered = [[a.lower() for a in g] for g in groups]
    return lambda header: all(any(a in header.lower() for a in g) for g in lowered)


def contains_any(*aliases: str) -> HeaderPredicate:
    lowered = [a.lower() for a in aliases]
    return lambda header: any(a in header.lower() for a in lowered)


@dataclass(frozen=True, eq=False)
class FieldAliases:
    """Ordered header matchers for one semantic field.

    ``header_first=True`` scans headers in sheet order and tries every
    predicate on each header; ``False`` tries predicates in priority order,
    each across all headers.
    """
    name: str
    predicates: tuple[HeaderPredicate, ...]
    header_first: bool = True
    _cache: dict[tuple[str, ...], str | None] = field(default_factory=dict, repr=False)

    def resolve(self, headers: Sequence[str]) -> str | None:
        key = tuple(headers)
        if key not in self._cache:
            self._cache[key] = self._resolve(key)
        return self._cache[key]

    def _resolve(self, headers: tuple[str, ...]) -> str | None:
        if self.header_first:
            for header in headers:
                if any(p(header) for p in self.predicates):
                    return header
            return None
        for predicate in self.predicates:
            for header in headers:
                if predicate(header):
                    return header
        return None


def _aliases(*names: str) -> tuple[HeaderPredicate, ...]:
    return tuple(contains(n) for n in names)


CODE_COLUMN = FieldAliases(
    "issuer_code",
    _aliases(
        "Kode Efek", "KODE EFEK", "Kode_Efek", "kode_efek", "Kode Saham",
        "KODE SAHAM", "Kode", "KODE", "Symbol", "Ticker",
    ),
)

MARKET_VALUE_COLUMN = FieldAliases(
    "market_value",
    _aliases(
        "Nilai Pasar Wajar", "NILAI PASAR WAJAR", "Nilai_Pasar_Wajar", "nilai_pasar_wajar",
        "Nilai Pasar", "NILAI PASAR", "Market Value", "Fair Value", "Nilai Wajar", "NPW",
    ),
)

PERCENTAGE_COLUMN = FieldAliases("percentage", (contains_any("persen", "%"),))

RANKING_COLUMN = FieldAliases(
    "ranking_liabilities",
    (contains_all(("nilai", "ranking"), ("rangking", "ranking", "liabilities")),),
)

DESCRIPTION_COLUMN = FieldAliases("description", (contains_any("uraian", "nama"),))

# capital-adequacy form target column: NILAI, then JUMLAH
VALUE_COLUMN = FieldAliases(
    "value",
    (equals("NILAI"), contains("NILAI"), equals("JUMLAH"), contains("JUMLAH")),
    header_first=False,
)

AMOUNT_COLUMN = FieldAliases("amount", (equals("JUMLAH"), contains("JUMLAH")), header_first=False)

TOTAL_COLUMN = FieldAliases("total", (equals("TOTAL"), contains("TOTAL")), header_first=False)
