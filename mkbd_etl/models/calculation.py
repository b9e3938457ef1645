from __future__ import annotations

from dataclasses import dataclass, field

"""Per-run calculation context threaded through the three pipeline passes.

One instance per workbook extraction; never shared between runs, so two
extractions (or two tests) cannot contaminate each other's totals.
"""

__all__ = [
    "Thresholds",
    "CalculationContext",
]


@dataclass(frozen=True)
class Thresholds:
    ownership_threshold: float = 0.20  # minimum percentage for a ranking value
    equity_factor: float = 0.20  # share of total equity deducted from group value


@dataclass
class CalculationContext:
    thresholds: Thresholds = field(default_factory=Thresholds)
    equity_total: float = 0.0  # TOTAL EKUITAS (VD52)
    current_assets_total: float = 0.0  # TOTAL ASET LANCAR (VD59), informational
    grand_total_ranking: float = 0.0  # sum of VD510 ranking liabilities
    equity_found: bool = False
    ranking_computed: bool = False
    vd59_updated: int = 0
    vd58_updated: int = 0
