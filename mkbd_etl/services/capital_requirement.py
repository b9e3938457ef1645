from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.sheet import Row
from .column_aliases import VALUE_COLUMN
from .formula_chain import ChainInput, ChainStep, FormulaChain
from .row_classifier import PhraseRule

"""Capital adequacy form (VD58): required MKBD from the ranking total.

Chain::

    combined     = total liabilities + ranking liabilities
    net          = combined - subordinated debt
    charge_6_25  = 6.25% x net
    risk         = max(minimum MKBD *, charge_6_25)
    charge_0_1   = 0.1% x funds managed (MI)
    total        = minimum MKBD ** + charge_0_1
    required_pe  = risk + total
"""

__all__ = [
    "RISK_CHARGE_RATE",
    "MANAGED_FUNDS_RATE",
    "CAPITAL_REQUIREMENT_CHAIN",
    "CapitalRequirementResult",
    "update_capital_requirement",
]

logger = logging.getLogger(__name__)

RISK_CHARGE_RATE = 0.0625
MANAGED_FUNDS_RATE = 0.001

CAPITAL_REQUIREMENT_CHAIN = FormulaChain(
    label="VD58",
    inputs=(
        ChainInput("total_liabilities", PhraseRule(all_of=("TOTAL LIABILITAS",), none_of=("DAN RANKING",))),
        ChainInput(
            "subordinated_debt",
            PhraseRule(all_of=("DIKURANGI",), any_of=(("SUB-ORDINASI", "SUBORDINASI"),)),
        ),
        ChainInput("minimum_mkbd", PhraseRule(all_of=("PERSYARATAN MINIMAL", "MKBD"), none_of=("**",))),
        ChainInput("managed_funds", PhraseRule(all_of=("DANA", "DIKELOLA", "MI"))),
        ChainInput("minimum_mkbd_mi", PhraseRule(all_of=("PERSYARATAN MINIMAL", "**"))),
    ),
    steps=(
        ChainStep(
            "ranking_liabilities",
            ("grand_total",),
            lambda total: total,
            PhraseRule(all_of=("RANKING LIABILITIES", "TOTAL"), none_of=("DAN",)),
        ),
        ChainStep(
            "combined_liabilities",
            ("total_liabilities", "ranking_liabilities"),
            lambda liab, ranking: liab + ranking,
            PhraseRule(all_of=("TOTAL LIABILITAS DAN RANKING",), none_of=("TANPA UTANG",)),
        ),
        ChainStep(
            "net_liabilities",
            ("combined_liabilities", "subordinated_debt"),
            lambda combined, sub: combined - sub,
            PhraseRule(all_of=("TOTAL LIABILITAS DAN RANKING", "TANPA UTANG SUBORDINASI")),
        ),
        ChainStep(
            "risk_charge",
            ("net_liabilities",),
            lambda net: net * RISK_CHARGE_RATE,
            PhraseRule(all_of=("BARIS 16",), any_of=(("6,25%", "6.25%"),)),
        ),
        ChainStep(
            "mkbd_required_risk",
            ("minimum_mkbd", "risk_charge"),
            max,
            PhraseRule(all_of=("DIPERSYARATKAN", "LEBIH TINGGI"), none_of=("DITAMBAH",)),
        ),
        ChainStep(
            "managed_funds_charge",
            ("managed_funds",),
            lambda funds: funds * MANAGED_FUNDS_RATE,
            PhraseRule(all_of=("BARIS 23",), any_of=(("0,1%", "0.1%"),)),
        ),
        ChainStep(
            "mkbd_required_total",
            ("minimum_mkbd_mi", "managed_funds_charge"),
            lambda minimum, charge: minimum + charge,
            PhraseRule(all_of=("DIPERSYARATKAN", "DITAMBAH")),
        ),
        ChainStep(
            "mkbd_required_pe",
            ("mkbd_required_risk", "mkbd_required_total"),
            lambda risk, total: risk + total,
            PhraseRule(all_of=("DIWAJIBKAN", "PE", "IZIN")),
        ),
    ),
)


@dataclass(frozen=True)
class CapitalRequirementResult:
    rows: list[Row]
    target_column: str | None
    values: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def update_capital_requirement(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    grand_total_ranking: float,
) -> CapitalRequirementResult:
    """Propagate the ranking total through the VD58 chain."""
    target = VALUE_COLUMN.resolve(headers)
    if target is None:
        msg = "VD58: no NILAI / JUMLAH column; sheet left unchanged"
        logger.warning(msg)
        return CapitalRequirementResult([dict(r) for r in rows], None, warnings=[msg])

    outcome = CAPITAL_REQUIREMENT_CHAIN.run(rows, target, constants={"grand_total": grand_total_ranking})
    logger.info(
        "VD58 required MKBD (PE) = %s (risk %s + total %s)",
        f"{outcome.values['mkbd_required_pe']:,.2f}",
        f"{outcome.values['mkbd_required_risk']:,.2f}",
        f"{outcome.values['mkbd_required_total']:,.2f}",
    )
    return CapitalRequirementResult(
        rows=outcome.rows,
        target_column=target,
        values=outcome.values,
        warnings=outcome.warnings,
    )
