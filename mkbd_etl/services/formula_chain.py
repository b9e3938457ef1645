from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..excel.values import parse_number, row_text
from ..models.sheet import Row
from .row_classifier import PhraseRule

"""Small fixed dataflow graphs over report rows.

A ``FormulaChain`` is an ordered list of named values:

- ``ChainInput``: read from the target column of the row matching a phrase
- ``ChainStep``: computed from previously named values, optionally written
  back into the target column of the row matching its phrase

Inputs are scanned first (each row feeds at most one input, first rule wins).
Steps are evaluated in declaration order, which is also the write priority: a
row receives the value of the first step whose rule it matches. Every miss
falls back to 0 / no write and is reported as a warning; nothing raises.
"""

__all__ = [
    "ChainInput",
    "ChainStep",
    "ChainOutcome",
    "FormulaChain",
]

logger = logging.getLogger(__name__)

ValueReader = Callable[[Mapping[str, Any]], float]


@dataclass(frozen=True)
class ChainInput:
    name: str
    rule: PhraseRule
    first_match: bool = False  # default: the last matching row wins


@dataclass(frozen=True)
class ChainStep:
    name: str
    inputs: tuple[str, ...]
    formula: Callable[..., float]
    rule: PhraseRule | None = None  # None: computed only, never written

    def evaluate(self, values: Mapping[str, float]) -> float:
        return self.formula(*(values.get(n, 0.0) for n in self.inputs))


@dataclass
class ChainOutcome:
    rows: list[Row]
    values: dict[str, float] = field(default_factory=dict)
    written: dict[str, list[int]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FormulaChain:
    label: str
    inputs: tuple[ChainInput, ...]
    steps: tuple[ChainStep, ...]

    def scan_inputs(
        self, rows: Sequence[Mapping[str, Any]], reader: ValueReader
    ) -> tuple[dict[str, float], list[str]]:
        values: dict[str, float] = {}
        seen: set[str] = set()
        for row in rows:
            text = row_text(row)
            for inp in self.inputs:
                if inp.rule.matches_text(text):
                    if not (inp.first_match and inp.name in seen):
                        values[inp.name] = reader(row)
                        seen.add(inp.name)
                    break
        warnings = [
            f"{self.label}: row for '{inp.name}' not found, using 0"
            for inp in self.inputs
            if inp.name not in seen
        ]
        for inp in self.inputs:
            values.setdefault(inp.name, 0.0)
        return values, warnings

    def compute(self, values: Mapping[str, float]) -> dict[str, float]:
        out = dict(values)
        for step in self.steps:
            out[step.name] = step.evaluate(out)
        return out

    def run(
        self,
        rows: Sequence[Mapping[str, Any]],
        target_column: str,
        constants: Mapping[str, float] | None = None,
        reader: ValueReader | None = None,
    ) -> ChainOutcome:
        """Scan inputs, compute every step, write step values into matching rows."""
        if reader is None:
            reader = lambda row: parse_number(row.get(target_column))  # noqa: E731
        values, warnings = self.scan_inputs(rows, reader)
        if constants:
            values.update(constants)
        values = self.compute(values)

        written: dict[str, list[int]] = {}
        writers = [s for s in self.steps if s.rule is not None]
        new_rows: list[Row] = []
        for idx, row in enumerate(rows):
            new_row = dict(row)
            text = row_text(row)
            for step in writers:
                if step.rule.matches_text(text):  # type: ignore[union-attr]
                    new_row[target_column] = values[step.name]
                    written.setdefault(step.name, []).append(idx)
                    break
            new_rows.append(new_row)

        for step in writers:
            if step.name not in written:
                warnings.append(f"{self.label}: target row for '{step.name}' not found")
        for w in warnings:
            logger.warning(w)
        return ChainOutcome(rows=new_rows, values=values, written=written, warnings=warnings)
