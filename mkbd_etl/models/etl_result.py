from __future__ import annotations

from dataclasses import dataclass, field

from .sheet import ProcessedSheet

"""Overall result of extracting one workbook.

Failure taxonomy:
- file-level fatal (unreadable workbook): success=False, one error, no sheets
- sheet-level failure: recorded in warnings, other sheets continue
- heuristic misses (marker / alias / lookup not found): warnings only
- validation mismatch (no sheet produced): success=False with a summary error
"""

__all__ = [
    "ETLResult",
]


@dataclass
class ETLResult:
    success: bool = True
    sheets: list[ProcessedSheet] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.success = False
        self.errors.append(message)

    @property
    def total_rows(self) -> int:
        return sum(s.row_count for s in self.sheets)
