from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Run-level result models for the CLI (many workbooks per run)."""


@dataclass(frozen=True)
class FileStat:
    """Per-workbook statistics."""
    file_name: str
    status: str  # success/failed
    sheet_count: int
    row_count: int
    warning_count: int
    elapsed_seconds: float
    persisted_rows: int = 0
    error: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results used for the SUMMARY line and the exit code."""
    success_files: int
    failed_files: int
    total_sheets: int
    total_rows: int
    total_warnings: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    file_stats: list[FileStat] | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files
