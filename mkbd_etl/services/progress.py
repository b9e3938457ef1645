from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm

from ..models.processing_result import FileStat

"""Workbook progress bar (tqdm), shown only when stdout is a TTY.

The tracker also keeps the running counters of the run (success / failed
workbooks, sheets, rows); they are shown as the bar postfix.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    def __init__(self, total_files: int, *, description: str = "Extracting workbooks") -> None:
        self.total_files = total_files
        self.description = description
        self.current_file = 0
        self.success = 0
        self.failed = 0
        self.sheets = 0
        self.rows = 0
        self.enabled = is_tty_enabled()
        self.pbar: tqdm[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_files,
                desc=description,
                unit="workbook",
                leave=True,
                ncols=80,
                ascii=True,
            )

    def start_file(self, file_path: Path) -> None:
        self.current_file += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({file_path.name})")

    def record(self, stat: FileStat) -> None:
        """Count one finished workbook and advance the bar."""
        if stat.status == "success":
            self.success += 1
            self.sheets += stat.sheet_count
            self.rows += stat.row_count
        else:
            self.failed += 1
        if self.pbar is not None:
            self.pbar.set_postfix(ok=self.success, failed=self.failed, rows=self.rows)
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
