from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.issue_record import IssueRecord

"""Issue log buffering.

- JSON Lines, fixed key set (see ``IssueRecord``)
- one ``logs/issues-YYYYMMDD-HHMMSS.log`` (UTC) per run, created on first flush
- records are buffered and written in one go at the end of the run
"""

__all__ = [
    "IssueRecord",
    "IssueLogBuffer",
    "LOGS_DIR",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class IssueLogBuffer:
    """In-memory buffer of issue records. ``flush`` appends them as JSON Lines.

    Single-threaded use only; the file path is fixed on first access.
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[IssueRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"issues-{stamp}.log"
        return self._file_path

    def append(self, record: IssueRecord) -> None:
        self._records.append(record)

    def record(self, file: str, sheet: str, row: int, issue_type: str, message: str) -> IssueRecord:
        rec = IssueRecord.create(file, sheet, row, issue_type, message)
        self.append(rec)
        return rec

    @property
    def records(self) -> list[IssueRecord]:
        return list(self._records)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the file written, None when empty."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
