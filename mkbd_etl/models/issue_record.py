from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""IssueRecord model for the structured issue log.

Each record is one JSON Lines entry describing an error or warning raised while
processing a workbook. ``row=-1`` is the sentinel for file- or sheet-level
issues where no specific row applies.
"""

__all__ = [
    "IssueRecord",
]


@dataclass(frozen=True)
class IssueRecord:
    """Structured issue record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: workbook file name
        sheet: sheet name, or ``<FILE_LEVEL>``
        row: 1-based row number, -1 when unknown
        issue_type: classification in UPPER_SNAKE_CASE (e.g. SHEET_WARNING)
        message: human readable description
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    issue_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, issue_type: str, message: str) -> IssueRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return IssueRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            issue_type=issue_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
