from __future__ import annotations

import json
import re
from pathlib import Path

from mkbd_etl.logging.issue_log import IssueLogBuffer, IssueRecord

KEYS = {"timestamp", "file", "sheet", "row", "issue_type", "message"}


def test_issue_record_json_line():
    rec = IssueRecord.create("r.xlsx", "VD59", -1, "SHEET_WARNING", "row for 'x' not found")
    data = json.loads(rec.to_json_line())
    assert set(data) == KEYS
    assert data["row"] == -1
    assert data["timestamp"].endswith("Z")


def test_flush_writes_json_lines(temp_workdir: Path):
    buf = IssueLogBuffer()
    buf.record("a.xlsx", "<FILE_LEVEL>", -1, "FILE_ERROR", "extraction failed: bad zip")
    buf.record("a.xlsx", "<FILE_LEVEL>", -1, "SHEET_WARNING", "Lebih (kurang) tidak ditemukan")
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent == Path("./logs")
    assert re.fullmatch(r"issues-\d{8}-\d{6}\.log", path.name)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["issue_type"] for line in lines] == ["FILE_ERROR", "SHEET_WARNING"]
    assert len(buf) == 0


def test_flush_appends_to_same_file(temp_workdir: Path):
    buf = IssueLogBuffer()
    buf.record("a.xlsx", "S", 1, "SHEET_WARNING", "one")
    first = buf.flush()
    buf.record("a.xlsx", "S", 2, "SHEET_WARNING", "two")
    second = buf.flush()
    assert first == second
    assert len(second.read_text(encoding="utf-8").splitlines()) == 2


def test_empty_flush_creates_nothing(tmp_path: Path):
    buf = IssueLogBuffer(logs_dir=tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_records_is_a_copy():
    buf = IssueLogBuffer()
    buf.record("a.xlsx", "S", 1, "SHEET_WARNING", "m")
    buf.records.clear()
    assert len(buf.records) == 1
