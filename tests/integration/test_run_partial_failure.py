from __future__ import annotations

import json
from pathlib import Path

from mkbd_etl.cli.__main__ import main as cli_main
from mkbd_etl.config.loader import load_config
from mkbd_etl.db.table_store import InMemoryTableStore
from mkbd_etl.logging.issue_log import IssueLogBuffer
from mkbd_etl.services.orchestrator import process_all

"""Partial failure: broken workbooks fail alone, the rest is still extracted and saved."""


def _setup(make_report, make_workbook) -> None:
    make_report(Path("data/a-good.xlsx"))
    Path("data/b-corrupt.xlsx").write_bytes(b"\x00\x01 truncated upload")
    make_workbook(Path("data/c-empty.xlsx"), {"Sheet1": []})


def test_partial_failure_keeps_good_workbook(write_config: Path, make_report, make_workbook, loaded_cache):
    _setup(make_report, make_workbook)
    store = InMemoryTableStore()
    result = process_all(load_config(write_config), store, loaded_cache, IssueLogBuffer())

    assert result.success_files == 1
    assert result.failed_files == 2
    assert [s.status for s in result.file_stats] == ["success", "failed", "failed"]
    assert result.file_stats[2].error == "No sheets processed"
    assert {t.table_name for t in store.list_tables()} == {"vd52", "vd510_tabel_10c", "vd59", "vd58"}
    assert {r["_fileName"] for r in store.read_records("vd59")} == {"a-good.xlsx"}


def test_partial_failure_cli(write_config: Path, make_report, make_workbook, capsys):
    _setup(make_report, make_workbook)
    assert cli_main([]) == 2
    out = capsys.readouterr().out
    assert "SUMMARY files=3 success=1 failed=2" in out

    log_file = next(Path("logs").glob("issues-*.log"))
    errors = [
        json.loads(line)
        for line in log_file.read_text(encoding="utf-8").splitlines()
        if json.loads(line)["issue_type"] == "FILE_ERROR"
    ]
    assert sorted(e["file"] for e in errors) == ["b-corrupt.xlsx", "c-empty.xlsx"]
