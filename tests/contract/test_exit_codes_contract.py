from __future__ import annotations

from pathlib import Path

from mkbd_etl.cli.__main__ import main as cli_main

"""Exit code contract: 0 all workbooks ok, 2 any workbook failed, 1 fatal."""


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    code = cli_main([])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_invalid_config(temp_workdir: Path, capsys):
    (temp_workdir / "config" / "etl.yml").write_text("source_directory: ./data\nbogus: 1\n", encoding="utf-8")
    assert cli_main([]) == 1
    assert "config validation failed" in capsys.readouterr().out


def test_exit_code_all_success(write_config: Path, make_report, capsys):
    make_report(Path("data/jan.xlsx"))
    make_report(Path("data/feb.xlsx"))
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY files=2 success=2 failed=0" in out


def test_exit_code_empty_directory(write_config: Path, capsys):
    assert cli_main([]) == 0
    assert "SUMMARY files=0 success=0 failed=0" in capsys.readouterr().out


def test_exit_code_partial_failure(write_config: Path, make_report, capsys):
    make_report(Path("data/good.xlsx"))
    (Path("data") / "corrupt.xlsx").write_bytes(b"this is not a workbook")
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 2
    assert "SUMMARY files=2 success=1 failed=1" in out


def test_exit_code_only_failures(write_config: Path, make_workbook, capsys):
    make_workbook(Path("data/blank.xlsx"), {"Kosong": []})
    assert cli_main([]) == 2
