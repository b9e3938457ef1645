from __future__ import annotations

import os
from pathlib import Path

import psycopg2
import pytest

from mkbd_etl.cli import __main__ as cli
from mkbd_etl.cli.__main__ import main as cli_main
from mkbd_etl.config.loader import DatabaseConfig, EtlConfig
from mkbd_etl.services.master_data import master_data

PG_VARS = ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")


@pytest.fixture()
def clean_pg_env(monkeypatch):
    for var in PG_VARS:
        monkeypatch.delenv(var, raising=False)


def test_build_dsn_prefers_database_url(clean_pg_env, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u@db/mkbd")
    cfg = EtlConfig("./data", database=DatabaseConfig(dsn="ignored"))
    assert cli._build_dsn(cfg) == "postgresql://u@db/mkbd"


def test_build_dsn_env_over_config(clean_pg_env, monkeypatch):
    monkeypatch.setenv("PGHOST", "pg.internal")
    monkeypatch.setenv("PGPASSWORD", "s3cret")
    cfg = EtlConfig("./data", database=DatabaseConfig(host="localhost", port=6543, user="etl", database="mkbd"))
    assert cli._build_dsn(cfg) == "host=pg.internal port=6543 user=etl dbname=mkbd password=s3cret"


def test_build_dsn_defaults(clean_pg_env):
    assert cli._build_dsn(EtlConfig("./data")) == "host=localhost port=5432 user=postgres dbname=postgres"


def test_missing_config_is_fatal(temp_workdir: Path, capsys):
    assert cli_main([]) == 1
    assert "ERROR config: config file not found" in capsys.readouterr().out


def test_missing_source_directory_is_fatal(temp_workdir: Path, capsys):
    (temp_workdir / "config" / "etl.yml").write_text("source_directory: ./nope\n", encoding="utf-8")
    assert cli_main([]) == 1
    assert "ERROR directory not found" in capsys.readouterr().out


def test_run_with_master_data(write_config: Path, make_report, make_master, capsys):
    make_master(Path("master/master-emiten.xlsx"))
    make_report(Path("data/report.xlsx"))
    assert cli_main([]) == 0
    out = capsys.readouterr().out
    assert "INFO master data: 3 issuers" in out
    assert "SUMMARY files=1 success=1 failed=0 sheets=4" in out
    assert master_data.is_loaded()


def test_run_without_master_data(write_config: Path, make_report, capsys):
    make_report(Path("data/report.xlsx"))
    assert cli_main([]) == 0
    out = capsys.readouterr().out
    assert "WARN master data: master data file not found" in out
    assert "mode=mock" in out


def test_config_flag(temp_workdir: Path, make_report, capsys):
    cfg = temp_workdir / "custom.yml"
    cfg.write_text("source_directory: ./data\npersist: false\n", encoding="utf-8")
    make_report(Path("data/r.xlsx"))
    assert cli_main(["--config", str(cfg)]) == 0
    assert "persisted_rows=0" in capsys.readouterr().out


def test_debug_flag_enables_debug_output(write_config: Path, capsys):
    assert cli_main(["--debug"]) == 0
    assert "DEBUG debug mode enabled" in capsys.readouterr().out


def test_inspect_data(write_config: Path, make_report, capsys):
    make_report(Path("data/report.xlsx"))
    (Path("data") / "broken.xlsx").write_bytes(b"xx")
    assert cli_main(["--inspect-data"]) == 0
    out = capsys.readouterr().out
    assert "FILE: broken.xlsx" in out and "read_error:" in out
    assert "FILE: report.xlsx" in out
    assert "SHEET: VD510_TABEL_10C" in out
    assert "SUMMARY" not in out


def test_live_mode_falls_back_when_connect_fails(write_config: Path, make_report, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT")

    def refuse(dsn):
        raise psycopg2.OperationalError("connection refused")
    monkeypatch.setattr(cli.psycopg2, "connect", refuse)
    make_report(Path("data/report.xlsx"))

    assert cli_main([]) == 0
    out = capsys.readouterr().out
    assert "fallback to in-memory store: connection refused" in out
    assert "mode=mock" in out


def test_dotenv_overrides_environment(write_config: Path, monkeypatch):
    monkeypatch.setenv("PGHOST", "from-shell")
    Path(".env").write_text("PGHOST=from-dotenv\n", encoding="utf-8")
    cli._load_env_file(Path(".env"))
    assert os.environ["PGHOST"] == "from-dotenv"


def test_inspect_data_reports_bad_sheet(write_config: Path, make_report, monkeypatch, capsys):
    make_report(Path("data/report.xlsx"))
    real_extract = cli.extract_sheet

    def extract(grid, name):
        if name == "VD58":
            raise cli.SheetExtractionError(f"sheet '{name}': boom")
        return real_extract(grid, name)
    monkeypatch.setattr(cli, "extract_sheet", extract)

    assert cli_main(["--inspect-data"]) == 0
    out = capsys.readouterr().out
    assert "sheet_error: sheet 'VD58': boom" in out
    assert "SHEET: VD59" in out
