from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from mkbd_etl.config.loader import DEFAULT_CONFIG_PATH, ConfigError, EtlConfig, load_config
from mkbd_etl.db.table_store import InMemoryTableStore, PostgresTableStore, StoreError, TableStore
from mkbd_etl.excel.reader import WorkbookReadError, get_sheet_names, read_workbook
from mkbd_etl.excel.extractor import SheetExtractionError, extract_sheet
from mkbd_etl.logging.init import log_summary, setup_logging
from mkbd_etl.services.master_data import DEFAULT_MASTER_PATH, master_data
from mkbd_etl.services.orchestrator import ProcessingError, process_all, scan_excel_files
from mkbd_etl.services.summary import render_summary_line

"""CLI entrypoint: ``python -m mkbd_etl.cli [--debug] [--inspect-data] [--config PATH]``.

Flow:
- load ``.env`` (overriding the process environment), then the YAML config
- load reference data (issuer -> group) when available
- extract every workbook of the source directory, persisting to PostgreSQL or,
  when no connection can be made, to an in-memory store
- emit one SUMMARY line; exit 0 (all ok), 2 (any workbook failed), 1 (fatal)
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _build_dsn(cfg: EtlConfig) -> str:
    """Connection string, resolved in priority order.

    1. ``DATABASE_URL`` / ``PGDSN`` (``.env`` already loaded with override)
    2. ``PGHOST`` / ``PGPORT`` / ``PGUSER`` / ``PGPASSWORD`` / ``PGDATABASE``
    3. the ``database`` section of the config, for whatever is still missing
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: EtlConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    conn = psycopg2.connect(_build_dsn(cfg))
    conn.autocommit = False
    try:
        yield conn
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load ``.env``; its values win over the existing environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="MKBD report workbook extractor")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--inspect-data", action="store_true", help="Print sheet headers & first rows then exit"
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to etl.yml")
    return p.parse_args(argv)


def _inspect_data(cfg: EtlConfig) -> int:
    try:
        excel_files = scan_excel_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not excel_files:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for f in excel_files:
        print(f"FILE: {f.name}")
        try:
            names = get_sheet_names(f)
            grids = read_workbook(
                f, on_sheet_error=lambda name, e: print(f"  sheet_error: sheet '{name}': {e}")
            )
        except WorkbookReadError as e:
            print(f"  read_error: {e}")
            continue
        for name in names:
            if name not in grids:
                continue
            try:
                sheet = extract_sheet(grids[name], name)
            except SheetExtractionError as e:
                print(f"  sheet_error: {e}")
                continue
            print(f"  SHEET: {sheet.sheet_name} rows={sheet.row_count} cols={sheet.headers}")
            safe_rows = [
                {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in r.items()}
                for r in sheet.rows[:3]
            ]
            print("    sample_rows=", safe_rows)
    return EXIT_SUCCESS_ALL


def _load_master_data(cfg: EtlConfig, logger: logging.Logger) -> None:
    path = Path(cfg.master_data) if cfg.master_data else DEFAULT_MASTER_PATH
    result = master_data.load_default(path)
    if result.success:
        logger.info(f"master data: {result.count} issuers from {path}")
    elif cfg.master_data:
        for err in result.errors:
            logger.warning(f"master data: {err}")
    else:
        logger.info("master data: none loaded, enrichment disabled")


def _run(cfg: EtlConfig, store: TableStore | None) -> Any:
    return process_all(cfg, store=store if cfg.persist else None)


def main(argv: list[str] | None = None) -> int:
    # an explicit [] must not fall back to sys.argv (pytest args)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    logger = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    logger.info(f"Processing workbooks from: {directory}")

    if args.inspect_data:
        return _inspect_data(cfg)

    _load_master_data(cfg, logger)

    # DISABLE_DB_CONNECT=1 forces the in-memory store (tests, dry runs)
    db_mode = "mock"
    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1" or not cfg.persist:
            result = _run(cfg, InMemoryTableStore())
        else:
            try:
                with _db_connection(cfg) as conn:
                    store = PostgresTableStore(conn)
                    db_mode = "live"
                    result = _run(cfg, store)
            except (psycopg2.Error, StoreError) as db_e:
                if db_mode == "live":
                    raise
                logger.info(f"DB connection failed -> fallback to in-memory store: {db_e}")
                result = _run(cfg, InMemoryTableStore())
    except (ProcessingError, StoreError, psycopg2.Error) as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    persisted = sum(s.persisted_rows for s in result.file_stats or [])
    logger.info(f"mode={db_mode} persisted_rows={persisted}")

    # log_summary adds the SUMMARY label itself
    log_summary(render_summary_line(result).removeprefix("SUMMARY "))

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
