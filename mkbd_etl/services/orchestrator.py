from __future__ import annotations

import dataclasses
import logging
from datetime import UTC, datetime
from pathlib import Path

from ..config.loader import EtlConfig
from ..db.table_store import StoreError, TableStore, persist_result
from ..excel.cleaner import clean_rows
from ..excel.extractor import SheetExtractionError, extract_sheet, matches_form
from ..excel.reader import WorkbookReadError, WorkbookSource, read_workbook
from ..excel.sanitizer import sanitize_table_name
from ..logging.init import workbook_context
from ..logging.issue_log import IssueLogBuffer
from ..models.calculation import CalculationContext, Thresholds
from ..models.etl_result import ETLResult
from ..models.processing_result import FileStat, ProcessingResult
from ..models.sheet import ProcessedSheet, SheetData, SheetMetadata
from .capital_requirement import update_capital_requirement
from .column_aliases import RANKING_COLUMN
from .enrichment import process_enrichment_pipeline
from .master_data import MasterDataCache, master_data
from .progress import ProgressTracker
from .ranking import calculate_ranking_liabilities, extract_current_assets_total, extract_equity_total
from .working_capital import update_working_capital

"""Workbook extraction in three passes, and the directory-level run.

Pass 1  extract / clean / enrich every sheet; capture TOTAL EKUITAS (VD52)
Pass 2  ranking liabilities on the VD510 (TABEL 10C) sheet -> grand total
Pass 3  propagate the grand total into VD59, else VD58

All cross-sheet figures live in a ``CalculationContext`` created per call.
"""

__all__ = [
    "ProcessingError",
    "FILE_LEVEL",
    "extract_from_excel",
    "scan_excel_files",
    "process_all",
]

logger = logging.getLogger(__name__)

FILE_LEVEL = "<FILE_LEVEL>"
REGION_TABLE_MARKER = "tabel_10c"


class ProcessingError(Exception):
    """Fatal run-level error (source directory missing or unreadable)."""


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _process_sheet(
    sheet: SheetData, file_name: str, cache: MasterDataCache
) -> tuple[ProcessedSheet, list[str]]:
    """Clean, enrich and null stale ranking values; returns the sheet and its warnings."""
    cleaned = clean_rows(sheet.rows, sheet.headers)
    warnings = [*sheet.warnings, *cleaned.warnings]
    rows = cleaned.rows
    headers = list(cleaned.headers)
    enrichment_stats = None
    if cache.is_loaded():
        enriched = process_enrichment_pipeline(rows, headers, cache)
        rows, headers, enrichment_stats = enriched.rows, enriched.headers, enriched.stats
        warnings.extend(enriched.warnings)

    if matches_form("VD510", sheet.sheet_name):
        # stale workbook values; recomputed in pass 2
        ranking_column = RANKING_COLUMN.resolve(headers)
        if ranking_column is not None:
            rows = [{**row, ranking_column: None} for row in rows]

    processed = ProcessedSheet(
        sheet_name=sheet.sheet_name,
        table_name=sanitize_table_name(sheet.sheet_name),
        headers=headers,
        rows=rows,
        metadata=SheetMetadata(
            source_file_name=file_name,
            processed_at=_now_iso(),
            original_row_count=sheet.row_count,
            cleaned_row_count=len(cleaned.rows),
            enrichment_stats=enrichment_stats,
        ),
    )
    return processed, [f"sheet '{sheet.sheet_name}': {w}" for w in warnings]


def _extract_pass(
    grids: dict[str, list[list]], file_name: str, cache: MasterDataCache, ctx: CalculationContext, result: ETLResult
) -> list[ProcessedSheet]:
    sheets: list[ProcessedSheet] = []
    for sheet_name, grid in grids.items():
        try:
            sheet = extract_sheet(grid, sheet_name)
            if not sheet.rows:
                continue
            try:
                processed, sheet_warnings = _process_sheet(sheet, file_name, cache)
            except Exception as e:
                raise SheetExtractionError(f"sheet '{sheet_name}': {e}") from e
        except SheetExtractionError as e:
            logger.warning("%s", e)
            result.warnings.append(f"skipped {e}")
            continue
        result.warnings.extend(sheet_warnings)

        if matches_form("VD52", sheet_name):
            equity = extract_equity_total(processed.rows)
            if equity.value > 0:
                ctx.equity_total = equity.value
                ctx.equity_found = True
        sheets.append(processed)
    return sheets


def _is_ranking_sheet(sheet: ProcessedSheet) -> bool:
    return matches_form("VD510", sheet.sheet_name) or REGION_TABLE_MARKER in sheet.table_name


def _ranking_pass(sheets: list[ProcessedSheet], ctx: CalculationContext, result: ETLResult) -> None:
    for i, sheet in enumerate(sheets):
        if not _is_ranking_sheet(sheet):
            continue
        if ctx.equity_total <= 0:
            msg = f'VD510 "{sheet.sheet_name}": TOTAL EKUITAS not available, ranking liabilities not computed'
            logger.warning(msg)
            result.warnings.append(msg)
            continue
        ranking = calculate_ranking_liabilities(sheet.rows, sheet.headers, ctx.equity_total, ctx.thresholds)
        sheets[i] = dataclasses.replace(sheet, headers=ranking.headers, rows=ranking.rows)
        ctx.grand_total_ranking = ranking.grand_total
        ctx.ranking_computed = True
        result.warnings.extend(ranking.warnings)
        result.warnings.append(f"VD510 ranking liabilities total: {ranking.grand_total:,.2f}")


def _propagation_pass(sheets: list[ProcessedSheet], ctx: CalculationContext, result: ETLResult) -> None:
    for i, sheet in enumerate(sheets):
        if matches_form("VD59", sheet.sheet_name):
            ctx.current_assets_total = extract_current_assets_total(sheet.rows).value
            updated = update_working_capital(sheet.rows, sheet.headers, ctx.grand_total_ranking)
            sheets[i] = sheet.with_rows(updated.rows)
            ctx.vd59_updated += 1
            result.warnings.extend(updated.warnings)
            result.warnings.append(f'VD59 "{sheet.sheet_name}" updated')
        elif matches_form("VD58", sheet.sheet_name):
            updated = update_capital_requirement(sheet.rows, sheet.headers, ctx.grand_total_ranking)
            sheets[i] = sheet.with_rows(updated.rows)
            ctx.vd58_updated += 1
            result.warnings.extend(updated.warnings)
            result.warnings.append(f'VD58 "{sheet.sheet_name}" updated')

    if ctx.vd59_updated == 0:
        msg = "no VD59 sheet found to update"
        logger.warning(msg)
        result.warnings.append(msg)


def extract_from_excel(
    source: WorkbookSource,
    file_name: str,
    cache: MasterDataCache | None = None,
    thresholds: Thresholds | None = None,
) -> ETLResult:
    """Run the full extraction pipeline on one workbook.

    Never raises for workbook content: an unreadable workbook gives
    ``success=False`` with one error, sheet failures become warnings.
    """
    cache = cache if cache is not None else master_data
    ctx = CalculationContext(thresholds=thresholds or Thresholds())
    result = ETLResult()

    def skip_unreadable(sheet_name: str, error: Exception) -> None:
        logger.warning("sheet '%s' unreadable: %s", sheet_name, error)
        result.warnings.append(f"skipped sheet '{sheet_name}': {error}")

    try:
        grids = read_workbook(source, on_sheet_error=skip_unreadable)
    except WorkbookReadError as e:
        logger.error("%s: %s", file_name, e)
        result.fail(f"extraction failed: {e}")
        return result

    logger.info("%s: %d sheets", file_name, len(grids))
    sheets = _extract_pass(grids, file_name, cache, ctx, result)
    logger.debug("pass 2 with TOTAL EKUITAS = %s", ctx.equity_total)
    _ranking_pass(sheets, ctx, result)
    _propagation_pass(sheets, ctx, result)
    logger.info(
        "%s: equity=%s ranking_total=%s current_assets=%s vd59=%d vd58=%d",
        file_name,
        f"{ctx.equity_total:,.2f}",
        f"{ctx.grand_total_ranking:,.2f}",
        f"{ctx.current_assets_total:,.2f}",
        ctx.vd59_updated,
        ctx.vd58_updated,
    )

    result.sheets = sheets
    if not sheets:
        result.fail("No sheets processed")
    return result


def scan_excel_files(directory: Path) -> list[Path]:
    """List ``.xlsx`` files in ``directory`` (non-recursive, sorted by name).

    Raises:
        ProcessingError: directory missing, not a directory or unreadable
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix.lower() == ".xlsx" and not p.name.startswith("~$")
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def _record_issues(issue_log: IssueLogBuffer, file_name: str, result: ETLResult) -> None:
    for error in result.errors:
        issue_log.record(file_name, FILE_LEVEL, -1, "FILE_ERROR", error)
    for warning in result.warnings:
        issue_log.record(file_name, FILE_LEVEL, -1, "SHEET_WARNING", warning)


def _process_single_file(
    file_path: Path,
    config: EtlConfig,
    store: TableStore | None,
    cache: MasterDataCache,
    issue_log: IssueLogBuffer,
) -> FileStat:
    start = datetime.now(UTC)
    result = extract_from_excel(file_path, file_path.name, cache=cache, thresholds=config.thresholds)
    persisted = 0
    if result.success and config.persist and store is not None:
        try:
            persisted = persist_result(store, result, file_path.name)
        except StoreError as e:
            logger.error("%s: %s", file_path.name, e)
            result.fail(f"persist failed: {e}")

    _record_issues(issue_log, file_path.name, result)
    elapsed = (datetime.now(UTC) - start).total_seconds()
    return FileStat(
        file_name=file_path.name,
        status="success" if result.success else "failed",
        sheet_count=len(result.sheets),
        row_count=result.total_rows,
        warning_count=len(result.warnings),
        elapsed_seconds=elapsed,
        persisted_rows=persisted,
        error="; ".join(result.errors) or None,
    )


def process_all(
    config: EtlConfig,
    store: TableStore | None = None,
    cache: MasterDataCache | None = None,
    issue_log: IssueLogBuffer | None = None,
) -> ProcessingResult:
    """Extract (and persist) every workbook of ``config.source_directory``.

    Args:
        config: loaded configuration
        store: destination for processed sheets (None = extract only)
        cache: reference data (default: the process-wide cache)
        issue_log: buffer for issue records, flushed at the end

    Raises:
        ProcessingError: the source directory cannot be scanned
    """
    start_time = datetime.now(UTC)
    cache = cache if cache is not None else master_data
    issue_log = issue_log if issue_log is not None else IssueLogBuffer()

    file_paths = scan_excel_files(Path(config.source_directory))

    file_stats: list[FileStat] = []

    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)
            with workbook_context(file_path.name):
                stat = _process_single_file(file_path, config, store, cache, issue_log)
            file_stats.append(stat)
            progress.record(stat)

    try:
        path = issue_log.flush()
        if path is not None:
            logger.info("issue log written: %s", path)
    except OSError as e:
        logger.warning("failed to write issue log: %s", e)

    end_time = datetime.now(UTC)
    return ProcessingResult(
        success_files=progress.success,
        failed_files=progress.failed,
        total_sheets=progress.sheets,
        total_rows=progress.rows,
        total_warnings=sum(s.warning_count for s in file_stats),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
    )
