from __future__ import annotations

import logging
from io import StringIO

from mkbd_etl.logging.init import (
    APP_LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    WorkbookFilter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
    workbook_context,
)


def test_setup_logging_configures_app_logger():
    logger = setup_logging()
    assert logger.name == APP_LOGGER_NAME
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_idempotent():
    first = setup_logging()
    second = setup_logging(logging.DEBUG)
    assert first is second
    assert len(first.handlers) == 1
    assert get_logger() is first


def test_labeled_prefixes():
    out = StringIO()
    logger = logging.getLogger("mkbd_etl_test_labels")
    logger.setLevel(logging.DEBUG)
    handler = logging.StreamHandler(out)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    try:
        logger.info("VD52: TOTAL EKUITAS found")
        logger.warning("no VD59 sheet found to update")
        logger.error("extraction failed")
        logger.log(SUMMARY_LEVEL, "files=1")
    finally:
        logger.removeHandler(handler)
    assert out.getvalue().splitlines() == [
        "INFO VD52: TOTAL EKUITAS found",
        "WARN no VD59 sheet found to update",
        "ERROR extraction failed",
        "SUMMARY files=1",
    ]


def test_module_loggers_share_app_handler(capsys):
    setup_logging()
    logging.getLogger("mkbd_etl.services.ranking").info("ranking liabilities total = 0.00")
    assert "INFO ranking liabilities total = 0.00" in capsys.readouterr().out


def test_log_summary(capsys):
    setup_logging()
    log_summary("files=2 success=2 failed=0")
    assert capsys.readouterr().out.strip() == "SUMMARY files=2 success=2 failed=0"
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"


def test_reset_logging_removes_handlers():
    logger = setup_logging()
    reset_logging()
    assert logger.handlers == []
    assert logger.propagate is True


def test_workbook_context_tags_records(capsys):
    setup_logging()
    log = logging.getLogger("mkbd_etl.services.orchestrator")
    with workbook_context("mkbd-jan.xlsx"):
        log.warning("no VD59 sheet found to update")
        log_summary("files=1")
    log.info("outside")
    assert capsys.readouterr().out.splitlines() == [
        "WARN no VD59 sheet found to update [mkbd-jan.xlsx]",
        "SUMMARY files=1",
        "INFO outside",
    ]


def test_workbook_filter_sets_attribute():
    record = logging.LogRecord("mkbd_etl", logging.INFO, __file__, 1, "msg", None, None)
    with workbook_context("a.xlsx"):
        assert WorkbookFilter().filter(record) is True
    assert record.workbook == "a.xlsx"
    WorkbookFilter().filter(record)
    assert record.workbook is None
