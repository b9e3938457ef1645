from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

"""Logging initialization with labeled prefixes (INFO|WARN|ERROR|SUMMARY).

Library modules log through ``logging.getLogger(__name__)``, which places them
under the ``mkbd_etl`` logger configured here. Output goes to stdout, one line
per record: ``LABEL message``, followed by ``[workbook.xlsx]`` while a
workbook is being processed (see ``workbook_context``).
"""

__all__ = [
    "APP_LOGGER_NAME",
    "SUMMARY_LEVEL",
    "LabeledFormatter",
    "WorkbookFilter",
    "workbook_context",
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
]

APP_LOGGER_NAME = "mkbd_etl"

# between INFO=20 and WARNING=30
SUMMARY_LEVEL = 25

_LABELS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
    SUMMARY_LEVEL: "SUMMARY",
}

_current_workbook: ContextVar[str | None] = ContextVar("mkbd_workbook", default=None)
_app_logger: logging.Logger | None = None


@contextmanager
def workbook_context(file_name: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``file_name``."""
    token = _current_workbook.set(file_name)
    try:
        yield
    finally:
        _current_workbook.reset(token)


class WorkbookFilter(logging.Filter):
    """Copies the active workbook name onto the record (``record.workbook``)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.workbook = _current_workbook.get()
        return True


class LabeledFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        label = _LABELS.get(record.levelno, record.levelname)
        line = f"{label} {record.getMessage()}"
        workbook = getattr(record, "workbook", None)
        if workbook and record.levelno != SUMMARY_LEVEL:
            line += f" [{workbook}]"
        return line


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure the ``mkbd_etl`` logger once; later calls return it unchanged.

    Args:
        level: threshold for the logger and its stdout handler (DEBUG with --debug)
    """
    global _app_logger

    if _app_logger is not None:
        return _app_logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(APP_LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level)
    stdout_handler.setFormatter(LabeledFormatter())
    stdout_handler.addFilter(WorkbookFilter())
    logger.addHandler(stdout_handler)
    logger.propagate = False

    _app_logger = logger
    return logger


def get_logger() -> logging.Logger:
    return _app_logger if _app_logger is not None else setup_logging()


def log_summary(message: str) -> None:
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Drop the configured handler (tests)."""
    global _app_logger
    if _app_logger is not None:
        for handler in _app_logger.handlers[:]:
            _app_logger.removeHandler(handler)
        _app_logger.propagate = True
    _app_logger = None
