from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format::

    SUMMARY files=<n> success=<n> failed=<n> sheets=<n> rows=<n> warnings=<n> elapsed_sec=<x>
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
]


def format_elapsed(seconds: float) -> str:
    """Render seconds without scientific notation or a trailing ``.0``."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ProcessingResult) -> str:
    """
    Examples:
        >>> from datetime import UTC, datetime
        >>> t = datetime(2025, 1, 1, tzinfo=UTC)
        >>> render_summary_line(ProcessingResult(2, 1, 7, 1500, 4, t, t, 2.0))
        'SUMMARY files=3 success=2 failed=1 sheets=7 rows=1500 warnings=4 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={result.total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"sheets={result.total_sheets} "
        f"rows={result.total_rows} "
        f"warnings={result.total_warnings} "
        f"elapsed_sec={format_elapsed(result.elapsed_seconds)}"
    )
