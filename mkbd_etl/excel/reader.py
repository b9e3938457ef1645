from __future__ import annotations

import io
import math
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, BinaryIO

import pandas as pd

"""Workbook reader.

Sheets are read without a header (the header row position is decided later by
the extractor) and converted into plain raw grids: a list of rows, each a list
of cell values with NaN replaced by None and integral floats restored to int.
"""

__all__ = [
    "WorkbookReadError",
    "WorkbookSource",
    "read_workbook",
    "get_sheet_names",
    "dataframe_to_grid",
]

WorkbookSource = Path | str | bytes | BinaryIO


class WorkbookReadError(Exception):
    """Raised when a workbook cannot be opened or parsed at all."""


def _as_io(source: WorkbookSource) -> Any:
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(source)
    return source


def _normalize_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer() and abs(value) < 2**53:
            return int(value)
        return value
    if value is pd.NaT:
        return None
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar -> python scalar
        try:
            return _normalize_cell(value.item())
        except (TypeError, ValueError):
            return value
    return value


def dataframe_to_grid(df: pd.DataFrame) -> list[list[Any]]:
    """Convert a header-less DataFrame into a raw grid."""
    grid: list[list[Any]] = []
    for raw in df.itertuples(index=False, name=None):
        grid.append([_normalize_cell(v) for v in raw])
    return grid


def read_workbook(
    source: WorkbookSource,
    target_sheets: Iterable[str] | None = None,
    on_sheet_error: Callable[[str, Exception], None] | None = None,
) -> dict[str, list[list[Any]]]:
    """Read every sheet of a workbook into raw grids keyed by sheet name.

    Parameters
    ----------
    source: path, raw bytes or binary file object of an .xlsx workbook
    target_sheets: restrict to these sheet names (None = all, workbook order)
    on_sheet_error: called with (sheet name, exception) for a sheet that cannot
        be parsed; that sheet is left out. Without it the failure raises
        ``WorkbookReadError``.
    """
    try:
        xls = pd.ExcelFile(_as_io(source))
    except Exception as e:
        raise WorkbookReadError(f"cannot open workbook: {e}") from e

    wanted = set(target_sheets) if target_sheets is not None else None
    grids: dict[str, list[list[Any]]] = {}
    with xls:
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            try:
                df = xls.parse(name, header=None, dtype=object)
            except Exception as e:
                if on_sheet_error is None:
                    raise WorkbookReadError(f"cannot read sheet '{name}': {e}") from e
                on_sheet_error(str(name), e)
                continue
            grids[str(name)] = dataframe_to_grid(df)
    return grids


def get_sheet_names(source: WorkbookSource) -> list[str]:
    try:
        with pd.ExcelFile(_as_io(source)) as xls:
            return [str(n) for n in xls.sheet_names]
    except Exception as e:
        raise WorkbookReadError(f"cannot open workbook: {e}") from e
