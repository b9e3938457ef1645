from __future__ import annotations

import io
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from ..excel.reader import WorkbookSource
from ..excel.values import cell_text
from ..models.master_entry import EmitenEntry, normalize_code

"""Reference (master) data cache: issuer code -> group metadata.

The cache is process-wide and replace-on-load: a successful ``load`` builds a
fresh mapping and swaps it in whole, so exactly one generation is live. Loads
and clears are serialized by an internal lock; readers see either the old or
the new generation, never a partial one.
"""

__all__ = [
    "MasterDataError",
    "MasterLoadResult",
    "MasterStats",
    "MasterDataCache",
    "MASTER_COLUMNS",
    "DEFAULT_MASTER_PATH",
    "NON_GROUP",
    "master_data",
]

logger = logging.getLogger(__name__)

MASTER_COLUMNS = {
    "code": "Kode",
    "name": "Nama Emiten",
    "primary_group": "Afiliasi Utama",
    "sub_group": "Sub-Afiliasi",
    "key_person": "UBO / Tokoh Kunci",
    "category": "Kategori",
}

DEFAULT_MASTER_PATH = Path("data/master/master-emiten.xlsx")

NON_GROUP = "Non-Grup"


class MasterDataError(Exception):
    """Raised when a reference workbook cannot be parsed."""


@dataclass(frozen=True)
class MasterLoadResult:
    success: bool
    count: int
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MasterStats:
    total_entries: int
    unique_groups: int
    categories: dict[str, int]


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and value != value):
        return ""
    return cell_text(value)


def parse_master_frame(df: pd.DataFrame) -> dict[str, EmitenEntry]:
    """Build the code -> entry mapping from the reference sheet.

    Rows without a usable code are skipped; a later duplicate code replaces the
    earlier one.
    """
    if MASTER_COLUMNS["code"] not in df.columns:
        raise MasterDataError(f"reference sheet lacks column '{MASTER_COLUMNS['code']}'")
    entries: dict[str, EmitenEntry] = {}
    for record in df.to_dict(orient="records"):
        code = normalize_code(record.get(MASTER_COLUMNS["code"]))
        if not code:
            continue
        entries[code] = EmitenEntry(
            code=code,
            name=_text(record.get(MASTER_COLUMNS["name"])),
            primary_group=_text(record.get(MASTER_COLUMNS["primary_group"])),
            sub_group=_text(record.get(MASTER_COLUMNS["sub_group"])),
            key_person=_text(record.get(MASTER_COLUMNS["key_person"])),
            category=_text(record.get(MASTER_COLUMNS["category"])),
        )
    return entries


class MasterDataCache:
    """In-memory issuer lookup with replace-on-load semantics."""

    def __init__(self) -> None:
        self._entries: dict[str, EmitenEntry] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def load(self, source: WorkbookSource) -> MasterLoadResult:
        """Replace the cache with the first sheet of ``source``.

        On failure the previous generation stays live and the error is
        reported in the result.
        """
        try:
            src = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
            df = pd.read_excel(src, sheet_name=0, dtype=object)
            entries = parse_master_frame(df)
        except Exception as e:
            logger.warning("master data load failed: %s", e)
            return MasterLoadResult(success=False, count=0, errors=[f"failed to load master data: {e}"])
        self.replace(entries)
        logger.info("master data loaded: %d issuers", len(entries))
        return MasterLoadResult(success=True, count=len(entries))

    def load_default(self, path: Path = DEFAULT_MASTER_PATH) -> MasterLoadResult:
        if not Path(path).exists():
            return MasterLoadResult(
                success=False, count=0, errors=[f"master data file not found: {path}"]
            )
        return self.load(Path(path))

    def replace(self, entries: dict[str, EmitenEntry]) -> None:
        with self._lock:
            self._entries = dict(entries)
            self._loaded = True

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
            self._loaded = False

    def is_loaded(self) -> bool:
        return self._loaded

    def lookup(self, code: object) -> EmitenEntry | None:
        key = normalize_code(code)
        if not key:
            return None
        return self._entries.get(key)

    def entries(self) -> list[EmitenEntry]:
        return list(self._entries.values())

    def stats(self) -> MasterStats:
        entries = self._entries
        return MasterStats(
            total_entries=len(entries),
            unique_groups=len({e.primary_group for e in entries.values()}),
            categories=dict(Counter(e.category for e in entries.values())),
        )

    def __len__(self) -> int:
        return len(self._entries)


# process-wide default instance
master_data = MasterDataCache()
