from __future__ import annotations

from dataclasses import dataclass

"""Reference (master) data entry: one issuer and its group metadata."""

__all__ = [
    "EmitenEntry",
    "normalize_code",
]


def normalize_code(code: object) -> str:
    """Upper-case, trimmed issuer code; '' for missing values."""
    if code is None:
        return ""
    if isinstance(code, float) and code != code:  # NaN
        return ""
    return str(code).strip().upper()


@dataclass(frozen=True)
class EmitenEntry:
    code: str  # normalized, unique key
    name: str
    primary_group: str  # Afiliasi Utama
    sub_group: str  # Sub-Afiliasi
    key_person: str  # UBO / Tokoh Kunci
    category: str  # Kategori
