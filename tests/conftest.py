# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from mkbd_etl.logging.init import reset_logging
from mkbd_etl.models.master_entry import EmitenEntry
from mkbd_etl.services.master_data import MasterDataCache, master_data


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
master_data: ./master/master-emiten.xlsx
persist: true
timezone: UTC
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: mkbd
thresholds:
  ownership_threshold: 0.20
  equity_factor: 0.20
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "etl.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def write_workbook(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    """Write a real .xlsx with header-less sheets (raw grids)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


def letterhead(title: str) -> list[list[object]]:
    """Letterhead plus the column-indicator row; the header row goes at index 6."""
    return [
        ["PT CONTOH SEKURITAS"],
        ["Perusahaan Efek: PT Contoh"],
        ["Tanggal: 31 Desember 2024"],
        [title],
        [None],
        ["A", "B", "C", "D", "E"],
    ]


@pytest.fixture()
def master_entries() -> dict[str, EmitenEntry]:
    return {
        "AAA": EmitenEntry("AAA", "PT Alpha Tbk", "GRUP ALPHA", "", "Budi", "Konglomerasi"),
        "AAB": EmitenEntry("AAB", "PT Alpha Dua Tbk", "GRUP ALPHA", "", "Budi", "Konglomerasi"),
        "BBB": EmitenEntry("BBB", "PT Beta Tbk", "GRUP BETA", "", "Sari", "BUMN"),
    }


@pytest.fixture()
def loaded_cache(master_entries) -> MasterDataCache:
    cache = MasterDataCache()
    cache.replace(master_entries)
    return cache


@pytest.fixture()
def empty_cache() -> MasterDataCache:
    return MasterDataCache()


@pytest.fixture()
def make_workbook():
    return write_workbook


@pytest.fixture()
def make_letterhead():
    return letterhead


@pytest.fixture(autouse=True)
def _fresh_process_state():
    # setup_logging binds sys.stdout once; the CLI fills the shared cache
    reset_logging()
    master_data.clear()
    yield
    reset_logging()
    master_data.clear()


def vd59_grid() -> list[list[object]]:
    """Working capital form: inputs near the top, deductions on lines 30-90."""
    lines: list[list[object]] = [[f"Pos {i}", None] for i in range(94)]
    lines[0] = ["Total aset lancar", 2_000_000]
    lines[1] = ["Total liabilitas", 300_000]
    lines[2] = ["Total ranking liabilities", None]
    lines[3] = ["Total modal kerja (baris 9 dikurangi baris 13)", None]
    lines[4] = ["Utang sub-ordinasi", 50_000]
    lines[5] = ["Total modal kerja bersih (baris 15 + 17)", 999]
    lines[6] = ["Total modal kerja bersih baris 18", 123]
    lines[7] = ["Modal kerja bersih disesuaikan", 5]
    lines[29] = ["Pengurangan risiko pasar", 10_000]
    lines[30] = ["Pengurangan risiko kredit", 20_000]
    lines[91] = ["Modal kerja bersih disesuaikan", None]
    lines[92] = ["Nilai MKBD yang diwajibkan", 25_000]
    lines[93] = ["Lebih (kurang) MKBD", None]
    return letterhead("FORMULIR 9") + [["Uraian", "JUMLAH"]] + lines


def vd58_grid() -> list[list[object]]:
    lines = [
        ["Total Liabilitas", 1000],
        ["Total Ranking Liabilities", None],
        ["Total Liabilitas dan Ranking Liabilities", None],
        ["Dikurangi utang sub-ordinasi", 200],
        ["Total Liabilitas dan Ranking Liabilities tanpa utang subordinasi", None],
        ["Baris 16 x 6,25%", None],
        ["Persyaratan minimal MKBD *", 250],
        ["MKBD yang dipersyaratkan (nilai lebih tinggi)", None],
        ["Dana yang dikelola MI", 100_000],
        ["Baris 23 x 0,1%", None],
        ["Persyaratan minimal MKBD **", 500],
        ["MKBD yang dipersyaratkan ditambah baris 24", None],
        ["MKBD yang diwajibkan bagi PE dengan izin", None],
    ]
    return letterhead("FORMULIR 8") + [["Uraian", "NILAI"]] + lines


def vd52_grid(equity: int = 150_000) -> list[list[object]]:
    return letterhead("FORMULIR 2") + [
        ["No", "Uraian", "Jumlah"],
        [1, "Kas dan setara kas", 100_000],
        [2, "TOTAL EKUITAS", equity],
    ]


def vd510_grid() -> list[list[object]]:
    header = ["No", "Kode Efek", "Nilai Pasar Wajar", "Persentase", "Nilai Rangking Liabilities"]
    return [
        ["TABEL 10A"],
        ["Kas", 1],
        ["TABEL 10C PORTOFOLIO EFEK"],
        header,
        [1, "AAA", 500_000, "33.33", 999],
        [2, "BBB", 300_000, "20.00", 999],
        [None, "Total Portofolio", None, None, None],
        ["TABEL 10D"],
        ["ZZZ", 1, 1],
    ]


def write_report(path: Path, equity: int = 150_000) -> Path:
    """Complete MKBD report: VD52 equity, VD510 portfolio, VD59 and VD58 forms."""
    return write_workbook(
        path,
        {"VD52": vd52_grid(equity), "VD510": vd510_grid(), "VD59": vd59_grid(), "VD58": vd58_grid()},
    )


@pytest.fixture()
def make_report():
    return write_report


MASTER_ROWS = [
    {"Kode": "AAA", "Nama Emiten": "PT Alpha Tbk", "Afiliasi Utama": "GRUP ALPHA", "Sub-Afiliasi": "",
     "UBO / Tokoh Kunci": "Budi", "Kategori": "Konglomerasi"},
    {"Kode": "AAB", "Nama Emiten": "PT Alpha Dua Tbk", "Afiliasi Utama": "GRUP ALPHA", "Sub-Afiliasi": "",
     "UBO / Tokoh Kunci": "Budi", "Kategori": "Konglomerasi"},
    {"Kode": "BBB", "Nama Emiten": "PT Beta Tbk", "Afiliasi Utama": "GRUP BETA", "Sub-Afiliasi": "",
     "UBO / Tokoh Kunci": "Sari", "Kategori": "BUMN"},
]


def write_master(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(MASTER_ROWS).to_excel(path, index=False)
    return path


@pytest.fixture()
def make_master():
    return write_master


@pytest.fixture()
def form_grids():
    return {"VD52": vd52_grid, "VD510": vd510_grid, "VD59": vd59_grid, "VD58": vd58_grid}
