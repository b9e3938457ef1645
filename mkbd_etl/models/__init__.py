"""Domain models for the MKBD report extraction pipeline.

Sheets and results produced by the extractor, reference data entries, the
per-run calculation context and the run-level statistics used by the CLI.
"""

from .calculation import CalculationContext, Thresholds
from .etl_result import ETLResult
from .issue_record import IssueRecord
from .master_entry import EmitenEntry, normalize_code
from .processing_result import FileStat, ProcessingResult
from .sheet import EnrichmentStats, ProcessedSheet, Row, SheetData, SheetMetadata

__all__ = [
    # Extraction models
    "Row",
    "SheetData",
    "ProcessedSheet",
    "SheetMetadata",
    "EnrichmentStats",
    "ETLResult",
    # Reference data
    "EmitenEntry",
    "normalize_code",
    # Calculation
    "CalculationContext",
    "Thresholds",
    # Run-level
    "FileStat",
    "ProcessingResult",
    "IssueRecord",
]
