"""Domain models for the lead import pipeline.

This package contains the records passed between the parser, the column mapper,
the validation engine and the import executor.
"""

from .error_record import ErrorRecord
from .field_catalog import FieldCatalog, FieldDefinition, FieldKind
from .findings import DuplicateFlag, MatchField, MatchSource, ValidationError, ValidationResult
from .import_report import ImportReport, ReportAccumulator, RowOutcome, RowResult
from .mapping import ColumnMapping
from .row_data import Cell, RawRow

__all__ = [
    # Catalog / mapping
    "FieldCatalog",
    "FieldDefinition",
    "FieldKind",
    "ColumnMapping",
    # Rows
    "Cell",
    "RawRow",
    # Findings
    "ValidationError",
    "DuplicateFlag",
    "MatchSource",
    "MatchField",
    "ValidationResult",
    # Results
    "ImportReport",
    "ReportAccumulator",
    "RowOutcome",
    "RowResult",
    "ErrorRecord",
]
