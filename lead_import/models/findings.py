from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Row-scoped validation findings.

ValidationError and DuplicateFlag never abort the pipeline; they only mark rows to
be skipped at import time. They are plain records, not exceptions.
"""

__all__ = [
    "MatchSource",
    "MatchField",
    "ValidationError",
    "DuplicateFlag",
    "ValidationResult",
]


class MatchSource(Enum):
    EXISTING_REPOSITORY = "existing-repository"
    WITHIN_FILE = "within-file"


class MatchField(Enum):
    EMAIL = "email"
    PHONE = "phone"


@dataclass(frozen=True)
class ValidationError:
    row_number: int
    field_key: str
    message: str


@dataclass(frozen=True)
class DuplicateFlag:
    row_number: int
    matched_against: MatchSource
    matched_field: MatchField


@dataclass(frozen=True)
class ValidationResult:
    """Output of one validation pass.

    degraded is True when the existing-records snapshot could not be loaded and
    duplicate detection only covered matches inside the file.
    """
    errors: tuple[ValidationError, ...] = ()
    duplicates: tuple[DuplicateFlag, ...] = ()
    warnings: tuple[str, ...] = ()
    degraded: bool = False
    invalid_rows: frozenset[int] = field(init=False)
    duplicate_rows: frozenset[int] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "invalid_rows", frozenset(e.row_number for e in self.errors))
        object.__setattr__(self, "duplicate_rows", frozenset(d.row_number for d in self.duplicates))

    def errors_for(self, row_number: int) -> list[ValidationError]:
        return [e for e in self.errors if e.row_number == row_number]

    def flags_for(self, row_number: int) -> list[DuplicateFlag]:
        return [d for d in self.duplicates if d.row_number == row_number]

    @property
    def flagged_rows(self) -> frozenset[int]:
        """Rows that will be skipped at import (invalid or duplicate)."""
        return self.invalid_rows | self.duplicate_rows
