from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence

from ..db.repository import ExistingRecord
from ..models.field_catalog import FieldCatalog, FieldKind
from ..models.findings import DuplicateFlag, MatchField, MatchSource, ValidationError, ValidationResult
from ..models.mapping import ColumnMapping
from ..models.row_data import Cell, RawRow
from .normalize import cell_text, normalize_email, normalize_phone

"""Validation engine: per-row field rules plus duplicate detection.

Rules, applied to every row in this order (a row may collect several findings):
1. required fields resolve to a non-empty trimmed string
2. email-kind fields, when non-empty, look like local@domain.tld (ASCII, no spaces)
3. rows sharing a normalized email or phone inside the file are all flagged
4. rows whose normalized email or phone exists in the repository snapshot are flagged

Errors and duplicate flags are computed independently; the executor decides the
skip precedence. The repository snapshot is loaded once per pass. If loading
fails, the pass continues with within-file detection only and reports a warning.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ExistingRecord",
    "ExistingSource",
    "ValidationEngine",
    "resolve_field",
    "is_valid_email",
    "MSG_REQUIRED",
    "MSG_INVALID_FORMAT",
    "WARN_DEGRADED",
]

MSG_REQUIRED = "required field missing"
MSG_INVALID_FORMAT = "invalid format"
WARN_DEGRADED = "existing records unavailable; duplicate check limited to within-file matches"

_EMAIL_RE = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)*\.[A-Za-z]{2,}$"
)


ExistingSource = Iterable[ExistingRecord] | Callable[[], Iterable[ExistingRecord]]


def is_valid_email(text: str) -> bool:
    return bool(_EMAIL_RE.match(text))


def resolve_field(row: RawRow, mapping: ColumnMapping, field_key: str) -> Cell:
    """First non-empty cell among the columns mapped to field_key (header order)."""
    for column in mapping.columns_for(field_key):
        value = row.get(column)
        if cell_text(value):
            return value
    return None


class ValidationEngine:
    def __init__(self, catalog: FieldCatalog) -> None:
        self.catalog = catalog

    def validate(
        self,
        rows: Sequence[RawRow],
        mapping: ColumnMapping,
        existing_records: ExistingSource | None = None,
    ) -> ValidationResult:
        """Run all rules over rows.

        existing_records is either an iterable of ExistingRecord or a zero-argument
        loader such as repository.list_existing. It is materialized exactly once;
        None means "no repository" and skips rule 4 without a warning.
        """
        errors: list[ValidationError] = []
        for row in rows:
            errors.extend(self._row_errors(row, mapping))

        warnings: list[str] = []
        degraded = False
        snapshot: list[ExistingRecord] | None = None
        if existing_records is not None:
            try:
                snapshot = self._load_snapshot(existing_records)
            except Exception as e:
                degraded = True
                warnings.append(WARN_DEGRADED)
                logger.warning(f"{WARN_DEGRADED} ({type(e).__name__}: {e})")

        email_keys = self._identity_keys(rows, mapping, FieldKind.EMAIL, normalize_email)
        phone_keys = self._identity_keys(rows, mapping, FieldKind.PHONE, normalize_phone)

        flags: list[DuplicateFlag] = []
        flags.extend(self._within_file(email_keys, MatchField.EMAIL))
        flags.extend(self._within_file(phone_keys, MatchField.PHONE))
        if snapshot is not None:
            known_emails = {k for k in (normalize_email(r.email) for r in snapshot) if k}
            known_phones = {k for k in (normalize_phone(r.phone) for r in snapshot) if k}
            flags.extend(self._existing(email_keys, known_emails, MatchField.EMAIL))
            flags.extend(self._existing(phone_keys, known_phones, MatchField.PHONE))

        duplicates = tuple(sorted(
            dict.fromkeys(flags),
            key=lambda f: (f.row_number, f.matched_against.value, f.matched_field.value),
        ))
        logger.info(
            f"validation: rows={len(rows)} errors={len(errors)} "
            f"duplicate_flags={len(duplicates)} degraded={degraded}"
        )
        return ValidationResult(
            errors=tuple(errors),
            duplicates=duplicates,
            warnings=tuple(warnings),
            degraded=degraded,
        )

    def _row_errors(self, row: RawRow, mapping: ColumnMapping) -> list[ValidationError]:
        found: list[ValidationError] = []
        for key in self.catalog.required_keys:
            if not cell_text(resolve_field(row, mapping, key)):
                found.append(ValidationError(row.row_number, key, MSG_REQUIRED))
        for key in self.catalog.keys_of_kind(FieldKind.EMAIL):
            if not mapping.is_mapped(key):
                continue
            text = cell_text(resolve_field(row, mapping, key))
            if text and not is_valid_email(text):
                found.append(ValidationError(row.row_number, key, MSG_INVALID_FORMAT))
        return found

    @staticmethod
    def _load_snapshot(source: ExistingSource) -> list[ExistingRecord]:
        records = source() if callable(source) else source
        return list(records)

    def _identity_keys(
        self,
        rows: Sequence[RawRow],
        mapping: ColumnMapping,
        kind: FieldKind,
        normalizer: Callable[[Cell], str | None],
    ) -> dict[int, set[str]]:
        """row_number -> normalized keys from every field of the given kind."""
        keys: dict[int, set[str]] = {}
        field_keys = [k for k in self.catalog.keys_of_kind(kind) if mapping.is_mapped(k)]
        for row in rows:
            row_keys = {normalizer(resolve_field(row, mapping, k)) for k in field_keys}
            row_keys.discard(None)
            if row_keys:
                keys[row.row_number] = row_keys  # type: ignore[assignment]
        return keys

    @staticmethod
    def _within_file(keys: dict[int, set[str]], matched_field: MatchField) -> list[DuplicateFlag]:
        rows_by_key: dict[str, list[int]] = defaultdict(list)
        for row_number, row_keys in keys.items():
            for key in row_keys:
                rows_by_key[key].append(row_number)
        flagged: set[int] = set()
        for row_numbers in rows_by_key.values():
            if len(row_numbers) > 1:
                flagged.update(row_numbers)
        return [DuplicateFlag(n, MatchSource.WITHIN_FILE, matched_field) for n in sorted(flagged)]

    @staticmethod
    def _existing(
        keys: dict[int, set[str]], known: set[str], matched_field: MatchField
    ) -> list[DuplicateFlag]:
        return [
            DuplicateFlag(n, MatchSource.EXISTING_REPOSITORY, matched_field)
            for n, row_keys in sorted(keys.items())
            if row_keys & known
        ]
