from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Sequence
from typing import Any

from ..db.repository import DuplicateError, LeadRepository, RepositoryError
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.field_catalog import FieldCatalog, FieldKind
from ..models.findings import DuplicateFlag, ValidationError
from ..models.import_report import ImportReport, ReportAccumulator, RowOutcome
from ..models.mapping import ColumnMapping
from ..models.row_data import Cell, RawRow
from .normalize import cell_text
from .progress import RowProgressTracker
from .validation import resolve_field

"""Batch commit of validated rows into the lead repository.

Best-effort and non-transactional: rows are visited strictly in file order and
each one ends in exactly one outcome.

1. row has a duplicate flag          -> skipped-duplicate (takes precedence)
2. row has a validation error        -> skipped-invalid
3. otherwise project + repository.create():
   success -> succeeded, any exception -> failed (the batch continues)

Cancellation is cooperative: the token is checked before each row, an in-flight
create() is allowed to finish, and later rows are not attempted.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "CancelToken",
    "ImportExecutor",
    "parse_currency",
    "project_row",
]

_CURRENCY_KEEP_RE = re.compile(r"[^\d.,]")
# R$, US$, $, €, £ (prefix or suffix)
_CURRENCY_SYMBOL_RE = re.compile(r"[A-Za-z]{0,3}\$|€|£")
_LETTER_RE = re.compile(r"[A-Za-z]")


class CancelToken:
    """Thread-safe cancellation flag checked between rows."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _strip_grouping(digits: str, sep: str) -> str:
    """Decide whether a lone separator kind is grouping or decimal."""
    parts = digits.split(sep)
    if len(parts) > 2 or len(parts[-1]) == 3:
        return "".join(parts)  # 1.234.567 / 1,500 -> grouping
    return ".".join(parts)


def parse_currency(value: Cell) -> float | None:
    """Parse a currency-like cell ("R$ 1.234,56", "1,234.56", 1500) into a number.

    When both "." and "," appear, the last one is the decimal separator. A single
    kind of separator is grouping if it occurs more than once or is followed by
    exactly three digits, otherwise decimal. A "-" before the first digit or
    surrounding parentheses make the value negative. Returns None when nothing
    numeric remains, when letters other than a currency symbol are mixed in
    ("1e5", "a combinar") or when a "-" follows the first digit ("100-200").
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if value != value else float(value)
    text = cell_text(value)
    if not text:
        return None
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    text = _CURRENCY_SYMBOL_RE.sub("", text)
    if _LETTER_RE.search(text):
        return None
    first_digit = next((i for i, ch in enumerate(text) if ch.isdigit()), None)
    if first_digit is None or "-" in text[first_digit:]:
        return None
    if "-" in text[:first_digit]:
        negative = not negative
    cleaned = _CURRENCY_KEEP_RE.sub("", text[first_digit:]).strip(".,")
    if "." in cleaned and "," in cleaned:
        decimal = "." if cleaned.rfind(".") > cleaned.rfind(",") else ","
        grouping = "," if decimal == "." else "."
        cleaned = cleaned.replace(grouping, "").replace(decimal, ".")
    elif "," in cleaned:
        cleaned = _strip_grouping(cleaned, ",")
    elif "." in cleaned:
        cleaned = _strip_grouping(cleaned, ".")
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return -number if negative else number


def project_row(row: RawRow, mapping: ColumnMapping, catalog: FieldCatalog) -> dict[str, Any]:
    """Build the lead record for row: trimmed strings, parsed currency, no empties."""
    record: dict[str, Any] = {}
    for definition in catalog:
        if not mapping.is_mapped(definition.key):
            continue
        value = resolve_field(row, mapping, definition.key)
        if definition.kind is FieldKind.CURRENCY:
            number = parse_currency(value)
            if number is None:
                if cell_text(value):
                    logger.debug(f"row {row.row_number}: unparseable {definition.key}={value!r} dropped")
                continue
            record[definition.key] = number
        else:
            text = cell_text(value)
            if text:
                record[definition.key] = text
    return record


def _error_type(exc: Exception) -> str:
    if isinstance(exc, DuplicateError):
        return "REPOSITORY_DUPLICATE"
    if isinstance(exc, RepositoryError):
        return "REPOSITORY_ERROR"
    return "UNEXPECTED_ERROR"


class ImportExecutor:
    def __init__(self, catalog: FieldCatalog) -> None:
        self.catalog = catalog

    def execute(
        self,
        rows: Sequence[RawRow],
        mapping: ColumnMapping,
        errors: Iterable[ValidationError],
        duplicates: Iterable[DuplicateFlag],
        repository: LeadRepository,
        *,
        cancel_token: CancelToken | None = None,
        warnings: Sequence[str] = (),
        degraded: bool = False,
        error_log: ErrorLogBuffer | None = None,
        progress: RowProgressTracker | None = None,
        file_name: str = "<upload>",
    ) -> ImportReport:
        """Commit every eligible row and return the ImportReport."""
        duplicate_rows = {d.row_number for d in duplicates}
        error_messages: dict[int, list[str]] = {}
        for e in errors:
            error_messages.setdefault(e.row_number, []).append(f"{e.field_key}: {e.message}")

        acc = ReportAccumulator()
        cancelled = False
        for row in rows:
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
                logger.warning(f"import cancelled before row {row.row_number}")
                break
            self._step(acc, row, mapping, duplicate_rows, error_messages, repository, error_log, file_name)
            if progress is not None:
                progress.advance()

        report = acc.finish(
            cancelled=cancelled,
            degraded_duplicate_check=degraded,
            warnings=tuple(warnings),
        )
        logger.info(
            f"import: total={report.total_rows} succeeded={report.succeeded} "
            f"skipped_duplicate={report.skipped_duplicate} skipped_invalid={report.skipped_invalid} "
            f"failed={report.failed} cancelled={report.cancelled}"
        )
        return report

    def _step(
        self,
        acc: ReportAccumulator,
        row: RawRow,
        mapping: ColumnMapping,
        duplicate_rows: set[int],
        error_messages: dict[int, list[str]],
        repository: LeadRepository,
        error_log: ErrorLogBuffer | None,
        file_name: str,
    ) -> ReportAccumulator:
        n = row.row_number
        if n in duplicate_rows:
            return acc.add(n, RowOutcome.SKIPPED_DUPLICATE, "duplicate lead")
        if n in error_messages:
            return acc.add(n, RowOutcome.SKIPPED_INVALID, "; ".join(error_messages[n]))
        try:
            record = project_row(row, mapping, self.catalog)
            new_id = repository.create(record)
        except Exception as e:
            logger.error(f"row {n}: create failed: {e}")
            if error_log is not None:
                error_log.append(ErrorRecord.create(file=file_name, row=n, error_type=_error_type(e), message=str(e)))
            return acc.add(n, RowOutcome.FAILED, str(e) or type(e).__name__)
        return acc.add(n, RowOutcome.SUCCEEDED, None if new_id is None else str(new_id))
