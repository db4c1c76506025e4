from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from ..db.repository import LeadRepository
from ..logging.error_log import ErrorLogBuffer
from ..models.field_catalog import FieldCatalog
from ..models.findings import ValidationResult
from ..models.import_report import ImportReport
from ..models.mapping import ColumnMapping
from ..tabular.reader import ParsedFile, ParseError, TabularFormat, parse
from .column_mapper import ColumnMapper, MappingError
from .executor import CancelToken, ImportExecutor
from .existing_cache import ExistingRecordsCache
from .progress import RowProgressTracker
from .validation import ValidationEngine

"""Pipeline controller: the Upload -> Mapping -> Validation -> Import state machine.

State transitions:

    UPLOAD --upload ok--> MAPPING --validate ok--> VALIDATION --run_import--> IMPORT --> DONE
                ^            ^  |                    |
                |            |  +--back_to_upload    +--back_to_mapping / back_to_upload
                +------------+
    any state --cancel--> CANCELLED;  DONE / CANCELLED --restart--> UPLOAD

ParseError keeps UPLOAD, MappingError keeps MAPPING; both are re-raised after
being stored in last_error. Only the ImportReport survives a cancel or restart.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "PipelineState",
    "TransitionError",
    "PipelineController",
]


class PipelineState(Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    VALIDATION = "validation"
    IMPORT = "import"
    DONE = "done"
    CANCELLED = "cancelled"


class TransitionError(Exception):
    """Raised when an operation is not allowed in the current state."""

    def __init__(self, operation: str, state: PipelineState) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"{operation} not allowed in state {state.value}")


TransitionListener = Callable[[PipelineState, PipelineState], None]


class PipelineController:
    def __init__(
        self,
        catalog: FieldCatalog,
        repository: LeadRepository,
        *,
        existing_cache: ExistingRecordsCache | None = None,
        error_log: ErrorLogBuffer | None = None,
        on_transition: TransitionListener | None = None,
        show_progress: bool = False,
    ) -> None:
        self.catalog = catalog
        self.repository = repository
        self.existing_cache = existing_cache
        self.error_log = error_log
        self.on_transition = on_transition
        self.show_progress = show_progress
        self.engine = ValidationEngine(catalog)
        self.executor = ImportExecutor(catalog)

        self.state = PipelineState.UPLOAD
        self.history: list[tuple[PipelineState, PipelineState]] = []
        self.last_error: Exception | None = None
        self.report: ImportReport | None = None
        self._clear_run()

    # -- internal helpers -------------------------------------------------

    def _clear_run(self) -> None:
        self.parsed: ParsedFile | None = None
        self.file_name: str = "<upload>"
        self.mapper: ColumnMapper | None = None
        self.committed_mapping: ColumnMapping | None = None
        self.validation: ValidationResult | None = None
        self.cancel_token = CancelToken()

    def _require(self, operation: str, *allowed: PipelineState) -> None:
        if self.state not in allowed:
            raise TransitionError(operation, self.state)

    def _move(self, new_state: PipelineState) -> None:
        old_state = self.state
        self.state = new_state
        self.history.append((old_state, new_state))
        logger.debug(f"pipeline: {old_state.value} -> {new_state.value}")
        if self.on_transition is not None:
            self.on_transition(old_state, new_state)

    def _load_existing(self):
        loader = self.repository.list_existing
        if self.existing_cache is None:
            return loader
        cache = self.existing_cache
        return lambda: cache.get(loader)

    # -- steps -------------------------------------------------------------

    def upload(self, data: bytes, format_hint: TabularFormat | str, file_name: str | None = None) -> ParsedFile:
        """Parse the upload; UPLOAD -> MAPPING with a suggested mapping."""
        self._require("upload", PipelineState.UPLOAD)
        try:
            parsed = parse(data, format_hint)
        except ParseError as e:
            self.last_error = e
            logger.error(f"upload rejected: {e}")
            raise
        self.last_error = None
        self.parsed = parsed
        self.file_name = file_name or "<upload>"
        self.mapper = ColumnMapper(parsed.headers, self.catalog)
        logger.info(f"{parsed.row_count} rows found in {self.file_name} ({len(parsed.headers)} columns)")
        self._move(PipelineState.MAPPING)
        return parsed

    @property
    def mapping(self) -> ColumnMapping | None:
        """Mapping currently shown to the user (suggestion + overrides)."""
        return self.mapper.mapping if self.mapper is not None else None

    def map_column(self, column: str, field_key: str | None) -> ColumnMapping:
        """Manual override while in MAPPING; None means ignore the column."""
        self._require("map_column", PipelineState.MAPPING)
        if self.mapper is None:
            raise TransitionError("map_column", self.state)
        self.mapper.override(column, field_key)
        return self.mapper.mapping

    def validate(self) -> ValidationResult:
        """Commit the mapping and validate; MAPPING -> VALIDATION."""
        self._require("validate", PipelineState.MAPPING)
        if self.mapper is None or self.parsed is None:
            raise TransitionError("validate", self.state)
        try:
            mapping = self.mapper.commit()
        except MappingError as e:
            self.last_error = e
            logger.error(f"mapping rejected: {e}")
            raise
        self.last_error = None
        self.committed_mapping = mapping
        self.validation = self.engine.validate(self.parsed.rows, mapping, self._load_existing())
        self._move(PipelineState.VALIDATION)
        return self.validation

    def back_to_mapping(self) -> None:
        """VALIDATION -> MAPPING; prior validation results are discarded."""
        self._require("back_to_mapping", PipelineState.VALIDATION)
        self.validation = None
        self.committed_mapping = None
        self._move(PipelineState.MAPPING)

    def back_to_upload(self) -> None:
        """MAPPING / VALIDATION -> UPLOAD; the parsed file is discarded."""
        self._require("back_to_upload", PipelineState.MAPPING, PipelineState.VALIDATION)
        self._clear_run()
        self._move(PipelineState.UPLOAD)

    def run_import(self) -> ImportReport:
        """VALIDATION -> IMPORT -> DONE (or CANCELLED when cancelled mid-batch)."""
        self._require("run_import", PipelineState.VALIDATION)
        if self.parsed is None or self.committed_mapping is None or self.validation is None:
            raise TransitionError("run_import", self.state)
        self._move(PipelineState.IMPORT)
        validation = self.validation
        progress = RowProgressTracker(self.parsed.row_count) if self.show_progress else None
        try:
            report = self.executor.execute(
                self.parsed.rows,
                self.committed_mapping,
                validation.errors,
                validation.duplicates,
                self.repository,
                cancel_token=self.cancel_token,
                warnings=validation.warnings,
                degraded=validation.degraded,
                error_log=self.error_log,
                progress=progress,
                file_name=self.file_name,
            )
        finally:
            if progress is not None:
                progress.close()
            if self.existing_cache is not None:
                self.existing_cache.invalidate()
        self.report = report
        if report.cancelled:
            self._clear_run()
            self._move(PipelineState.CANCELLED)
        else:
            self._move(PipelineState.DONE)
        return report

    def cancel(self) -> None:
        """Any state -> CANCELLED. Discards rows, mapping and findings.

        While an import is running the token stops the batch before the next row.
        """
        self.cancel_token.cancel()
        if self.state is PipelineState.IMPORT:
            return  # run_import() が行間でトークンを確認して遷移する
        if self.state is PipelineState.CANCELLED:
            return
        self._clear_run()
        self._move(PipelineState.CANCELLED)

    def restart(self) -> None:
        """DONE / CANCELLED -> UPLOAD for a new file; the last report stays readable."""
        self._require("restart", PipelineState.DONE, PipelineState.CANCELLED)
        self._clear_run()
        self.last_error = None
        self._move(PipelineState.UPLOAD)
