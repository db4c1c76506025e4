from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

"""Import result models for the lead import pipeline.

ImportReport is the only artifact that outlives a pipeline run. Its counters are
derived from the per-row outcomes, so

    total_rows == succeeded + skipped_duplicate + skipped_invalid + failed

holds by construction. ReportAccumulator is the fold state the executor threads
through the rows in file order.
"""

__all__ = [
    "RowOutcome",
    "RowResult",
    "ImportReport",
    "ReportAccumulator",
]


class RowOutcome(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED_DUPLICATE = "skipped-duplicate"
    SKIPPED_INVALID = "skipped-invalid"
    FAILED = "failed"


@dataclass(frozen=True)
class RowResult:
    row_number: int
    outcome: RowOutcome
    detail: str | None = None  # 作成 ID / スキップ理由 / エラーメッセージ


@dataclass(frozen=True)
class ImportReport:
    """Aggregated result of one batch commit."""
    per_row_outcome: tuple[RowResult, ...]
    started_at: datetime
    finished_at: datetime
    cancelled: bool = False
    degraded_duplicate_check: bool = False
    warnings: tuple[str, ...] = ()

    def _count(self, outcome: RowOutcome) -> int:
        return sum(1 for r in self.per_row_outcome if r.outcome is outcome)

    @property
    def total_rows(self) -> int:
        return len(self.per_row_outcome)

    @property
    def succeeded(self) -> int:
        return self._count(RowOutcome.SUCCEEDED)

    @property
    def skipped_duplicate(self) -> int:
        return self._count(RowOutcome.SKIPPED_DUPLICATE)

    @property
    def skipped_invalid(self) -> int:
        return self._count(RowOutcome.SKIPPED_INVALID)

    @property
    def failed(self) -> int:
        return self._count(RowOutcome.FAILED)

    @property
    def elapsed_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def fully_imported(self) -> bool:
        """True when every row was committed and nothing was cancelled."""
        return not self.cancelled and self.succeeded == self.total_rows

    def outcome_for(self, row_number: int) -> RowResult | None:
        for r in self.per_row_outcome:
            if r.row_number == row_number:
                return r
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "succeeded": self.succeeded,
            "skipped_duplicate": self.skipped_duplicate,
            "skipped_invalid": self.skipped_invalid,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "degraded_duplicate_check": self.degraded_duplicate_check,
            "warnings": list(self.warnings),
            "elapsed_seconds": self.elapsed_seconds,
            "per_row_outcome": [
                {"row_number": r.row_number, "outcome": r.outcome.value, "detail": r.detail}
                for r in self.per_row_outcome
            ],
        }


@dataclass
class ReportAccumulator:
    """Fold state for the executor: one RowResult per visited row, in order."""
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    results: list[RowResult] = field(default_factory=list)

    def add(self, row_number: int, outcome: RowOutcome, detail: str | None = None) -> ReportAccumulator:
        self.results.append(RowResult(row_number=row_number, outcome=outcome, detail=detail))
        return self

    def finish(
        self,
        *,
        cancelled: bool = False,
        degraded_duplicate_check: bool = False,
        warnings: tuple[str, ...] = (),
    ) -> ImportReport:
        return ImportReport(
            per_row_outcome=tuple(self.results),
            started_at=self.started_at,
            finished_at=datetime.now(UTC),
            cancelled=cancelled,
            degraded_duplicate_check=degraded_duplicate_check,
            warnings=warnings,
        )
