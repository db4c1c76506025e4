from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the import error log.

Each record is one JSON Lines entry describing a row that could not be committed
(or a file-level problem, with row=-1 as the sentinel for "row unknown").
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded file name (or "<upload>" when the caller gave none)
        row: 1-based line number. Use -1 for file-level errors
        error_type: classification in UPPER_SNAKE_CASE (e.g. REPOSITORY_DUPLICATE)
        message: repository error message or description
    """
    timestamp: str
    file: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass のフィールドのみ出力 (追加キー禁止)
        return json.dumps(asdict(self), ensure_ascii=False)
