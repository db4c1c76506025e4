from __future__ import annotations

from ..models.import_report import ImportReport

"""SUMMARY line rendering for an ImportReport.

Format:
SUMMARY rows={total} succeeded={n} skipped_duplicate={n} skipped_invalid={n}
failed={n} cancelled={0|1} degraded={0|1} elapsed_sec={elapsed}
"""

__all__ = [
    "render_summary_line",
    "format_seconds",
]


def format_seconds(value: float) -> str:
    """Integral values without decimals, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(report: ImportReport) -> str:
    """Render the SUMMARY line for report.

    >>> from datetime import datetime, timezone
    >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> render_summary_line(ImportReport(per_row_outcome=(), started_at=t, finished_at=t))
    'SUMMARY rows=0 succeeded=0 skipped_duplicate=0 skipped_invalid=0 failed=0 cancelled=0 degraded=0 elapsed_sec=0'
    """
    return (
        f"SUMMARY rows={report.total_rows} "
        f"succeeded={report.succeeded} "
        f"skipped_duplicate={report.skipped_duplicate} "
        f"skipped_invalid={report.skipped_invalid} "
        f"failed={report.failed} "
        f"cancelled={int(report.cancelled)} "
        f"degraded={int(report.degraded_duplicate_check)} "
        f"elapsed_sec={format_seconds(report.elapsed_seconds)}"
    )
