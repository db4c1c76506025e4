from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.row_data import Cell, RawRow, is_empty_cell

"""Tabular file reader: spreadsheet / CSV bytes -> header + RawRow sequence.

- The first non-empty line is the header row; every later line is data.
- Header labels are trimmed but keep their case (case folding happens in the
  column mapper).
- A data line whose cells are all empty is discarded, so trailing blank lines do
  not inflate the row count. Line numbers of the remaining rows still refer to
  the source file.
- Only the first worksheet of a workbook is read; formulas, formatting and merged
  cells are not interpreted.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "TabularFormat",
    "ParseError",
    "ParsedFile",
    "format_from_filename",
    "parse",
]


class TabularFormat(Enum):
    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"


class ParseError(Exception):
    """Raised when the upload cannot be turned into header + rows.

    reason is one of: "empty-file", "unsupported-format", "unreadable-file".
    """

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


@dataclass(frozen=True)
class ParsedFile:
    headers: tuple[str, ...]
    rows: tuple[RawRow, ...]
    format: TabularFormat

    @property
    def row_count(self) -> int:
        return len(self.rows)


_EXCEL_ENGINES = {
    TabularFormat.XLSX: "openpyxl",
    TabularFormat.XLS: "xlrd",
}
_CSV_DELIMITERS = (",", ";", "\t")
_CSV_ENCODINGS = ("utf-8-sig", "latin-1")
_SNIFF_LINES = 20


def _coerce_format(format_hint: TabularFormat | str) -> TabularFormat:
    if isinstance(format_hint, TabularFormat):
        return format_hint
    try:
        return TabularFormat(str(format_hint).strip().lower().lstrip("."))
    except ValueError:
        raise ParseError("unsupported-format", f"format hint {format_hint!r}") from None


def format_from_filename(name: str | Path) -> TabularFormat:
    """Derive the format hint from a file extension (.xlsx / .xls / .csv)."""
    suffix = Path(name).suffix
    if not suffix:
        raise ParseError("unsupported-format", f"no extension in {str(name)!r}")
    return _coerce_format(suffix)


def _decode_csv(data: bytes) -> str:
    for encoding in _CSV_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ParseError("unreadable-file", "csv is not valid text")  # pragma: no cover (latin-1 accepts any byte)


def _sniff_delimiter(text: str) -> str:
    """Detect the delimiter with csv.Sniffer (quote aware).

    The sample is the first non-blank lines; if those are inconsistent (short
    rows), the header line alone decides. Falls back to ",".
    """
    lines = [line for line in text.splitlines() if line.strip()]
    sniffer = csv.Sniffer()
    for sample in ("\n".join(lines[:_SNIFF_LINES]), lines[0] if lines else ""):
        try:
            return sniffer.sniff(sample, delimiters="".join(_CSV_DELIMITERS)).delimiter
        except csv.Error:
            continue
    return ","


def _read_raw_frame(data: bytes, fmt: TabularFormat) -> pd.DataFrame:
    """Read every cell as-is (no header, no NA string conversion)."""
    if fmt is TabularFormat.CSV:
        text = _decode_csv(data)
        sep = _sniff_delimiter(text)
        # read_csv は先頭行から列数を決めるため最大列数を先に求める
        width = max((len(r) for r in csv.reader(io.StringIO(text), delimiter=sep)), default=0)
        if width == 0:
            return pd.DataFrame()
        return pd.read_csv(
            io.StringIO(text),
            sep=sep,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            na_values=[],
            skip_blank_lines=False,
            engine="python",
        )
    return pd.read_excel(
        io.BytesIO(data),
        sheet_name=0,
        header=None,
        dtype=object,
        keep_default_na=False,
        na_values=[],
        engine=_EXCEL_ENGINES[fmt],
    )


def _to_cell(value: Any) -> Cell:
    if isinstance(value, str):
        return None if is_empty_cell(value) else value
    if value is None or pd.isna(value):
        return None
    if hasattr(value, "item"):
        value = value.item()  # numpy scalar -> python
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (str, int, float)):
        return value
    return str(value)


def _header_label(value: Any) -> str:
    cell = _to_cell(value)
    if cell is None:
        return ""
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def _unique_headers(raw_labels: list[str]) -> list[tuple[int, str]]:
    """(column index, label) pairs; blank labels dropped, repeats suffixed " (n)"."""
    seen: dict[str, int] = {}
    result: list[tuple[int, str]] = []
    for idx, label in enumerate(raw_labels):
        if not label:
            continue
        count = seen.get(label, 0) + 1
        seen[label] = count
        result.append((idx, label if count == 1 else f"{label} ({count})"))
    return result


def parse(data: bytes, format_hint: TabularFormat | str) -> ParsedFile:
    """Parse raw upload bytes into headers and rows.

    Raises ParseError("empty-file") when fewer than two non-empty lines exist
    (a header plus at least one data row).
    """
    fmt = _coerce_format(format_hint)
    if not data:
        raise ParseError("empty-file")
    try:
        df = _read_raw_frame(data, fmt)
    except ParseError:
        raise
    except Exception as e:
        raise ParseError("unreadable-file", str(e)) from e

    lines = [[_to_cell(v) for v in raw] for raw in df.itertuples(index=False, name=None)]

    header_idx = next((i for i, cells in enumerate(lines) if not all(c is None for c in cells)), None)
    if header_idx is None:
        raise ParseError("empty-file")

    columns = _unique_headers([_header_label(v) for v in lines[header_idx]])
    rows: list[RawRow] = []
    for line_idx in range(header_idx + 1, len(lines)):
        cells = lines[line_idx]
        values = {label: (cells[col] if col < len(cells) else None) for col, label in columns}
        row = RawRow(row_number=line_idx + 1, values=values)
        if row.is_blank():
            continue
        rows.append(row)

    if not rows:
        raise ParseError("empty-file")

    logger.debug(f"parsed {fmt.value}: header_line={header_idx + 1} columns={len(columns)} rows={len(rows)}")
    return ParsedFile(headers=tuple(label for _, label in columns), rows=tuple(rows), format=fmt)

