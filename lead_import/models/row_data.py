from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Union

"""RawRow model for the lead import pipeline.

A RawRow is one data line of the uploaded spreadsheet after parsing. Values are
keyed by the header labels discovered at parse time; the ColumnMapping decides
which label feeds which lead field.
"""

__all__ = [
    "Cell",
    "RawRow",
    "is_empty_cell",
]

# 空セルは None で表現する
Cell = Union[str, int, float, None]


def is_empty_cell(value: object) -> bool:
    """True for None, NaN and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


@dataclass(frozen=True)
class RawRow:
    """Logical representation of a single spreadsheet line.

    row_number is the 1-based line number in the source file, so that a header on
    line 1 makes the first data row line 2.
    """
    row_number: int
    values: Mapping[str, Cell] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # 読み取り専用ビューで不変性を担保
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, column: str) -> Cell:
        return self.values.get(column)

    def is_blank(self) -> bool:
        return all(is_empty_cell(v) for v in self.values.values())
