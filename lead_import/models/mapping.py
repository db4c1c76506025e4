from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

"""ColumnMapping model.

Maps a spreadsheet column label to a lead field key. A column maps to at most one
field key; an ignored column is simply absent from the mapping. Several columns may
point at the same field key (the first non-empty cell wins at projection time).
"""

__all__ = [
    "ColumnMapping",
]


class ColumnMapping(Mapping[str, str]):
    """Immutable column-label -> field-key mapping."""

    def __init__(self, pairs: Mapping[str, str | None] | None = None) -> None:
        data: dict[str, str] = {}
        for column, field_key in (pairs or {}).items():
            if field_key:  # None / "" = ignore
                data[column] = field_key
        self._data = MappingProxyType(data)

    def __getitem__(self, column: str) -> str:
        return self._data[column]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._data) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._data.items()))

    def __repr__(self) -> str:
        return f"ColumnMapping({dict(self._data)!r})"

    def columns_for(self, field_key: str) -> list[str]:
        """Columns mapped to field_key, in mapping (header) order."""
        return [c for c, k in self._data.items() if k == field_key]

    def is_mapped(self, field_key: str) -> bool:
        return any(k == field_key for k in self._data.values())
