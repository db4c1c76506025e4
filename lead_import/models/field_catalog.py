from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

"""FieldCatalog domain model.

The catalog is the ordered list of target lead fields a spreadsheet column can be
mapped to. It is configuration (see lead_import/config/default_import.yml), not
something derived from the uploaded data.
"""

__all__ = [
    "FieldKind",
    "FieldDefinition",
    "FieldCatalog",
]


class FieldKind(Enum):
    """Selects field-specific validation and coercion.

    - TEXT: trimmed string
    - EMAIL: shape-checked, used as a duplicate identity key
    - PHONE: digits-only identity key
    - CURRENCY: parsed into a number at import time
    """
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    CURRENCY = "currency"


@dataclass(frozen=True)
class FieldDefinition:
    key: str  # unique within the catalog
    label: str  # display label, may carry the "*" required marker
    required: bool = False
    kind: FieldKind = FieldKind.TEXT


class FieldCatalog:
    """Ordered, immutable collection of FieldDefinition.

    Iteration order is the catalog order, which is also the order in which
    ColumnMapper tries fields when suggesting a mapping.
    """

    def __init__(self, fields: Iterable[FieldDefinition]) -> None:
        self._fields: tuple[FieldDefinition, ...] = tuple(fields)
        keys = [f.key for f in self._fields]
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        if dupes:
            raise ValueError(f"duplicate field keys in catalog: {dupes}")
        self._by_key = {f.key: f for f in self._fields}

    def __iter__(self) -> Iterator[FieldDefinition]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __repr__(self) -> str:  # pragma: no cover (debug aid)
        return f"FieldCatalog({[f.key for f in self._fields]})"

    def get(self, key: str) -> FieldDefinition | None:
        return self._by_key.get(key)

    @property
    def keys(self) -> list[str]:
        return [f.key for f in self._fields]

    @property
    def required_keys(self) -> list[str]:
        return [f.key for f in self._fields if f.required]

    def keys_of_kind(self, kind: FieldKind) -> list[str]:
        return [f.key for f in self._fields if f.kind is kind]
