from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from ..models.field_catalog import FieldCatalog
from ..models.mapping import ColumnMapping
from .normalize import normalize_label

"""Column mapping service: header -> lead field suggestion, overrides and commit.

Suggestion rule: a header maps to the first catalog field (in catalog order) whose
normalized label is a substring of the normalized header, or vice versa. Manual
overrides always win over suggestions and may unmap a column ("ignore").
"""

logger = logging.getLogger(__name__)

__all__ = [
    "MappingError",
    "suggest",
    "commit",
    "ColumnMapper",
]


class MappingError(Exception):
    """Raised when a mapping cannot be committed or edited.

    reason is one of: "missing-required", "unknown-column", "unknown-field".
    """

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


def _labels_match(header: str, label: str) -> bool:
    if not header or not label:
        return False
    return header in label or label in header


def suggest(headers: Sequence[str], catalog: FieldCatalog) -> ColumnMapping:
    """Propose a mapping for headers. Pure: same inputs, same mapping."""
    normalized_fields = [(f.key, normalize_label(f.label)) for f in catalog]
    pairs: dict[str, str | None] = {}
    for header in headers:
        normalized_header = normalize_label(header)
        pairs[header] = next(
            (key for key, label in normalized_fields if _labels_match(normalized_header, label)),
            None,
        )
    return ColumnMapping(pairs)


def commit(mapping: Mapping[str, str | None], catalog: FieldCatalog) -> ColumnMapping:
    """Validate mapping against the catalog and return the immutable snapshot.

    Raises:
        MappingError("unknown-field"): a column points at a key not in the catalog
        MappingError("missing-required"): a required field has no column mapped
    """
    snapshot = mapping if isinstance(mapping, ColumnMapping) else ColumnMapping(mapping)
    unknown = sorted({k for k in snapshot.values() if k not in catalog})
    if unknown:
        raise MappingError("unknown-field", f"{unknown}")
    missing = [key for key in catalog.required_keys if not snapshot.is_mapped(key)]
    if missing:
        raise MappingError("missing-required", f"no column mapped to {missing}")
    return snapshot


class ColumnMapper:
    """Holds the suggestion for one upload plus the user's manual overrides."""

    def __init__(self, headers: Sequence[str], catalog: FieldCatalog) -> None:
        self.headers: tuple[str, ...] = tuple(headers)
        self.catalog = catalog
        self.suggestion = suggest(self.headers, catalog)
        self._overrides: dict[str, str | None] = {}

    def override(self, column: str, field_key: str | None) -> None:
        """Map column to field_key manually; None maps it to "ignore"."""
        if column not in self.headers:
            raise MappingError("unknown-column", column)
        if field_key is not None and field_key not in self.catalog:
            raise MappingError("unknown-field", field_key)
        self._overrides[column] = field_key
        logger.debug(f"mapping override: {column!r} -> {field_key or 'ignore'}")

    @property
    def mapping(self) -> ColumnMapping:
        """Current mapping in header order: overrides first, then suggestions."""
        pairs: dict[str, str | None] = {}
        for header in self.headers:
            if header in self._overrides:
                pairs[header] = self._overrides[header]
            else:
                pairs[header] = self.suggestion.get(header)
        return ColumnMapping(pairs)

    def can_commit(self) -> bool:
        return all(self.mapping.is_mapped(key) for key in self.catalog.required_keys)

    def commit(self) -> ColumnMapping:
        return commit(self.mapping, self.catalog)
