from __future__ import annotations

import itertools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from ..services.normalize import normalize_email, normalize_phone

"""Lead repository contract.

The import pipeline only talks to the repository through this protocol and only
mutates it through create(). InMemoryLeadRepository is a list-backed
implementation used for dry runs and tests; PostgresLeadRepository lives in
lead_import/db/postgres.py.
"""

__all__ = [
    "LeadRecord",
    "ExistingRecord",
    "RepositoryError",
    "DuplicateError",
    "LeadRepository",
    "InMemoryLeadRepository",
]

# field key -> coerced value (str / float)
LeadRecord = Mapping[str, Any]


@dataclass(frozen=True)
class ExistingRecord:
    """Identity keys of a lead already stored in the repository."""
    email: str | None = None
    phone: str | None = None


class RepositoryError(Exception):
    """Base error for repository failures (connection, constraint, ...)."""


class DuplicateError(RepositoryError):
    """create() rejected the record because its identity already exists."""

    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"duplicate {field}: {value}")


class LeadRepository(Protocol):
    def create(self, record: LeadRecord) -> Any:
        """Store record and return its new id. Raises RepositoryError on failure."""
        ...

    def find_by_email(self, email: str) -> Mapping[str, Any] | None:
        ...

    def find_by_phone(self, phone: str) -> Mapping[str, Any] | None:
        ...

    def list_existing(self) -> Sequence[ExistingRecord]:
        ...


class InMemoryLeadRepository:
    """List-backed repository enforcing unique email and phone.

    Ids are sequential integers starting at 1. Archived leads stay stored but are
    excluded from list_existing(), like the live repository does.
    """

    def __init__(self, records: Sequence[Mapping[str, Any]] | None = None) -> None:
        self._ids = itertools.count(1)
        self.records: dict[int, dict[str, Any]] = {}
        for record in records or []:
            self.records[next(self._ids)] = dict(record)

    def create(self, record: LeadRecord) -> int:
        email = normalize_email(record.get("email"))
        if email and self.find_by_email(email) is not None:
            raise DuplicateError("email", email)
        phone = normalize_phone(record.get("phone"))
        if phone and self.find_by_phone(phone) is not None:
            raise DuplicateError("phone", phone)
        new_id = next(self._ids)
        self.records[new_id] = dict(record)
        return new_id

    def find_by_email(self, email: str) -> Mapping[str, Any] | None:
        key = normalize_email(email)
        return next((r for r in self.records.values() if key and normalize_email(r.get("email")) == key), None)

    def find_by_phone(self, phone: str) -> Mapping[str, Any] | None:
        key = normalize_phone(phone)
        return next((r for r in self.records.values() if key and normalize_phone(r.get("phone")) == key), None)

    def list_existing(self) -> list[ExistingRecord]:
        return [
            ExistingRecord(email=r.get("email"), phone=r.get("phone"))
            for r in self.records.values()
            if not r.get("is_archived")
        ]
