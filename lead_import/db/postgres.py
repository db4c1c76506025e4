from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extras import RealDictCursor

from .repository import DuplicateError, ExistingRecord, LeadRecord, RepositoryError

"""PostgreSQL lead repository (psycopg2).

One INSERT ... RETURNING id per create(), each in its own transaction, so a failed
row is rolled back without touching rows committed before it. A unique violation
surfaces as DuplicateError (a duplicate the validation snapshot did not know
about); every other driver error becomes RepositoryError.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "PostgresLeadRepository",
    "DEFAULT_COLUMN_NAMES",
]

# field key -> column name, for keys whose column is named differently
DEFAULT_COLUMN_NAMES: dict[str, str] = {
    "social_handle": "instagram",
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"invalid SQL identifier: {name!r}")
    return name


class PostgresLeadRepository:
    def __init__(
        self,
        connection: Any,
        table: str = "leads",
        column_names: Mapping[str, str] | None = None,
    ) -> None:
        self.connection = connection
        self.table = _check_identifier(table)
        self.column_names = dict(DEFAULT_COLUMN_NAMES if column_names is None else column_names)

    @classmethod
    def connect(cls, dsn: str, **kwargs: Any) -> PostgresLeadRepository:
        try:
            conn = psycopg2.connect(dsn)
        except psycopg2.Error as e:
            raise RepositoryError(f"connection failed: {e}") from e
        conn.autocommit = False
        return cls(conn, **kwargs)

    def close(self) -> None:
        if not self.connection.closed:
            self.connection.close()

    def _column(self, field_key: str) -> str:
        return _check_identifier(self.column_names.get(field_key, field_key))

    def create(self, record: LeadRecord) -> Any:
        columns = [self._column(k) for k in record.keys()]
        if not columns:
            raise RepositoryError("empty record")
        cols_sql = ",".join(f'"{c}"' for c in columns)
        placeholders = ",".join(["%s"] * len(columns))
        sql = f'INSERT INTO {self.table} ({cols_sql}) VALUES ({placeholders}) RETURNING id'
        try:
            with self.connection.cursor() as cur:
                cur.execute(sql, list(record.values()))
                new_id = cur.fetchone()[0]
            self.connection.commit()
        except pg_errors.UniqueViolation as e:
            self.connection.rollback()
            constraint = getattr(e.diag, "constraint_name", None) or "unique"
            raise DuplicateError("constraint", constraint) from e
        except psycopg2.Error as e:
            self.connection.rollback()
            raise RepositoryError(str(e).strip()) from e
        return new_id

    def _fetch_one(self, where_sql: str, value: str) -> Mapping[str, Any] | None:
        sql = f"SELECT * FROM {self.table} WHERE {where_sql} LIMIT 1"
        try:
            with self.connection.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, (value,))
                row = cur.fetchone()
            self.connection.rollback()  # 読み取りのみ: トランザクションを閉じる
        except psycopg2.Error as e:
            self.connection.rollback()
            raise RepositoryError(str(e).strip()) from e
        return dict(row) if row is not None else None

    def find_by_email(self, email: str) -> Mapping[str, Any] | None:
        return self._fetch_one("lower(email) = lower(%s)", email.strip())

    def find_by_phone(self, phone: str) -> Mapping[str, Any] | None:
        digits = re.sub(r"\D", "", phone)
        return self._fetch_one("regexp_replace(coalesce(phone, ''), '\\D', '', 'g') = %s", digits)

    def list_existing(self) -> list[ExistingRecord]:
        """Email/phone of every non-archived lead (archived = NULL counts as active)."""
        sql = f"SELECT email, phone FROM {self.table} WHERE is_archived IS NOT TRUE"
        try:
            with self.connection.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall()
            self.connection.rollback()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise RepositoryError(str(e).strip()) from e
        logger.debug(f"loaded {len(rows)} existing leads from {self.table}")
        return [ExistingRecord(email=email, phone=phone) for email, phone in rows]
