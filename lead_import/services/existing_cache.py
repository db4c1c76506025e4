from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..db.repository import ExistingRecord

"""Snapshot cache for existing repository records.

Explicitly constructed and injected into the pipeline controller (no module level
state). It keeps a single snapshot for ttl_seconds; going back from Validation to
Mapping and validating again reuses it instead of re-listing the repository. The
controller invalidates it after every import, since the repository has changed.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ExistingRecordsCache",
    "DEFAULT_TTL_SECONDS",
]

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class _CacheEntry:
    records: tuple[ExistingRecord, ...]
    expires_at: float


class ExistingRecordsCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: _CacheEntry | None = None
        self.loads = 0  # number of loader calls (hit/miss 確認用)

    def _is_expired(self, entry: _CacheEntry) -> bool:
        return self._clock() >= entry.expires_at

    def get(self, loader: Callable[[], Iterable[ExistingRecord]]) -> tuple[ExistingRecord, ...]:
        """Return the cached snapshot, calling loader on a miss.

        Loader exceptions propagate and nothing is cached, so the next call retries.
        """
        entry = self._entry
        if entry is not None and not self._is_expired(entry):
            return entry.records
        records = tuple(loader())
        self.loads += 1
        self._entry = _CacheEntry(records=records, expires_at=self._clock() + self.ttl_seconds)
        logger.debug(f"existing records cached: {len(records)} (ttl={self.ttl_seconds}s)")
        return records

    def invalidate(self) -> None:
        self._entry = None
