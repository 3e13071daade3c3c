"""
Record Cache
============
An explicitly owned cache of full records keyed by id.

The cache is created by the caller and passed to whatever needs it; there
is no process-wide state. Entries expire after `ttl_seconds` and can be
dropped early with `invalidate()` (e.g. after the caller edits or deletes
a record).
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from .models import QuestionRecord

logger = logging.getLogger(__name__)

FetchFn = Callable[[list[str]], list[QuestionRecord]]

DEFAULT_TTL_SECONDS = 300.0


class RecordCache:
    """Id -> record cache with a per-entry time-to-live."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, QuestionRecord]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: str) -> bool:
        return self.get(record_id) is not None

    def get(self, record_id: str) -> Optional[QuestionRecord]:
        entry = self._entries.get(record_id)
        if entry is None:
            return None
        stored_at, record = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[record_id]
            return None
        return record

    def put(self, record: QuestionRecord):
        if not record.id:
            return
        self._entries[record.id] = (self._clock(), record)

    def put_many(self, records: Iterable[QuestionRecord]):
        for record in records:
            self.put(record)

    def get_many(
        self, ids: Iterable[str]
    ) -> tuple[dict[str, QuestionRecord], list[str]]:
        """Split `ids` into cached records and ids that still need fetching."""
        found: dict[str, QuestionRecord] = {}
        missing: list[str] = []
        for record_id in ids:
            record = self.get(record_id)
            if record is None:
                if record_id not in missing:
                    missing.append(record_id)
            else:
                found[record_id] = record
        return found, missing

    def invalidate(self, ids: Iterable[str]):
        for record_id in ids:
            self._entries.pop(record_id, None)

    def clear(self):
        self._entries.clear()


class CachedFetcher:
    """
    Wraps a `fetch_full_records_by_ids` callable so ids already fetched
    within the cache TTL are served locally.
    """

    def __init__(self, fetch: FetchFn, cache: Optional[RecordCache] = None):
        self.fetch = fetch
        self.cache = cache if cache is not None else RecordCache()

    def __call__(self, ids: list[str]) -> list[QuestionRecord]:
        found, missing = self.cache.get_many(ids)

        if missing:
            logger.debug(
                f"Fetching {len(missing)} records "
                f"({len(found)} served from cache)"
            )
            fetched = self.fetch(missing)
            self.cache.put_many(fetched)
            for record in fetched:
                if record.id:
                    found[record.id] = record

        return [found[record_id] for record_id in ids if record_id in found]
