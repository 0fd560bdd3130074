"""
TTL cache of Greeks quotes over a pluggable key-value store.

A quote younger than ``stale_after`` is fresh, one between ``stale_after``
and ``ttl`` is served marked stale, and anything older is a miss. Corrupt
persisted data never propagates: a broken store is reset to empty and a
broken entry is dropped, each with a warning.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from ..exceptions import CacheCorruptionError
from ..models import GreeksQuote, QuoteKey
from ..storage import KeyValueStore
from ..utils import get_logger

logger = get_logger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=30)
DEFAULT_TTL = timedelta(minutes=60)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


@dataclass(frozen=True)
class CacheEntry:
    """A cached quote and when it was fetched."""

    key: QuoteKey
    quote: GreeksQuote
    fetched_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def is_stale(self, now: datetime, stale_after: timedelta = DEFAULT_STALE_AFTER) -> bool:
        return self.age(now) > stale_after

    def is_expired(self, now: datetime, ttl: timedelta = DEFAULT_TTL) -> bool:
        return self.age(now) > ttl

    def to_json(self) -> str:
        return json.dumps(
            {"quote": self.quote.to_dict(), "fetched_at": self.fetched_at.isoformat()},
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, key: QuoteKey, text: str) -> CacheEntry:
        """Decode a persisted entry; raises ``ValueError`` on any malformed field."""
        try:
            data = json.loads(text)
            fetched_at = datetime.fromisoformat(data["fetched_at"])
            quote = GreeksQuote.from_dict(data["quote"])
        except (AttributeError, KeyError, TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed cache entry for {key}: {e}") from e
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return cls(key=key, quote=quote, fetched_at=fetched_at)


@dataclass(frozen=True)
class CacheLookup:
    status: CacheStatus
    entry: Optional[CacheEntry] = None

    @property
    def quote(self) -> Optional[GreeksQuote]:
        return self.entry.quote if self.entry else None


@dataclass
class CacheStats:
    """Counters since the cache was created, plus current entry counts."""

    hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    writes: int = 0
    corrupt_entries: int = 0
    store_resets: int = 0
    entries: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "writes": self.writes,
            "corrupt_entries": self.corrupt_entries,
            "store_resets": self.store_resets,
            "entries": dict(self.entries),
        }


class GreeksCache:
    """
    Staleness-aware cache keyed by ``QuoteKey``.

    Parameters
    ----------
    store : KeyValueStore
        Persistence medium
    stale_after : timedelta
        Age at which a hit is reported stale
    ttl : timedelta
        Age at which a hit is treated as a miss
    clock : Callable[[], datetime]
        Timezone-aware UTC time source
    """

    def __init__(
        self,
        store: KeyValueStore,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if stale_after >= ttl:
            raise ValueError("stale_after must be shorter than ttl")
        self.store = store
        self.stale_after = stale_after
        self.ttl = ttl
        self._clock = clock
        self._stats = CacheStats()

    def _reset_corrupt_store(self, error: CacheCorruptionError) -> None:
        logger.warning(
            "Greeks cache store is corrupt, starting empty",
            extra={"error": str(error), "recovery_action": error.recovery_action},
        )
        self._stats.store_resets += 1
        self.store.clear()

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except CacheCorruptionError as e:
            self._reset_corrupt_store(e)
            return None

    def lookup(self, key: QuoteKey) -> CacheLookup:
        """Classify the cached quote for ``key`` as fresh, stale or missing."""
        raw = self._read(str(key))
        if raw is None:
            self._stats.misses += 1
            logger.debug("Greeks cache miss", extra={"key": str(key)})
            return CacheLookup(CacheStatus.MISS)

        try:
            entry = CacheEntry.from_json(key, raw)
        except ValueError as e:
            logger.warning(
                "Dropping corrupt Greeks cache entry",
                extra={"key": str(key), "error": str(e)},
            )
            self._stats.corrupt_entries += 1
            self._stats.misses += 1
            self.store.delete(str(key))
            return CacheLookup(CacheStatus.MISS)

        now = self._clock()
        if entry.is_expired(now, self.ttl):
            self._stats.misses += 1
            logger.debug(
                "Greeks cache entry expired",
                extra={"key": str(key), "age_seconds": entry.age(now).total_seconds()},
            )
            return CacheLookup(CacheStatus.MISS, entry)

        if entry.is_stale(now, self.stale_after):
            self._stats.stale_hits += 1
            logger.debug("Greeks cache stale hit", extra={"key": str(key)})
            return CacheLookup(CacheStatus.STALE, entry)

        self._stats.hits += 1
        logger.debug("Greeks cache hit", extra={"key": str(key)})
        return CacheLookup(CacheStatus.FRESH, entry)

    def put(self, key: QuoteKey, quote: GreeksQuote) -> CacheEntry:
        """Store ``quote`` as fetched now."""
        entry = CacheEntry(key=key, quote=quote, fetched_at=self._clock())
        try:
            self.store.set(str(key), entry.to_json())
        except CacheCorruptionError as e:
            self._reset_corrupt_store(e)
            self.store.set(str(key), entry.to_json())
        self._stats.writes += 1
        return entry

    def invalidate(self, key: QuoteKey) -> None:
        try:
            self.store.delete(str(key))
        except CacheCorruptionError as e:
            self._reset_corrupt_store(e)

    def clear(self) -> None:
        self.store.clear()

    def entries(self) -> list[CacheEntry]:
        """Every decodable entry in the store, expired ones included."""
        try:
            keys = self.store.keys()
        except CacheCorruptionError as e:
            self._reset_corrupt_store(e)
            return []

        found = []
        for text_key in keys:
            raw = self.store.get(text_key)
            if raw is None:
                continue
            try:
                found.append(CacheEntry.from_json(QuoteKey.parse(text_key), raw))
            except ValueError:
                self._stats.corrupt_entries += 1
        return found

    def stats(self) -> CacheStats:
        now = self._clock()
        counts = {status.value: 0 for status in CacheStatus}
        counts["expired"] = counts.pop(CacheStatus.MISS.value)
        for entry in self.entries():
            if entry.is_expired(now, self.ttl):
                counts["expired"] += 1
            elif entry.is_stale(now, self.stale_after):
                counts[CacheStatus.STALE.value] += 1
            else:
                counts[CacheStatus.FRESH.value] += 1

        self._stats.entries = counts
        return self._stats
