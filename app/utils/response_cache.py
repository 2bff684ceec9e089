"""In-memory TTL cache for rendered list responses.

Entries hold the exact response body bytes so a hit is byte-identical to the
response that filled it. Expiry is lazy: an expired entry counts as a miss but
stays in place until the next store for its key overwrites it (or the LRU cap
pushes it out).

Writes do not invalidate entries. A cached task list may lag behind a
create/update/delete for up to the TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlencode

from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached payload with its insertion time."""

    payload: bytes
    inserted_at: float


@dataclass(frozen=True)
class CacheLookup:
    hit: bool
    payload: bytes | None = None


MISS = CacheLookup(hit=False)


class ResponseCacheStore:
    """Thread-safe TTL cache with lazy expiry and an optional LRU cap.

    Each ``lookup`` and each ``store`` is atomic; a lookup followed by a store
    is not. Two concurrent misses may both fill the same key, last write wins.

    Attributes:
        ttl_seconds: Freshness window applied to all entries.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        max_entries: int | None = 1024,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1 or None")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ResponseCacheStore(ttl_seconds={self.ttl_seconds}, "
            f"max_entries={self.max_entries}, size={len(self._entries)})"
        )

    def lookup(self, key: str) -> CacheLookup:
        """Return the cached payload for ``key`` if it is still fresh."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                reason = "not_found"
            elif now - entry.inserted_at >= self.ttl_seconds:
                self._misses += 1
                reason = "expired"
            else:
                self._hits += 1
                self._entries.move_to_end(key)
                payload = entry.payload
                reason = None

        if reason is not None:
            logger.debug("cache.miss", extra={"cache_key": hash_for_log(key), "reason": reason})
            return MISS

        logger.debug("cache.hit", extra={"cache_key": hash_for_log(key)})
        return CacheLookup(hit=True, payload=payload)

    def store(self, key: str, payload: bytes) -> None:
        """Store ``payload`` under ``key``, replacing any previous entry."""

        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(payload=payload, inserted_at=now)
            self._entries.move_to_end(key)
            evicted = self._evict_over_capacity_locked()
            size = len(self._entries)

        logger.debug(
            "cache.set",
            extra={
                "cache_key": hash_for_log(key),
                "size": size,
                "evicted": evicted,
                "ttl_s": self.ttl_seconds,
            },
        )

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | float | None]:
        """Return lightweight cache metrics without exposing payloads."""

        with self._lock:
            return {
                "ttl_seconds": self.ttl_seconds,
                "max_entries": self.max_entries,
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_over_capacity_locked(self) -> int:
        if self.max_entries is None:
            return 0

        evicted = 0
        while len(self._entries) > self.max_entries:
            # popitem(last=False) removes the least recently used entry
            self._entries.popitem(last=False)
            evicted += 1
        self._evictions += evicted
        return evicted


def normalize_query(items: Iterable[tuple[str, str]]) -> str:
    """Serialize query items canonically, independent of field order.

    Examples:
        >>> normalize_query([("page", "2"), ("completed", "true")])
        'completed=true&page=2'
        >>> normalize_query([("completed", "true"), ("page", "2")])
        'completed=true&page=2'
    """

    return urlencode(sorted(items))


def build_cache_key(user_id: str, query_items: Iterable[tuple[str, str]], *, namespace: str = "tasks") -> str:
    """Build the cache key for one user's list query.

    Args:
        user_id: Authenticated user id; unauthenticated callers are not cached.
        query_items: Raw query string items (name, value).
        namespace: Resource namespace to keep different lists apart.

    Returns:
        Key of the form ``<namespace>:<user_id>:<normalized query>``.
    """

    if not user_id:
        raise ValueError("user_id is required to build a cache key")
    return f"{namespace}:{user_id}:{normalize_query(query_items)}"
