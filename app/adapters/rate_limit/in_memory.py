"""In-memory rolling window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Each key carries its own lock, so callers on different keys never wait on
  each other's read-check-modify. A short map lock guards insert/remove only.
- Idle counters are swept so an unbounded stream of anonymous origins cannot
  grow the map forever.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractWindowCounterStore,
    WindowHit,
    WindowSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass
class _CounterEntry:
    window_start: float
    window_seconds: float
    count: int = 0
    retired: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class InMemoryWindowCounterStore(AbstractWindowCounterStore):
    """Counter store with a rolling window anchored at each key's first request.

    A window opens on the first request for a key and resets in place once
    ``window_seconds`` have elapsed since it opened. The window is not aligned
    to wall-clock boundaries.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = 60.0,
        sweep_idle_windows: int = 2,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds.
            sweep_interval_seconds: Minimum seconds between opportunistic sweeps.
            sweep_idle_windows: Entries whose window ended more than this many
                window lengths ago are dropped by the sweep.

        Raises:
            ValueError: If the sweep parameters are invalid.
        """
        if sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")
        if sweep_idle_windows < 1:
            raise ValueError("sweep_idle_windows must be >= 1")

        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._idle_windows = sweep_idle_windows
        self._map_lock = threading.Lock()
        self._entries: dict[str, _CounterEntry] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._entries)

    def _get_or_create_entry(self, key: str, *, now: float, window_seconds: float) -> _CounterEntry:
        with self._map_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _CounterEntry(window_start=now, window_seconds=window_seconds)
                self._entries[key] = entry
            return entry

    def hit(self, key: str, *, window_seconds: float, limit: int) -> WindowHit:
        """Count one request for ``key`` if its window still has budget.

        Raises:
            ValueError: If key is empty or window/limit are not positive.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        self._maybe_sweep()

        while True:
            now = self._clock()
            entry = self._get_or_create_entry(key, now=now, window_seconds=window_seconds)
            with entry.lock:
                if entry.retired:
                    # Removed by a sweep between lookup and lock; start over.
                    continue

                entry.window_seconds = window_seconds
                if now - entry.window_start >= window_seconds:
                    entry.window_start = now
                    entry.count = 0

                reset_at = entry.window_start + window_seconds

                if entry.count >= limit:
                    return WindowHit(
                        allowed=False,
                        count=entry.count,
                        limit=limit,
                        window_start=entry.window_start,
                        reset_at=reset_at,
                        retry_after_seconds=max(1, math.ceil(reset_at - now)),
                    )

                entry.count += 1
                return WindowHit(
                    allowed=True,
                    count=entry.count,
                    limit=limit,
                    window_start=entry.window_start,
                    reset_at=reset_at,
                    retry_after_seconds=None,
                )

    def snapshot(self, key: str) -> WindowSnapshot | None:
        with self._map_lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        with entry.lock:
            return WindowSnapshot(count=entry.count, window_start=entry.window_start)

    def sweep(self) -> int:
        """Drop counters that have been idle for several windows.

        Entries whose lock is held (a decision in progress) are skipped, as
        are entries still inside their window.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        removed = 0

        with self._map_lock:
            self._last_sweep = now
            for key, entry in list(self._entries.items()):
                if not entry.lock.acquire(blocking=False):
                    continue
                try:
                    window_end = entry.window_start + entry.window_seconds
                    if now - window_end >= entry.window_seconds * self._idle_windows:
                        entry.retired = True
                        del self._entries[key]
                        removed += 1
                finally:
                    entry.lock.release()
            remaining = len(self._entries)

        if removed:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": removed, "remaining": remaining},
            )
        return removed

    def clear(self) -> None:
        with self._map_lock:
            for entry in self._entries.values():
                entry.retired = True
            self._entries.clear()

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_sweep >= self._sweep_interval:
            self.sweep()
