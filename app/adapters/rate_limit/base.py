"""Window counter store interfaces.

The admission engine depends on this abstraction (not the concrete
implementation) so the in-process store can later be swapped for a shared one
(e.g., Redis) without touching the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowHit:
    """Outcome of counting one request against a rolling window.

    Attributes:
        allowed: Whether the request fit inside the window's budget.
        count: Requests admitted in the current window after this call.
        limit: Max requests per window.
        window_start: UNIX seconds when the current window opened.
        reset_at: UNIX seconds when the current window closes.
        retry_after_seconds: Whole seconds until reset when blocked, else None.
    """

    allowed: bool
    count: int
    limit: int
    window_start: float
    reset_at: float
    retry_after_seconds: int | None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


@dataclass(frozen=True)
class WindowSnapshot:
    """Read-only view of a key's counter state."""

    count: int
    window_start: float


class AbstractWindowCounterStore(ABC):
    """Interface for per-key rolling window counters."""

    @abstractmethod
    def hit(self, key: str, *, window_seconds: float, limit: int) -> WindowHit:
        """Count a request for ``key`` unless its window budget is spent.

        The read-check-modify sequence must be atomic per key. Denied
        requests must not change the counter or move the window.

        Args:
            key: Composite counter key (tier + identity discriminator).
            window_seconds: Window length for this key's tier.
            limit: Max admitted requests per window.

        Returns:
            WindowHit describing the decision and window metadata.
        """
        raise NotImplementedError

    @abstractmethod
    def snapshot(self, key: str) -> WindowSnapshot | None:
        """Return the current state for ``key`` without mutating it."""
        raise NotImplementedError
