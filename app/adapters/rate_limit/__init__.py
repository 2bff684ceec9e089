"""Window counter store adapters.

The admission engine starts with an in-process store; a shared store (e.g.,
Redis) can later implement the same interface without changing the HTTP layer.
"""

from app.adapters.rate_limit.base import AbstractWindowCounterStore, WindowHit, WindowSnapshot
from app.adapters.rate_limit.in_memory import InMemoryWindowCounterStore

__all__ = [
    "AbstractWindowCounterStore",
    "InMemoryWindowCounterStore",
    "WindowHit",
    "WindowSnapshot",
]
