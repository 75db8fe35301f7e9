"""TTL caches owned by the recommendation engine.

Entries expire lazily: a read that finds a stale entry evicts it and
reports a miss. The map is guarded by a lock so concurrent requests
can read and insert safely; on a racing insert the last writer wins.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Generic, Protocol, TypeVar


class _Timestamped(Protocol):
    timestamp: float


K = TypeVar("K")
E = TypeVar("E", bound=_Timestamped)


def now_ms() -> float:
    """Wall-clock milliseconds, the unit cache timestamps are stored in."""
    return time.time() * 1000.0


class TTLCache(Generic[K, E]):
    """Key -> entry map where entries carry their own ``timestamp`` (ms)."""

    def __init__(self, ttl_ms: int, clock: Callable[[], float] = now_ms) -> None:
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[K, E] = {}
        self._lock = threading.Lock()

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @ttl_ms.setter
    def ttl_ms(self, value: int) -> None:
        self._ttl_ms = value

    def now(self) -> float:
        return self._clock()

    def get(self, key: K, ttl_ms: int | None = None) -> E | None:
        """Return the entry for *key* if it is younger than the TTL."""
        ttl = self._ttl_ms if ttl_ms is None else ttl_ms
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.timestamp < ttl:
                return entry
            del self._entries[key]
            return None

    def set(self, key: K, entry: E) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]
