"""TTL cache for impact radius results."""

from __future__ import annotations

import threading
import time
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 30.0
DEFAULT_MAX_ENTRIES = 1000


class ImpactRadiusCache(Generic[V]):
    """Expiring map guarded by a lock.

    Expired entries are only swept once the cache grows past
    ``max_entries``; a stale entry is never served either way.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, tuple[V, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                return None
            return value

    def set(self, key: Hashable, value: V) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = (value, now + self.ttl_seconds)
            self._prune_locked(now)

    def prune(self) -> int:
        """Evict expired entries if over the size threshold; returns how many were evicted."""
        with self._lock:
            return self._prune_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _prune_locked(self, now: float) -> int:
        if len(self._entries) <= self.max_entries:
            return 0
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
