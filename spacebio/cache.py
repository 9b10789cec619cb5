"""Lazy-expiring in-memory TTL cache."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    timestamp: float  # epoch seconds
    value: T


class TTLCache(Generic[T]):
    """Key/value store whose entries go stale after ``ttl_seconds``.

    Expiry is only checked on read; stale entries stay in the map until the
    next computation for the same key overwrites them. No locking: two
    concurrent misses on one key both compute and the last write wins.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            return None
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = CacheEntry(timestamp=self._clock(), value=value)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        should_store: Callable[[Any], bool] | None = None,
    ) -> T:
        """Return the fresh cached value or compute, store and return a new one."""
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        value = await compute()
        if should_store is None or should_store(value):
            self.set(key, value)
        return value
