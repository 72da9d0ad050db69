"""TTL cache with in-flight request deduplication.

Concurrent misses on the same key share one upstream fetch. The fetch runs
as its own task and every caller awaits it through asyncio.shield, so a
cancelled caller never cancels the shared fetch for the others.

Invariants:
- only successful results are cached; a failure reaches every waiter and
  leaves the cache unchanged
- the in-flight marker is removed before the entry is written, so a caller
  arriving in between sees the entry, not a finished task
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from wealthdesk.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS: Any = _Miss()


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    joins: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "joins": self.joins}


def _consume_exception(task: asyncio.Task) -> None:
    # Waiters may all be gone; mark the exception as retrieved.
    if not task.cancelled():
        task.exception()


class RequestCache(Generic[T]):
    """Per-data-class cache keyed by request string.

    Args:
        name: Label used in logs and stats.
        ttl_seconds: Lifetime of a cached value.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def get(self, key: str) -> T:
        """Return the fresh cached value, or MISS. Expired entries are purged."""
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return MISS
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """Return a fresh value, joining or starting the single fetch for key."""
        cached = self.get(key)
        if cached is not MISS:
            self.stats.hits += 1
            return cached

        task = self._inflight.get(key)
        if task is not None:
            self.stats.joins += 1
            logger.debug("cache_fetch_joined", cache=self.name, key=key)
            return await asyncio.shield(task)

        # Registration happens in the same synchronous step as the lookup
        self.stats.misses += 1
        logger.debug("cache_fetch_started", cache=self.name, key=key)
        task = asyncio.ensure_future(self._fetch(key, producer))
        task.add_done_callback(_consume_exception)
        self._inflight[key] = task
        return await asyncio.shield(task)

    async def _fetch(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await producer()
        finally:
            self._inflight.pop(key, None)
        self.set(key, value)
        return value
