"""Single-flight TTL cache for expensive aggregate snapshots.

Many pollers ask for the same cross-agent snapshot at once. Only one
refresh per key may be in flight: later callers await the same task
instead of starting their own. A failed refresh is never cached; every
waiter sees the error and the next call starts a fresh attempt.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from arena.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheState(str, Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and when it was fetched. Replaced wholesale, never mutated."""

    value: T
    fetched_at: float


class SnapshotCache:
    """Keyed TTL cache with one in-flight refresh per key.

    Args:
        ttl_seconds: Age after which an entry is stale.
        name: Label included in log events.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float,
        name: str = "snapshot",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._name = name
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self._hits = 0
        self._misses = 0
        self._waits = 0
        self._failures = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_fresh(self, entry: CacheEntry[Any]) -> bool:
        return self._clock() - entry.fetched_at < self._ttl

    def state(self, key: str) -> CacheState:
        if key in self._inflight:
            return CacheState.REFRESHING
        entry = self._entries.get(key)
        if entry is None:
            return CacheState.EMPTY
        return CacheState.FRESH if self._is_fresh(entry) else CacheState.STALE

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, refreshing it at most once concurrently.

        Raises:
            Exception: Whatever fetch raised, re-raised to every waiter.
        """
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            self._hits += 1
            logger.debug(
                "cache_hit",
                cache=self._name,
                key=key,
                age_seconds=round(self._clock() - entry.fetched_at, 1),
            )
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            self._misses += 1
            logger.info("cache_miss", cache=self._name, key=key)
            task = asyncio.ensure_future(self._refresh(key, fetch))
            self._inflight[key] = task
        else:
            self._waits += 1
            logger.debug("cache_wait", cache=self._name, key=key)

        # A cancelled waiter must not cancel the refresh other callers share
        return await asyncio.shield(task)

    async def _refresh(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        started = self._clock()
        try:
            value = await fetch()
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
            logger.info(
                "cache_refreshed",
                cache=self._name,
                key=key,
                duration_seconds=round(self._clock() - started, 3),
            )
            return value
        except Exception as e:
            self._failures += 1
            logger.error("cache_refresh_failed", cache=self._name, key=key, error=str(e))
            raise
        finally:
            self._inflight.pop(key, None)

    def invalidate(self, key: str) -> None:
        """Drop the entry for key. An in-flight refresh still completes and stores its result."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        return {
            "cache": self._name,
            "entries": len(self._entries),
            "inflight": len(self._inflight),
            "hits": self._hits,
            "misses": self._misses,
            "waits": self._waits,
            "failures": self._failures,
        }
