"""Tests for the single-flight snapshot cache."""

import asyncio

import pytest

from arena.cache import CacheState, SnapshotCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock) -> SnapshotCache:
    return SnapshotCache(ttl_seconds=300, name="test", clock=clock)


class TestSingleFlight:
    """Concurrent callers share one refresh."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_fetch_once(self, cache) -> None:
        calls = 0
        release = asyncio.Event()

        async def fetch() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            return "snapshot"

        waiters = [asyncio.create_task(cache.get_or_fetch("agents", fetch)) for _ in range(10)]
        await asyncio.sleep(0)
        assert cache.state("agents") is CacheState.REFRESHING

        release.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert results == ["snapshot"] * 10
        stats = cache.stats()
        assert stats["misses"] == 1
        assert stats["waits"] == 9
        assert stats["inflight"] == 0

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_is_not_cached(self, cache) -> None:
        release = asyncio.Event()

        async def failing() -> str:
            await release.wait()
            raise RuntimeError("exchange down")

        waiters = [asyncio.create_task(cache.get_or_fetch("agents", failing)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.state("agents") is CacheState.EMPTY
        assert cache.stats()["failures"] == 1

        async def recovered() -> str:
            return "ok"

        assert await cache.get_or_fetch("agents", recovered) == "ok"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_refresh(self, cache) -> None:
        release = asyncio.Event()

        async def fetch() -> str:
            await release.wait()
            return "value"

        first = asyncio.create_task(cache.get_or_fetch("k", fetch))
        second = asyncio.create_task(cache.get_or_fetch("k", fetch))
        await asyncio.sleep(0)

        first.cancel()
        release.set()

        assert await second == "value"
        with pytest.raises(asyncio.CancelledError):
            await first


class TestExpiry:
    @pytest.mark.asyncio
    async def test_hit_within_ttl(self, cache, clock) -> None:
        values = iter(["first", "second"])

        async def fetch() -> str:
            return next(values)

        assert await cache.get_or_fetch("k", fetch) == "first"
        clock.now += 299
        assert await cache.get_or_fetch("k", fetch) == "first"
        assert cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_refresh_after_ttl(self, cache, clock) -> None:
        values = iter(["first", "second"])

        async def fetch() -> str:
            return next(values)

        await cache.get_or_fetch("k", fetch)
        clock.now += 300
        assert cache.state("k") is CacheState.STALE
        assert await cache.get_or_fetch("k", fetch) == "second"
        assert cache.state("k") is CacheState.FRESH

    @pytest.mark.asyncio
    async def test_keys_independent(self, cache) -> None:
        async def a() -> str:
            return "a"

        async def b() -> str:
            return "b"

        assert await cache.get_or_fetch("a", a) == "a"
        assert await cache.get_or_fetch("b", b) == "b"
        assert cache.stats()["entries"] == 2

    @pytest.mark.asyncio
    async def test_invalidate_and_clear(self, cache) -> None:
        async def fetch() -> int:
            return 1

        await cache.get_or_fetch("k", fetch)
        cache.invalidate("k")
        assert cache.state("k") is CacheState.EMPTY

        await cache.get_or_fetch("k", fetch)
        cache.clear()
        assert cache.stats()["entries"] == 0
