"""Tests for the in-process query cache."""

import asyncio

import pytest

from services.search.cache import QueryCache


class TestFreshness:
    """Test cases for stale and garbage-collection times."""

    def test_fresh_within_stale_time(self, cache, clock):
        """Test that an entry is fresh right after it was stored."""
        cache.set("search:a", "page")
        clock.advance(29)

        assert cache.get_fresh("search:a") == "page"
        assert cache.is_fresh("search:a")

    def test_stale_after_stale_time(self, cache, clock):
        """Test that an entry goes stale but stays readable."""
        cache.set("search:a", "page")
        clock.advance(30)

        assert cache.get_fresh("search:a") is None
        assert cache.get("search:a").data == "page"

    def test_evicted_after_gc_time(self, cache, clock):
        """Test that unused entries are evicted."""
        cache.set("search:a", "page")
        clock.advance(300)

        assert cache.get("search:a") is None
        assert len(cache) == 0

    def test_use_postpones_eviction(self, cache, clock):
        """Test that reading an entry keeps it alive."""
        cache.set("search:a", "page")
        clock.advance(200)
        cache.get("search:a")
        clock.advance(200)

        assert "search:a" in cache
        assert cache.get("search:a") is not None

    def test_last_write_wins(self, cache):
        """Test that setting a key twice keeps the latest value."""
        cache.set("search:a", "old")
        cache.set("search:a", "new")

        assert cache.get_fresh("search:a") == "new"

    def test_invalidate(self, cache):
        """Test invalidating one key and then all keys."""
        cache.set("search:a", 1)
        cache.set("search:b", 2)

        cache.invalidate("search:a")
        assert "search:a" not in cache
        assert "search:b" in cache

        cache.invalidate()
        assert len(cache) == 0


class TestFetch:
    """Test cases for shared in-flight fetches."""

    @pytest.mark.asyncio
    async def test_fetch_stores_result(self, cache):
        """Test that a fetched value is cached."""
        async def fetcher():
            return "page"

        assert await cache.fetch("search:a", fetcher) == "page"
        assert cache.get_fresh("search:a") == "page"
        assert not cache.is_fetching("search:a")

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_request(self, cache):
        """Test that two callers for one key hit the network once."""
        calls = 0
        release = asyncio.Event()

        async def fetcher():
            nonlocal calls
            calls += 1
            await release.wait()
            return "page"

        first = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        second = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        await asyncio.sleep(0)
        assert cache.is_fetching("search:a")

        release.set()

        assert await first == "page"
        assert await second == "page"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, cache):
        """Test that errors propagate and are not stored."""
        async def fetcher():
            raise RuntimeError("backend down")

        with pytest.raises(RuntimeError):
            await cache.fetch("search:a", fetcher)

        assert "search:a" not in cache

    @pytest.mark.asyncio
    async def test_cancel_last_waiter_cancels_request(self, cache):
        """Test that the request is cancelled when nobody waits for it."""
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def fetcher():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return "page"

        waiter = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        await started.wait()
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        await asyncio.wait_for(cancelled.wait(), timeout=1)
        assert "search:a" not in cache

    @pytest.mark.asyncio
    async def test_fetch_after_last_waiter_cancelled(self, cache):
        """Test that a caller arriving right after the cancel starts a new request."""
        started = asyncio.Event()
        calls = []

        async def fetcher():
            calls.append(len(calls))
            if len(calls) == 1:
                started.set()
                await asyncio.sleep(10)
            return "page"

        first = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        await started.wait()
        first.cancel()
        second = asyncio.ensure_future(cache.fetch("search:a", fetcher))

        with pytest.raises(asyncio.CancelledError):
            await first
        assert await second == "page"
        assert len(calls) == 2
        assert cache.get_fresh("search:a") == "page"

    @pytest.mark.asyncio
    async def test_cancel_one_of_two_waiters(self, cache):
        """Test that the request survives while another caller waits."""
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return "page"

        first = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        second = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        release.set()
        assert await second == "page"
        assert cache.get_fresh("search:a") == "page"

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        """Test cancelling every in-flight request."""
        cache: QueryCache[str] = QueryCache()

        async def fetcher():
            await asyncio.sleep(10)
            return "page"

        waiter = asyncio.ensure_future(cache.fetch("search:a", fetcher))
        await asyncio.sleep(0)
        cache.cancel_all()

        with pytest.raises(asyncio.CancelledError):
            await waiter
