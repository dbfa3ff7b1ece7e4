"""In-process response cache for the search engine.

Entries are keyed by the serialized query parameters. An entry is fresh for
``stale_time`` seconds after it was fetched; a stale entry can still be
displayed while it is refetched. Entries not used for ``gc_time`` seconds are
evicted. In-flight fetches are shared per key so a prefetch and a search for
the same parameters hit the network once.
"""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached response and its timestamps."""

    data: T
    fetched_at: float
    last_used: float

    def is_stale(self, now: float, stale_time: float) -> bool:
        return now - self.fetched_at >= stale_time


@dataclass
class _InFlight:
    task: "asyncio.Future[Any]"
    waiters: int = field(default=0)


class QueryCache(Generic[T]):
    """Map of cache key -> response with stale and garbage-collection times."""

    def __init__(
        self,
        stale_time: float = 30.0,
        gc_time: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            stale_time: Seconds a response is served without refetching
            gc_time: Seconds an unused response is kept
            clock: Monotonic time source
        """
        self.stale_time = stale_time
        self.gc_time = gc_time
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._inflight: dict[str, _InFlight] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry[T]]:
        """Get an entry (fresh or stale) and mark it used."""
        self.collect_garbage()
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_used = self._clock()
        return entry

    def get_fresh(self, key: str) -> Optional[T]:
        """Get cached data only if it is still within the staleness window."""
        entry = self.get(key)
        if entry is None or entry.is_stale(self._clock(), self.stale_time):
            return None
        logger.debug(f"Cache hit for {key[:19]}...")
        return entry.data

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_stale(self._clock(), self.stale_time)

    def set(self, key: str, data: T) -> CacheEntry[T]:
        """Store a response. Last write wins."""
        now = self._clock()
        entry = CacheEntry(data=data, fetched_at=now, last_used=now)
        self._entries[key] = entry
        self.collect_garbage()
        return entry

    def invalidate(self, key: Optional[str] = None) -> None:
        """
        Drop cached responses.

        Args:
            key: Specific key to drop, or None for all
        """
        if key is None:
            count = len(self._entries)
            self._entries.clear()
            logger.info(f"Invalidated {count} search cache entries")
        else:
            self._entries.pop(key, None)

    def collect_garbage(self) -> int:
        """Evict entries unused for longer than ``gc_time``."""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.last_used >= self.gc_time
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} unused search cache entries")
        return len(expired)

    def is_fetching(self, key: str) -> bool:
        return key in self._inflight

    async def fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fetcher`` for ``key`` and cache its result.

        Concurrent calls for the same key share one underlying request. When
        every caller has been cancelled, the request itself is cancelled.

        Args:
            key: Cache key
            fetcher: Coroutine function performing the request

        Returns:
            The fetched data
        """
        inflight = self._inflight.get(key)
        if inflight is None or inflight.task.cancelled():
            task = asyncio.ensure_future(fetcher())
            inflight = _InFlight(task=task)
            self._inflight[key] = inflight
            task.add_done_callback(functools.partial(self._settle, key, inflight))
        else:
            logger.debug(f"Joining in-flight request for {key[:19]}...")

        inflight.waiters += 1
        try:
            return await asyncio.shield(inflight.task)
        except asyncio.CancelledError:
            if inflight.waiters == 1 and not inflight.task.done():
                inflight.task.cancel()
                # Later callers for this key must start a new request.
                if self._inflight.get(key) is inflight:
                    del self._inflight[key]
            raise
        finally:
            inflight.waiters -= 1

    def _settle(self, key: str, inflight: _InFlight, task: "asyncio.Future[Any]") -> None:
        if self._inflight.get(key) is inflight:
            del self._inflight[key]
        if task.cancelled() or task.exception() is not None:
            return
        self.set(key, task.result())

    def cancel_all(self) -> None:
        """Cancel every in-flight request."""
        for inflight in list(self._inflight.values()):
            inflight.task.cancel()
