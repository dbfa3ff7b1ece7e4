"""Search execution controller.

Owns the current query parameters and the request lifecycle:

- every ``update_params`` call starts a new generation and cancels the
  in-flight request of the previous one;
- responses are applied only if their generation is still current, so a slow
  early response can never overwrite a fast later one;
- responses are cached by serialized parameters and served without a network
  call while fresh;
- the next page can be fetched speculatively into the cache.

Per generation the request moves ``IDLE -> PENDING -> SUCCESS | ERROR |
ABORTED``. Aborts are expected outcomes and never show up in ``error``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from core.errors import AbortedError, DocsvilleError, SearchServiceError
from core.models.search import QueryParams, SearchResponse
from services.search import prometheus
from services.search.cache import QueryCache
from services.search.compiler import cache_key, merge_params

logger = logging.getLogger(__name__)


class SearchBackend(Protocol):
    """Anything that can execute compiled query parameters."""

    async def search(self, params: QueryParams) -> SearchResponse:
        ...


class RequestStatus(str, Enum):
    """Lifecycle of the request for the current generation."""

    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SearchState:
    """Snapshot of the controller state handed to listeners."""

    generation: int
    params: QueryParams
    status: RequestStatus
    data: Optional[SearchResponse]
    error: Optional[DocsvilleError]
    is_fetching: bool

    @property
    def is_loading(self) -> bool:
        """Pending with nothing to display yet."""
        return self.status == RequestStatus.PENDING and self.data is None


Listener = Callable[[SearchState], None]


class SearchController:
    """Runs searches for one result view."""

    def __init__(
        self,
        backend: SearchBackend,
        initial_params: QueryParams,
        cache: Optional[QueryCache[SearchResponse]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the controller.

        Args:
            backend: Executes searches (usually a DocsvilleClient)
            initial_params: Parameters of the first search
            cache: Response cache owned by this controller
            clock: Monotonic time source for latency metrics
        """
        self._backend = backend
        self._params = initial_params
        self._cache: QueryCache[SearchResponse] = cache if cache is not None else QueryCache()
        self._clock = clock

        self._generation = 0
        self._enabled = False
        self._status = RequestStatus.IDLE
        self._data: Optional[SearchResponse] = None
        self._error: Optional[DocsvilleError] = None
        self._last_abort: Optional[AbortedError] = None

        self._task: Optional[asyncio.Task] = None
        self._task_generation = -1
        self._prefetch_tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

    # State

    @property
    def params(self) -> QueryParams:
        return self._params

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def cache(self) -> QueryCache[SearchResponse]:
        return self._cache

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def status(self) -> RequestStatus:
        return self._status

    @property
    def data(self) -> Optional[SearchResponse]:
        return self._data

    @property
    def error(self) -> Optional[DocsvilleError]:
        return self._error

    @property
    def last_abort(self) -> Optional[AbortedError]:
        """The most recent superseded request, for diagnostics only."""
        return self._last_abort

    @property
    def is_fetching(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._task_generation == self._generation
        )

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    @property
    def state(self) -> SearchState:
        return SearchState(
            generation=self._generation,
            params=self._params,
            status=self._status,
            data=self._data,
            error=self._error,
            is_fetching=self.is_fetching,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            listener(state)

    # Operations

    def update_params(self, **partial: Any) -> QueryParams:
        """
        Merge partial parameter changes and start a new generation.

        The in-flight request of the previous generation is cancelled. Once
        the controller is armed, the new parameters are fetched right away.

        Args:
            **partial: Any of ``filters``, ``offset``, ``count``, ``projection``

        Returns:
            The merged parameters
        """
        self._params = merge_params(self._params, **partial)
        self._generation += 1
        prometheus.update_generation(self._generation)
        self._cancel_inflight()

        if self._enabled:
            self._start()
        else:
            self._status = RequestStatus.IDLE
        self._notify()
        return self._params

    async def execute_search(self) -> Optional[SearchResponse]:
        """
        Arm the controller and fetch the current parameters.

        Fresh cached data is returned without a network call.

        Returns:
            The response now displayed, or None if the request failed or
            was superseded
        """
        self._enabled = True
        task = self._start()
        if task is None:
            return self._data
        return await self._wait(task)

    async def refetch(self) -> Optional[SearchResponse]:
        """Fetch the current parameters from the network, ignoring freshness."""
        self._enabled = True
        return await self._wait(self._start(force=True))

    def schedule_prefetch(self) -> asyncio.Task:
        """Run ``prefetch_next_page`` in the background and return its task."""
        task = asyncio.ensure_future(self.prefetch_next_page())
        self._prefetch_tasks.add(task)
        task.add_done_callback(self._prefetch_tasks.discard)
        return task

    async def prefetch_next_page(self) -> bool:
        """
        Speculatively fetch the page after the displayed one into the cache.

        Displayed data is not changed.

        Returns:
            True if a request was made and succeeded
        """
        data = self._data
        if not self._enabled or data is None or not data.pagination.has_more:
            prometheus.record_prefetch("skipped")
            return False

        next_params = merge_params(self._params, offset=data.pagination.next_offset)
        key = cache_key(next_params)
        if self._cache.is_fresh(key):
            prometheus.record_prefetch("cached")
            return False

        prometheus.record_prefetch("issued")
        logger.debug(f"Prefetching offset {next_params.offset}")
        try:
            await self._cache.fetch(key, lambda: self._backend.search(next_params))
        except DocsvilleError as e:
            logger.warning(f"Prefetch of offset {next_params.offset} failed: {e.message}")
            return False
        return True

    async def close(self) -> None:
        """Cancel every request owned by this controller."""
        self._cancel_inflight()
        for task in list(self._prefetch_tasks):
            task.cancel()
        self._cache.cancel_all()
        pending = [t for t in (self._task, *self._prefetch_tasks) if t is not None]
        if pending:
            await asyncio.wait(pending)
        self._listeners.clear()

    # Internals

    def _start(self, force: bool = False) -> Optional[asyncio.Task]:
        generation = self._generation
        params = self._params
        key = cache_key(params)

        if not force:
            fresh = self._cache.get_fresh(key)
            if fresh is not None:
                prometheus.record_cache_lookup("fresh")
                self._apply_success(generation, fresh)
                return None

            if (
                self._task is not None
                and not self._task.done()
                and self._task_generation == generation
            ):
                return self._task

            entry = self._cache.get(key)
            if entry is not None:
                prometheus.record_cache_lookup("stale")
                self._data = entry.data
            else:
                prometheus.record_cache_lookup("miss")
                self._data = None

        self._cancel_inflight()
        self._status = RequestStatus.PENDING
        self._error = None
        self._task = asyncio.ensure_future(self._fetch(generation, params, key))
        self._task_generation = generation
        self._notify()
        return self._task

    async def _wait(self, task: asyncio.Task) -> Optional[SearchResponse]:
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    def _cancel_inflight(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _fetch(self, generation: int, params: QueryParams, key: str) -> Optional[SearchResponse]:
        started = self._clock()
        try:
            response = await self._cache.fetch(key, lambda: self._backend.search(params))
        except asyncio.CancelledError:
            self._record_abort(generation, started)
            raise
        except Exception as e:
            prometheus.record_search("error", self._clock() - started)
            if generation != self._generation:
                prometheus.record_stale_response()
                return None
            if not isinstance(e, DocsvilleError):
                e = SearchServiceError(f"Search failed: {e}", cause=e)
            logger.error(f"Search generation {generation} failed: {e.message}")
            self._status = RequestStatus.ERROR
            self._error = e
            self._notify()
            return None

        if generation != self._generation:
            logger.debug(f"Dropping response of stale generation {generation}")
            prometheus.record_search("stale", self._clock() - started)
            prometheus.record_stale_response()
            return None

        prometheus.record_search("success", self._clock() - started, len(response.results))
        logger.info(
            f"Search generation {generation} returned {len(response.results)} results "
            f"(offset={params.offset}, total={response.pagination.total})"
        )
        self._apply_success(generation, response)
        return response

    def _record_abort(self, generation: int, started: float) -> None:
        prometheus.record_search("aborted", self._clock() - started)
        self._last_abort = AbortedError(
            f"Search generation {generation} was superseded",
            detail={"generation": generation, "current_generation": self._generation},
        )
        logger.debug(self._last_abort.message)
        if generation == self._generation and self._task is asyncio.current_task():
            # Cancelled without a replacement request, e.g. by close().
            self._status = RequestStatus.ABORTED
            self._notify()

    def _apply_success(self, generation: int, response: SearchResponse) -> None:
        if generation != self._generation:
            return
        self._status = RequestStatus.SUCCESS
        self._data = response
        self._error = None
        self._notify()
