"""Search session: filter editing wired to compilation, execution and display.

The session stages filter edits, compiles them on ``apply``, hands the
parameters to the controller and keeps the result window in sync with the
displayed data. Text filters can be auto-applied through a debouncer.
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Sequence

from core.config.settings import Settings, get_settings
from core.errors import FilterValidationError
from core.models.filters import FieldRegistry, Filter, SmartSuggestion, default_registry
from core.models.search import ContentSearchHit, QueryParams, SearchResponse, SearchResult
from services.search import filters as filter_ops
from services.search.cache import QueryCache
from services.search.clients.docsville import DocsvilleClient, create_docsville_client
from services.search.compiler import DefaultFacetPolicy, compile_query
from services.search.controller import SearchController, SearchState
from services.search.debounce import Debouncer
from services.search.window import ResultWindow

logger = logging.getLogger(__name__)


class SearchSession:
    """State of one search view: staged filters, controller and result window."""

    def __init__(
        self,
        controller: SearchController,
        window: Optional[ResultWindow[SearchResult]] = None,
        registry: FieldRegistry = default_registry,
        required_defaults: Optional[Mapping[str, Any]] = None,
        policy: DefaultFacetPolicy = DefaultFacetPolicy.FALLBACK,
        initial_filters: Sequence[Filter] = (),
        debouncer: Optional[Debouncer] = None,
        auto_apply: bool = False,
        infinite_scroll: bool = False,
        content_backend: Optional[DocsvilleClient] = None,
    ):
        """
        Initialize the session.

        Args:
            controller: Search execution controller
            window: Result window; its near-end trigger is wired to prefetching
            registry: Field registry for filter validation
            required_defaults: Facets always sent, with fallback values
            policy: Fallback or strict handling of missing defaults
            initial_filters: Filters supplied by the caller (e.g. a deep link)
            debouncer: Debouncer for auto-applied text filters
            auto_apply: Apply text filters while typing
            infinite_scroll: Append pages to the window instead of replacing
            content_backend: Client used for full-text content search
        """
        self.controller = controller
        self.window = window or ResultWindow()
        self.registry = registry
        self.policy = policy
        self.debouncer = debouncer or Debouncer()
        self.auto_apply = auto_apply
        self.infinite_scroll = infinite_scroll
        self.content_backend = content_backend

        self._filters: filter_ops.Filters = tuple(initial_filters)
        self._required_defaults = dict(required_defaults or {})
        for key in self._required_defaults:
            # A facet supplied up front becomes the fallback for later searches.
            supplied = filter_ops.get_filter(self._filters, key)
            if supplied is not None:
                self._required_defaults[key] = supplied.plain_value()

        self._drafts: dict[str, str] = {}
        self.validation_errors: dict[str, FilterValidationError] = {}
        self.content_hits: list[ContentSearchHit] = []
        self._pages: dict[int, list[SearchResult]] = {}
        self._shown: Optional[SearchResponse] = None

        self.window.on_near_end = self._on_near_end
        self._unsubscribe = controller.subscribe(self._on_state)

    # Filter editing

    @property
    def filters(self) -> filter_ops.Filters:
        """Staged filters (applied on the next ``apply``)."""
        return self._filters

    def query_object(self) -> dict[str, Any]:
        return filter_ops.to_query_object(self._filters)

    def set_filter(self, key: str, value: Any, query_type: Optional[str] = None) -> filter_ops.Filters:
        """Stage a value for ``key``; an empty value removes it."""
        self._filters = filter_ops.apply_filter(self._filters, key, query_type, value, self.registry)
        self.validation_errors.pop(key, None)
        return self._filters

    def toggle(self, key: str, value: str) -> filter_ops.Filters:
        """Toggle one value of a multi-value filter."""
        self._filters = filter_ops.toggle_value(self._filters, key, value, self.registry)
        return self._filters

    def set_range(
        self,
        key: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> filter_ops.Filters:
        self._filters = filter_ops.set_range(self._filters, key, date_from, date_to, self.registry)
        return self._filters

    def remove(self, key: str) -> filter_ops.Filters:
        self._drafts.pop(key, None)
        self.debouncer.cancel(key)
        self._filters = filter_ops.remove_filter(self._filters, key)
        return self._filters

    def clear(self) -> None:
        """Remove every staged filter and pending draft."""
        self.debouncer.cancel_all()
        self._drafts.clear()
        self.validation_errors.clear()
        self._filters = ()

    def load_query_object(self, query_object: Mapping[str, Any]) -> filter_ops.Filters:
        """Replace staged filters with an externally supplied query object."""
        self._filters = filter_ops.from_query_object(query_object, self.registry)
        return self._filters

    def type_text(self, key: str, text: str) -> None:
        """Record a keystroke in a text filter.

        With auto-apply on, the value is confirmed and searched once typing
        pauses for the debounce delay.
        """
        self._drafts[key] = text
        if self.auto_apply:
            self.debouncer.schedule(key, lambda: self._confirm_draft(key))

    async def confirm_text(self, key: str) -> Optional[SearchResponse]:
        """Confirm a text filter right away (Enter key)."""
        self.debouncer.cancel(key)
        return await self._confirm_draft(key)

    async def _confirm_draft(self, key: str) -> Optional[SearchResponse]:
        text = self._drafts.pop(key, None)
        if text is None:
            return None
        try:
            self.set_filter(key, text)
        except FilterValidationError as e:
            logger.warning(f"Rejected value for '{key}': {e.message}")
            self.validation_errors[key] = e
            return None
        return await self.apply()

    # Searching

    def compile(self, offset: int = 0) -> QueryParams:
        """Compile staged filters with the controller's count and projection."""
        current = self.controller.params
        return compile_query(
            self._filters,
            offset=offset,
            count=current.count,
            projection=current.projection,
            required_defaults=self._required_defaults,
            registry=self.registry,
            policy=self.policy,
        )

    async def apply(self) -> Optional[SearchResponse]:
        """Compile staged filters and start a new search from the first page."""
        params = self.compile()
        self._pages.clear()
        self._shown = None
        self.window.reset()
        self.controller.update_params(filters=params.filters, offset=0)
        return await self.controller.execute_search()

    async def apply_suggestion(self, suggestion: SmartSuggestion) -> Optional[SearchResponse]:
        """Merge a preset filter set into the staged filters and search."""
        self._filters = filter_ops.merge_filters(self._filters, suggestion.filters, self.registry)
        return await self.apply()

    async def go_to_offset(self, offset: int) -> Optional[SearchResponse]:
        """Navigate pages; filters stay as they are."""
        if not self.infinite_scroll:
            self._pages.clear()
            self.window.reset()
        if not self.controller.enabled:
            # Nothing applied yet: the staged filters still need their defaults.
            params = self.compile()
            self.controller.update_params(filters=params.filters)
        self.controller.update_params(offset=offset)
        return await self.controller.execute_search()

    async def next_page(self) -> Optional[SearchResponse]:
        data = self.controller.data
        if data is None or data.pagination.next_offset is None:
            return None
        return await self.go_to_offset(data.pagination.next_offset)

    async def previous_page(self) -> Optional[SearchResponse]:
        data = self.controller.data
        if data is None or data.pagination.previous_offset is None:
            return None
        return await self.go_to_offset(data.pagination.previous_offset)

    async def load_more(self) -> Optional[SearchResponse]:
        """Append the next page to the window (infinite scroll)."""
        data = self.controller.data
        if data is None or not data.pagination.has_more:
            return None
        self.controller.update_params(offset=data.pagination.next_offset)
        return await self.controller.execute_search()

    async def search_content(self, text: str, k: int = 5) -> list[ContentSearchHit]:
        """Full-text search over document content."""
        if self.content_backend is None:
            raise RuntimeError("Content search is not configured for this session")
        self.content_hits = await self.content_backend.search_content(text, k=k)
        return self.content_hits

    async def close(self) -> None:
        self.debouncer.cancel_all()
        self._unsubscribe()
        await self.controller.close()

    # Wiring

    def _on_near_end(self) -> asyncio.Task:
        if self.infinite_scroll:
            return asyncio.ensure_future(self._prefetch_and_append())
        return self.controller.schedule_prefetch()

    async def _prefetch_and_append(self) -> None:
        await self.controller.prefetch_next_page()
        await self.load_more()

    def _on_state(self, state: SearchState) -> None:
        data = state.data
        if data is None or data is self._shown:
            return
        self._shown = data
        if not self.infinite_scroll:
            self._pages.clear()
        self._pages[state.params.offset] = list(data.results)
        self.window.set_items(
            [result for offset in sorted(self._pages) for result in self._pages[offset]]
        )


def create_session(
    settings: Optional[Settings] = None,
    client: Optional[DocsvilleClient] = None,
    initial_filters: Sequence[Filter] = (),
    infinite_scroll: bool = False,
) -> SearchSession:
    """Build a fully wired session from application settings."""
    settings = settings or get_settings()
    client = client or create_docsville_client(settings)
    controller = SearchController(
        backend=client,
        initial_params=QueryParams(
            filters=tuple(initial_filters),
            offset=0,
            count=settings.page_size,
            projection=tuple(settings.default_projection),
        ),
        cache=QueryCache(
            stale_time=settings.cache_stale_time,
            gc_time=settings.cache_gc_time,
        ),
    )
    window: ResultWindow[SearchResult] = ResultWindow(
        item_height=settings.row_height,
        overscan=settings.overscan,
        prefetch_threshold=settings.prefetch_threshold,
    )
    return SearchSession(
        controller=controller,
        window=window,
        required_defaults={"sourceSystem": settings.default_source_system},
        policy=DefaultFacetPolicy(settings.default_facet_policy),
        initial_filters=initial_filters,
        debouncer=Debouncer(settings.debounce_delay),
        auto_apply=settings.auto_apply,
        infinite_scroll=infinite_scroll,
        content_backend=client,
    )
