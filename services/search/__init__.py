"""Faceted search engine for the Docsville document browser.

Filter model -> query compiler -> execution controller -> result window.
"""

from services.search.cache import CacheEntry, QueryCache
from services.search.compiler import (
    DefaultFacetPolicy,
    cache_key,
    compile_query,
    merge_params,
    serialize_params,
    to_request_payload,
)
from services.search.controller import RequestStatus, SearchController, SearchState
from services.search.debounce import Debouncer
from services.search.filters import (
    apply_filter,
    from_query_object,
    remove_filter,
    to_query_object,
    toggle_value,
)
from services.search.session import SearchSession, create_session
from services.search.window import ResultWindow, RowPlacement, VisibleRange, compute_visible_range

__all__ = [
    "CacheEntry",
    "QueryCache",
    "DefaultFacetPolicy",
    "cache_key",
    "compile_query",
    "merge_params",
    "serialize_params",
    "to_request_payload",
    "RequestStatus",
    "SearchController",
    "SearchState",
    "Debouncer",
    "apply_filter",
    "from_query_object",
    "remove_filter",
    "to_query_object",
    "toggle_value",
    "SearchSession",
    "create_session",
    "ResultWindow",
    "RowPlacement",
    "VisibleRange",
    "compute_visible_range",
]
