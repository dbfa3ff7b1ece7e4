"""Core models module."""

from core.models.common import ErrorResponse
from core.models.filters import (
    DEFAULT_FIELDS,
    DateRange,
    FieldRegistry,
    FieldSpec,
    Filter,
    FilterValue,
    QueryType,
    SmartSuggestion,
    default_registry,
    normalize_value,
)
from core.models.search import (
    ContentDocument,
    ContentSearchHit,
    ContentSearchRequest,
    Pagination,
    QueryParams,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SourceSystemConfig,
)

__all__ = [
    # Common models
    "ErrorResponse",
    # Filter models
    "QueryType",
    "DateRange",
    "Filter",
    "FilterValue",
    "FieldSpec",
    "FieldRegistry",
    "DEFAULT_FIELDS",
    "default_registry",
    "normalize_value",
    "SmartSuggestion",
    # Search models
    "QueryParams",
    "SearchRequest",
    "Pagination",
    "SearchResult",
    "SearchResponse",
    "ContentSearchRequest",
    "ContentDocument",
    "ContentSearchHit",
    "SourceSystemConfig",
]
