"""Query compiler.

Turns a filter set plus pagination and projection into ``QueryParams``,
injects required default facets, and produces the deterministic
serialization used as the cache key.
"""

import hashlib
import json
import logging
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from core.errors import MissingFacetError
from core.models.filters import FieldRegistry, Filter, default_registry
from core.models.search import QueryParams, SearchRequest
from services.search.filters import build_filter, get_filter

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class DefaultFacetPolicy(str, Enum):
    """What to do when a required facet was not set by the user."""

    FALLBACK = "fallback"  # inject the configured default value
    STRICT = "strict"  # reject the query


def compile_query(
    filters: Sequence[Filter],
    offset: int = 0,
    count: int = 20,
    projection: Sequence[str] = (),
    required_defaults: Optional[Mapping[str, Any]] = None,
    registry: FieldRegistry = default_registry,
    policy: DefaultFacetPolicy = DefaultFacetPolicy.FALLBACK,
) -> QueryParams:
    """
    Compile filters into query parameters.

    Filters keep their order; each required default that is missing is
    appended with its field's registered type.

    Args:
        filters: Filter set, one entry per key
        offset: Index of the first result
        count: Page size
        projection: Fields to return
        required_defaults: Facets that must always be present, with fallback values
        registry: Field registry used to type injected defaults
        policy: Fallback or strict handling of missing defaults

    Returns:
        Compiled QueryParams

    Raises:
        MissingFacetError: A required facet is missing under the strict policy
    """
    compiled = list(filters)
    for key, default in (required_defaults or {}).items():
        if get_filter(compiled, key) is not None:
            continue
        if DefaultFacetPolicy(policy) == DefaultFacetPolicy.STRICT:
            raise MissingFacetError(
                f"Required filter '{key}' is not set",
                detail={"key": key},
            )
        injected = build_filter(key, None, default, registry)
        if injected is None:
            raise MissingFacetError(
                f"Required filter '{key}' has no usable default",
                detail={"key": key},
            )
        logger.debug(f"Injecting default facet {key}={default!r}")
        compiled.append(injected)

    return QueryParams(
        filters=tuple(compiled),
        offset=offset,
        count=count,
        projection=tuple(projection),
    )


def merge_params(
    current: QueryParams,
    filters: Any = _UNSET,
    offset: Any = _UNSET,
    count: Any = _UNSET,
    projection: Any = _UNSET,
) -> QueryParams:
    """
    Merge partial changes into ``current``.

    Any change to filters, count or projection starts a new search and
    resets the offset to 0. Changing only the offset keeps everything else.
    """
    changes: dict[str, Any] = {}
    if filters is not _UNSET and tuple(filters) != current.filters:
        changes["filters"] = tuple(filters)
    if count is not _UNSET and count != current.count:
        changes["count"] = count
    if projection is not _UNSET and tuple(projection) != current.projection:
        changes["projection"] = tuple(projection)

    if changes:
        changes["offset"] = 0
    elif offset is not _UNSET:
        changes["offset"] = offset

    if not changes:
        return current
    values: dict[str, Any] = {
        "filters": current.filters,
        "offset": current.offset,
        "count": current.count,
        "projection": current.projection,
    }
    values.update(changes)
    return QueryParams(**values)


def to_request_payload(params: QueryParams, unique: Optional[Sequence[str]] = None) -> dict[str, Any]:
    """Build the JSON body of the search endpoint."""
    request = SearchRequest(
        query=[f.to_payload() for f in params.filters],
        count=params.count,
        offset=params.offset,
        projection=list(params.projection),
        unique=list(unique) if unique else None,
    )
    return request.model_dump(exclude_none=True)


def serialize_params(params: QueryParams) -> str:
    """Deterministic serialization: object keys sorted, filter order kept."""
    return json.dumps(
        to_request_payload(params),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def cache_key(params: QueryParams) -> str:
    """Cache key for a parameter set."""
    digest = hashlib.sha256(serialize_params(params).encode()).hexdigest()
    return f"search:{digest}"
