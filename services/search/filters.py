"""Filter set operations.

A filter set is an immutable tuple of ``Filter`` objects with at most one
entry per key, kept in the order keys were first applied. Every operation
returns a new tuple; applying an empty value removes the key.
"""

import logging
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from core.errors import FilterValidationError
from core.models.filters import (
    DateRange,
    FieldRegistry,
    Filter,
    QueryType,
    default_registry,
    normalize_value,
)

logger = logging.getLogger(__name__)

Filters = tuple[Filter, ...]


def build_filter(
    key: str,
    query_type: Union[QueryType, str, None],
    value: Any,
    registry: FieldRegistry = default_registry,
) -> Optional[Filter]:
    """
    Validate a raw value against the registry and build a ``Filter``.

    Args:
        key: Field key
        query_type: Query type, or None for the field's registered type
        value: Raw value from the UI
        registry: Field registry

    Returns:
        The filter, or None when the value is empty

    Raises:
        FilterValidationError: Unknown key, type mismatch or malformed value
    """
    resolved = registry.resolve_type(key, query_type)
    try:
        normalized = normalize_value(resolved, value)
    except FilterValidationError as e:
        e.detail.setdefault("key", key)
        raise
    if normalized is None:
        return None
    try:
        return Filter(key=key, type=resolved, value=normalized)
    except ValidationError as e:
        raise FilterValidationError(
            f"Invalid value for '{key}': {e.errors()[0]['msg']}",
            detail={"key": key, "type": resolved.value},
            cause=e,
        )


def get_filter(filters: Sequence[Filter], key: str) -> Optional[Filter]:
    """Return the applied filter for ``key``, if any."""
    for f in filters:
        if f.key == key:
            return f
    return None


def is_filter_applied(filters: Sequence[Filter], key: str) -> bool:
    return get_filter(filters, key) is not None


def remove_filter(filters: Sequence[Filter], key: str) -> Filters:
    """Return ``filters`` without the entry for ``key``."""
    return tuple(f for f in filters if f.key != key)


def set_filter(filters: Sequence[Filter], new_filter: Filter) -> Filters:
    """Replace the entry for ``new_filter.key`` in place, or append it."""
    result = list(filters)
    for i, f in enumerate(result):
        if f.key == new_filter.key:
            result[i] = new_filter
            return tuple(result)
    result.append(new_filter)
    return tuple(result)


def apply_filter(
    filters: Sequence[Filter],
    key: str,
    query_type: Union[QueryType, str, None],
    value: Any,
    registry: FieldRegistry = default_registry,
) -> Filters:
    """
    Apply a value for ``key``: replace, append or (empty value) remove.

    Raises:
        FilterValidationError: The value or type does not fit the field
    """
    new_filter = build_filter(key, query_type, value, registry)
    if new_filter is None:
        return remove_filter(filters, key)
    return set_filter(filters, new_filter)


def toggle_value(
    filters: Sequence[Filter],
    key: str,
    value: str,
    registry: FieldRegistry = default_registry,
) -> Filters:
    """Add or remove one value of a multi-value ('in') filter.

    Toggling the last selected value off removes the filter.
    """
    spec = registry.require(key)
    if spec.query_type != QueryType.IN:
        raise FilterValidationError(
            f"Field '{key}' is not a multi-value field",
            detail={"key": key, "type": spec.query_type.value},
        )

    existing = get_filter(filters, key)
    selected = list(existing.value) if existing is not None else []
    value = value.strip()
    if value in selected:
        selected.remove(value)
    else:
        selected.append(value)
    return apply_filter(filters, key, QueryType.IN, selected, registry)


def set_range(
    filters: Sequence[Filter],
    key: str,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    registry: FieldRegistry = default_registry,
) -> Filters:
    """Apply a date range; omitting both bounds removes the filter."""
    return apply_filter(
        filters,
        key,
        QueryType.RANGE,
        {"from": date_from, "to": date_to},
        registry,
    )


def merge_filters(
    filters: Sequence[Filter],
    query_object: Mapping[str, Any],
    registry: FieldRegistry = default_registry,
) -> Filters:
    """Apply every entry of a query object on top of ``filters``."""
    result = tuple(filters)
    for key, value in query_object.items():
        result = apply_filter(result, key, None, value, registry)
    return result


def to_query_object(filters: Sequence[Filter]) -> dict[str, Any]:
    """Convert filters to a ``{key: value}`` mapping of plain values."""
    return {f.key: f.plain_value() for f in filters}


def from_query_object(
    query_object: Mapping[str, Any],
    registry: FieldRegistry = default_registry,
) -> Filters:
    """
    Seed a filter set from an externally supplied ``{key: value}`` mapping.

    Unknown keys are ignored and empty values dropped. Each key takes its
    field's registered type.

    Raises:
        FilterValidationError: A value does not fit its field
    """
    filters: Filters = ()
    for key, value in query_object.items():
        if key not in registry:
            logger.debug(f"Ignoring unknown filter field: {key}")
            continue
        filters = apply_filter(filters, key, None, value, registry)
    return filters


def format_key(key: str) -> str:
    """Turn a camelCase field key into a label: ``contentType`` -> ``Content Type``."""
    if not key:
        return key
    words = [key[0].upper()]
    for char in key[1:]:
        if char.isupper():
            words.append(" ")
        words.append(char)
    return "".join(words)


def describe_filter(f: Filter) -> str:
    """Human-readable rendering of a filter value for filter pills."""
    if isinstance(f.value, DateRange):
        if f.value.from_ and f.value.to:
            return f"{f.value.from_} to {f.value.to}"
        if f.value.from_:
            return f"From {f.value.from_}"
        return f"To {f.value.to}"
    if isinstance(f.value, tuple):
        return ", ".join(f.value)
    return str(f.value)
