"""Filter models: query types, typed filter values and the field registry."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.errors import FilterValidationError


class QueryType(str, Enum):
    """Comparison semantics of a facet."""

    MATCHES = "matches"  # exact match
    LIKE = "like"  # substring
    IN = "in"  # membership in an ordered set
    RANGE = "range"  # date range


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DateRange(BaseModel):
    """Inclusive date range; either bound may be omitted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: Optional[str] = Field(None, alias="from", description="ISO start date")
    to: Optional[str] = Field(None, description="ISO end date")

    @model_validator(mode="after")
    def check_bounds(self) -> "DateRange":
        bounds = {}
        for name, value in (("from", self.from_), ("to", self.to)):
            if value is None:
                continue
            try:
                bounds[name] = _parse_iso(value)
            except ValueError:
                raise ValueError(f"'{name}' is not an ISO date: {value!r}")
        if len(bounds) == 2 and bounds["from"] > bounds["to"]:
            raise ValueError(f"range starts after it ends: {self.from_} > {self.to}")
        return self

    @property
    def is_empty(self) -> bool:
        return not self.from_ and not self.to

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(by_alias=True, exclude_none=True)


FilterValue = Union[str, tuple[str, ...], DateRange]


def normalize_value(query_type: QueryType, value: Any) -> Optional[FilterValue]:
    """Coerce a raw UI value into the canonical shape for ``query_type``.

    Returns ``None`` when the value is empty (blank text, no selected values,
    a range with neither bound). Raises ``FilterValidationError`` when the
    value cannot take the shape the query type requires.
    """
    if value is None:
        return None

    if query_type in (QueryType.MATCHES, QueryType.LIKE):
        if not isinstance(value, str):
            raise FilterValidationError(
                f"'{query_type.value}' filters take a string, got {type(value).__name__}",
                detail={"type": query_type.value},
            )
        return value.strip() or None

    if query_type == QueryType.IN:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise FilterValidationError(
                f"'in' filters take a list of strings, got {type(value).__name__}",
                detail={"type": query_type.value},
            )
        selected: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise FilterValidationError(
                    f"'in' filter values must be strings, got {type(item).__name__}",
                    detail={"type": query_type.value},
                )
            item = item.strip()
            if item and item not in selected:
                selected.append(item)
        return tuple(selected) or None

    if query_type == QueryType.RANGE:
        if isinstance(value, dict):
            try:
                value = DateRange.model_validate(
                    {k: (v or None) for k, v in value.items()}
                )
            except ValueError as e:
                raise FilterValidationError(
                    f"Invalid date range: {e}",
                    detail={"type": query_type.value},
                    cause=e,
                )
        if not isinstance(value, DateRange):
            raise FilterValidationError(
                f"'range' filters take a date range, got {type(value).__name__}",
                detail={"type": query_type.value},
            )
        return None if value.is_empty else value

    raise FilterValidationError(f"Unsupported query type: {query_type!r}")


class Filter(BaseModel):
    """One named, typed search constraint."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1, description="Field key")
    type: QueryType = Field(..., description="Comparison semantics")
    value: FilterValue = Field(..., description="Value shaped by the query type")

    @model_validator(mode="before")
    @classmethod
    def coerce_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "type" in data:
            try:
                query_type = QueryType(data["type"])
            except ValueError:
                return data
            try:
                value = normalize_value(query_type, data.get("value"))
            except FilterValidationError as e:
                raise ValueError(e.message)
            if value is None:
                raise ValueError(f"filter '{data.get('key')}' has an empty value")
            data = {**data, "value": value}
        return data

    def to_payload(self) -> dict[str, Any]:
        """Wire shape: ``{"key", "type", "value"}``."""
        if isinstance(self.value, DateRange):
            value: Any = self.value.to_payload()
        elif isinstance(self.value, tuple):
            value = list(self.value)
        else:
            value = self.value
        return {"key": self.key, "type": self.type.value, "value": value}

    def plain_value(self) -> Any:
        """Value as a plain Python object (str, list or dict)."""
        return self.to_payload()["value"]


@dataclass(frozen=True)
class FieldSpec:
    """A searchable field and the query type it is registered with."""

    key: str
    query_type: QueryType
    label: str
    placeholder: str = ""
    alternate_types: frozenset[QueryType] = field(default_factory=frozenset)

    def accepts(self, query_type: QueryType) -> bool:
        return query_type == self.query_type or query_type in self.alternate_types


class FieldRegistry:
    """Per-field type registry used to validate filters."""

    def __init__(self, specs: Iterable[FieldSpec]):
        self._specs: dict[str, FieldSpec] = {}
        for spec in specs:
            if spec.key in self._specs:
                raise ValueError(f"Field '{spec.key}' registered twice")
            self._specs[spec.key] = spec

    def __contains__(self, key: object) -> bool:
        return key in self._specs

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, key: str) -> Optional[FieldSpec]:
        return self._specs.get(key)

    def require(self, key: str) -> FieldSpec:
        spec = self._specs.get(key)
        if spec is None:
            raise FilterValidationError(
                f"Unknown filter field: {key}",
                detail={"key": key},
            )
        return spec

    def resolve_type(self, key: str, query_type: Union[QueryType, str, None] = None) -> QueryType:
        """Return the query type to use for ``key``, rejecting mismatches."""
        spec = self.require(key)
        if query_type is None:
            return spec.query_type
        try:
            query_type = QueryType(query_type)
        except ValueError:
            raise FilterValidationError(
                f"Unknown query type for '{key}': {query_type}",
                detail={"key": key, "type": str(query_type)},
            )
        if not spec.accepts(query_type):
            raise FilterValidationError(
                f"Field '{key}' is registered as '{spec.query_type.value}', "
                f"not '{query_type.value}'",
                detail={"key": key, "type": query_type.value},
            )
        return query_type


DEFAULT_FIELDS = (
    FieldSpec("sourceSystem", QueryType.MATCHES, "Source System", "e.g., genius"),
    FieldSpec("filename", QueryType.LIKE, "Filename", "e.g., report.pdf"),
    FieldSpec("contentType", QueryType.IN, "Content Type", "Select content types"),
    FieldSpec("fileType", QueryType.IN, "File Type", "Select file types"),
    FieldSpec(
        "clientId",
        QueryType.LIKE,
        "Client ID",
        "e.g., CS00",
        alternate_types=frozenset({QueryType.MATCHES}),
    ),
    FieldSpec("createdAt", QueryType.RANGE, "Created Date", "Select date range"),
)

default_registry = FieldRegistry(DEFAULT_FIELDS)


class SmartSuggestion(BaseModel):
    """A named preset filter set the user can apply in one click."""

    id: str = Field(..., description="Suggestion identifier")
    title: str = Field(..., description="Display title")
    description: str = Field(default="", description="Short explanation")
    filters: dict[str, Any] = Field(default_factory=dict, description="Query object to merge")
