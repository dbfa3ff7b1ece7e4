"""Search request/response models for the Docsville backend."""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from core.models.filters import Filter


class QueryParams(BaseModel):
    """Compiled search parameters: filters plus pagination and projection."""

    model_config = ConfigDict(frozen=True)

    filters: tuple[Filter, ...] = Field(default=(), description="Filters, one per key")
    offset: int = Field(default=0, ge=0, description="Index of the first result")
    count: int = Field(default=20, gt=0, description="Page size")
    projection: tuple[str, ...] = Field(default=(), description="Fields to return")

    @model_validator(mode="after")
    def check_unique_keys(self) -> "QueryParams":
        seen: set[str] = set()
        for f in self.filters:
            if f.key in seen:
                raise ValueError(f"duplicate filter for key '{f.key}'")
            seen.add(f.key)
        return self

    def filter_for(self, key: str) -> Optional[Filter]:
        for f in self.filters:
            if f.key == key:
                return f
        return None


class SearchRequest(BaseModel):
    """Wire payload of the search endpoint."""

    query: list[dict[str, Any]] = Field(..., description="Filters as key/type/value objects")
    count: int = Field(..., gt=0, description="Number of results to return")
    offset: int = Field(..., ge=0, description="Index of the first result")
    projection: list[str] = Field(default_factory=list, description="Fields to return")
    unique: Optional[list[str]] = Field(default=None, description="Fields to deduplicate on")


class Pagination(BaseModel):
    """Pagination block derived from ``total``, ``pageSize`` and ``currentOffset``.

    Derived fields sent by the backend are recomputed so the invariants
    always hold, whatever the server returned.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    total: int = Field(..., ge=0)
    page_size: int = Field(..., gt=0)
    current_offset: int = Field(..., ge=0)
    next_offset: Optional[int] = None
    previous_offset: Optional[int] = None
    has_more: bool = False
    total_pages: int = 0
    current_page: int = 1

    @model_validator(mode="before")
    @classmethod
    def derive_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        def pick(camel: str, snake: str) -> Any:
            return data[camel] if camel in data else data.get(snake)

        total = pick("total", "total")
        page_size = pick("pageSize", "page_size")
        current_offset = pick("currentOffset", "current_offset")
        if not all(isinstance(v, int) for v in (total, page_size, current_offset)):
            return data
        if page_size <= 0 or total < 0 or current_offset < 0:
            return data
        return cls._derived(total, page_size, current_offset)

    @staticmethod
    def _derived(total: int, page_size: int, current_offset: int) -> dict[str, Any]:
        has_more = current_offset + page_size < total
        return {
            "total": total,
            "pageSize": page_size,
            "currentOffset": current_offset,
            "nextOffset": current_offset + page_size if has_more else None,
            "previousOffset": max(0, current_offset - page_size) if current_offset > 0 else None,
            "hasMore": has_more,
            "totalPages": math.ceil(total / page_size),
            "currentPage": current_offset // page_size + 1,
        }

    @classmethod
    def derive(cls, total: int, page_size: int, current_offset: int = 0) -> "Pagination":
        """Build a pagination block from its three base values."""
        return cls.model_validate(
            {"total": total, "pageSize": page_size, "currentOffset": current_offset}
        )

    @classmethod
    def empty(cls, page_size: int) -> "Pagination":
        return cls.derive(0, page_size, 0)


class SearchResult(BaseModel):
    """One document returned by the search endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., description="Document ID")
    source_system: Optional[str] = Field(None, description="Owning source system")
    content_type: Optional[str] = Field(None, description="MIME type")
    filename: Optional[str] = Field(None, description="File name")
    created_at: Optional[str] = Field(None, description="Creation timestamp (ISO)")
    file_type: Optional[str] = Field(None, description="File type label")
    client_id: Optional[str] = Field(None, description="Client identifier")


class SearchResponse(BaseModel):
    """Response of the search endpoint."""

    pagination: Pagination
    results: list[SearchResult] = Field(default_factory=list)


class ContentSearchRequest(BaseModel):
    """Request payload of the full-text content search endpoint."""

    query: str = Field(..., min_length=1, max_length=1000, description="Free text")
    k: int = Field(default=5, ge=1, le=100, description="Number of matches to return")


class ContentDocument(BaseModel):
    """Document chunk matched by a content search."""

    id: str
    text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", ""))

    @property
    def file_name(self) -> str:
        """Last path segment of the document source."""
        if not self.source:
            return "Unknown document"
        return self.source.rstrip("/").split("/")[-1] or "Unknown document"


class ContentSearchHit(BaseModel):
    """One scored content search match."""

    score: float
    document: ContentDocument

    @property
    def score_percent(self) -> str:
        return f"{round(self.score * 100)}%"


class SourceSystemConfig(BaseModel):
    """Configuration of one source system as exposed by the config API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str
    source_system: str
    description: Optional[str] = None
    enabled: bool = True
    last_updated: Optional[str] = None
