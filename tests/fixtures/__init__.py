"""Common test fixtures and fakes for unit tests."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from core.models.search import Pagination, QueryParams, SearchResponse, SearchResult


# Test data
TEST_SOURCE_SYSTEM = "genius"
TEST_TOTAL = 152
TEST_TOKEN = "opaque-test-token"


def make_response(params: QueryParams, total: int = TEST_TOTAL) -> SearchResponse:
    """Build a backend response for ``params`` over ``total`` documents."""
    end = min(params.offset + params.count, total)
    results = [
        SearchResult(
            id=f"doc-{i}",
            source_system=TEST_SOURCE_SYSTEM,
            content_type="application/pdf",
            filename=f"report_{i}.pdf",
            created_at="2024-01-15T09:30:00Z",
        )
        for i in range(params.offset, end)
    ]
    return SearchResponse(
        pagination=Pagination.derive(total, params.count, params.offset),
        results=results,
    )


def make_response_json(offset: int = 0, count: int = 10, total: int = TEST_TOTAL) -> dict[str, Any]:
    """Search response in wire format (camelCase)."""
    return make_response(QueryParams(offset=offset, count=count), total).model_dump(
        by_alias=True,
        mode="json",
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout=timeout)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSearchBackend:
    """In-memory backend recording every search it receives.

    ``responder`` can replace the default behaviour, e.g. to block on an
    event or raise an error.
    """

    def __init__(
        self,
        total: int = TEST_TOTAL,
        responder: Optional[Callable[[QueryParams], Awaitable[SearchResponse]]] = None,
    ):
        self.total = total
        self.responder = responder
        self.calls: list[QueryParams] = []
        self.cancelled: list[QueryParams] = []

    async def search(self, params: QueryParams) -> SearchResponse:
        self.calls.append(params)
        try:
            if self.responder is not None:
                return await self.responder(params)
            await asyncio.sleep(0)
            return make_response(params, self.total)
        except asyncio.CancelledError:
            self.cancelled.append(params)
            raise
