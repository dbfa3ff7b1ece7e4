"""Pytest configuration and shared fixtures for all tests."""

import pytest

from core.config.settings import Settings
from core.models.filters import QueryType
from core.models.search import QueryParams
from services.search.cache import QueryCache
from services.search.controller import SearchController
from services.search.filters import apply_filter
from tests.fixtures import TEST_SOURCE_SYSTEM, FakeClock, FakeSearchBackend


# Apply async mode for pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with appropriate defaults."""
    return Settings(
        environment="testing",
        search_api_url="http://docsville.test/api",
        config_api_url="http://config.docsville.test",
        access_token="test-token",
        page_size=10,
        retry_max_retries=2,
        retry_base_delay=0.0,
        debounce_delay=0.01,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Fixture for a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def backend() -> FakeSearchBackend:
    """Fixture for an in-memory search backend."""
    return FakeSearchBackend()


@pytest.fixture
def base_params() -> QueryParams:
    """Fixture for compiled params with only the default facet."""
    return QueryParams(
        filters=apply_filter((), "sourceSystem", QueryType.MATCHES, TEST_SOURCE_SYSTEM),
        offset=0,
        count=10,
    )


@pytest.fixture
def cache(clock) -> QueryCache:
    """Fixture for a cache driven by the fake clock."""
    return QueryCache(stale_time=30.0, gc_time=300.0, clock=clock)


@pytest.fixture
def controller(backend, base_params, cache) -> SearchController:
    """Fixture for a controller over the fake backend."""
    return SearchController(backend=backend, initial_params=base_params, cache=cache)
