"""Docsville backend API: faceted search, content search, configuration."""

import logging
import time
from typing import Callable, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from core.config.settings import Settings, get_settings
from core.errors import SearchServiceError
from core.models.filters import QueryType
from core.models.search import (
    ContentSearchHit,
    ContentSearchRequest,
    QueryParams,
    SearchResponse,
    SourceSystemConfig,
)
from core.security.jwt import AccessTokenProvider
from services.search.clients.service_client import RetryConfig, ServiceClient
from services.search.compiler import to_request_payload
from services.search.filters import apply_filter

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "/v1/docsville/search"
CONTENT_SEARCH_ENDPOINT = "/v1/docsville/content/search"
CONFIG_ENDPOINT = "/v2/docsville/getAllConfig"

_content_hits = TypeAdapter(list[ContentSearchHit])
_source_systems = TypeAdapter(list[SourceSystemConfig])


class DocsvilleClient:
    """Typed access to the Docsville search and configuration endpoints."""

    def __init__(
        self,
        search_client: ServiceClient,
        config_client: Optional[ServiceClient] = None,
        config_cache_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the API client.

        Args:
            search_client: Client bound to the search API
            config_client: Client bound to the configuration API
            config_cache_ttl: Seconds source system configs are cached
            clock: Monotonic time source
        """
        self.search_client = search_client
        self.config_client = config_client or search_client
        self.config_cache_ttl = config_cache_ttl
        self._clock = clock
        self._config_cache: Optional[list[SourceSystemConfig]] = None
        self._config_fetched_at = 0.0

    async def search(
        self,
        params: QueryParams,
        unique: Optional[Sequence[str]] = None,
    ) -> SearchResponse:
        """
        Run a faceted search.

        Args:
            params: Compiled query parameters
            unique: Fields the backend should deduplicate on

        Returns:
            Parsed SearchResponse with derived pagination

        Raises:
            SearchServiceError: Request failed or the response was malformed
        """
        payload = to_request_payload(params, unique=unique)
        data = await self.search_client.post(SEARCH_ENDPOINT, data=payload)
        try:
            return SearchResponse.model_validate(data)
        except ValidationError as e:
            raise SearchServiceError(
                "Malformed search response",
                detail={"service": self.search_client.service_name},
                cause=e,
            )

    async def search_content(self, query: str, k: int = 5) -> list[ContentSearchHit]:
        """Full-text search over document content."""
        request = ContentSearchRequest(query=query, k=k)
        logger.info(f"Content search: {query[:50]} (k={k})")
        data = await self.search_client.post(CONTENT_SEARCH_ENDPOINT, data=request.model_dump())
        try:
            return _content_hits.validate_python(data)
        except ValidationError as e:
            raise SearchServiceError(
                "Malformed content search response",
                detail={"service": self.search_client.service_name},
                cause=e,
            )

    async def list_clients(
        self,
        source_system: str,
        offset: int = 0,
        name: Optional[str] = None,
        count: int = 20,
    ) -> SearchResponse:
        """Page through the distinct clients of a source system.

        With ``name`` set, client IDs are matched by substring.
        """
        filters = apply_filter((), "sourceSystem", QueryType.MATCHES, source_system)
        if name:
            filters = apply_filter(filters, "clientId", QueryType.LIKE, name)
        params = QueryParams(
            filters=filters,
            offset=offset,
            count=count,
            projection=("clientId", "sourceSystem"),
        )
        return await self.search(params, unique=["clientId"])

    async def list_source_systems(self) -> list[SourceSystemConfig]:
        """Get all source system configs, cached for ``config_cache_ttl`` seconds."""
        now = self._clock()
        if self._config_cache is not None and now - self._config_fetched_at < self.config_cache_ttl:
            return self._config_cache

        data = await self.config_client.get(CONFIG_ENDPOINT)
        try:
            configs = _source_systems.validate_python(data)
        except ValidationError as e:
            raise SearchServiceError(
                "Malformed source system config response",
                detail={"service": self.config_client.service_name},
                cause=e,
            )
        self._config_cache = configs
        self._config_fetched_at = now
        return configs

    async def close(self) -> None:
        """Close the underlying HTTP clients."""
        await self.search_client.close()
        if self.config_client is not self.search_client:
            await self.config_client.close()


def create_docsville_client(
    settings: Optional[Settings] = None,
    token_provider: Optional[AccessTokenProvider] = None,
) -> DocsvilleClient:
    """Build a DocsvilleClient from application settings."""
    settings = settings or get_settings()
    token_provider = token_provider or AccessTokenProvider(token=settings.access_token)
    retry_config = RetryConfig(
        max_retries=settings.retry_max_retries,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )
    search_client = ServiceClient(
        base_url=settings.search_api_url,
        service_name="docsville-search",
        timeout=settings.request_timeout,
        retry_config=retry_config,
        token_provider=token_provider,
    )
    config_client = ServiceClient(
        base_url=settings.config_api_url,
        service_name="docsville-config",
        timeout=settings.request_timeout,
        retry_config=retry_config,
        token_provider=token_provider,
    )
    return DocsvilleClient(
        search_client=search_client,
        config_client=config_client,
        config_cache_ttl=settings.config_cache_ttl,
    )
