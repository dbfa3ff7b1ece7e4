"""Retrying HTTP client for the Docsville document backend.

Every request carries the bearer credential and an ``X-Request-ID``.
Transient failures (timeouts, refused connections, 408/429/5xx) are retried
with exponential backoff. Once attempts run out the failure is raised as
``NetworkError`` or ``ServerError``. ``asyncio.CancelledError`` is never
retried and propagates untouched.
"""

import asyncio
import logging
import random
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from core.errors import NetworkError, SearchServiceError, ServerError
from core.models.common import ErrorResponse
from core.security.jwt import AccessTokenProvider

logger = logging.getLogger(__name__)

# Request ID of the current search, forwarded to the backend for tracing
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


@dataclass
class RetryConfig:
    """Retry policy for backend calls."""

    max_retries: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True  # up to +25% per delay

    retryable_status_codes: tuple[int, ...] = (408, 429, 500, 502, 503, 504)

    @property
    def attempts(self) -> int:
        return self.max_retries + 1


def get_current_request_id() -> Optional[str]:
    return request_id_var.get()


def set_current_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (0-indexed), capped at ``max_delay``."""
    delay = min(config.base_delay * config.exponential_base ** attempt, config.max_delay)
    if config.jitter:
        delay += delay * 0.25 * random.random()
    return delay


def is_retryable(error: Exception, config: RetryConfig) -> bool:
    """Transport failures and the configured status codes are worth another try."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in config.retryable_status_codes
    return isinstance(error, (httpx.ConnectError, httpx.TimeoutException))


def _error_message(response: httpx.Response) -> str:
    """Extract the backend's error message from a non-2xx response."""
    try:
        body = ErrorResponse.model_validate(response.json())
    except (ValueError, ValidationError):
        return f"Request failed with status {response.status_code}"
    return body.describe()


class ServiceClient:
    """One backend base URL with retries and bearer authentication."""

    def __init__(
        self,
        base_url: str,
        service_name: str,
        timeout: float = 15.0,
        retry_config: Optional[RetryConfig] = None,
        token_provider: Optional[AccessTokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Base URL of the backend
            service_name: Name used in logs and error details
            timeout: Per-request timeout in seconds
            retry_config: Retry policy
            token_provider: Source of the bearer credential
            transport: Custom httpx transport (tests pass httpx.MockTransport)
        """
        self.base_url = base_url
        self.service_name = service_name
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.token_provider = token_provider or AccessTokenProvider()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def get_client(self) -> httpx.AsyncClient:
        """Lazily open the underlying connection pool."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _headers(self, extra: Optional[dict[str, str]]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(await self.token_provider.auth_headers())
        headers.update(extra or {})
        headers["X-Request-ID"] = get_current_request_id() or str(uuid.uuid4())
        return headers

    def _to_service_error(self, error: Exception, attempts: int) -> SearchServiceError:
        detail = {"service": self.service_name, "attempts": attempts}
        if isinstance(error, httpx.HTTPStatusError):
            return ServerError(
                _error_message(error.response),
                status_code=error.response.status_code,
                detail=detail,
                cause=error,
            )
        if isinstance(error, httpx.RequestError):
            return NetworkError(
                f"Could not reach {self.service_name}: {error}",
                detail=detail,
                cause=error,
            )
        return SearchServiceError(
            f"Unexpected error calling {self.service_name}: {error}",
            detail=detail,
            cause=error,
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Send a request, retrying transient failures.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            json: JSON body
            params: Query string parameters
            headers: Extra request headers

        Returns:
            Decoded JSON body

        Raises:
            NetworkError: The backend could not be reached
            ServerError: The backend answered with a non-2xx status
        """
        config = self.retry_config
        client = await self.get_client()
        attempt = 0
        while True:
            try:
                response = await client.request(
                    method,
                    endpoint,
                    json=json,
                    params=params,
                    headers=await self._headers(headers),
                )
                response.raise_for_status()
                return response.json()
            except Exception as e:
                attempt += 1
                if attempt >= config.attempts or not is_retryable(e, config):
                    logger.error(
                        f"{method} {self.service_name}{endpoint} failed after "
                        f"{attempt} attempt(s): {e}"
                    )
                    raise self._to_service_error(e, attempt)

                delay = calculate_backoff_delay(attempt - 1, config)
                logger.warning(
                    f"Retrying {method} {self.service_name}{endpoint} "
                    f"({attempt}/{config.attempts}) in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)

    async def post(self, endpoint: str, data: Any, headers: Optional[dict[str, str]] = None) -> Any:
        return await self.request("POST", endpoint, json=data, headers=headers)

    async def get(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        return await self.request("GET", endpoint, params=params, headers=headers)
