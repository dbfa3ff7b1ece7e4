"""HTTP clients for the Docsville document backend."""

from services.search.clients.docsville import DocsvilleClient, create_docsville_client
from services.search.clients.service_client import (
    RetryConfig,
    ServiceClient,
    calculate_backoff_delay,
    get_current_request_id,
    is_retryable,
    set_current_request_id,
)

__all__ = [
    "DocsvilleClient",
    "create_docsville_client",
    "RetryConfig",
    "ServiceClient",
    "calculate_backoff_delay",
    "get_current_request_id",
    "is_retryable",
    "set_current_request_id",
]
