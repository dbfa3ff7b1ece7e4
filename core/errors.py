"""Error hierarchy for the Docsville search engine.

Validation errors are raised before a query is compiled and never reach the
network layer. Service errors are raised by the HTTP client once retries are
exhausted and end up in the controller's ``error`` state. ``AbortedError``
marks a superseded request and is never shown to the user.
"""

from typing import Any, Optional


class DocsvilleError(Exception):
    """Root of the error hierarchy.

    Args:
        message: Human-readable description.
        code: Machine-readable slug (defaults to the class ``default_code``).
        detail: Extra context safe to log.
        cause: Original exception that triggered this error.
    """

    default_code: str = "docsville_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail: dict[str, Any] = detail or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for logging and UI error states."""
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }
        if self.cause is not None:
            payload["cause"] = repr(self.cause)
        return payload


class FilterValidationError(DocsvilleError):
    """A filter value is incompatible with its field's registered type."""

    default_code = "invalid_filter"


class MissingFacetError(FilterValidationError):
    """A required facet is absent and the strict policy forbids a fallback."""

    default_code = "missing_facet"


class AbortedError(DocsvilleError):
    """A request was superseded by a newer generation."""

    default_code = "aborted"


class SearchServiceError(DocsvilleError):
    """The document backend could not satisfy a request."""

    default_code = "search_service_error"


class NetworkError(SearchServiceError):
    """Transport failure: connection refused, timeout, DNS, ..."""

    default_code = "network_error"


class ServerError(SearchServiceError):
    """The backend answered with a non-2xx status."""

    default_code = "server_error"

    def __init__(self, message: str, *, status_code: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.detail.setdefault("status_code", status_code)
