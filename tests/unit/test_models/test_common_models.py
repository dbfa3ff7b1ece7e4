"""Tests for common models and the error hierarchy."""

import pytest

from core.errors import (
    AbortedError,
    DocsvilleError,
    FilterValidationError,
    MissingFacetError,
    NetworkError,
    SearchServiceError,
    ServerError,
)
from core.models.common import ErrorResponse


class TestErrorResponse:
    """Test cases for ErrorResponse model."""

    def test_describe_prefers_message(self):
        """Test that the message field is used first."""
        error = ErrorResponse(message="Index unavailable", error="UNAVAILABLE")

        assert error.describe() == "Index unavailable"

    def test_describe_falls_back_to_error_code(self):
        """Test that the error code is used when there is no message."""
        assert ErrorResponse(error="BAD_QUERY").describe() == "BAD_QUERY"

    def test_describe_default(self):
        """Test the generic fallback message."""
        assert ErrorResponse().describe() == "An error occurred"

    def test_extra_fields_allowed(self):
        """Test that unknown backend fields are kept."""
        error = ErrorResponse.model_validate({"message": "x", "traceId": "abc"})

        assert error.model_extra == {"traceId": "abc"}


class TestErrorHierarchy:
    """Test cases for the error classes."""

    def test_default_codes(self):
        """Test that each class carries its own code."""
        assert DocsvilleError("x").code == "docsville_error"
        assert FilterValidationError("x").code == "invalid_filter"
        assert MissingFacetError("x").code == "missing_facet"
        assert AbortedError("x").code == "aborted"
        assert NetworkError("x").code == "network_error"

    def test_subclass_relationships(self):
        """Test the shape of the hierarchy."""
        assert issubclass(MissingFacetError, FilterValidationError)
        assert issubclass(NetworkError, SearchServiceError)
        assert issubclass(ServerError, SearchServiceError)
        assert not issubclass(AbortedError, SearchServiceError)

    def test_server_error_status_code(self):
        """Test that the status code lands in the detail."""
        error = ServerError("Bad gateway", status_code=502, detail={"service": "search"})

        assert error.status_code == 502
        assert error.detail == {"service": "search", "status_code": 502}

    def test_cause_is_chained(self):
        """Test that the original exception is kept as __cause__."""
        original = ValueError("boom")
        error = SearchServiceError("Search failed", cause=original)

        assert error.__cause__ is original
        assert error.to_dict()["cause"] == "ValueError('boom')"

    def test_to_dict(self):
        """Test serialisation for logging."""
        error = FilterValidationError("Unknown filter field: size", detail={"key": "size"})

        assert error.to_dict() == {
            "code": "invalid_filter",
            "message": "Unknown filter field: size",
            "detail": {"key": "size"},
        }

    def test_raises_as_exception(self):
        """Test that errors carry their message as str()."""
        with pytest.raises(DocsvilleError, match="superseded"):
            raise AbortedError("Search generation 3 was superseded")
