"""Common models shared across the search engine."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Error body returned by the document backend on non-2xx responses."""

    model_config = ConfigDict(extra="allow")

    message: Optional[str] = Field(None, description="Human-readable error message")
    error: Optional[str] = Field(None, description="Error code")

    def describe(self, default: str = "An error occurred") -> str:
        return self.message or self.error or default
