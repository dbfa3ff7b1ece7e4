"""Core configuration settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Environment
    environment: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Document backend
    search_api_url: str = Field(
        default="https://api.alliedworld.dev/api",
        description="Base URL of the Docsville search API",
    )
    config_api_url: str = Field(
        default="https://dmsv2-api.alliedworld.dev",
        description="Base URL of the Docsville configuration API",
    )
    request_timeout: float = Field(default=15.0, description="HTTP request timeout in seconds")

    # Identity provider credential
    access_token: Optional[str] = Field(
        default=None,
        description="Bearer token attached to backend requests",
    )

    # Query compilation
    page_size: int = Field(default=20, ge=1, le=500, description="Results per page")
    default_projection: list[str] = Field(
        default_factory=list,
        description="Fields requested from the backend (empty means all)",
    )
    default_source_system: str = Field(
        default="genius",
        description="Fallback value for the sourceSystem facet",
    )
    default_facet_policy: Literal["fallback", "strict"] = Field(
        default="fallback",
        description="Inject missing default facets or reject the query",
    )

    # Caching (in seconds)
    cache_stale_time: float = Field(
        default=30.0,
        description="Search responses are fresh for this long",
    )
    cache_gc_time: float = Field(
        default=300.0,
        description="Unused search responses are evicted after this long",
    )
    config_cache_ttl: float = Field(
        default=300.0,
        description="Source system config cache TTL (5 minutes)",
    )

    # Retries
    retry_max_retries: int = Field(default=3, ge=0, description="Retries for transient failures")
    retry_base_delay: float = Field(default=0.5, description="Base backoff delay in seconds")
    retry_max_delay: float = Field(default=30.0, description="Maximum backoff delay in seconds")

    # Filter editing
    debounce_delay: float = Field(
        default=0.5,
        description="Delay before a typed filter value is auto-applied",
    )
    auto_apply: bool = Field(default=False, description="Apply text filters while typing")

    # Result window
    row_height: int = Field(default=48, ge=1, description="Row height in pixels")
    overscan: int = Field(default=5, ge=0, description="Rows rendered beyond the viewport")
    prefetch_threshold: int = Field(
        default=200,
        description="Distance from the bottom (px) that triggers a prefetch",
    )

    # Content search
    content_search_k: int = Field(default=5, ge=1, description="Content search result count")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
