"""Core security module."""

from core.security.jwt import (
    AccessTokenProvider,
    TokenData,
    TokenFetcher,
    decode_token,
    is_token_expired,
)

__all__ = [
    "AccessTokenProvider",
    "TokenData",
    "TokenFetcher",
    "decode_token",
    "is_token_expired",
]
