"""Bearer credential handling for backend requests using python-jose.

The identity provider is an external collaborator: it hands out access
tokens, this module only caches them and reads their expiry claim so a
token about to expire is refreshed before it is attached to a request.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from jose import JWTError, jwt
from pydantic import BaseModel

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[Optional[str]]]


class TokenData(BaseModel):
    """Claims of interest in an access token."""

    sub: Optional[str] = None
    exp: Optional[datetime] = None


def decode_token(token: str) -> Optional[TokenData]:
    """
    Read the claims of a JWT access token without verifying its signature.

    Signature verification is the backend's job; the client only needs
    the expiry to decide when to refresh.

    Args:
        token: The JWT token string to decode

    Returns:
        TokenData if the token is a JWT, None for opaque tokens
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None

    exp = claims.get("exp")
    return TokenData(
        sub=claims.get("sub"),
        exp=datetime.fromtimestamp(exp, tz=timezone.utc) if isinstance(exp, (int, float)) else None,
    )


def is_token_expired(
    token: str,
    leeway: timedelta = timedelta(seconds=30),
    now: Optional[datetime] = None,
) -> bool:
    """Check whether a token expires within ``leeway``. Opaque tokens never expire."""
    token_data = decode_token(token)
    if token_data is None or token_data.exp is None:
        return False
    now = now or datetime.now(timezone.utc)
    return token_data.exp - leeway <= now


class AccessTokenProvider:
    """Supplies the bearer credential attached to each backend request."""

    def __init__(
        self,
        token: Optional[str] = None,
        fetch_token: Optional[TokenFetcher] = None,
        leeway: timedelta = timedelta(seconds=30),
    ):
        """
        Initialize the provider.

        Args:
            token: Initial access token, if one is already known
            fetch_token: Coroutine asking the identity provider for a fresh token
            leeway: Refresh tokens expiring within this window
        """
        self._token = token
        self._fetch_token = fetch_token
        self.leeway = leeway

    async def get_access_token(self) -> Optional[str]:
        """Return a usable token, refreshing it through the identity provider if needed."""
        if self._token and not is_token_expired(self._token, self.leeway):
            return self._token

        if self._fetch_token is None:
            return self._token

        try:
            self._token = await self._fetch_token()
        except Exception as e:
            # Requests go out unauthenticated and the backend decides.
            logger.error(f"Error getting access token: {e}")
            self._token = None
        return self._token

    async def auth_headers(self) -> dict[str, str]:
        """Build the Authorization header, empty when no token is available."""
        token = await self.get_access_token()
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}
