"""
OAuth bearer token handling for the osu! API v2

Tokens come from the client-credentials grant and are refreshed lazily: the next
v2 call after expiry performs the exchange, never a background task.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp

from shared.results import TokenRefreshFailed
from .metrics import ApiMetrics


OAUTH_TOKEN_URL = "https://osu.ppy.sh/oauth/token"


@dataclass(frozen=True)
class Token:
    value: str
    lifetime_seconds: int
    issued_at: float

    def remaining(self, now: float) -> float:
        return self.lifetime_seconds - (now - self.issued_at)

    def is_valid(self, now: float) -> bool:
        return now - self.issued_at < self.lifetime_seconds


class TokenManager:
    """Owns the current bearer token; all reads and refreshes go through here"""

    def __init__(self, session: aiohttp.ClientSession, client_id: str, client_secret: str,
                 token_url: str = OAUTH_TOKEN_URL, logger: Optional[logging.Logger] = None,
                 metrics: Optional[ApiMetrics] = None, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            session: HTTP session used for the token exchange
            client_id: OAuth application id
            client_secret: OAuth application secret
            token_url: Authorization endpoint
            logger: Where refreshes and failures are logged
            metrics: Optional counters updated on every refresh
            clock: Monotonic time source in seconds
        """
        self.session = session
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.logger = logger or logging.getLogger(__name__)
        self.metrics = metrics
        self._clock = clock
        self._token: Optional[Token] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[Token]:
        return self._token

    def remaining_lifetime(self) -> float:
        """Seconds until the current token expires, never below zero"""
        if self._token is None:
            return 0.0
        return max(self._token.remaining(self._clock()), 0.0)

    async def ensure_valid(self) -> Token:
        """
        Return a usable token, refreshing it first if it has expired

        Raises:
            TokenRefreshFailed: The exchange failed; the old token is kept
        """
        async with self._lock:
            if self._token is None or not self._token.is_valid(self._clock()):
                await self._refresh_locked()
            return self._token

    async def refresh(self) -> Token:
        """Force a new client-credentials exchange"""
        async with self._lock:
            await self._refresh_locked()
            return self._token

    async def _refresh_locked(self):
        payload = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'grant_type': 'client_credentials',
            'scope': 'public',
        }

        # Count the lifetime from when the request went out
        issued_at = self._clock()
        try:
            async with self.session.post(self.token_url, data=payload) as response:
                response.raise_for_status()
                body = await response.json(content_type=None)
            new_token = Token(
                value=str(body['access_token']),
                lifetime_seconds=int(body['expires_in']),
                issued_at=issued_at,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Token refresh failed: {e}")
            raise TokenRefreshFailed(f"OAuth token request failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Token refresh returned a malformed response: {e!r}")
            raise TokenRefreshFailed(f"Malformed OAuth token response: {e!r}") from e

        self._token = new_token
        self.logger.info(f"Obtained new API v2 token, valid for {new_token.lifetime_seconds}s")
        if self.metrics is not None:
            self.metrics.record('token_refresh')
            self.metrics.track_token_lifetime(self.remaining_lifetime)
