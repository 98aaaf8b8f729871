"""
Access-token cache for the partner API.

Holds a single client-credentials bearer token and refreshes it lazily,
on demand, when it is missing or about to expire.
"""

import logging
import threading
import time
from typing import Callable, Optional

import requests

from ..exceptions import AuthError

logger = logging.getLogger(__name__)

SAFETY_MARGIN_MS = 30_000


class TokenCache:
    """
    Process-wide cache of the partner bearer token.

    The check-and-refresh sequence runs under a lock, so concurrent callers
    never trigger redundant token exchanges.
    """

    def __init__(
        self,
        auth_url: str,
        authorization_header: str,
        scope: str = "partner_management",
        safety_margin_ms: int = SAFETY_MARGIN_MS,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            auth_url: Token endpoint of the identity provider
            authorization_header: Static Authorization header for the exchange
            scope: OAuth scope requested
            safety_margin_ms: A token expiring within this window counts as stale
            timeout: HTTP timeout for the exchange, in seconds
            session: Optional requests session (shared connection pool)
            clock: Time source returning epoch seconds
        """
        self.auth_url = auth_url
        self.authorization_header = authorization_header
        self.scope = scope
        self.safety_margin_ms = safety_margin_ms
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock

        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at_ms: int = 0
        self.refresh_count = 0

    def get_valid_token(self) -> str:
        """
        Return a bearer token valid for at least the safety margin.

        Raises:
            AuthError: if a required refresh exchange fails
        """
        with self._lock:
            if self._is_stale():
                self._refresh()
            return self._token

    def invalidate(self) -> None:
        """Drop the held token so the next call performs a refresh."""
        with self._lock:
            self._token = None
            self._expires_at_ms = 0
        logger.info("Access token invalidated")

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def expires_in_seconds(self) -> int:
        """Seconds until the held token expires (0 when absent or expired)."""
        if self._token is None:
            return 0
        return max(0, (self._expires_at_ms - self._now_ms()) // 1000)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_stale(self) -> bool:
        if self._token is None:
            return True
        return self._now_ms() >= self._expires_at_ms - self.safety_margin_ms

    def _refresh(self) -> None:
        """Perform the client-credentials exchange. Caller holds the lock."""
        logger.info("Refreshing partner access token")

        headers = {
            "Authorization": self.authorization_header,
            "Content-Type": "application/x-www-form-urlencoded",
        }
        form = {"grant_type": "client_credentials", "scope": self.scope}

        try:
            response = self.session.post(self.auth_url, data=form, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Token exchange request failed: {e}")
            raise AuthError(f"Token exchange failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.error(f"Token endpoint returned {response.status_code}")
            raise AuthError(
                f"Token endpoint returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AuthError(f"Token endpoint returned a non-JSON body: {e}") from e

        token = body.get("access_token") if isinstance(body, dict) else None
        expires_in = body.get("expires_in") if isinstance(body, dict) else None
        if not token or expires_in is None:
            raise AuthError("Token response is missing access_token or expires_in")

        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as e:
            raise AuthError(f"Invalid expires_in in token response: {expires_in!r}") from e

        self._token = token
        self._expires_at_ms = self._now_ms() + expires_in * 1000
        self.refresh_count += 1
        logger.info(f"Access token refreshed, expires in {expires_in}s")


def token_preview(token: Optional[str], length: int = 50) -> str:
    """Shortened form of a token, safe to show in responses."""
    if not token:
        return "null"
    return token[:length] + "..."
