"""
OAuth token management for the Turvo public API.

One TokenManager per client. It owns the bearer token, the refresh token
and the rate-limit cooldown; nothing outside this module mutates them.
Acquisition is serialized by a single lock held across the token request,
so concurrent callers needing a fresh token wait on one round trip instead
of each issuing their own.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx
import structlog

from turvo_connector.config import TurvoConfig
from turvo_connector.exceptions import TurvoAuthError, TurvoRateLimitError

logger = structlog.get_logger(__name__)

# Renew when less than this many seconds of validity remain
RENEW_MARGIN_SECONDS = 60.0
# Used when the token endpoint omits expires_in or sends a non-positive value
DEFAULT_EXPIRES_IN_SECONDS = 12 * 60 * 60
# Cooldown after a 429 without a usable Retry-After header
DEFAULT_COOLDOWN_SECONDS = 60.0
# Token endpoint bodies are logged and attached to errors up to this size
MAX_BODY_PREVIEW = 2048


@dataclass
class OAuthToken:
    """Bearer token held by the TokenManager."""
    access_token: str
    refresh_token: str
    expires_at: float

    def seconds_left(self, now: float) -> float:
        return self.expires_at - now

    def is_expiring(self, now: float) -> bool:
        return self.seconds_left(now) <= RENEW_MARGIN_SECONDS


@dataclass
class TokenManagerStats:
    """Statistics for monitoring token behavior."""
    password_grants: int = 0
    refresh_grants: int = 0
    rate_limited: int = 0
    failures: int = 0


def parse_retry_after(value: str | None, default: float = DEFAULT_COOLDOWN_SECONDS) -> float:
    """Parse a Retry-After header given in whole seconds."""
    if not value:
        return default
    try:
        seconds = int(value.strip())
    except ValueError:
        return default
    return float(seconds) if seconds > 0 else default


class TokenManager:
    """
    Thread-safe owner of the Turvo OAuth token.

    Example:
        tokens = TokenManager(config, http_client)
        tokens.ensure_token()
        headers = {"Authorization": f"Bearer {tokens.access_token}"}
    """

    def __init__(
        self,
        config: TurvoConfig,
        http_client: httpx.Client,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._http = http_client
        self._clock = clock

        self._lock = threading.Lock()
        self._token: OAuthToken | None = None
        self._next_attempt_at: float = 0.0

        self.stats = TokenManagerStats()
        self._log = logger.bind(base_url=config.base_url)

    @property
    def access_token(self) -> str:
        """Current bearer token, or "" when none has been acquired."""
        token = self._token
        return token.access_token if token else ""

    @property
    def token_endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/v1/oauth/token"

    def ensure_token(
        self,
        use_refresh: bool = False,
        timeout: float | None = None,
        rejected_token: str | None = None,
    ) -> None:
        """
        Make sure a usable bearer token is held.

        Args:
            use_refresh: Prefer the refresh grant when a refresh token is stored
            timeout: Timeout for the token request, in seconds
            rejected_token: Token a resource endpoint just answered 401 for.
                If it is still current it is treated as expired.

        Raises:
            TurvoRateLimitError: Cooldown active, or the endpoint answered 429
            TurvoAuthError: Any other token endpoint failure
        """
        with self._lock:
            now = self._clock()
            token = self._token

            if token and not token.is_expiring(now):
                if rejected_token is None or rejected_token != token.access_token:
                    return

            if self.config.api_key_only:
                return

            if now < self._next_attempt_at:
                remaining = self._next_attempt_at - now
                self.stats.rate_limited += 1
                raise TurvoRateLimitError("OAuth cooldown active", retry_after=remaining)

            self._acquire(use_refresh, timeout)

    def _acquire(self, use_refresh: bool, timeout: float | None) -> None:
        """POST to the token endpoint. Must hold lock."""
        refresh_token = self._token.refresh_token if self._token else ""
        use_refresh_grant = use_refresh and bool(refresh_token)

        if use_refresh_grant:
            form = {"grant_type": "refresh_token", "refresh_token": refresh_token}
            self.stats.refresh_grants += 1
        else:
            form = {
                "grant_type": "password",
                "username": self.config.username,
                "password": self.config.password,
                "scope": self.config.scope,
                "type": self.config.user_type,
            }
            self.stats.password_grants += 1

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key

        params = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }

        log = self._log.bind(grant_type=form["grant_type"])
        log.info("Turvo OAuth request", endpoint=self.token_endpoint)

        response = self._http.post(
            self.token_endpoint,
            params=params,
            data=form,
            headers=headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        body = response.text
        preview = body[:MAX_BODY_PREVIEW]
        log.info("Turvo OAuth response", status_code=response.status_code, body=preview)

        if response.status_code == 429:
            cooldown = parse_retry_after(response.headers.get("Retry-After"))
            self._next_attempt_at = self._clock() + cooldown
            self.stats.rate_limited += 1
            log.warning("Turvo OAuth rate limited", cooldown_seconds=cooldown)
            raise TurvoRateLimitError(
                "OAuth token endpoint rate limited",
                retry_after=cooldown,
                response_body=preview,
            )

        if response.status_code != 200:
            self.stats.failures += 1
            raise TurvoAuthError(
                f"OAuth token error: {preview}",
                status_code=response.status_code,
                response_body=preview,
            )

        try:
            data = response.json()
        except ValueError as e:
            self.stats.failures += 1
            raise TurvoAuthError(
                f"Invalid JSON from token endpoint: {e}",
                status_code=response.status_code,
                response_body=preview,
            ) from e

        if not isinstance(data, dict):
            self.stats.failures += 1
            raise TurvoAuthError("Unexpected token endpoint response", response_body=preview)

        access_token = str(data.get("access_token") or "").strip()
        if not access_token:
            self.stats.failures += 1
            raise TurvoAuthError("Empty access_token from OAuth", response_body=preview)

        expires_in = _as_int(data.get("expires_in"))
        if expires_in <= 0:
            expires_in = DEFAULT_EXPIRES_IN_SECONDS

        self._token = OAuthToken(
            access_token=access_token,
            refresh_token=str(data.get("refresh_token") or ""),
            expires_at=self._clock() + expires_in,
        )
        self._next_attempt_at = 0.0
        log.info("Turvo OAuth token acquired", expires_in=expires_in)

    def get_stats(self) -> dict[str, Any]:
        """Get token statistics for monitoring."""
        token = self._token
        return {
            "has_token": token is not None,
            "seconds_left": round(token.seconds_left(self._clock()), 1) if token else None,
            "cooldown_seconds": round(max(0.0, self._next_attempt_at - self._clock()), 1),
            "password_grants": self.stats.password_grants,
            "refresh_grants": self.stats.refresh_grants,
            "rate_limited": self.stats.rate_limited,
            "failures": self.stats.failures,
        }


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
