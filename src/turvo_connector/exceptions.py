"""
Exception hierarchy for the Turvo connector.

Every error raised by the client derives from TurvoAPIError so callers can
catch one type, while TurvoRateLimitError stays distinguishable for
translation into a "retry after N seconds" response.
"""

import math


class TurvoAPIError(Exception):
    """Base exception for Turvo API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code:
            return f"{base} (HTTP {self.status_code})"
        return base


class TurvoConfigError(TurvoAPIError):
    """Raised when the client configuration is unusable."""
    pass


class TurvoAuthError(TurvoAPIError):
    """Raised when token acquisition or refresh fails (not rate limiting)."""
    pass


class TurvoUnauthorizedError(TurvoAuthError):
    """Raised when a resource endpoint still answers 401 after a refresh."""
    pass


class TurvoRateLimitError(TurvoAPIError):
    """
    Raised on a 429 from Turvo or while the local OAuth cooldown is active.

    retry_after is in seconds.
    """

    def __init__(
        self,
        message: str,
        retry_after: float,
        status_code: int | None = 429,
        response_body: str | None = None,
    ):
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.retry_after = max(0.0, retry_after)

    @property
    def retry_after_header(self) -> str:
        """Whole seconds, suitable for a Retry-After response header."""
        return str(max(1, math.ceil(self.retry_after)))

    def __str__(self) -> str:
        return f"rate limited: retry after {self.retry_after:.0f}s - {super().__str__()}"


class TurvoNotFoundError(TurvoAPIError):
    """Raised when no record matches an id or external id."""
    pass


class TurvoDecodeError(TurvoAPIError):
    """Raised when a response body matches none of the expected shapes."""
    pass


class TurvoUpstreamError(TurvoAPIError):
    """Raised on any other non-2xx response from a resource endpoint."""
    pass
