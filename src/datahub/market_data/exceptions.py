"""Error hierarchy for market data acquisition and caching."""

from typing import Any, Dict, Optional


class MarketDataError(Exception):
    """Root of every error raised by the market data package."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        symbol: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.symbol = symbol
        self.details = details or {}


class DataSourceError(MarketDataError):
    """An upstream source could not deliver."""


class UpstreamHTTPError(DataSourceError):
    """Upstream answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status: int,
        url: Optional[str] = None,
        body_snippet: str = "",
        retryable: bool = False,
        attempts: int = 1,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status = status
        self.url = url
        self.body_snippet = body_snippet
        self.retryable = retryable
        self.attempts = attempts


class RateLimitError(UpstreamHTTPError):
    """HTTP 429."""


class ServiceUnavailableError(UpstreamHTTPError):
    """5xx, including CDN edge failures 520-524."""


class ConnectionError(DataSourceError):
    """No HTTP response at all: DNS, reset, refused or timed out."""

    def __init__(self, message: str, url: Optional[str] = None, attempts: int = 1, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
        self.attempts = attempts


class HolidayOracleError(DataSourceError):
    """The holiday oracle could not confirm a date."""


class DataValidationError(MarketDataError):
    """Upstream payload is malformed or misses required fields."""

    def __init__(self, message: str, validation_type: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.validation_type = validation_type


class CacheError(MarketDataError):
    """Store unreachable or value not serializable."""


class InvalidRequestError(MarketDataError, ValueError):
    """Caller input is malformed (bad symbols, counts, periods)."""


_STATUS_PREFIXES = (
    (429, 430, RateLimitError, "Rate limit exceeded"),
    (500, 600, ServiceUnavailableError, "Server error ({status})"),
    (400, 500, UpstreamHTTPError, "Client error ({status})"),
)


def create_http_error(
    status_code: int,
    message: str,
    provider: Optional[str] = None,
    retryable: bool = False,
    **kwargs,
) -> UpstreamHTTPError:
    """Pick the UpstreamHTTPError subclass matching an HTTP status."""
    error_cls, prefix = UpstreamHTTPError, "HTTP error ({status})"
    for low, high, cls, label in _STATUS_PREFIXES:
        if low <= status_code < high:
            error_cls, prefix = cls, label
            break

    return error_cls(
        f"{prefix.format(status=status_code)}: {message}",
        status=status_code,
        provider=provider,
        retryable=retryable,
        **kwargs,
    )
