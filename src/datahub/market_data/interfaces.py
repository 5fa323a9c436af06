"""Abstract interfaces for market data acquisition and caching."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .fetcher import HttpRequest, RetryingFetcher


class CacheStore(ABC):
    """
    Key/value store with per-key TTL expiry.

    Implementations may be eventually consistent; a write is not required
    to be visible to an immediately following read.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a value for ``ttl_seconds`` (normalized to the store's floor)."""

    async def close(self) -> None:
        """Release store resources."""


class DataSource(ABC):
    """
    Base class for upstream providers.

    Sources build provider-specific requests and normalize the responses;
    throttling and retries are delegated to the shared fetcher.
    """

    def __init__(
        self,
        name: str,
        fetcher: RetryingFetcher,
        config: Optional[Dict] = None,
    ):
        self.name = name
        self.fetcher = fetcher
        self.config = config or {}

    async def _request_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        method: str = "GET",
        json_body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Send a request through the fetcher and parse the JSON body."""
        request = HttpRequest(
            source=self.name,
            url=url,
            method=method,
            params=params or {},
            headers=headers or {},
            json_body=json_body,
        )
        return await self.fetcher.fetch_json(request)

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the upstream is reachable."""

    def __str__(self) -> str:
        return f"DataSource({self.name})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
