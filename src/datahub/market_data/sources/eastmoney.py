"""Shared plumbing for Eastmoney endpoints."""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import MarketDataError
from ..fetcher import RetryingFetcher, fan_out
from ..interfaces import DataSource
from ..normalizer import DataNormalizer
from ..results import FetchOutcome
from ..types import Symbol

logger = logging.getLogger(__name__)

EASTMONEY_SOURCE = "eastmoney"

QUOTE_URL = "https://push2.eastmoney.com/api/qt/stock/get"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "zh-CN,zh;q=0.9",
    "Referer": "https://quote.eastmoney.com/",
}

DEFAULT_CONCURRENCY = 6


class EastmoneyDataSource(DataSource):
    """
    Base class for Eastmoney adapters.

    Holds the browser headers and the quote health check. Pacing and
    retries happen in the shared fetcher, never here.
    """

    HEADERS: Dict[str, str] = BROWSER_HEADERS

    def __init__(
        self,
        fetcher: RetryingFetcher,
        config: Optional[Dict] = None,
        normalizer: Optional[DataNormalizer] = None,
        name: str = EASTMONEY_SOURCE,
    ):
        super().__init__(name, fetcher, config)
        self.normalizer = normalizer or DataNormalizer()
        self.concurrency = self.config.get("max_concurrency", DEFAULT_CONCURRENCY)

    async def _get(self, url: str, params: Dict[str, str]) -> Any:
        return await self._request_json(url, params=params, headers=dict(self.HEADERS))

    async def health_check(self) -> bool:
        """Check if the quote endpoint answers for the SSE composite index."""
        try:
            await self._get(
                QUOTE_URL,
                {"invt": "2", "fltt": "2", "fields": "f57,f58", "secid": "1.000001"},
            )
            return True
        except MarketDataError as e:
            logger.warning(f"Eastmoney health check failed: {e}")
            return False


class EastmoneySymbolSource(EastmoneyDataSource):
    """Eastmoney endpoint queried one symbol at a time; batches fan out."""

    @abstractmethod
    async def fetch_one(self, symbol: Symbol) -> Any:
        """Fetch and normalize the record for one symbol."""

    async def fetch_many(self, symbols: Sequence[Symbol]) -> List[FetchOutcome]:
        """Fetch every symbol; one Ok/Err per symbol in input order."""
        return await fan_out(symbols, self.fetch_one, self.concurrency)
