"""Eastmoney stock popularity ranking (https://guba.eastmoney.com/rank/)."""

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import MarketDataError
from ..fetcher import RetryingFetcher
from ..normalizer import DataNormalizer
from .eastmoney import EastmoneyDataSource

logger = logging.getLogger(__name__)

RANK_URL = "https://emappdata.eastmoney.com/stockrank/getAllCurrentList"
RANK_SOURCE = "eastmoney_rank"
RANK_PAGE_SIZE = 100


class EastmoneyRankSource(EastmoneyDataSource):
    """Top 100 stocks by popularity, as rank and plain six-digit code."""

    HEADERS = {"Content-Type": "application/json"}

    def __init__(
        self,
        fetcher: RetryingFetcher,
        config: Optional[Dict] = None,
        normalizer: Optional[DataNormalizer] = None,
    ):
        super().__init__(fetcher, config, normalizer, name=RANK_SOURCE)

    async def fetch_hot_rank(self) -> List[Dict[str, Any]]:
        payload = await self._request_json(
            RANK_URL,
            method="POST",
            json_body={
                "appId": "appId01",
                "globalId": "786e4c21-70dc-435a-93bb-38",
                "marketType": "",
                "pageNo": 1,
                "pageSize": RANK_PAGE_SIZE,
            },
            headers=dict(self.HEADERS),
        )
        return self.normalizer.normalize_hot_rank(payload)

    async def health_check(self) -> bool:
        try:
            return bool(await self.fetch_hot_rank())
        except MarketDataError as e:
            logger.warning(f"Eastmoney rank health check failed: {e}")
            return False
