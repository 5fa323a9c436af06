"""Eastmoney board leaders sorted by main-force net inflow."""

from typing import Any, Dict, List

from ..exceptions import InvalidRequestError
from ..types import is_valid_tag_code
from .eastmoney import USER_AGENT, EastmoneyDataSource

CLIST_URL = "https://push2.eastmoney.com/api/qt/clist/get"
CLIST_UT = "8dec03ba335b81bf4ebdf7b29ec27d15"


class EastmoneyTagLeaderSource(EastmoneyDataSource):
    """Constituents of a board (BKxxxx), strongest net inflow first."""

    HEADERS = {
        "User-Agent": USER_AGENT,
        "Accept": "*/*",
        "Referer": "https://quote.eastmoney.com/",
    }

    async def fetch_tag_leaders(self, tag_code: str, count: int) -> List[Dict[str, Any]]:
        if not is_valid_tag_code(tag_code):
            raise InvalidRequestError(f"Invalid tag code - expected BK followed by 4 digits: {tag_code}")

        payload = await self._get(
            CLIST_URL,
            {
                "pn": "1",
                "pz": str(count),
                "np": "1",
                "fltt": "2",
                "invt": "2",
                "fid": "f62",
                "po": "1",
                "ut": CLIST_UT,
                "fs": f"b:{tag_code.upper()}",
                "fields": "f12,f14,f2,f3,f62",
            },
        )
        return self.normalizer.normalize_tag_leaders(payload)
