"""Eastmoney index quotes."""

from typing import Any, Dict

from ..normalizer import INDEX_QUOTE_FIELDS
from ..types import Symbol, get_stock_identity
from .eastmoney import QUOTE_URL, USER_AGENT, EastmoneySymbolSource


class EastmoneyIndexSource(EastmoneySymbolSource):
    """
    Index quotes requested as fixed-point integers (fltt=1).

    Index codes share prefixes with stocks on the other exchange, so the
    market id is flipped (``000001`` is the SSE composite, ``1.000001``).
    """

    HEADERS = {
        "User-Agent": USER_AGENT,
        "Accept": "*/*",
        "Referer": "https://quote.eastmoney.com/",
    }

    FIELDS = ",".join(INDEX_QUOTE_FIELDS)

    async def fetch_one(self, symbol: Symbol) -> Dict[str, Any]:
        identity = get_stock_identity(symbol)
        payload = await self._get(
            QUOTE_URL,
            {
                "invt": "2",
                "fltt": "1",
                "fields": self.FIELDS,
                "secid": identity.index_secid(symbol),
            },
        )
        return self.normalizer.normalize_index_quote(symbol, payload)
