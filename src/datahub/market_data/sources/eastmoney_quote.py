"""Eastmoney realtime stock quotes."""

from typing import Any, Dict

from ..normalizer import STOCK_QUOTE_FIELDS
from ..types import Symbol, get_stock_identity
from .eastmoney import QUOTE_URL, EastmoneySymbolSource


class EastmoneyQuoteSource(EastmoneySymbolSource):
    """Latest price, change and change percent (decimal prices, fltt=2)."""

    FIELDS = ",".join(STOCK_QUOTE_FIELDS)

    async def fetch_one(self, symbol: Symbol) -> Dict[str, Any]:
        identity = get_stock_identity(symbol)
        payload = await self._get(
            QUOTE_URL,
            {
                "invt": "2",
                "fltt": "2",
                "fields": self.FIELDS,
                "secid": identity.secid(symbol),
            },
        )
        return self.normalizer.normalize_stock_quote(payload)
