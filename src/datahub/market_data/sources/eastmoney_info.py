"""Eastmoney company basics (share capital, market value, industry)."""

from typing import Any, Dict

from ..types import Symbol, get_stock_identity
from .eastmoney import QUOTE_URL, EastmoneySymbolSource


class EastmoneyInfoSource(EastmoneySymbolSource):
    """Basic stock info, tagged with the market and board of the symbol."""

    FIELDS = "f57,f58,f127,f116,f117,f189,f84,f85,f128"

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
        return self.normalizer.normalize_stock_info(identity, payload)

