"""Eastmoney historical kline (candlestick) series."""

import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import InvalidRequestError
from ..types import Symbol, get_stock_identity, is_valid_a_share_symbol
from .eastmoney import EastmoneySymbolSource

KLINE_URL = "https://push2his.eastmoney.com/api/qt/stock/kline/get"

# 1/5/15/30/60 minutes, daily, weekly, monthly
KLINE_PERIODS = (1, 5, 15, 30, 60, 101, 102, 103)

# 0 = unadjusted, 1 = forward adjusted, 2 = backward adjusted
ADJUST_TYPES = (0, 1, 2)

DEFAULT_LIMIT = 1000
DEFAULT_END_DATE = "20500101"

_DATE = re.compile(r"^\d{8}$")


@dataclass(frozen=True)
class KlineQuery:
    """Parameters of one kline request."""

    symbol: Symbol
    period: int = 101
    adjust: int = 1
    limit: int = DEFAULT_LIMIT
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def __post_init__(self):
        if not is_valid_a_share_symbol(self.symbol):
            raise InvalidRequestError(f"Invalid symbol - codes must be 6 digits: {self.symbol}")
        if self.period not in KLINE_PERIODS:
            raise InvalidRequestError(f"Unsupported kline period: {self.period}")
        if self.adjust not in ADJUST_TYPES:
            raise InvalidRequestError(f"Unsupported adjust type: {self.adjust}")
        if self.limit <= 0:
            raise InvalidRequestError("Kline limit must be positive")
        for value in (self.start_date, self.end_date):
            if value is not None and not _DATE.match(value):
                raise InvalidRequestError(f"Dates must be YYYYMMDD: {value}")

    @property
    def cache_key(self) -> str:
        return (
            f"kline:{self.symbol}:{self.period}:{self.adjust}:{self.limit}:"
            f"{self.start_date or '-'}:{self.end_date or '-'}"
        )


class EastmoneyKlineSource(EastmoneySymbolSource):
    """Kline rows labelled 时间, 开盘价, 收盘价 ... 换手率."""

    def __init__(self, *args, clock: Optional[Callable[[], int]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._clock = clock or (lambda: int(time.time() * 1000))

    def build_params(self, query: KlineQuery) -> Dict[str, str]:
        identity = get_stock_identity(query.symbol)
        params = {
            "secid": identity.secid(query.symbol),
            "klt": str(query.period),
            "fqt": str(query.adjust),
            "lmt": str(query.limit),
            "end": query.end_date or DEFAULT_END_DATE,
            "fields1": "f1,f2,f3,f4,f5,f6",
            "fields2": "f51,f52,f53,f54,f55,f56,f57,f58,f59,f60,f61",
            "_": str(self._clock()),
        }
        if query.start_date:
            params["beg"] = query.start_date
        return params

    async def fetch_kline(self, query: KlineQuery) -> List[Dict[str, Any]]:
        """Fetch a kline series; an empty list when upstream has no rows."""
        payload = await self._get(KLINE_URL, self.build_params(query))
        return self.normalizer.normalize_kline(payload)

    async def fetch_one(self, symbol: Symbol) -> List[Dict[str, Any]]:
        """Daily forward-adjusted series with default limits."""
        return await self.fetch_kline(KlineQuery(symbol))
