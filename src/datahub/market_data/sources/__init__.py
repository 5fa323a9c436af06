"""Market data source implementations."""

from .eastmoney import (
    BROWSER_HEADERS,
    EASTMONEY_SOURCE,
    EastmoneyDataSource,
    EastmoneySymbolSource,
)
from .eastmoney_index import EastmoneyIndexSource
from .eastmoney_info import EastmoneyInfoSource
from .eastmoney_kline import KlineQuery, EastmoneyKlineSource
from .eastmoney_quote import EastmoneyQuoteSource
from .eastmoney_rank import EastmoneyRankSource
from .eastmoney_tag_leader import EastmoneyTagLeaderSource

__all__ = [
    "BROWSER_HEADERS",
    "EASTMONEY_SOURCE",
    "EastmoneyDataSource",
    "EastmoneySymbolSource",
    "EastmoneyQuoteSource",
    "EastmoneyIndexSource",
    "EastmoneyInfoSource",
    "EastmoneyKlineSource",
    "KlineQuery",
    "EastmoneyRankSource",
    "EastmoneyTagLeaderSource",
]
