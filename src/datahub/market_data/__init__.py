"""Market data acquisition and caching core for datahub."""

from .cache import CacheEntry, MemoryCacheStore
from .cache_warming import (
    CacheWarmer,
    HotStockInfoWarming,
    HotStocksRefresh,
)
from .calendar import HolidayOracle, TradingCalendar
from .exceptions import (
    CacheError,
    ConnectionError,
    DataSourceError,
    DataValidationError,
    HolidayOracleError,
    InvalidRequestError,
    MarketDataError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamHTTPError,
)
from .fetcher import (
    AiohttpTransport,
    HttpRequest,
    HttpResponse,
    RetryConfig,
    RetryingFetcher,
    fan_out,
)
from .interfaces import CacheStore, DataSource
from .monitoring import MetricsCollector
from .normalizer import DataNormalizer
from .orchestrator import BatchResult, CacheOrchestrator
from .results import Err, FetchOutcome, Ok
from .service import BatchResponse, MarketDataService
from .sources import (
    EastmoneyIndexSource,
    EastmoneyInfoSource,
    EastmoneyKlineSource,
    EastmoneyQuoteSource,
    EastmoneyRankSource,
    EastmoneyTagLeaderSource,
    KlineQuery,
)
from .throttle import Throttler, ThrottlerRegistry
from .types import StockIdentity, Symbol, get_stock_identity, normalize_symbols

__all__ = [
    "MarketDataService",
    "BatchResponse",
    "CacheOrchestrator",
    "BatchResult",
    "CacheStore",
    "CacheEntry",
    "MemoryCacheStore",
    "TradingCalendar",
    "HolidayOracle",
    "Throttler",
    "ThrottlerRegistry",
    "RetryingFetcher",
    "RetryConfig",
    "AiohttpTransport",
    "HttpRequest",
    "HttpResponse",
    "fan_out",
    "DataSource",
    "DataNormalizer",
    "EastmoneyQuoteSource",
    "EastmoneyIndexSource",
    "EastmoneyInfoSource",
    "EastmoneyKlineSource",
    "KlineQuery",
    "EastmoneyRankSource",
    "EastmoneyTagLeaderSource",
    "CacheWarmer",
    "HotStocksRefresh",
    "HotStockInfoWarming",
    "MetricsCollector",
    "Ok",
    "Err",
    "FetchOutcome",
    "Symbol",
    "StockIdentity",
    "get_stock_identity",
    "normalize_symbols",
    # Exceptions
    "MarketDataError",
    "DataSourceError",
    "UpstreamHTTPError",
    "RateLimitError",
    "ServiceUnavailableError",
    "ConnectionError",
    "DataValidationError",
    "CacheError",
    "HolidayOracleError",
    "InvalidRequestError",
]
