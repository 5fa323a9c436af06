"""Main Market Data Service orchestrator."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..config import DataHubConfig, get_settings
from .cache import MemoryCacheStore
from .cache_warming import (
    HOT_STOCKS_CACHE_KEY,
    CacheWarmer,
    HotStockInfoWarming,
    HotStocksRefresh,
    is_valid_hot_stocks_payload,
)
from .calendar import HolidayOracle, TradingCalendar
from .exceptions import InvalidRequestError, MarketDataError
from .fetcher import AiohttpTransport, RetryConfig, RetryingFetcher, fan_out
from .interfaces import CacheStore
from .monitoring import MetricsCollector
from .normalizer import format_china_time
from .orchestrator import CacheOrchestrator
from .results import Err, FetchOutcome, Ok
from .sources import (
    EastmoneySymbolSource,
    EastmoneyIndexSource,
    EastmoneyInfoSource,
    EastmoneyKlineSource,
    EastmoneyQuoteSource,
    EastmoneyRankSource,
    EastmoneyTagLeaderSource,
    KlineQuery,
)
from .throttle import ThrottlerRegistry
from .types import ERROR_FIELD, is_valid_tag_code, normalize_symbols, parse_count

logger = logging.getLogger(__name__)

SOURCE_LABEL = "东方财富"

DEFAULT_RANK_COUNT = 8
DEFAULT_TAG_LEADER_COUNT = 10
MAX_LIST_COUNT = 100


def _code_error(key_field: str) -> Callable[[Err], Dict[str, Any]]:
    return lambda err: err.to_record(key_field)


def _info_error(err: Err) -> Dict[str, Any]:
    return {"市场代码": "-", "股票代码": err.key, "股票简称": "-", ERROR_FIELD: err.message}


@dataclass(frozen=True)
class Category:
    """How one batch category is cached, fetched and rendered."""

    name: str
    namespace: str
    count_label: str
    items_label: str
    render_error: Callable[[Err], Dict[str, Any]]

    def cache_key(self, symbol: str) -> str:
        return f"{self.namespace}:{symbol}"


CATEGORIES: Dict[str, Category] = {
    "quote": Category("quote", "stock_quote", "股票数量", "行情", _code_error("股票代码")),
    "index": Category("index", "index_quote", "指数数量", "行情", _code_error("指数代码")),
    "info": Category("info", "stock_info", "股票数量", "股票信息", _info_error),
}


@dataclass
class BatchResponse:
    """Ordered records plus the aggregate cache flag."""

    category: str
    items: List[Any]
    all_from_cache: bool
    updated_at: str
    source: str = SOURCE_LABEL
    error: Optional[str] = None
    count_label: str = "数量"
    items_label: str = "数据"
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return "success (cached)" if self.all_from_cache else "success"

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "来源": self.source,
            "更新时间": self.updated_at,
            **self.extra,
            self.count_label: len(self.items),
            self.items_label: self.items,
        }
        if self.error is not None:
            body[ERROR_FIELD] = self.error
        return body


class MarketDataService:
    """
    Central entry point for market data lookups.

    Owns one instance of every collaborator: the throttler registry, the
    retrying fetcher, the trading calendar with its holiday memo, the cache
    store and the orchestrator. Nothing is process-global, so independent
    services (and tests) never share pacing or memo state.
    """

    def __init__(
        self,
        config: Optional[DataHubConfig] = None,
        store: Optional[CacheStore] = None,
        transport=None,
        oracle=None,
        metrics: Optional[MetricsCollector] = None,
        clock=None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.config = config or get_settings()
        logging.getLogger("datahub").setLevel(self.config.log_level)
        self.metrics = metrics or MetricsCollector()

        throttle_cfg = self.config.throttle
        self.throttlers = ThrottlerRegistry(
            default_interval=throttle_cfg.default_interval,
            intervals=throttle_cfg.intervals(),
            sleep=sleep,
        )

        fetch_cfg = self.config.fetch
        self.transport = transport or AiohttpTransport()
        self.fetcher = RetryingFetcher(
            self.transport,
            self.throttlers,
            RetryConfig(
                max_attempts=fetch_cfg.max_attempts,
                backoff_base=fetch_cfg.backoff_base_ms / 1000,
                timeout=fetch_cfg.timeout_seconds,
                body_snippet_chars=fetch_cfg.body_snippet_chars,
            ),
            metrics=self.metrics,
            sleep=sleep,
        )

        cal_cfg = self.config.calendar
        self.oracle = oracle or HolidayOracle(
            self.fetcher, cal_cfg.holiday_api_base, cal_cfg.holiday_timeout_seconds
        )
        self.calendar = TradingCalendar(
            self.oracle,
            timezone_name=cal_cfg.timezone,
            search_horizon_days=cal_cfg.search_horizon_days,
            fallback=timedelta(hours=cal_cfg.fallback_hours),
            memo_retention_days=cal_cfg.memo_retention_days,
            memo_max_entries=cal_cfg.memo_max_entries,
            intraday_ttl_base=cal_cfg.intraday_ttl_base_seconds,
            intraday_ttl_jitter=cal_cfg.intraday_ttl_jitter_seconds,
            clock=clock,
        )

        cache_cfg = self.config.cache
        self.store = store or MemoryCacheStore(min_ttl_seconds=cache_cfg.min_ttl_seconds)
        self.orchestrator = CacheOrchestrator(
            self.store, self.calendar, write_back=cache_cfg.write_back, metrics=self.metrics
        )

        source_config = {"max_concurrency": fetch_cfg.max_concurrency}
        self.quotes = EastmoneyQuoteSource(self.fetcher, source_config)
        self.indexes = EastmoneyIndexSource(self.fetcher, source_config)
        self.info = EastmoneyInfoSource(self.fetcher, source_config)
        self.kline = EastmoneyKlineSource(self.fetcher, source_config)
        self.rank = EastmoneyRankSource(self.fetcher, source_config)
        self.tag_leaders = EastmoneyTagLeaderSource(self.fetcher, source_config)

        self._batch_sources: Dict[str, EastmoneySymbolSource] = {
            "quote": self.quotes,
            "index": self.indexes,
            "info": self.info,
        }

        warm_cfg = self.config.warming
        self.warmer = CacheWarmer(self)
        self.warmer.add_strategy(
            HotStocksRefresh(self, top_n=warm_cfg.hot_top_n, ttl_seconds=cache_cfg.hot_stocks_ttl_seconds)
        )
        self.warmer.add_strategy(
            HotStockInfoWarming(
                self, limit=warm_cfg.info_warmup_top_n, concurrency=warm_cfg.concurrency
            )
        )

        self._started = False

    async def start(self) -> None:
        """Start the market data service."""
        if self._started:
            return

        if self.config.warming.enabled:
            await self.warmer.start(self.config.warming.interval_minutes)
        self._started = True

        logger.info("Market Data Service started")

    async def stop(self) -> None:
        """Stop background work, flush pending cache writes and close the session."""
        await self.warmer.stop()
        await self.orchestrator.drain()
        if hasattr(self.transport, "close"):
            await self.transport.close()
        await self.store.close()
        self._started = False

        logger.info("Market Data Service stopped")

    async def __aenter__(self) -> "MarketDataService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _now_label(self) -> str:
        return format_china_time(self.calendar.now().timestamp() * 1000)

    def cache_key_for(self, category: str) -> Callable[[str], str]:
        """Store-key builder for a batch category."""
        return self._category(category).cache_key

    @staticmethod
    def _category(name: str) -> Category:
        category = CATEGORIES.get(name)
        if category is None:
            raise InvalidRequestError(
                f"Unknown category {name!r}, expected one of {sorted(CATEGORIES)}"
            )
        return category

    async def get_batch(
        self, category: str, symbols: Union[str, Iterable[str]]
    ) -> BatchResponse:
        """
        Batch lookup for a category of per-symbol records.

        Args:
            category: ``quote``, ``index`` or ``info``
            symbols: Symbols (list or comma separated string)

        Returns:
            BatchResponse with one record per distinct symbol, in request
            order; failed symbols carry an inline error record

        Raises:
            InvalidRequestError: Unknown category or malformed symbols
        """
        spec = self._category(category)
        symbols = normalize_symbols(symbols, self.config.cache.max_symbols)
        source = self._batch_sources[category]

        result = await self.orchestrator.batch_get(
            symbols, source.fetch_many, cache_key=spec.cache_key, namespace=spec.namespace
        )

        items = [self._render(outcome, spec.render_error) for outcome in result.outcomes]
        failed = len(result.failed)
        if failed:
            logger.warning(f"[{spec.namespace}] {failed}/{len(symbols)} symbol(s) failed")

        return BatchResponse(
            category=category,
            items=items,
            all_from_cache=result.all_from_cache,
            updated_at=self._now_label(),
            count_label=spec.count_label,
            items_label=spec.items_label,
        )

    @staticmethod
    def _render(outcome: FetchOutcome, render_error: Callable[[Err], Dict[str, Any]]) -> Any:
        if isinstance(outcome, Ok):
            return outcome.record
        return render_error(outcome)

    async def get_stock_quotes(self, symbols: Union[str, Iterable[str]]) -> BatchResponse:
        return await self.get_batch("quote", symbols)

    async def get_index_quotes(self, symbols: Union[str, Iterable[str]]) -> BatchResponse:
        return await self.get_batch("index", symbols)

    async def get_stock_infos(self, symbols: Union[str, Iterable[str]]) -> BatchResponse:
        return await self.get_batch("info", symbols)

    async def _get_single(
        self,
        category: str,
        cache_key: str,
        fetch: Callable[[], Awaitable[Any]],
        namespace: str,
        items_label: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> BatchResponse:
        """Cached lookup of one list-valued record (a kline series, a leader board)."""

        async def fetch_missing(keys: List[str]) -> List[FetchOutcome]:
            return await fan_out(keys, lambda _: fetch(), concurrency=1)

        result = await self.orchestrator.batch_get([cache_key], fetch_missing, namespace=namespace)
        outcome = result.outcomes[0]

        items: List[Any] = outcome.record if isinstance(outcome, Ok) else []
        error = outcome.message if isinstance(outcome, Err) else None

        return BatchResponse(
            category=category,
            items=items,
            all_from_cache=result.all_from_cache,
            updated_at=self._now_label(),
            error=error,
            items_label=items_label,
            extra=extra or {},
        )

    async def get_kline(
        self,
        symbol: str,
        period: int = 101,
        adjust: int = 1,
        limit: int = 1000,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> BatchResponse:
        """
        Historical kline series for one symbol.

        Raises:
            InvalidRequestError: Bad symbol, period, adjust type or date
        """
        query = KlineQuery(
            symbol=symbol.strip(),
            period=period,
            adjust=adjust,
            limit=limit,
            start_date=start_date,
            end_date=end_date,
        )
        return await self._get_single(
            "kline",
            query.cache_key,
            lambda: self.kline.fetch_kline(query),
            namespace="kline",
            items_label="K线",
            extra={"股票代码": query.symbol, "周期": period, "复权": adjust},
        )

    async def get_tag_leaders(self, tag_code: str, count: Optional[Any] = None) -> BatchResponse:
        """
        Board constituents sorted by main-force net inflow.

        Raises:
            InvalidRequestError: Bad tag code or count
        """
        tag_code = (tag_code or "").strip().upper()
        if not is_valid_tag_code(tag_code):
            raise InvalidRequestError(
                f"Invalid tag code - expected BK followed by 4 digits: {tag_code}"
            )
        count = parse_count(count, DEFAULT_TAG_LEADER_COUNT, MAX_LIST_COUNT)

        return await self._get_single(
            "tag_leaders",
            f"tag_leaders:{tag_code}:{count}",
            lambda: self.tag_leaders.fetch_tag_leaders(tag_code, count),
            namespace="tag_leaders",
            items_label="股票列表",
            extra={"板块代码": tag_code},
        )

    async def _read_hot_snapshot(self) -> Optional[Dict[str, Any]]:
        try:
            payload = await self.store.get(HOT_STOCKS_CACHE_KEY)
        except Exception as e:
            logger.error(f"Error reading {HOT_STOCKS_CACHE_KEY}: {e}")
            return None
        return payload if is_valid_hot_stocks_payload(payload) else None

    async def get_hot_rank(self, count: Optional[Any] = None) -> BatchResponse:
        """
        Popularity ranking, served from the hot-stock snapshot when it is deep enough.

        Raises:
            InvalidRequestError: Bad count
        """
        count = parse_count(count, DEFAULT_RANK_COUNT, MAX_LIST_COUNT)

        snapshot = await self._read_hot_snapshot()
        if snapshot is not None and len(snapshot["hotStocks"]) >= count:
            return BatchResponse(
                category="hot_rank",
                items=snapshot["hotStocks"][:count],
                all_from_cache=True,
                updated_at=format_china_time(snapshot["timestamp"]),
                source=snapshot.get("source", SOURCE_LABEL),
                items_label="人气榜",
            )

        try:
            ranking = await self.rank.fetch_hot_rank()
        except MarketDataError as e:
            logger.error(f"Hot rank fetch failed: {e}")
            return BatchResponse(
                category="hot_rank",
                items=[],
                all_from_cache=False,
                updated_at=self._now_label(),
                error=str(e),
                items_label="人气榜",
            )

        return BatchResponse(
            category="hot_rank",
            items=ranking[:count],
            all_from_cache=False,
            updated_at=self._now_label(),
            items_label="人气榜",
        )

    async def is_trading_time(self) -> bool:
        return await self.calendar.is_trading_time()

    async def health_check(self) -> Dict[str, bool]:
        """Check upstream reachability per source."""
        return {
            "eastmoney": await self.quotes.health_check(),
            "eastmoney_rank": await self.rank.health_check(),
        }

    def get_service_stats(self) -> Dict[str, Any]:
        """Get comprehensive service statistics."""
        return {
            "started": self._started,
            "fetcher": self.fetcher.get_stats(),
            "orchestrator": self.orchestrator.get_stats(),
            "holiday_memo_size": len(self.calendar.holiday_memo),
            "metrics": self.metrics.get_system_metrics(),
        }
