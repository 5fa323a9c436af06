"""Cache warming strategies: hot-stock snapshot refresh and stock info warm-up."""

import asyncio
import logging
from datetime import timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .fetcher import fan_out
from .results import Ok
from .types import is_valid_a_share_symbol

logger = logging.getLogger(__name__)

HOT_STOCKS_CACHE_KEY = "hot_stocks:v1"
HOT_STOCKS_CACHE_TTL_SECONDS = 30 * 60
DEFAULT_HOT_TOPN = 8
MAX_HOT_TOPN = 100
HOT_STOCKS_SOURCE = "东方财富 https://guba.eastmoney.com/rank/"

HOT_STOCK_INFO_WARMUP_TOPN = 100
HOT_STOCK_INFO_WARMUP_CONCURRENCY = 6


def build_hot_stocks_payload(
    ranking: List[Dict[str, Any]], top_n: int, timestamp_ms: int, generated_at: str
) -> Dict[str, Any]:
    """Snapshot of the first ``top_n`` ranked stocks."""
    hot_stocks = ranking[:top_n]
    return {
        "timestamp": timestamp_ms,
        "generatedAt": generated_at,
        "source": HOT_STOCKS_SOURCE,
        "topN": len(hot_stocks),
        "symbols": [item["股票代码"] for item in hot_stocks],
        "hotStocks": hot_stocks,
    }


def is_valid_hot_stocks_payload(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and isinstance(payload.get("hotStocks"), list)
        and isinstance(payload.get("timestamp"), (int, float))
    )


def hot_symbols_from_payload(payload: Any, limit: int = HOT_STOCK_INFO_WARMUP_TOPN) -> List[str]:
    """
    Extract valid, distinct symbols from a hot-stock snapshot.

    Codes from ``hotStocks`` win; ``symbols`` is the fallback list.
    """
    if not isinstance(payload, dict):
        return []

    hot_stocks = payload.get("hotStocks")
    from_rank = (
        [item.get("股票代码") for item in hot_stocks if isinstance(item, dict)]
        if isinstance(hot_stocks, list)
        else []
    )
    from_field = payload.get("symbols") if isinstance(payload.get("symbols"), list) else []

    candidates = from_rank if from_rank else from_field
    symbols = [
        s.strip()
        for s in candidates
        if isinstance(s, str) and is_valid_a_share_symbol(s.strip())
    ]
    return list(dict.fromkeys(symbols))[:limit]


class CacheWarmingStrategy:
    """Base class for cache warming strategies."""

    def __init__(self, service, enabled: bool = True):
        self.service = service
        self.enabled = enabled

    async def warm_cache(self) -> Any:
        """Warm the cache according to this strategy."""
        raise NotImplementedError


class HotStocksRefresh(CacheWarmingStrategy):
    """Store the top of the popularity ranking under ``hot_stocks:v1``."""

    def __init__(
        self,
        service,
        top_n: int = DEFAULT_HOT_TOPN,
        ttl_seconds: int = HOT_STOCKS_CACHE_TTL_SECONDS,
        enabled: bool = True,
    ):
        super().__init__(service, enabled)
        self.top_n = max(1, min(top_n, MAX_HOT_TOPN))
        self.ttl_seconds = ttl_seconds

    async def warm_cache(self) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None

        ranking = await self.service.rank.fetch_hot_rank()
        now = self.service.calendar.now()
        generated_at = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
        payload = build_hot_stocks_payload(
            ranking,
            self.top_n,
            int(now.timestamp() * 1000),
            generated_at.replace("+00:00", "Z"),
        )

        await self.service.store.put(HOT_STOCKS_CACHE_KEY, payload, self.ttl_seconds)
        logger.info(f"Refreshed {HOT_STOCKS_CACHE_KEY}, topN={payload['topN']}")
        return payload


class HotStockInfoWarming(CacheWarmingStrategy):
    """
    Fill missing stock info entries for the current hot stocks.

    Extra symbols (for example a watch list) can be supplied by an async
    callable; failures there only shrink the warm-up set.
    """

    def __init__(
        self,
        service,
        limit: int = HOT_STOCK_INFO_WARMUP_TOPN,
        concurrency: int = HOT_STOCK_INFO_WARMUP_CONCURRENCY,
        extra_symbols: Optional[Callable[[], Awaitable[List[str]]]] = None,
        enabled: bool = True,
    ):
        super().__init__(service, enabled)
        self.limit = limit
        self.concurrency = concurrency
        self.extra_symbols = extra_symbols

    async def _read_snapshot(self) -> Any:
        try:
            return await self.service.store.get(HOT_STOCKS_CACHE_KEY)
        except Exception as e:
            logger.error(f"Failed to read {HOT_STOCKS_CACHE_KEY}: {e}")
            return None

    async def _load_extra_symbols(self) -> List[str]:
        if self.extra_symbols is None:
            return []
        try:
            symbols = await self.extra_symbols()
        except Exception as e:
            logger.error(f"Failed to load extra warm-up symbols: {e}")
            return []
        return [
            s.strip() for s in symbols if isinstance(s, str) and is_valid_a_share_symbol(s.strip())
        ]

    async def warm_cache(self) -> Dict[str, int]:
        counts = {"checked": 0, "hot": 0, "extra": 0, "hit": 0, "filled": 0, "failed": 0}
        if not self.enabled:
            return counts

        hot = hot_symbols_from_payload(await self._read_snapshot(), self.limit)
        extra = await self._load_extra_symbols()
        symbols = list(dict.fromkeys(hot + extra))

        counts.update(checked=len(symbols), hot=len(hot), extra=len(extra))
        if not symbols:
            logger.info("No hot or extra symbols, skipping stock info warm-up")
            return counts

        info = self.service.info

        async def fetch_missing(misses: List[str]):
            return await fan_out(misses, info.fetch_one, self.concurrency)

        result = await self.service.orchestrator.batch_get(
            symbols,
            fetch_missing,
            cache_key=self.service.cache_key_for("info"),
            namespace="stock_info",
        )
        await self.service.orchestrator.drain()

        fetched = result.outcomes
        counts["hit"] = result.hits
        counts["failed"] = sum(1 for o in fetched if not isinstance(o, Ok))
        counts["filled"] = result.misses - counts["failed"]

        logger.info(
            "Stock info warm-up: "
            + ", ".join(f"{name}={value}" for name, value in counts.items())
        )
        return counts


class CacheWarmer:
    """Coordinates multiple cache warming strategies."""

    def __init__(self, service):
        self.service = service
        self.strategies: List[CacheWarmingStrategy] = []
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def add_strategy(self, strategy: CacheWarmingStrategy) -> None:
        """Add a warming strategy."""
        self.strategies.append(strategy)

    def remove_strategy(self, strategy: CacheWarmingStrategy) -> None:
        """Remove a warming strategy."""
        if strategy in self.strategies:
            self.strategies.remove(strategy)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, interval_minutes: int = 5) -> None:
        """Start the cache warming background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._warming_loop(interval_minutes))
        logger.info(f"Cache warmer started with {len(self.strategies)} strategies")

    async def stop(self) -> None:
        """Stop the cache warming background task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cache warmer stopped")

    async def warm_now(self) -> Dict[str, Any]:
        """Run all strategies in order; one failing strategy does not stop the rest."""
        logger.info("Running immediate cache warming")
        results: Dict[str, Any] = {}
        for strategy in self.strategies:
            name = strategy.__class__.__name__
            try:
                results[name] = await strategy.warm_cache()
            except Exception as e:
                logger.error(f"Error in warming strategy {name}: {e}")
                results[name] = None
        return results

    async def _warming_loop(self, interval_minutes: int) -> None:
        """Background loop that runs warming strategies."""
        while self._running:
            try:
                await self.warm_now()
                await asyncio.sleep(interval_minutes * 60)
            except asyncio.CancelledError:
                break
