"""Read-through, batch-aware cache orchestration."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from .cache import CacheEntry
from .calendar import TradingCalendar
from .interfaces import CacheStore
from .monitoring import MetricsCollector
from .results import Err, FetchOutcome, Ok, is_cacheable

logger = logging.getLogger(__name__)

FetchMissing = Callable[[List[str]], Awaitable[Sequence[Any]]]

WRITE_BACK_MODES = ("background", "sync")

MISSING_RESULT_MESSAGE = "fetch failed"


@dataclass
class BatchResult:
    """One outcome per requested key, in request order."""

    outcomes: List[FetchOutcome]
    all_from_cache: bool
    hits: int = 0
    misses: int = 0
    ttl_seconds: Optional[int] = None
    written: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)

    @property
    def failed(self) -> List[Err]:
        return [o for o in self.outcomes if isinstance(o, Err)]


class CacheOrchestrator:
    """
    Serves batched lookups from a CacheStore, fetching only the misses.

    For every call:

    1. All keys are read from the store concurrently; read errors count as misses.
    2. The fetch function is called once with the full miss list.
    3. Cacheable results are written with a single TTL taken from the
       trading calendar, in the background or synchronously.
    4. Results are merged back into input order. The call never raises;
       keys that could not be resolved come back as ``Err``.
    """

    def __init__(
        self,
        store: CacheStore,
        calendar: TradingCalendar,
        write_back: str = "background",
        metrics: Optional[MetricsCollector] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        if write_back not in WRITE_BACK_MODES:
            raise ValueError(f"write_back must be one of {WRITE_BACK_MODES}")

        self.store = store
        self.calendar = calendar
        self.write_back = write_back
        self.metrics = metrics
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._pending: Set[asyncio.Task] = set()

        self._stats = {
            "batches": 0,
            "keys_requested": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "fetch_calls": 0,
            "entries_written": 0,
            "write_failures": 0,
        }

    async def batch_get(
        self,
        keys: Iterable[str],
        fetch_missing: FetchMissing,
        cache_key: Optional[Callable[[str], str]] = None,
        namespace: str = "default",
    ) -> BatchResult:
        """
        Resolve every key from cache or upstream.

        Args:
            keys: Requested keys; duplicates are resolved once
            fetch_missing: Called once with the ordered miss list; must return
                one result per miss, either ``Ok``/``Err`` or a plain record
            cache_key: Maps a request key to its store key (default: identity)
            namespace: Label used for metrics and logs

        Returns:
            BatchResult with outcomes in input order
        """
        keys = list(keys)
        to_store_key = cache_key or (lambda k: k)
        unique_keys = list(dict.fromkeys(keys))

        self._stats["batches"] += 1
        self._stats["keys_requested"] += len(keys)

        cached = await asyncio.gather(
            *(self._read(to_store_key(k), namespace) for k in unique_keys)
        )

        hits: Dict[str, Any] = {}
        misses: List[str] = []
        for key, entry in zip(unique_keys, cached):
            if entry is not None:
                hits[key] = entry.data
            else:
                misses.append(key)

        self._stats["cache_hits"] += len(hits)
        self._stats["cache_misses"] += len(misses)
        if self.metrics:
            self.metrics.record_cache_lookup(namespace, len(hits), len(misses))

        logger.debug(f"[{namespace}] {len(hits)} hit(s), {len(misses)} miss(es)")

        fetched: Dict[str, FetchOutcome] = {}
        ttl: Optional[int] = None
        written: List[str] = []

        if misses:
            fetched = await self._fetch(misses, fetch_missing, namespace)
            cacheable = [fetched[k] for k in misses if is_cacheable(fetched[k])]
            if cacheable:
                ttl, written = await self._write_back(cacheable, to_store_key, namespace)

        outcomes: List[FetchOutcome] = []
        for key in keys:
            if key in hits:
                outcomes.append(Ok(key, hits[key]))
            elif key in fetched:
                outcomes.append(fetched[key])
            else:
                outcomes.append(Err(key, MISSING_RESULT_MESSAGE))

        return BatchResult(
            outcomes=outcomes,
            all_from_cache=not misses,
            hits=len(hits),
            misses=len(misses),
            ttl_seconds=ttl,
            written=written,
        )

    async def _read(self, store_key: str, namespace: str) -> Optional[CacheEntry]:
        try:
            payload = await self.store.get(store_key)
        except Exception as e:
            logger.error(f"Error reading cache key {store_key}: {e}")
            if self.metrics:
                self.metrics.record_cache_read_failure(namespace)
            return None

        if payload is None:
            return None

        entry = CacheEntry.from_payload(payload)
        if entry is None:
            logger.warning(f"Ignoring malformed cache payload for {store_key}")
        return entry

    async def _fetch(
        self,
        misses: List[str],
        fetch_missing: FetchMissing,
        namespace: str,
    ) -> Dict[str, FetchOutcome]:
        self._stats["fetch_calls"] += 1

        try:
            results = list(await fetch_missing(list(misses)))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"[{namespace}] fetch for {len(misses)} key(s) failed: {message}")
            return {key: Err(key, message) for key in misses}

        if len(results) != len(misses):
            message = f"expected {len(misses)} result(s), got {len(results)}"
            logger.error(f"[{namespace}] fetch returned a mismatched batch: {message}")
            return {key: Err(key, message) for key in misses}

        fetched: Dict[str, FetchOutcome] = {}
        for key, result in zip(misses, results):
            if isinstance(result, Ok):
                fetched[key] = Ok(key, result.record)
            elif isinstance(result, Err):
                fetched[key] = Err(key, result.message)
            else:
                fetched[key] = Ok(key, result)
        return fetched

    async def _write_back(
        self,
        cacheable: List[FetchOutcome],
        to_store_key: Callable[[str], str],
        namespace: str,
    ) -> Tuple[Optional[int], List[str]]:
        try:
            ttl = await self.calendar.adaptive_ttl()
        except Exception as e:
            logger.error(f"[{namespace}] could not compute cache TTL, skipping write: {e}")
            return None, []

        timestamp = self._clock()
        entries = [
            (to_store_key(o.key), CacheEntry(o.record, timestamp).to_payload())
            for o in cacheable
        ]
        store_keys = [store_key for store_key, _ in entries]

        writes = [self._write_one(store_key, payload, ttl, namespace) for store_key, payload in entries]
        if self.write_back == "sync":
            await asyncio.gather(*writes)
        else:
            # One task per put, scheduled now, so a following batch's reads queue behind them
            for write in writes:
                task = asyncio.create_task(write)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        logger.debug(f"[{namespace}] caching {len(entries)} entr(ies) for {ttl}s")
        return ttl, store_keys

    async def _write_one(
        self, store_key: str, payload: Dict[str, Any], ttl: int, namespace: str
    ) -> None:
        try:
            await self.store.put(store_key, payload, ttl)
        except Exception as e:
            self._stats["write_failures"] += 1
            logger.error(f"Error writing cache key {store_key}: {e}")
            if self.metrics:
                self.metrics.record_cache_write(namespace, success=False)
            return

        self._stats["entries_written"] += 1
        if self.metrics:
            self.metrics.record_cache_write(namespace, success=True)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for background writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        lookups = self._stats["cache_hits"] + self._stats["cache_misses"]
        return {
            **self._stats,
            "hit_rate": self._stats["cache_hits"] / lookups if lookups else 0.0,
            "pending_writes": len(self._pending),
            "write_back": self.write_back,
        }
