"""In-process counters for upstream attempts and cache namespaces."""

import time
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Deque, Dict, Optional

LATENCY_WINDOW = 1000
RECENT_FAILURES = 100


@dataclass
class SourceMetrics:
    """Attempt counters for one upstream source (``eastmoney``, ``timor`` ...)."""

    name: str
    total_requests: int = 0
    failed_requests: int = 0
    failure_streak: int = 0
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    status_counts: Counter = field(default_factory=Counter)
    methods: Counter = field(default_factory=Counter)
    latencies_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=LATENCY_WINDOW))
    recent_failures: Deque[Dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=RECENT_FAILURES)
    )

    @property
    def successful_requests(self) -> int:
        return self.total_requests - self.failed_requests

    @property
    def error_rate(self) -> float:
        """Failed attempts as a percentage of all attempts."""
        if not self.total_requests:
            return 0.0
        return self.failed_requests / self.total_requests * 100

    @property
    def avg_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        return sum(self.latencies_ms) / len(self.latencies_ms)

    def observe(
        self,
        method: str,
        duration_ms: float,
        success: bool,
        status: Optional[int],
        error_type: Optional[str],
    ) -> None:
        now = datetime.now()
        self.total_requests += 1
        self.methods[method] += 1
        if status is not None:
            self.status_counts[status] += 1
        if duration_ms > 0:
            self.latencies_ms.append(duration_ms)

        if success:
            self.last_success = now
            self.failure_streak = 0
            return

        self.failed_requests += 1
        self.last_failure = now
        self.failure_streak += 1
        self.recent_failures.append(
            {"at": now.isoformat(), "status": status, "type": error_type}
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "error_rate": self.error_rate,
            "avg_latency_ms": self.avg_latency_ms,
            "failure_streak": self.failure_streak,
            "status_counts": dict(self.status_counts),
        }


@dataclass
class CacheMetrics:
    """Hit/miss counters for one cache namespace."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    write_failures: int = 0
    read_failures: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "writes": self.writes,
            "write_failures": self.write_failures,
            "read_failures": self.read_failures,
        }


class MetricsCollector:
    """
    Thread-safe sink for fetcher and orchestrator events.

    The fetcher reports every attempt, retries included; the orchestrator
    reports lookups and writes per cache namespace.
    """

    def __init__(self):
        self.started_at = time.time()
        self._lock = Lock()
        self._sources: Dict[str, SourceMetrics] = {}
        self._caches: Dict[str, CacheMetrics] = {}

    def _source(self, name: str) -> SourceMetrics:
        if name not in self._sources:
            self._sources[name] = SourceMetrics(name=name)
        return self._sources[name]

    def _cache(self, namespace: str) -> CacheMetrics:
        if namespace not in self._caches:
            self._caches[namespace] = CacheMetrics()
        return self._caches[namespace]

    def record_request(
        self,
        provider: str,
        method: str,
        duration_ms: float = 0.0,
        success: bool = True,
        status: Optional[int] = None,
        error_type: Optional[str] = None,
    ) -> None:
        """Record one upstream attempt."""
        with self._lock:
            self._source(provider).observe(method, duration_ms, success, status, error_type)

    def record_cache_lookup(self, namespace: str, hits: int, misses: int) -> None:
        """Record the hit/miss split of one batch lookup."""
        with self._lock:
            metrics = self._cache(namespace)
            metrics.hits += hits
            metrics.misses += misses

    def record_cache_read_failure(self, namespace: str) -> None:
        with self._lock:
            self._cache(namespace).read_failures += 1

    def record_cache_write(self, namespace: str, success: bool) -> None:
        with self._lock:
            metrics = self._cache(namespace)
            if success:
                metrics.writes += 1
            else:
                metrics.write_failures += 1

    def get_provider_metrics(self, provider: str) -> Optional[SourceMetrics]:
        with self._lock:
            return self._sources.get(provider)

    def get_cache_metrics(self, namespace: str) -> CacheMetrics:
        with self._lock:
            return self._cache(namespace)

    def get_system_metrics(self) -> Dict[str, Any]:
        """Snapshot of every source and cache namespace."""
        with self._lock:
            uptime = time.time() - self.started_at
            total = sum(s.total_requests for s in self._sources.values())
            failed = sum(s.failed_requests for s in self._sources.values())
            return {
                "uptime_seconds": uptime,
                "uptime_formatted": str(timedelta(seconds=int(uptime))),
                "total_requests": total,
                "failed_requests": failed,
                "error_rate_percent": failed / total * 100 if total else 0,
                "providers": {name: s.summary() for name, s in self._sources.items()},
                "cache": {name: c.summary() for name, c in self._caches.items()},
            }

    def reset_metrics(self) -> None:
        with self._lock:
            self._sources.clear()
            self._caches.clear()
