"""Cache entries and the in-memory cache store."""

import asyncio
import json
import logging
import math
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .exceptions import CacheError
from .interfaces import CacheStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_TTL_SECONDS = 60


class CacheEntry:
    """
    Timestamped payload written for every cached record.

    Validity is decided by shape only: a numeric ``timestamp`` and a
    non-empty ``data`` record.
    """

    def __init__(self, data: Any, timestamp: Optional[int] = None):
        self.data = data
        self.timestamp = timestamp if timestamp is not None else int(time.time() * 1000)

    def to_payload(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "data": self.data}

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["CacheEntry"]:
        """Rebuild an entry, or None when the payload has the wrong shape."""
        if not isinstance(payload, dict):
            return None

        timestamp = payload.get("timestamp")
        data = payload.get("data")

        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return None
        if not isinstance(timestamp, int) and not math.isfinite(timestamp):
            return None
        if not isinstance(data, (dict, list)) or not data:
            return None

        return cls(data, int(timestamp))


def normalize_ttl(ttl_seconds: float, floor: int = DEFAULT_MIN_TTL_SECONDS) -> int:
    """Round a TTL up to whole seconds and raise it to the store floor."""
    return max(int(math.ceil(ttl_seconds)), floor)


class MemoryCacheStore(CacheStore):
    """
    In-process CacheStore with TTL expiry.

    Values are stored JSON-encoded so that serialization failures surface
    the same way they would against a remote store.
    """

    def __init__(
        self,
        min_ttl_seconds: int = DEFAULT_MIN_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.min_ttl_seconds = min_ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None

            raw, expires_at = item
            if self._clock() >= expires_at:
                del self._entries[key]
                return None

        try:
            return json.loads(raw)
        except ValueError as e:
            raise CacheError(f"Corrupt cache value for {key}: {e}")

    async def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        ttl = normalize_ttl(ttl_seconds, self.min_ttl_seconds)
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise CacheError(f"Failed to serialize cache value for {key}: {e}")

        async with self._lock:
            self._entries[key] = (raw, self._clock() + ttl)

    async def delete(self, key: str) -> bool:
        """Delete entry from cache."""
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            self._entries.clear()

    async def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def ttl_remaining(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when absent."""
        item = self._entries.get(key)
        if item is None:
            return None
        return max(0.0, item[1] - self._clock())

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        async with self._lock:
            now = self._clock()
            expired_count = sum(1 for _, exp in self._entries.values() if now >= exp)
            return {
                "total_entries": len(self._entries),
                "expired_entries": expired_count,
                "min_ttl_seconds": self.min_ttl_seconds,
            }
