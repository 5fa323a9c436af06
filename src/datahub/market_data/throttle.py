"""Per-source request pacing for upstream providers."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_SECONDS = 0.3


class Throttler:
    """
    Minimum-interval pacing for one upstream source.

    Not a queue: it only guarantees spacing between successive calls issued
    by this process. Concurrent callers serialize on the lock, so the
    interval is the minimum gap between any two dispatches to the source.
    """

    def __init__(
        self,
        source: str,
        min_interval: float = DEFAULT_THROTTLE_SECONDS,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.source = source
        self.min_interval = min_interval
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()
        self._waits = 0
        self._total_wait = 0.0

    @property
    def last_request(self) -> Optional[float]:
        return self._last_request

    async def throttle(self) -> float:
        """
        Wait until the interval since the previous call has elapsed.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            waited = 0.0
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.min_interval:
                    waited = self.min_interval - elapsed
                    self._waits += 1
                    self._total_wait += waited
                    logger.debug(f"Throttling {self.source} for {waited * 1000:.0f}ms")
                    await self._sleep(waited)

            self._last_request = self._clock()
            return waited

    def reset(self) -> None:
        """Forget the last request time (for testing or manual override)."""
        self._last_request = None

    def get_stats(self) -> Dict[str, float]:
        """Get pacing statistics for this source."""
        return {
            "min_interval": self.min_interval,
            "waits": self._waits,
            "total_wait_seconds": self._total_wait,
        }


class ThrottlerRegistry:
    """Owns one Throttler per upstream source so sources never block each other."""

    def __init__(
        self,
        default_interval: float = DEFAULT_THROTTLE_SECONDS,
        intervals: Optional[Dict[str, float]] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.default_interval = default_interval
        self._intervals = dict(intervals or {})
        self._clock = clock
        self._sleep = sleep
        self._throttlers: Dict[str, Throttler] = {}

    def set_interval(self, source: str, min_interval: float) -> None:
        """Set the pacing interval for a source."""
        self._intervals[source] = min_interval
        if source in self._throttlers:
            self._throttlers[source].min_interval = min_interval

    def get(self, source: str) -> Throttler:
        """Get (or lazily create) the throttler for a source."""
        throttler = self._throttlers.get(source)
        if throttler is None:
            throttler = Throttler(
                source,
                self._intervals.get(source, self.default_interval),
                clock=self._clock,
                sleep=self._sleep,
            )
            self._throttlers[source] = throttler
        return throttler

    async def throttle(self, source: str) -> float:
        """Pace a call to ``source``."""
        return await self.get(source).throttle()

    def reset(self, source: Optional[str] = None) -> None:
        """Reset one source, or all of them."""
        targets = [self._throttlers[source]] if source in self._throttlers else []
        if source is None:
            targets = list(self._throttlers.values())
        for throttler in targets:
            throttler.reset()

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        """Get statistics for every known source."""
        return {name: t.get_stats() for name, t in self._throttlers.items()}
