"""
A-share trading calendar.

Rules (civil time, Asia/Shanghai):

1. Only Monday to Friday can trade; weekends are always closed.
2. Public holidays are closed, as reported by the holiday oracle.
3. Trading windows:
   - 09:15:00 - 09:25:00 (opening call auction)
   - 09:30:00 - 11:30:00 (morning continuous session)
   - 13:00:00 - 15:00:00 (afternoon continuous session)

The oracle is consulted lazily and memoized per date. When it cannot
confirm a date the day is treated as a holiday, which biases cache TTLs
toward "wait for the next open" instead of short intraday windows.
"""

import logging
import math
import random
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from .exceptions import HolidayOracleError, MarketDataError
from .fetcher import HttpRequest, RetryingFetcher

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Shanghai"
HOLIDAY_API_BASE = "https://timor.tech/api/holiday/info/"
HOLIDAY_REQUEST_TIMEOUT = 3.5

# Inclusive second-of-day ranges
TRADING_WINDOWS = (
    (9 * 3600 + 15 * 60, 9 * 3600 + 25 * 60),
    (9 * 3600 + 30 * 60, 11 * 3600 + 30 * 60),
    (13 * 3600, 15 * 3600),
)

SESSION_OPEN = time(9, 15)
CLOSING_REFRESH_MINUTE = (15, 0)


class HolidayOracle:
    """Client for the timor.tech holiday API."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        base_url: str = HOLIDAY_API_BASE,
        timeout: float = HOLIDAY_REQUEST_TIMEOUT,
        source: str = "timor",
    ):
        self.fetcher = fetcher
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.source = source

    async def is_holiday(self, day: date) -> bool:
        """
        Ask the oracle whether ``day`` is a public holiday.

        Raises:
            HolidayOracleError: On transport failure, non-success status,
                non-zero ``code`` or a malformed payload
        """
        request = HttpRequest(
            source=self.source,
            url=f"{self.base_url}{day.isoformat()}",
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

        try:
            payload = await self.fetcher.fetch_json(request, max_attempts=1)
        except MarketDataError as e:
            raise HolidayOracleError(f"Holiday API request failed: {e}", provider=self.source)

        if not isinstance(payload, dict):
            raise HolidayOracleError("Holiday API returned a non-object payload")

        code = payload.get("code")
        if code != 0:
            raise HolidayOracleError(f"Holiday API returned code: {code}", provider=self.source)

        info = payload.get("holiday")
        if info is None:
            return False
        if not isinstance(info, dict):
            raise HolidayOracleError("Holiday API returned a malformed holiday field")

        return info.get("holiday") is True


class TradingCalendar:
    """Trading-window checks, next-open search and adaptive cache TTLs."""

    def __init__(
        self,
        oracle,
        timezone_name: str = DEFAULT_TIMEZONE,
        search_horizon_days: int = 30,
        fallback: timedelta = timedelta(hours=12),
        memo_retention_days: int = 2,
        memo_max_entries: int = 64,
        intraday_ttl_base: int = 5,
        intraday_ttl_jitter: int = 5,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.oracle = oracle
        self.tz = ZoneInfo(timezone_name)
        self.search_horizon_days = search_horizon_days
        self.fallback = fallback
        self.memo_retention_days = memo_retention_days
        self.memo_max_entries = memo_max_entries
        self.intraday_ttl_base = intraday_ttl_base
        self.intraday_ttl_jitter = intraday_ttl_jitter
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._holiday_memo: Dict[date, bool] = {}

    def now(self) -> datetime:
        return self._clock()

    def to_civil(self, instant: Optional[datetime] = None) -> datetime:
        """Convert an instant to civil time; naive datetimes are taken as UTC."""
        if instant is None:
            instant = self.now()
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    @property
    def holiday_memo(self) -> Dict[date, bool]:
        """Snapshot of memoized oracle answers."""
        return dict(self._holiday_memo)

    async def is_holiday(self, day: date) -> bool:
        """Memoized oracle lookup; failures are treated as holidays and not memoized."""
        cached = self._holiday_memo.get(day)
        if cached is not None:
            return cached

        try:
            holiday = await self.oracle.is_holiday(day)
        except HolidayOracleError as e:
            logger.error(f"Holiday lookup for {day} failed, treating as holiday: {e}")
            return True

        self._remember(day, holiday)
        return holiday

    def _remember(self, day: date, holiday: bool) -> None:
        self._holiday_memo[day] = holiday

        # Retention counts back from today; forward lookups never evict it
        today = self.to_civil(self.now()).date()
        cutoff = today - timedelta(days=self.memo_retention_days)
        for stale in [d for d in self._holiday_memo if d < cutoff]:
            del self._holiday_memo[stale]

        while len(self._holiday_memo) > self.memo_max_entries:
            del self._holiday_memo[min(self._holiday_memo)]

    @staticmethod
    def is_weekend(day: date) -> bool:
        return day.weekday() >= 5

    @staticmethod
    def within_trading_windows(civil: datetime) -> bool:
        """Check the time of day against the auction and continuous sessions."""
        seconds = civil.hour * 3600 + civil.minute * 60 + civil.second
        return any(start <= seconds <= end for start, end in TRADING_WINDOWS)

    async def is_trading_time(self, instant: Optional[datetime] = None) -> bool:
        """Whether ``instant`` (default: now) falls inside an A-share trading window."""
        civil = self.to_civil(instant)

        if self.is_weekend(civil.date()):
            return False

        if not self.within_trading_windows(civil):
            return False

        return not await self.is_holiday(civil.date())

    async def next_trading_open(self, instant: Optional[datetime] = None) -> datetime:
        """
        Find the next session open (09:15 civil) strictly after ``instant``.

        Searches day by day over the horizon; when nothing is found the
        fallback duration is added to ``instant`` instead.
        """
        civil = self.to_civil(instant)

        for offset in range(self.search_horizon_days):
            day = civil.date() + timedelta(days=offset)
            if self.is_weekend(day):
                continue

            session_open = datetime.combine(day, SESSION_OPEN, tzinfo=self.tz)
            if session_open <= civil:
                continue

            if await self.is_holiday(day):
                continue

            return session_open

        logger.warning(
            f"No trading day within {self.search_horizon_days} days of {civil.date()}, "
            f"falling back to {self.fallback}"
        )
        return civil + self.fallback

    def _is_closing_refresh_minute(self, civil: datetime) -> bool:
        return (civil.hour, civil.minute) == CLOSING_REFRESH_MINUTE

    async def adaptive_ttl(self, instant: Optional[datetime] = None) -> int:
        """
        Cache TTL in seconds for data fetched at ``instant``.

        Intraday: a short jittered TTL. Otherwise, and during the closing
        refresh minute, the time left until the next session open.
        """
        civil = self.to_civil(instant)

        if not self._is_closing_refresh_minute(civil) and await self.is_trading_time(civil):
            return self.intraday_ttl_base + self._rng.randint(0, self.intraday_ttl_jitter)

        next_open = await self.next_trading_open(civil)
        return max(1, math.ceil((next_open - civil).total_seconds()))
