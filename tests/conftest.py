"""
Global test configuration for datahub tests.

Everything here is hermetic: a scripted HTTP transport, a fake monotonic
clock and an in-memory holiday oracle. No test touches the network.
"""

import json
import os
from datetime import date, datetime
from typing import Any, Callable, Iterable, List, Optional
from zoneinfo import ZoneInfo

os.environ["DATAHUB_ENVIRONMENT"] = "test"

import pytest  # noqa: E402

from datahub.market_data.exceptions import HolidayOracleError  # noqa: E402
from datahub.market_data.fetcher import HttpRequest, HttpResponse  # noqa: E402

SHANGHAI = ZoneInfo("Asia/Shanghai")


def cst(year, month, day, hour=0, minute=0, second=0) -> datetime:
    """Build an aware datetime in China Standard Time."""
    return datetime(year, month, day, hour, minute, second, tzinfo=SHANGHAI)


def json_response(payload: Any, status: int = 200, url: str = "") -> HttpResponse:
    return HttpResponse(status=status, text=json.dumps(payload, ensure_ascii=False), url=url)


def text_response(text: str, status: int) -> HttpResponse:
    return HttpResponse(status=status, text=text)


class FakeClock:
    """Monotonic clock that only moves when a fake sleep is awaited."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedTransport:
    """
    Transport double.

    Either replays ``responses`` in order (HttpResponse or exception
    instances) or asks ``handler(request)`` for each call.
    """

    def __init__(
        self,
        responses: Optional[Iterable[Any]] = None,
        handler: Optional[Callable[[HttpRequest], Any]] = None,
    ):
        self.responses = list(responses or [])
        self.handler = handler
        self.requests: List[HttpRequest] = []
        self.closed = False

    async def send(self, request: HttpRequest, timeout: float) -> HttpResponse:
        self.requests.append(request)
        item = self.handler(request) if self.handler else self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class FakeOracle:
    """Holiday oracle answering from fixed sets of dates."""

    def __init__(
        self,
        holidays: Iterable[date] = (),
        failing: Iterable[date] = (),
        always_holiday: bool = False,
    ):
        self.holidays = set(holidays)
        self.failing = set(failing)
        self.always_holiday = always_holiday
        self.calls: List[date] = []

    async def is_holiday(self, day: date) -> bool:
        self.calls.append(day)
        if day in self.failing:
            raise HolidayOracleError(f"oracle unavailable for {day}")
        return self.always_holiday or day in self.holidays


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_oracle():
    return FakeOracle()
