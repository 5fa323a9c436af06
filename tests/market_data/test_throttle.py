"""Tests for per-source request pacing."""

import asyncio

import pytest

from datahub.market_data.throttle import Throttler, ThrottlerRegistry


@pytest.mark.asyncio
async def test_first_call_does_not_wait(fake_clock):
    """The first call to a source is dispatched immediately."""
    throttler = Throttler("eastmoney", 0.3, clock=fake_clock, sleep=fake_clock.sleep)

    waited = await throttler.throttle()

    assert waited == 0.0
    assert fake_clock.sleeps == []
    assert throttler.last_request == fake_clock.now


@pytest.mark.asyncio
async def test_waits_for_remaining_interval(fake_clock):
    """A call shortly after the previous one waits for the remainder."""
    throttler = Throttler("eastmoney", 0.3, clock=fake_clock, sleep=fake_clock.sleep)

    await throttler.throttle()
    fake_clock.advance(0.1)
    waited = await throttler.throttle()

    assert waited == pytest.approx(0.2)
    assert fake_clock.sleeps == [pytest.approx(0.2)]


@pytest.mark.asyncio
async def test_no_wait_after_interval_elapsed(fake_clock):
    """No sleep when the interval has already passed."""
    throttler = Throttler("eastmoney", 0.3, clock=fake_clock, sleep=fake_clock.sleep)

    await throttler.throttle()
    fake_clock.advance(1.0)

    assert await throttler.throttle() == 0.0
    assert fake_clock.sleeps == []


@pytest.mark.asyncio
async def test_concurrent_callers_are_spaced(fake_clock):
    """Gaps between consecutive dispatches are never below the interval."""
    throttler = Throttler("eastmoney", 0.3, clock=fake_clock, sleep=fake_clock.sleep)
    dispatched = []

    async def call():
        await throttler.throttle()
        dispatched.append(fake_clock())

    await asyncio.gather(*(call() for _ in range(6)))

    assert len(dispatched) == 6
    gaps = [b - a for a, b in zip(dispatched, dispatched[1:])]
    assert all(gap >= 0.3 - 1e-9 for gap in gaps)


@pytest.mark.asyncio
async def test_reset_forgets_last_request(fake_clock):
    """After reset the next call is immediate again."""
    throttler = Throttler("eastmoney", 0.3, clock=fake_clock, sleep=fake_clock.sleep)

    await throttler.throttle()
    throttler.reset()

    assert throttler.last_request is None
    assert await throttler.throttle() == 0.0


@pytest.mark.asyncio
async def test_registry_sources_are_independent(fake_clock):
    """Pacing one source never delays another."""
    registry = ThrottlerRegistry(0.3, clock=fake_clock, sleep=fake_clock.sleep)

    await registry.throttle("eastmoney")
    waited = await registry.throttle("timor")

    assert waited == 0.0
    assert registry.get("eastmoney") is not registry.get("timor")


@pytest.mark.asyncio
async def test_registry_per_source_interval(fake_clock):
    """Configured overrides apply to new and existing throttlers."""
    registry = ThrottlerRegistry(
        0.3, intervals={"timor": 1.0}, clock=fake_clock, sleep=fake_clock.sleep
    )

    assert registry.get("timor").min_interval == 1.0
    assert registry.get("eastmoney").min_interval == 0.3

    registry.set_interval("eastmoney", 0.5)
    await registry.throttle("eastmoney")
    waited = await registry.throttle("eastmoney")

    assert waited == pytest.approx(0.5)
    stats = registry.get_stats()
    assert stats["eastmoney"]["waits"] == 1
    assert stats["eastmoney"]["total_wait_seconds"] == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_registry_reset_single_source(fake_clock):
    registry = ThrottlerRegistry(0.3, clock=fake_clock, sleep=fake_clock.sleep)
    await registry.throttle("eastmoney")
    await registry.throttle("timor")

    registry.reset("eastmoney")

    assert registry.get("eastmoney").last_request is None
    assert registry.get("timor").last_request is not None

    registry.reset()
    assert registry.get("timor").last_request is None
