"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from datahub.config import (
    CacheConfig,
    CalendarConfig,
    DataHubConfig,
    ThrottleConfig,
    _clamp_top_n,
    get_settings,
    reload_settings,
)


def test_defaults():
    config = DataHubConfig()

    assert config.throttle.default_interval_ms == 300
    assert config.fetch.max_attempts == 3
    assert config.fetch.backoff_base_ms == 300
    assert config.calendar.timezone == "Asia/Shanghai"
    assert config.calendar.search_horizon_days == 30
    assert config.calendar.fallback_hours == 12.0
    assert config.cache.min_ttl_seconds == 60
    assert config.cache.write_back == "background"
    assert config.warming.enabled is False
    assert config.is_production() is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("DATAHUB_ENVIRONMENT", "Production")
    monkeypatch.setenv("DATAHUB_LOG_LEVEL", "debug")
    monkeypatch.setenv("DATAHUB_THROTTLE_MS", "250")
    monkeypatch.setenv("DATAHUB_THROTTLE_EASTMONEY_MS", "500")
    monkeypatch.setenv("DATAHUB_FETCH_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("DATAHUB_HOLIDAY_API_BASE", "https://holidays.example.com/info")
    monkeypatch.setenv("DATAHUB_CACHE_WRITE_BACK", "SYNC")
    monkeypatch.setenv("DATAHUB_WARMING_ENABLED", "true")
    monkeypatch.setenv("DATAHUB_CRON_HOT_TOPN", "250")

    config = DataHubConfig.from_env()

    assert config.environment == "production"
    assert config.is_production()
    assert config.log_level == "DEBUG"
    assert config.throttle.interval_for("eastmoney") == 0.5
    assert config.throttle.interval_for("timor") == 0.25
    assert config.fetch.max_attempts == 5
    assert config.calendar.holiday_api_base == "https://holidays.example.com/info/"
    assert config.cache.write_back == "sync"
    assert config.warming.enabled is True
    assert config.warming.hot_top_n == 100


@pytest.mark.parametrize(
    "factory",
    [
        lambda: DataHubConfig(environment="moon"),
        lambda: DataHubConfig(log_level="LOUD"),
        lambda: ThrottleConfig(default_interval_ms=-1),
        lambda: ThrottleConfig(source_intervals_ms={"eastmoney": -5}),
        lambda: CalendarConfig(timezone="Mars/Olympus"),
        lambda: CalendarConfig(holiday_api_base="ftp://holidays"),
        lambda: CacheConfig(write_back="later"),
    ],
)
def test_validation_errors(factory):
    with pytest.raises(ValidationError):
        factory()


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 8), ("", 8), ("abc", 8), ("0", 8), ("-4", 8), (" 12 ", 12), ("101", 100)],
)
def test_clamp_top_n(raw, expected):
    assert _clamp_top_n(raw) == expected


def test_settings_are_cached_until_reloaded(monkeypatch):
    first = reload_settings()
    assert get_settings() is first

    monkeypatch.setenv("DATAHUB_MAX_SYMBOLS", "7")
    assert get_settings().cache.max_symbols == first.cache.max_symbols
    assert reload_settings().cache.max_symbols == 7


def test_to_dict():
    assert DataHubConfig().to_dict()["cache"]["min_ttl_seconds"] == 60


def test_throttle_intervals_in_seconds():
    throttle = ThrottleConfig(default_interval_ms=250, source_intervals_ms={"eastmoney": 500})

    assert throttle.default_interval == 0.25
    assert throttle.intervals() == {"eastmoney": 0.5}
    assert throttle.interval_for("timor") == 0.25
