"""
Configuration management for the datahub service.

This module provides centralized configuration with environment variable
support, validation, and default values for the acquisition and caching core.
"""

import os
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ThrottleConfig(BaseModel):
    """Outbound pacing settings, one interval per upstream source."""

    default_interval_ms: int = Field(
        default=300, ge=0, le=60_000, description="Minimum gap between two calls"
    )
    source_intervals_ms: Dict[str, int] = Field(
        default_factory=dict, description="Per-source interval overrides"
    )

    @field_validator("source_intervals_ms")
    @classmethod
    def validate_source_intervals(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Reject negative per-source intervals."""
        for source, interval in v.items():
            if interval < 0:
                raise ValueError(f"Throttle interval for {source} must be >= 0")
        return v

    @property
    def default_interval(self) -> float:
        return self.default_interval_ms / 1000

    def interval_for(self, source: str) -> float:
        """Return the pacing interval for a source in seconds."""
        return self.source_intervals_ms.get(source, self.default_interval_ms) / 1000

    def intervals(self) -> Dict[str, float]:
        """Per-source overrides in seconds."""
        return {source: self.interval_for(source) for source in self.source_intervals_ms}


class FetchConfig(BaseModel):
    """Retry and timeout settings for upstream HTTP calls."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_ms: int = Field(default=300, ge=0, le=60_000)
    timeout_seconds: float = Field(default=10.0, gt=0)
    body_snippet_chars: int = Field(default=200, ge=0, le=10_000)
    max_concurrency: int = Field(
        default=6, ge=1, le=64, description="Fan-out width for per-symbol calls"
    )


class CalendarConfig(BaseModel):
    """Trading calendar and holiday oracle settings."""

    timezone: str = Field(default="Asia/Shanghai")
    holiday_api_base: str = Field(default="https://timor.tech/api/holiday/info/")
    holiday_timeout_seconds: float = Field(default=3.5, gt=0)
    search_horizon_days: int = Field(default=30, ge=1, le=366)
    fallback_hours: float = Field(default=12.0, gt=0)
    memo_retention_days: int = Field(default=2, ge=0)
    memo_max_entries: int = Field(default=64, ge=1)
    intraday_ttl_base_seconds: int = Field(default=5, ge=1)
    intraday_ttl_jitter_seconds: int = Field(default=5, ge=0)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the timezone is known to zoneinfo."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {v}: {e}")
        return v

    @field_validator("holiday_api_base")
    @classmethod
    def validate_holiday_api_base(cls, v: str) -> str:
        """Holiday endpoint must be http(s) and end with a slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Holiday API base must be an http(s) URL")
        return v if v.endswith("/") else v + "/"


class CacheConfig(BaseModel):
    """Cache store and orchestrator settings."""

    min_ttl_seconds: int = Field(default=60, ge=1)
    write_back: str = Field(default="background")
    max_symbols: int = Field(default=20, ge=1, le=500)
    hot_stocks_ttl_seconds: int = Field(default=30 * 60, ge=1)

    @field_validator("write_back")
    @classmethod
    def validate_write_back(cls, v: str) -> str:
        """Validate write-back mode."""
        if v.lower() not in {"background", "sync"}:
            raise ValueError("write_back must be 'background' or 'sync'")
        return v.lower()


class WarmingConfig(BaseModel):
    """Background cache warming settings."""

    enabled: bool = Field(default=False)
    hot_top_n: int = Field(default=8, ge=1, le=100)
    info_warmup_top_n: int = Field(default=100, ge=1, le=100)
    concurrency: int = Field(default=6, ge=1, le=32)
    interval_minutes: int = Field(default=5, ge=1)


class DataHubConfig(BaseModel):
    """Main configuration for the datahub service."""

    environment: str = Field(default="development", description="Runtime environment")
    log_level: str = Field(default="INFO", description="System log level")

    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    warming: WarmingConfig = Field(default_factory=WarmingConfig)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment setting."""
        valid_environments = {"development", "testing", "test", "staging", "production"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Invalid environment. Must be one of: {valid_environments}"
            )
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        if v.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level. Must be one of: {VALID_LOG_LEVELS}")
        return v.upper()

    @classmethod
    def from_env(cls) -> "DataHubConfig":
        """
        Create configuration from environment variables.

        Returns:
            Configuration instance with values from environment
        """
        config_data: Dict[str, Any] = {
            "environment": os.getenv("DATAHUB_ENVIRONMENT", "development"),
            "log_level": os.getenv("DATAHUB_LOG_LEVEL", "INFO"),
        }

        source_intervals = {}
        for source in ("eastmoney", "timor", "ths", "cailianpress"):
            raw = os.getenv(f"DATAHUB_THROTTLE_{source.upper()}_MS")
            if raw is not None:
                source_intervals[source] = int(raw)

        config_data["throttle"] = {
            "default_interval_ms": int(os.getenv("DATAHUB_THROTTLE_MS", "300")),
            "source_intervals_ms": source_intervals,
        }

        config_data["fetch"] = {
            "max_attempts": int(os.getenv("DATAHUB_FETCH_MAX_ATTEMPTS", "3")),
            "backoff_base_ms": int(os.getenv("DATAHUB_FETCH_BACKOFF_MS", "300")),
            "timeout_seconds": float(os.getenv("DATAHUB_FETCH_TIMEOUT", "10.0")),
            "max_concurrency": int(os.getenv("DATAHUB_FETCH_CONCURRENCY", "6")),
        }

        config_data["calendar"] = {
            "timezone": os.getenv("DATAHUB_TIMEZONE", "Asia/Shanghai"),
            "holiday_api_base": os.getenv(
                "DATAHUB_HOLIDAY_API_BASE", "https://timor.tech/api/holiday/info/"
            ),
            "holiday_timeout_seconds": float(
                os.getenv("DATAHUB_HOLIDAY_TIMEOUT", "3.5")
            ),
        }

        config_data["cache"] = {
            "min_ttl_seconds": int(os.getenv("DATAHUB_CACHE_MIN_TTL", "60")),
            "write_back": os.getenv("DATAHUB_CACHE_WRITE_BACK", "background"),
            "max_symbols": int(os.getenv("DATAHUB_MAX_SYMBOLS", "20")),
        }

        config_data["warming"] = {
            "enabled": os.getenv("DATAHUB_WARMING_ENABLED", "false").lower() == "true",
            "hot_top_n": _clamp_top_n(os.getenv("DATAHUB_CRON_HOT_TOPN")),
            "concurrency": int(os.getenv("DATAHUB_WARMING_CONCURRENCY", "6")),
            "interval_minutes": int(os.getenv("DATAHUB_WARMING_INTERVAL", "5")),
        }

        return cls.model_validate(config_data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


def _clamp_top_n(raw: Optional[str], default: int = 8, maximum: int = 100) -> int:
    """Parse a positive integer top-N, falling back to the default."""
    try:
        parsed = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if parsed <= 0:
        return default
    return min(parsed, maximum)


# Global configuration instance
_config: Optional[DataHubConfig] = None


def get_settings() -> DataHubConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None:
        _config = DataHubConfig.from_env()

    return _config


def reload_settings() -> DataHubConfig:
    """Reload configuration from environment variables."""
    global _config
    _config = DataHubConfig.from_env()
    return _config
