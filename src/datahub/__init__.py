"""
datahub: A-share market data acquisition and caching.

Paces and retries requests to upstream quote providers, and serves batched
multi-symbol lookups through a read-through cache whose TTLs follow the
trading calendar.
"""

__version__ = "0.1.0"
__author__ = "datahub Team"

from .config import DataHubConfig, get_settings
from .market_data import MarketDataService

__all__ = [
    "DataHubConfig",
    "get_settings",
    "MarketDataService",
]
