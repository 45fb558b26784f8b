"""Price-history and lending-market data."""

from .aggregator import MarketDataAggregator, TimeRange, normalize_history
from .birdeye_client import BirdeyeClient
from .kamino_client import KaminoClient
from .models import LendingMarketSnapshot, LendingReserve, PricePoint, PriceSeries

__all__ = [
    'MarketDataAggregator',
    'TimeRange',
    'normalize_history',
    'BirdeyeClient',
    'KaminoClient',
    'LendingMarketSnapshot',
    'LendingReserve',
    'PricePoint',
    'PriceSeries',
]
