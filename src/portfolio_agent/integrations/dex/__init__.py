"""DEX aggregator integrations."""

from .aggregator_adapter import (
    AggregatorError,
    BuildError,
    DEXAggregator,
    FeeEstimateError,
    QuoteError,
    SwapQuote,
)
from .raydium_adapter import RaydiumAdapter

__all__ = [
    'AggregatorError',
    'BuildError',
    'DEXAggregator',
    'FeeEstimateError',
    'QuoteError',
    'SwapQuote',
    'RaydiumAdapter',
]
