"""Component base classes and the agent exception hierarchy."""

from .base import AlwaysOnComponent, Component
from .errors import (
    AdvisoryParseError,
    AdvisoryProviderError,
    ConsensusUnavailableError,
    CycleAbortedError,
    LendingDataError,
    NoMarketDataError,
    PortfolioAgentError,
    PriceHistoryError,
)

__all__ = [
    'AlwaysOnComponent',
    'Component',
    'AdvisoryParseError',
    'AdvisoryProviderError',
    'ConsensusUnavailableError',
    'CycleAbortedError',
    'LendingDataError',
    'NoMarketDataError',
    'PortfolioAgentError',
    'PriceHistoryError',
]
