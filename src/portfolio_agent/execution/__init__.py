"""Trade execution and lending signal handling."""

from .lending_handler import LendingOutcome, LendingSignalHandler
from .models import TradeContext, TradeIntent, TradeOutcome, TradeSide, TradeState
from .pairs import normalize_pair_name, resolve_pair
from .sizing import PositionSizer
from .state_machine import TradeExecutionStateMachine, TradeRejected

__all__ = [
    'LendingOutcome',
    'LendingSignalHandler',
    'TradeContext',
    'TradeIntent',
    'TradeOutcome',
    'TradeSide',
    'TradeState',
    'normalize_pair_name',
    'resolve_pair',
    'PositionSizer',
    'TradeExecutionStateMachine',
    'TradeRejected',
]
