"""Advisory providers, consensus merging and decision types."""

from .advisory import (
    AdvisoryProvider,
    lending_risk_level,
    parse_advisory_response,
    parse_lending_advice,
    parse_trading_advice,
)
from .consensus import ConsensusDecisionEngine, merge_lending_advice, merge_trading_advice
from .models import (
    Action,
    Buy,
    Confidence,
    DecisionRecord,
    Lend,
    LendingAdvice,
    LendingDecision,
    RiskLevel,
    Sell,
    TradingAdvice,
    TradingDecision,
    TradingReasoning,
    Wait,
    WithdrawLend,
)

__all__ = [
    'AdvisoryProvider',
    'lending_risk_level',
    'parse_advisory_response',
    'parse_lending_advice',
    'parse_trading_advice',
    'ConsensusDecisionEngine',
    'merge_lending_advice',
    'merge_trading_advice',
    'Action',
    'Buy',
    'Confidence',
    'DecisionRecord',
    'Lend',
    'LendingAdvice',
    'LendingDecision',
    'RiskLevel',
    'Sell',
    'TradingAdvice',
    'TradingDecision',
    'TradingReasoning',
    'Wait',
    'WithdrawLend',
]
