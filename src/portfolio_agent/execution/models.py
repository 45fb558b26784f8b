"""
Trade execution models.

A trade moves through named states. The context object carries everything
the state handlers produce and is mutated as the trade advances.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from portfolio_agent.config.settings import TokenConfig, TradingPairConfig
from portfolio_agent.integrations.dex.aggregator_adapter import SwapQuote


class TradeState(str, Enum):
    """Trade execution states, in order."""
    SIZED = "SIZED"
    QUOTED = "QUOTED"
    FEE_ESTIMATED = "FEE_ESTIMATED"
    BUILT = "BUILT"
    SIGNED = "SIGNED"
    BROADCAST = "BROADCAST"
    CONFIRMING = "CONFIRMING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TradeState.DONE, TradeState.FAILED)


class TradeSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class TradeIntent:
    """
    A sized trade request.

    ``amount`` is in UI units of the input token (quote token for BUY, base
    token for SELL).
    """
    side: TradeSide
    pair: str
    amount: float
    decision_id: Optional[str] = None


@dataclass
class TradeOutcome:
    """Result of one trade attempt."""
    success: bool
    pair: str
    final_state: TradeState
    tx_ids: List[str] = field(default_factory=list)
    unconfirmed_tx_ids: List[str] = field(default_factory=list)
    token_in: str = "UNKNOWN"
    token_out: str = "UNKNOWN"
    expected_output: Optional[float] = None
    actual_output: Optional[float] = None
    error: Optional[str] = None
    record_id: Optional[str] = None
    # State changes in order, one dict per transition
    transitions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "pair": self.pair,
            "finalState": self.final_state.value,
            "txIds": list(self.tx_ids),
            "unconfirmedTxIds": list(self.unconfirmed_tx_ids),
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "expectedOutput": self.expected_output,
            "actualOutput": self.actual_output,
            "error": self.error,
            "recordId": self.record_id,
            "transitions": [dict(t) for t in self.transitions],
        }


@dataclass
class TradeContext:
    """Mutable state of a trade as it moves through the state machine."""
    intent: TradeIntent
    state: TradeState = TradeState.SIZED

    trading_pair: Optional[TradingPairConfig] = None
    input_token: Optional[TokenConfig] = None
    output_token: Optional[TokenConfig] = None
    raw_amount: int = 0

    quote: Optional[SwapQuote] = None
    priority_fee: Optional[int] = None
    unsigned_transactions: List[str] = field(default_factory=list)
    signed_transactions: List[bytes] = field(default_factory=list)

    # Index of the next signed transaction to broadcast
    next_tx_index: int = 0
    tx_ids: List[str] = field(default_factory=list)
    unconfirmed_tx_ids: List[str] = field(default_factory=list)

    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    transitions: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def expected_output(self) -> Optional[float]:
        if self.quote is None or self.output_token is None:
            return None
        return self.quote.output_amount / (10 ** self.output_token.decimals)

    @property
    def has_pending_broadcast(self) -> bool:
        return self.next_tx_index < len(self.signed_transactions)

    def log_transition(self, source: TradeState, target: TradeState, message: str = ""):
        self.transitions.append({
            "from": source.value,
            "to": target.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
