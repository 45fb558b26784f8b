"""
Position sizing.

Trade size is a fixed fraction of the input token balance. The fraction is
chosen by decision confidence: HIGH confidence uses the low-risk fraction,
anything else the high-risk fraction.
"""

import logging
from typing import Dict

from portfolio_agent.config.settings import RiskConfig, TradingPairConfig
from portfolio_agent.decision.models import Confidence
from portfolio_agent.portfolio.balance_manager import TokenBalance
from portfolio_agent.execution.models import TradeSide

logger = logging.getLogger(__name__)


class PositionSizer:
    """Turns a decision into a trade amount in UI units of the input token."""

    def __init__(self, risk: RiskConfig):
        self.risk = risk

    def risk_fraction(self, confidence: Confidence) -> float:
        if confidence == Confidence.HIGH:
            return self.risk.low_risk_pct
        return self.risk.high_risk_pct

    def size(
        self,
        side: TradeSide,
        pair: TradingPairConfig,
        confidence: Confidence,
        balances: Dict[str, TokenBalance],
    ) -> float:
        """
        Amount to trade.

        BUY spends the quote token, SELL spends the base token. A token with
        no known balance sizes to 0.
        """
        token = pair.quote if side == TradeSide.BUY else pair.base
        balance = balances.get(token.mint)
        available = balance.balance if balance else 0.0
        fraction = self.risk_fraction(confidence)
        amount = available * fraction

        logger.info(
            f"Sized {side.value} {pair.name}: {amount:.6f} {token.symbol} "
            f"({fraction:.2%} of {available:.6f}, confidence={confidence.value})"
        )
        return amount
