"""
Lending signal handling.

On-chain deposits are not performed. An executable lending decision is
recorded as a PENDING lending-history entry linked to its decision so an
operator (or a later deposit executor) can act on it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from portfolio_agent.decision.models import LendingDecision, Wait
from portfolio_agent.storage.history_store import HistoryStatus, LendingHistoryRecord

logger = logging.getLogger(__name__)

LENDING_PLATFORM = "KAMINO"


@dataclass
class LendingOutcome:
    success: bool
    message: str
    action: str
    token: Optional[str] = None
    record_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "action": self.action,
            "token": self.token,
            "recordId": self.record_id,
            "error": self.error,
        }


class LendingSignalHandler:
    """Records executable lending decisions."""

    def __init__(self, history_store, platform: str = LENDING_PLATFORM):
        self.history_store = history_store
        self.platform = platform

    async def handle(self, decision: LendingDecision, decision_id: Optional[str] = None) -> LendingOutcome:
        action = decision.action.kind
        if not decision.should_execute or isinstance(decision.action, Wait):
            logger.info(f"Lending decision is {action}, no action taken")
            return LendingOutcome(success=True, message="No lending action required", action=action)

        logger.info(
            f"Lending signal received: {action} {decision.token} "
            f"(apy={decision.apy:.4f}, allocation={decision.amount_pct:.2%})",
            extra={'decision_id': decision_id, 'token': decision.token, 'action': action},
        )

        record = LendingHistoryRecord(
            token=decision.token,
            action=action,
            amount=0.0,
            amount_usd=0.0,
            apy=decision.apy,
            status=HistoryStatus.PENDING,
            platform=self.platform,
            decision_id=decision_id,
            message=f"AI recommendation: {decision.reason}",
        )
        try:
            record_id = self.history_store.save_lending(record)
        except Exception as e:
            logger.error(f"Error handling lending signal: {e}")
            return LendingOutcome(success=False, message="Lending signal not recorded", action=action,
                                  token=decision.token, error=str(e))

        return LendingOutcome(
            success=True,
            message="Lending decision recorded as pending",
            action=action,
            token=decision.token,
            record_id=record_id,
        )
