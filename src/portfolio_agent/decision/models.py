"""
Decision models.

Actions are a closed set of frozen dataclasses (Wait, Buy, Sell, Lend,
WithdrawLend) so consumers dispatch on type instead of inspecting strings.
Advice objects are one provider's parsed recommendation; decisions are the
merged result of both providers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union


class Confidence(str, Enum):
    """Confidence of a merged decision."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"
    ERROR = "ERROR"


class RiskLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ============================================================================
# Actions
# ============================================================================

@dataclass(frozen=True)
class Wait:
    kind: ClassVar[str] = "WAIT"


@dataclass(frozen=True)
class Buy:
    pair: str
    size: Optional[float] = None
    kind: ClassVar[str] = "BUY"


@dataclass(frozen=True)
class Sell:
    pair: str
    size: Optional[float] = None
    kind: ClassVar[str] = "SELL"


@dataclass(frozen=True)
class Lend:
    token: str
    apy: float = 0.0
    amount: Optional[float] = None
    kind: ClassVar[str] = "LEND"


@dataclass(frozen=True)
class WithdrawLend:
    token: str
    amount: Optional[float] = None
    kind: ClassVar[str] = "WITHDRAW_LEND"


Action = Union[Wait, Buy, Sell, Lend, WithdrawLend]
TradeAction = Union[Buy, Sell]


def action_target(action: Action) -> Optional[str]:
    """Pair or token an action refers to."""
    if isinstance(action, (Buy, Sell)):
        return action.pair
    if isinstance(action, (Lend, WithdrawLend)):
        return action.token
    return None


def trading_action(name: str, pair: Optional[str]) -> Action:
    """Build a trading action from its advisory name."""
    name = (name or "").upper()
    if name == "BUY" and pair:
        return Buy(pair=pair)
    if name == "SELL" and pair:
        return Sell(pair=pair)
    return Wait()


# ============================================================================
# Reasoning / advice
# ============================================================================

@dataclass(frozen=True)
class TradingReasoning:
    market_condition: str = ""
    technical_analysis: str = ""
    risk_assessment: str = ""
    pair_selection: str = ""
    comparative_analysis: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketCondition": self.market_condition,
            "technicalAnalysis": self.technical_analysis,
            "riskAssessment": self.risk_assessment,
            "pairSelection": self.pair_selection,
            "comparativeAnalysis": dict(self.comparative_analysis),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradingReasoning":
        data = data or {}
        return cls(
            market_condition=data.get("marketCondition", ""),
            technical_analysis=data.get("technicalAnalysis", ""),
            risk_assessment=data.get("riskAssessment", ""),
            pair_selection=data.get("pairSelection", ""),
            comparative_analysis=dict(data.get("comparativeAnalysis") or {}),
        )


@dataclass(frozen=True)
class TradingAdvice:
    """One provider's trading recommendation."""
    provider: str
    action: str  # BUY | SELL | WAIT
    pair: Optional[str]
    reasoning: TradingReasoning

    @property
    def key(self):
        return (self.action, self.pair)


@dataclass(frozen=True)
class LendingAdvice:
    """One provider's lending recommendation."""
    provider: str
    action: str  # LEND | WAIT
    token: Optional[str]
    apy_decimal: float
    apy_display: str
    reason: str
    pool_size_usd: float
    utilization_pct: float
    reserve_address: Optional[str]
    should_execute: bool
    risk_level: RiskLevel
    amount_pct: float = 0.1

    @property
    def key(self):
        return (self.action, self.token)


# ============================================================================
# Decisions
# ============================================================================

@dataclass(frozen=True)
class TradingDecision:
    action: Action
    should_execute: bool
    confidence: Confidence
    reasoning: TradingReasoning = field(default_factory=TradingReasoning)

    @property
    def pair(self) -> Optional[str]:
        return action_target(self.action)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.kind,
            "pair": self.pair,
            "shouldExecute": self.should_execute,
            "confidence": self.confidence.value,
            "reasoning": self.reasoning.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradingDecision":
        return cls(
            action=trading_action(data.get("action"), data.get("pair")),
            should_execute=bool(data.get("shouldExecute")),
            confidence=Confidence(data.get("confidence", Confidence.NONE.value)),
            reasoning=TradingReasoning.from_dict(data.get("reasoning") or {}),
        )


@dataclass(frozen=True)
class LendingDecision:
    action: Action
    should_execute: bool
    confidence: Confidence
    reason: str = ""
    apy: float = 0.0
    risk_level: Optional[RiskLevel] = None
    pool_size_usd: float = 0.0
    utilization_pct: float = 0.0
    reserve_address: Optional[str] = None
    amount_pct: float = 0.0
    error: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        return action_target(self.action)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.kind,
            "token": self.token,
            "shouldExecute": self.should_execute,
            "confidence": self.confidence.value,
            "reason": self.reason,
            "apy": self.apy,
            "riskLevel": self.risk_level.value if self.risk_level else None,
            "poolSizeUsd": self.pool_size_usd,
            "utilizationRate": self.utilization_pct,
            "reserveAddress": self.reserve_address,
            "amountPercentage": self.amount_pct,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LendingDecision":
        token = data.get("token")
        if data.get("action") == Lend.kind and token:
            action: Action = Lend(token=token, apy=float(data.get("apy") or 0.0))
        elif data.get("action") == WithdrawLend.kind and token:
            action = WithdrawLend(token=token)
        else:
            action = Wait()
        risk = data.get("riskLevel")
        return cls(
            action=action,
            should_execute=bool(data.get("shouldExecute")),
            confidence=Confidence(data.get("confidence", Confidence.NONE.value)),
            reason=data.get("reason", ""),
            apy=float(data.get("apy") or 0.0),
            risk_level=RiskLevel(risk) if risk else None,
            pool_size_usd=float(data.get("poolSizeUsd") or 0.0),
            utilization_pct=float(data.get("utilizationRate") or 0.0),
            reserve_address=data.get("reserveAddress"),
            amount_pct=float(data.get("amountPercentage") or 0.0),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class DecisionRecord:
    """One cycle's persisted decisions plus a summary of what was executed."""
    id: str
    created_at: datetime
    trading: TradingDecision
    lending: Optional[LendingDecision] = None
    execution: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at.isoformat(),
            "decision": {
                "trading": self.trading.to_dict(),
                "lending": self.lending.to_dict() if self.lending else None,
            },
            "execution": dict(self.execution),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionRecord":
        decision = data.get("decision") or {}
        created_at = data.get("createdAt")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        lending = decision.get("lending")
        return cls(
            id=data["id"],
            created_at=created_at or datetime.now(timezone.utc),
            trading=TradingDecision.from_dict(decision.get("trading") or {}),
            lending=LendingDecision.from_dict(lending) if lending else None,
            execution=dict(data.get("execution") or {}),
        )
