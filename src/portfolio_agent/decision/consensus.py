"""
Consensus decision engine.

Queries two advisory providers concurrently and merges their answers:

Trading (key = action, pair):
    both fail      -> ConsensusUnavailableError
    one fails      -> the other's advice, confidence MEDIUM
    both agree     -> confidence HIGH, risk HIGH/LOW from the risk notes
    both disagree  -> WAIT, confidence LOW, never executed

Lending (key = action, token):
    both agree -> HIGH, disagree -> WAIT/LOW, one -> MEDIUM,
    both fail -> WAIT/NONE, unexpected error -> WAIT/ERROR

Both provider calls are always awaited before merging, even if one fails
quickly.
"""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Union

from portfolio_agent.analytics.cross_asset import CrossAssetSignals
from portfolio_agent.analytics.indicators import IndicatorSnapshot
from portfolio_agent.core.errors import AdvisoryProviderError, ConsensusUnavailableError
from portfolio_agent.decision.advisory import parse_lending_advice, parse_trading_advice
from portfolio_agent.decision.models import (
    Buy,
    Confidence,
    Lend,
    LendingAdvice,
    LendingDecision,
    Sell,
    TradingAdvice,
    TradingDecision,
    TradingReasoning,
    Wait,
    trading_action,
)
from portfolio_agent.decision.prompts import build_lending_prompts, build_trading_prompts
from portfolio_agent.market_data.models import LendingMarketSnapshot
from portfolio_agent.utils.logger import get_agent_logger

logger = logging.getLogger(__name__)
agent_log = get_agent_logger(__name__)

HIGH_RISK_KEYWORDS = ("high", "volatile")


class AdvisoryClient(Protocol):
    name: str

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.2) -> str:
        ...


ProviderResult = Union[TradingAdvice, LendingAdvice, BaseException]


def is_high_risk(note: Optional[str]) -> bool:
    note = (note or "").lower()
    return any(keyword in note for keyword in HIGH_RISK_KEYWORDS)


def combine_risk_assessments(*notes: Optional[str]) -> str:
    """HIGH if any provider's risk note mentions a high-risk keyword, else LOW."""
    return "HIGH" if any(is_high_risk(n) for n in notes) else "LOW"


def _decision_from_advice(advice: TradingAdvice, confidence: Confidence, reasoning: TradingReasoning) -> TradingDecision:
    action = trading_action(advice.action, advice.pair)
    return TradingDecision(
        action=action,
        should_execute=isinstance(action, (Buy, Sell)),
        confidence=confidence,
        reasoning=reasoning,
    )


def merge_trading_advice(
    first: ProviderResult,
    second: ProviderResult,
    first_name: str = "A",
    second_name: str = "B",
) -> TradingDecision:
    """
    Merge two trading results (advice or the exception the call raised).

    Raises:
        ConsensusUnavailableError: If both results are failures
    """
    first_failed = isinstance(first, BaseException)
    second_failed = isinstance(second, BaseException)

    if first_failed and second_failed:
        raise ConsensusUnavailableError(
            f"Both advisory providers failed: {first_name}: {first}; {second_name}: {second}"
        )

    if first_failed or second_failed:
        advice, name = (second, second_name) if first_failed else (first, first_name)
        r = advice.reasoning
        reasoning = TradingReasoning(
            market_condition=f"{name} Only: {r.market_condition}",
            technical_analysis=r.technical_analysis,
            risk_assessment=r.risk_assessment,
            pair_selection=r.pair_selection,
            comparative_analysis=dict(r.comparative_analysis),
        )
        return _decision_from_advice(advice, Confidence.MEDIUM, reasoning)

    if first.key == second.key:
        r = first.reasoning
        comparative = dict(r.comparative_analysis)
        comparative["modelAgreement"] = f"Both {first_name} and {second_name} agree on pair selection and action"
        reasoning = TradingReasoning(
            market_condition=f"All Models Agree: {r.market_condition}",
            technical_analysis=f"Consensus: {r.technical_analysis}",
            risk_assessment=combine_risk_assessments(r.risk_assessment, second.reasoning.risk_assessment),
            pair_selection=r.pair_selection,
            comparative_analysis=comparative,
        )
        return _decision_from_advice(first, Confidence.HIGH, reasoning)

    reasoning = TradingReasoning(
        market_condition=f"Mixed signals between {first_name} and {second_name}",
        technical_analysis=(
            f"{first_name} suggests {first.action} {first.pair}, "
            f"{second_name} suggests {second.action} {second.pair}"
        ),
        risk_assessment="HIGH due to model disagreement",
        pair_selection="Models disagree on pair selection",
        comparative_analysis={
            "volatilityComparison": "Analysis suspended due to model disagreement",
            "trendAlignment": "Models show different interpretations",
            "relativeStrength": "No consensus on strongest pair",
            "modelAgreement": f"{first_name} and {second_name} disagree on best trading opportunity",
        },
    )
    return TradingDecision(action=Wait(), should_execute=False, confidence=Confidence.LOW, reasoning=reasoning)


def _lending_decision(advice: LendingAdvice, confidence: Confidence, reason: str) -> LendingDecision:
    if advice.action == "LEND" and advice.token:
        action = Lend(token=advice.token, apy=advice.apy_decimal)
    else:
        action = Wait()
    return LendingDecision(
        action=action,
        should_execute=advice.should_execute and isinstance(action, Lend),
        confidence=confidence,
        reason=reason,
        apy=advice.apy_decimal,
        risk_level=advice.risk_level,
        pool_size_usd=advice.pool_size_usd,
        utilization_pct=advice.utilization_pct,
        reserve_address=advice.reserve_address,
        amount_pct=advice.amount_pct,
    )


def merge_lending_advice(
    first: ProviderResult,
    second: ProviderResult,
    first_name: str = "A",
    second_name: str = "B",
) -> LendingDecision:
    """Merge two lending results; never raises."""
    first_failed = isinstance(first, BaseException)
    second_failed = isinstance(second, BaseException)

    if first_failed and second_failed:
        return LendingDecision(
            action=Wait(),
            should_execute=False,
            confidence=Confidence.NONE,
            reason="No advisory providers available for lending analysis",
            error=f"{first_name}: {first}; {second_name}: {second}",
        )

    if first_failed or second_failed:
        advice, name = (second, second_name) if first_failed else (first, first_name)
        return _lending_decision(
            advice, Confidence.MEDIUM, f"{name} only: {advice.action} {advice.token or ''}. {advice.reason}".strip()
        )

    if first.key == second.key:
        return _lending_decision(
            first, Confidence.HIGH, f"Both models agree: {first.action} {first.token or ''}. {first.reason}".strip()
        )

    return LendingDecision(
        action=Wait(),
        should_execute=False,
        confidence=Confidence.LOW,
        reason=(
            "Models disagree on lending strategy - waiting for clearer signals "
            f"({first_name}: {first.action} {first.token}, {second_name}: {second.action} {second.token})"
        ),
    )


class ConsensusDecisionEngine:
    """Two-provider consensus for the trading and lending flows."""

    def __init__(
        self,
        primary: AdvisoryClient,
        secondary: AdvisoryClient,
        min_apy_threshold: float = 0.01,
        allocation_pct: float = 0.1,
        trading_temperature: float = 0.2,
        lending_temperature: float = 0.3,
    ):
        self.primary = primary
        self.secondary = secondary
        self.min_apy_threshold = min_apy_threshold
        self.allocation_pct = allocation_pct
        self.trading_temperature = trading_temperature
        self.lending_temperature = lending_temperature

    @property
    def providers(self) -> List[AdvisoryClient]:
        return [self.primary, self.secondary]

    async def _ask_trading(self, provider: AdvisoryClient, prompts: Dict[str, str]) -> TradingAdvice:
        text = await provider.complete(prompts["system"], prompts["user"], self.trading_temperature)
        return parse_trading_advice(text, provider.name)

    async def _ask_lending(self, provider: AdvisoryClient, prompts: Dict[str, str]) -> LendingAdvice:
        text = await provider.complete(prompts["system"], prompts["user"], self.lending_temperature)
        return parse_lending_advice(text, provider.name, self.min_apy_threshold, self.allocation_pct)

    def _log_failures(self, flow: str, results: Sequence[ProviderResult]) -> None:
        for provider, result in zip(self.providers, results):
            if isinstance(result, BaseException):
                level = logging.WARNING if isinstance(result, AdvisoryProviderError) else logging.ERROR
                logger.log(
                    level,
                    f"{flow} advice from {provider.name} failed: {type(result).__name__}: {result}",
                    extra={"provider": provider.name},
                )

    async def decide_trading(
        self,
        snapshots: Mapping[str, IndicatorSnapshot],
        cross_asset: CrossAssetSignals,
        lending: Optional[LendingMarketSnapshot] = None,
    ) -> TradingDecision:
        """
        Trading decision across all tracked pairs.

        Raises:
            ConsensusUnavailableError: If both providers fail
        """
        prompts = build_trading_prompts(
            indicators={pair: s.to_dict() for pair, s in snapshots.items()},
            cross_asset=cross_asset.to_dict(),
            pairs=list(snapshots),
            lending_context=lending.to_prompt_payload() if lending else None,
        )

        results = await asyncio.gather(
            self._ask_trading(self.primary, prompts),
            self._ask_trading(self.secondary, prompts),
            return_exceptions=True,
        )
        self._log_failures("Trading", results)

        decision = merge_trading_advice(results[0], results[1], self.primary.name, self.secondary.name)
        agent_log.decision(
            "Trading", decision.action.kind, decision.pair, decision.confidence.value,
        )
        return decision

    async def decide_lending(
        self,
        lending: LendingMarketSnapshot,
        cross_asset: Optional[CrossAssetSignals] = None,
    ) -> LendingDecision:
        """Lending decision for one market; degrades instead of raising."""
        try:
            regime = cross_asset.market_regime.value if cross_asset else None
            prompts = build_lending_prompts(lending.to_prompt_payload(), regime)

            results = await asyncio.gather(
                self._ask_lending(self.primary, prompts),
                self._ask_lending(self.secondary, prompts),
                return_exceptions=True,
            )
            self._log_failures("Lending", results)

            decision = merge_lending_advice(results[0], results[1], self.primary.name, self.secondary.name)
        except Exception as e:
            logger.error(f"Error getting lending decision: {e}", exc_info=True)
            decision = LendingDecision(
                action=Wait(),
                should_execute=False,
                confidence=Confidence.ERROR,
                reason=f"Error in lending analysis: {e}",
                error=str(e),
            )

        agent_log.decision(
            "Lending", decision.action.kind, decision.token, decision.confidence.value,
        )
        return decision
