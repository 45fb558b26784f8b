"""
Tests for the two-provider consensus engine.
"""

import asyncio

import pytest

from fakes import FakeProvider, lending_response, trading_response
from portfolio_agent.analytics.cross_asset import CrossAssetSignals
from portfolio_agent.analytics.indicators import IndicatorSnapshot
from portfolio_agent.core.errors import AdvisoryProviderError, ConsensusUnavailableError
from portfolio_agent.decision.consensus import (
    ConsensusDecisionEngine,
    combine_risk_assessments,
    merge_lending_advice,
    merge_trading_advice,
)
from portfolio_agent.decision.models import Buy, Confidence, Lend, Sell, Wait
from portfolio_agent.market_data.models import LendingMarketSnapshot, LendingReserve

SNAPSHOTS = {
    "SOL_USD": IndicatorSnapshot(pair="SOL_USD", current_price=150.0, daily_change=2.0, rsi=60.0),
    "BTC_USD": IndicatorSnapshot.default("BTC_USD"),
}

LENDING_MARKET = LendingMarketSnapshot(
    market_id="main",
    reserves={
        "USDC": LendingReserve(
            reserve="r-usdc", token="USDC", total_supply_usd=5_000_000, total_borrow_usd=2_000_000,
            max_ltv=0.8, borrow_apy=0.1, supply_apy=0.08,
        ),
    },
    fetched_at=1_700_000_000,
)


def engine(first, second, **kwargs):
    return ConsensusDecisionEngine(first, second, **kwargs)


@pytest.mark.asyncio
async def test_agreement_gives_high_confidence():
    decision = await engine(
        FakeProvider("GPT", trading_response("BUY", "SOL_USD")),
        FakeProvider("GROK", trading_response("BUY", "SOL_USD", risk_note="High volatility")),
    ).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())

    assert decision.action == Buy(pair="SOL_USD")
    assert decision.should_execute is True
    assert decision.confidence == Confidence.HIGH
    assert decision.reasoning.market_condition.startswith("All Models Agree")
    assert decision.reasoning.risk_assessment == "HIGH"


@pytest.mark.asyncio
async def test_disagreement_waits():
    decision = await engine(
        FakeProvider("GPT", trading_response("BUY", "SOL_USD")),
        FakeProvider("GROK", trading_response("BUY", "BTC_USD")),
    ).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())

    assert decision.action == Wait()
    assert decision.should_execute is False
    assert decision.confidence == Confidence.LOW


@pytest.mark.asyncio
async def test_single_provider_timeout_gives_medium_confidence():
    decision = await engine(
        FakeProvider("GPT", trading_response("SELL", "SOL_USD")),
        FakeProvider("GROK", AdvisoryProviderError("GROK timed out after 30s", provider="GROK")),
    ).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())

    assert decision.action == Sell(pair="SOL_USD")
    assert decision.should_execute is True
    assert decision.confidence == Confidence.MEDIUM
    assert decision.reasoning.market_condition == "GPT Only: Trending"
    assert decision.reasoning.technical_analysis == "RSI rising"


@pytest.mark.asyncio
async def test_unparseable_response_counts_as_failure():
    decision = await engine(
        FakeProvider("GPT", "I cannot help with that."),
        FakeProvider("GROK", trading_response("BUY", "BTC_USD")),
    ).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())

    assert decision.confidence == Confidence.MEDIUM
    assert decision.action == Buy(pair="BTC_USD")
    assert decision.reasoning.market_condition.startswith("GROK Only")


@pytest.mark.asyncio
async def test_both_providers_failing_raises():
    with pytest.raises(ConsensusUnavailableError):
        await engine(
            FakeProvider("GPT", AdvisoryProviderError("500", provider="GPT")),
            FakeProvider("GROK", AdvisoryProviderError("timeout", provider="GROK")),
        ).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())


@pytest.mark.asyncio
async def test_both_calls_awaited_before_merge():
    slow = FakeProvider("GROK", trading_response("BUY", "SOL_USD"), delay=0.05)
    fast = FakeProvider("GPT", AdvisoryProviderError("boom", provider="GPT"))

    decision = await engine(fast, slow).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())

    assert len(slow.calls) == 1
    assert decision.action == Buy(pair="SOL_USD")


@pytest.mark.asyncio
async def test_trading_prompt_mentions_every_pair():
    provider = FakeProvider("GPT", trading_response("WAIT", None))
    await engine(provider, FakeProvider("GROK", trading_response("WAIT", None))).decide_trading(
        SNAPSHOTS, CrossAssetSignals.empty(), LENDING_MARKET
    )

    user_prompt = provider.calls[0]["user"]
    assert "SOL_USD" in user_prompt
    assert "BTC_USD" in user_prompt
    assert provider.calls[0]["temperature"] == pytest.approx(0.2)


@pytest.mark.asyncio
async def test_wait_agreement_is_not_executed():
    decision = await engine(
        FakeProvider("GPT", trading_response("WAIT", None)),
        FakeProvider("GROK", trading_response("WAIT", None)),
    ).decide_trading(SNAPSHOTS, CrossAssetSignals.empty())

    assert decision.action == Wait()
    assert decision.confidence == Confidence.HIGH
    assert decision.should_execute is False


def test_merge_is_symmetric_in_key():
    from portfolio_agent.decision.advisory import parse_trading_advice

    a = parse_trading_advice(trading_response("BUY", "SOL_USD"), "A")
    b = parse_trading_advice(trading_response("SELL", "SOL_USD"), "B")
    assert merge_trading_advice(a, b).action == merge_trading_advice(b, a).action == Wait()


def test_combine_risk_assessments():
    assert combine_risk_assessments("Low risk", "Moderate") == "LOW"
    assert combine_risk_assessments("Low risk", "Very VOLATILE") == "HIGH"
    assert combine_risk_assessments(None, None) == "LOW"


@pytest.mark.asyncio
async def test_lending_agreement_above_threshold():
    decision = await engine(
        FakeProvider("GPT", lending_response("USDC", 0.08)),
        FakeProvider("GROK", lending_response("USDC", 0.08)),
        min_apy_threshold=0.01,
    ).decide_lending(LENDING_MARKET)

    assert decision.action == Lend(token="USDC", apy=0.08)
    assert decision.should_execute is True
    assert decision.confidence == Confidence.HIGH
    assert decision.reason.startswith("Both models agree")
    assert decision.amount_pct == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_lending_single_provider():
    decision = await engine(
        FakeProvider("GPT", asyncio.TimeoutError()),
        FakeProvider("GROK", lending_response("USDC", 0.08)),
    ).decide_lending(LENDING_MARKET)

    assert decision.confidence == Confidence.MEDIUM
    assert decision.should_execute is True
    assert decision.reason.startswith("GROK only")


@pytest.mark.asyncio
async def test_lending_disagreement_waits():
    decision = await engine(
        FakeProvider("GPT", lending_response("USDC", 0.08)),
        FakeProvider("GROK", lending_response("SOL", 0.06)),
    ).decide_lending(LENDING_MARKET)

    assert decision.action == Wait()
    assert decision.confidence == Confidence.LOW
    assert decision.should_execute is False


@pytest.mark.asyncio
async def test_lending_both_failing_degrades():
    decision = await engine(
        FakeProvider("GPT", AdvisoryProviderError("down", provider="GPT")),
        FakeProvider("GROK", AdvisoryProviderError("down", provider="GROK")),
    ).decide_lending(LENDING_MARKET)

    assert decision.action == Wait()
    assert decision.confidence == Confidence.NONE
    assert decision.error


def test_merge_lending_below_threshold_not_executed():
    from portfolio_agent.decision.advisory import parse_lending_advice

    low = parse_lending_advice(lending_response("USDC", 0.005), "A", min_apy_threshold=0.01)
    decision = merge_lending_advice(low, low, "A", "B")

    assert decision.confidence == Confidence.HIGH
    assert isinstance(decision.action, Lend)
    assert decision.should_execute is False
