"""
End-to-end tests for DecisionOrchestrator with every external service faked.
"""

import pytest

from fakes import (
    SOL,
    USDT,
    WALLET,
    FakeDex,
    FakePriceSource,
    FakeProvider,
    FakeRpc,
    FakeSigner,
    lending_response,
    trading_response,
)
from portfolio_agent.analytics.cross_asset import CrossAssetAnalyzer
from portfolio_agent.analytics.indicators import IndicatorEngine, IndicatorWindows
from portfolio_agent.core.errors import AdvisoryProviderError, CycleAbortedError, LendingDataError, PriceHistoryError
from portfolio_agent.decision.consensus import ConsensusDecisionEngine
from portfolio_agent.decision.models import Buy, Confidence, Lend, Wait
from portfolio_agent.execution.lending_handler import LendingSignalHandler
from portfolio_agent.execution.state_machine import TradeExecutionStateMachine
from portfolio_agent.market_data.aggregator import MarketDataAggregator
from portfolio_agent.market_data.models import LendingMarketSnapshot, LendingReserve
from portfolio_agent.orchestration.orchestrator import DecisionOrchestrator
from portfolio_agent.portfolio.balance_manager import BalanceManager
from portfolio_agent.storage.history_store import HistoryStatus

NOW = 1_700_000_000
PRICES = [100, 101, 99, 105, 103, 104, 102]


async def no_sleep(_):
    return None


def history(prices):
    n = len(prices)
    return [(NOW - (n - 1 - i) * 14_400, p) for i, p in enumerate(prices)]


def advisor(name, trading, lending=None):
    """Provider answering trading and lending prompts differently."""
    def respond(system_prompt):
        if "lending" in system_prompt.lower():
            if isinstance(lending, BaseException):
                raise lending
            return lending
        if isinstance(trading, BaseException):
            raise trading
        return trading
    return FakeProvider(name, respond)


class FakeLendingSource:
    def __init__(self, error=None):
        self.error = error

    async def get_market_snapshot(self):
        if self.error:
            raise self.error
        return LendingMarketSnapshot(
            market_id="main",
            reserves={
                "USDC": LendingReserve(
                    reserve="r-usdc", token="USDC", total_supply_usd=5_000_000, total_borrow_usd=2_000_000,
                    max_ltv=0.8, borrow_apy=0.1, supply_apy=0.08,
                ),
            },
            fetched_at=NOW,
        )


@pytest.fixture
def build(pairs, risk, history_store):
    def _build(
        price_responses=None,
        primary=None,
        secondary=None,
        lending_source=None,
        dex=None,
        lending_handler=None,
    ):
        price_source = FakePriceSource(price_responses or {
            "pool-sol": history(PRICES),
            "pool-btc": history([60_000, 60_500, 61_000, 60_800, 61_200, 61_500, 62_000]),
        })
        aggregator = MarketDataAggregator(
            price_source,
            {"SOL_USD": "pool-sol", "BTC_USD": "pool-btc"},
            clock=lambda: NOW,
            sleep=no_sleep,
        )
        windows = IndicatorWindows.for_periods_per_day(6)
        rpc = FakeRpc(balances={SOL.mint: 10 * 10**9, USDT.mint: 1_000 * 10**6})
        balances = BalanceManager(rpc, WALLET, pairs)
        dex = dex or FakeDex()
        executor = TradeExecutionStateMachine(dex, rpc, FakeSigner(), balances, history_store, pairs, risk)
        consensus = ConsensusDecisionEngine(
            primary or advisor("GPT", trading_response("BUY", "SOL_USD"), lending_response("USDC", 0.08)),
            secondary or advisor("GROK", trading_response("BUY", "SOL_USD"), lending_response("USDC", 0.08)),
            min_apy_threshold=0.01,
        )
        return DecisionOrchestrator(
            market_data=aggregator,
            indicator_engine=IndicatorEngine(windows),
            cross_asset_analyzer=CrossAssetAnalyzer(windows),
            consensus=consensus,
            trade_executor=executor,
            lending_handler=lending_handler or LendingSignalHandler(history_store),
            balance_manager=balances,
            history_store=history_store,
            trading_pairs=pairs,
            lending_source=lending_source if lending_source is not None else FakeLendingSource(),
        )
    return _build


@pytest.mark.asyncio
async def test_full_cycle_trades_lends_and_persists(build, history_store):
    dex = FakeDex()
    orchestrator = build(dex=dex)

    record = await orchestrator.run_decision_cycle()

    assert record.trading.action == Buy(pair="SOL_USD")
    assert record.trading.confidence == Confidence.HIGH
    assert record.lending.action == Lend(token="USDC", apy=0.08)
    assert record.execution["trade"]["success"] is True
    assert record.execution["lending"]["success"] is True

    # HIGH confidence -> 2% of 1000 USDT
    assert dex.quote_calls[0]["amount"] == 20_000_000

    count, decisions = orchestrator.get_decision_history()
    assert count == 1
    assert decisions[0].id == record.id

    count, trades = orchestrator.get_trade_history({"decision_id": record.id})
    assert count == 1
    assert trades[0].pair == "SOL_USDT"

    count, lending = orchestrator.get_lending_history({"decision_id": record.id})
    assert count == 1
    assert lending[0].status == HistoryStatus.PENDING
    assert lending[0].platform == "KAMINO"


@pytest.mark.asyncio
async def test_prompt_contains_indicator_values(build):
    primary = advisor("GPT", trading_response("WAIT", None), lending_response("USDC", 0.08))
    await build(primary=primary).run_decision_cycle()

    trading_prompt = next(c["user"] for c in primary.calls if "lending" not in c["system"].lower())
    # daily change of the SOL series over six 4h candles
    assert '"daily": 2.0' in trading_prompt


@pytest.mark.asyncio
async def test_no_market_data_aborts(build, history_store):
    orchestrator = build(price_responses={
        "pool-sol": PriceHistoryError("down"),
        "pool-btc": PriceHistoryError("down"),
    })

    with pytest.raises(CycleAbortedError) as exc_info:
        await orchestrator.run_decision_cycle()

    assert "no market data" in exc_info.value.reason
    count, _ = history_store.get_decision_history()
    assert count == 0


@pytest.mark.asyncio
async def test_no_consensus_aborts(build, history_store):
    orchestrator = build(
        primary=advisor("GPT", AdvisoryProviderError("down", provider="GPT"), lending_response("USDC", 0.08)),
        secondary=advisor("GROK", AdvisoryProviderError("down", provider="GROK"), lending_response("USDC", 0.08)),
    )

    with pytest.raises(CycleAbortedError) as exc_info:
        await orchestrator.run_decision_cycle()

    assert "no trading consensus" in exc_info.value.reason
    count, _ = history_store.get_trade_history()
    assert count == 0


@pytest.mark.asyncio
async def test_one_failed_pair_still_decides(build):
    orchestrator = build(price_responses={
        "pool-sol": history(PRICES),
        "pool-btc": PriceHistoryError("HTTP 500"),
    })

    record = await orchestrator.run_decision_cycle()

    assert record.trading.action == Buy(pair="SOL_USD")


@pytest.mark.asyncio
async def test_lending_data_failure_does_not_block_trade(build):
    orchestrator = build(lending_source=FakeLendingSource(error=LendingDataError("timeout")))

    record = await orchestrator.run_decision_cycle()

    assert record.lending is None
    assert record.execution["trade"]["success"] is True
    assert "lending" not in record.execution


@pytest.mark.asyncio
async def test_lending_handler_crash_isolated_from_trade(build):
    class CrashingHandler:
        async def handle(self, decision, decision_id=None):
            raise RuntimeError("lending backend exploded")

    record = await build(lending_handler=CrashingHandler()).run_decision_cycle()

    assert record.execution["trade"]["success"] is True
    assert record.execution["lending"] == {"success": False, "error": "lending backend exploded"}


@pytest.mark.asyncio
async def test_wait_decision_executes_nothing(build, history_store):
    orchestrator = build(
        primary=advisor("GPT", trading_response("WAIT", None), lending_response(None, 0.0)),
        secondary=advisor("GROK", trading_response("WAIT", None), lending_response(None, 0.0)),
    )

    record = await orchestrator.run_decision_cycle()

    assert record.trading.action == Wait()
    assert record.execution == {}
    count, _ = history_store.get_trade_history()
    assert count == 0
    count, _ = history_store.get_decision_history()
    assert count == 1


def test_get_available_pairs_returns_names(build):
    assert build().get_available_pairs() == ["SOL_USDT", "BTC_USDT"]


def test_get_pair_details(build):
    listed = build().get_pair_details()
    assert [p["name"] for p in listed] == ["SOL_USDT", "BTC_USDT"]
    assert listed[0]["base"]["symbol"] == "SOL"
    assert listed[1]["quote"]["symbol"] == "USDT"


@pytest.mark.asyncio
async def test_get_balances(build):
    balances = await build().get_balances()
    by_symbol = {b.symbol: b.balance for b in balances}
    assert by_symbol == {"SOL": 10.0, "USDT": 1000.0, "BTC": 0.0}


@pytest.mark.asyncio
async def test_manual_trade(build, history_store):
    outcome = await build().execute_trade("SELL", "SOL_USDT", 1.0)

    assert outcome.success
    count, trades = history_store.get_trade_history({"action": "SELL"})
    assert count == 1
    assert trades[0].decision_id is None
