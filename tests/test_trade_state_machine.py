"""
Tests for TradeExecutionStateMachine.

Every path must end in exactly one trade-history record.
"""

import asyncio

import pytest

from fakes import SOL, USDT, WALLET, FakeDex, FakeRpc, FakeSigner
from portfolio_agent.decision.models import Buy, Confidence, Sell, TradingDecision, Wait
from portfolio_agent.execution.models import TradeIntent, TradeSide, TradeState
from portfolio_agent.execution.state_machine import TradeExecutionStateMachine
from portfolio_agent.integrations.dex.aggregator_adapter import QuoteError
from portfolio_agent.integrations.solana.rpc_client import ConfirmationTimeout, RpcError
from portfolio_agent.portfolio.balance_manager import BalanceManager
from portfolio_agent.storage.history_store import HistoryStatus


@pytest.fixture
def machine_factory(pairs, risk, history_store):
    def build(dex=None, rpc=None, signer=None, fail_on_unconfirmed=False):
        rpc = rpc or FakeRpc(balances={SOL.mint: 10 * 10**9, USDT.mint: 1_000 * 10**6})
        return TradeExecutionStateMachine(
            dex=dex or FakeDex(),
            rpc=rpc,
            signer=signer or FakeSigner(),
            balance_manager=BalanceManager(rpc, WALLET, pairs),
            history_store=history_store,
            pairs=pairs,
            risk=risk,
            default_priority_fee=100000,
            fail_on_unconfirmed=fail_on_unconfirmed,
        )
    return build


def trades(history_store):
    return history_store.get_trade_history()


class HangingConfirmRpc(FakeRpc):
    """Confirmation blocks until the caller gives up."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.confirm_started = asyncio.Event()

    async def confirm_transaction(self, signature, timeout=None):
        self.events.append(f"confirm:{signature}")
        self.confirm_started.set()
        await asyncio.sleep(3600)


@pytest.mark.asyncio
async def test_successful_buy(machine_factory, history_store):
    dex = FakeDex()
    rpc = FakeRpc()
    machine = machine_factory(dex=dex, rpc=rpc)

    outcome = await machine.execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 25.0, decision_id="d1"))

    assert outcome.success is True
    assert outcome.final_state == TradeState.DONE
    assert outcome.tx_ids == ["sig1", "sig2"]
    assert outcome.unconfirmed_tx_ids == []
    assert (outcome.token_in, outcome.token_out) == ("USDT", "SOL")
    assert outcome.expected_output == pytest.approx(1.0)

    assert dex.quote_calls[0] == {
        "input_mint": USDT.mint, "output_mint": SOL.mint, "amount": 25_000_000, "slippage_bps": 1000,
    }
    assert dex.build_calls[0]["unwrap_sol"] is True
    assert dex.build_calls[0]["wrap_sol"] is False
    assert dex.build_calls[0]["output_account"] is None
    assert dex.build_calls[0]["input_account"]
    assert rpc.events == ["send:sig1", "confirm:sig1", "send:sig2", "confirm:sig2"]

    count, records = trades(history_store)
    assert count == 1
    assert records[0].id == outcome.record_id
    assert records[0].status == HistoryStatus.SUCCESS
    assert records[0].amount_in == 25_000_000
    assert records[0].expected_amount_out == 1_000_000_000
    assert records[0].decision_id == "d1"


@pytest.mark.asyncio
async def test_sell_wraps_native_sol(machine_factory):
    dex = FakeDex(output_amount=150_000_000)
    outcome = await machine_factory(dex=dex).execute(TradeIntent(TradeSide.SELL, "SOL_USDT", 0.5))

    assert outcome.success
    assert (outcome.token_in, outcome.token_out) == ("SOL", "USDT")
    assert dex.quote_calls[0]["amount"] == 500_000_000
    assert dex.build_calls[0]["wrap_sol"] is True
    assert dex.build_calls[0]["input_account"] is None
    assert outcome.expected_output == pytest.approx(150.0)


@pytest.mark.asyncio
async def test_amount_too_small_never_quotes(machine_factory, history_store):
    dex = FakeDex()
    outcome = await machine_factory(dex=dex).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 0.0000001))

    assert outcome.success is False
    assert outcome.final_state == TradeState.FAILED
    assert outcome.error == "amount too small"
    assert dex.quote_calls == []

    count, records = trades(history_store)
    assert count == 1
    assert records[0].status == HistoryStatus.FAILED
    assert records[0].tx_hashes == []


@pytest.mark.asyncio
async def test_unknown_pair_recorded_with_unknown_tokens(machine_factory, history_store):
    outcome = await machine_factory().execute(TradeIntent(TradeSide.BUY, "ETH_USDT", 5.0))

    assert outcome.success is False
    assert "not found or disabled" in outcome.error
    assert (outcome.token_in, outcome.token_out) == ("UNKNOWN", "UNKNOWN")

    _, records = trades(history_store)
    assert records[0].token_in == "UNKNOWN"
    assert records[0].pair == "ETH_USDT"


@pytest.mark.asyncio
async def test_pair_alias_resolves_to_configured_pair(machine_factory, history_store):
    outcome = await machine_factory().execute(TradeIntent(TradeSide.BUY, "SOL_USD", 1.0))

    assert outcome.success
    _, records = trades(history_store)
    assert records[0].pair == "SOL_USDT"


@pytest.mark.asyncio
async def test_quote_failure_records_one_failed_trade(machine_factory, history_store):
    dex = FakeDex(quote_error=QuoteError("no route"))
    outcome = await machine_factory(dex=dex).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0))

    assert outcome.success is False
    assert outcome.error == "no route"
    assert dex.build_calls == []

    count, records = trades(history_store)
    assert count == 1
    assert records[0].expected_amount_out is None
    assert records[0].amount_in == 10_000_000


@pytest.mark.asyncio
async def test_fee_hint_failure_uses_default(machine_factory):
    dex = FakeDex(fee_error=True)
    outcome = await machine_factory(dex=dex).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0))

    assert outcome.success
    assert dex.build_calls[0]["priority_fee"] == 100000


@pytest.mark.asyncio
async def test_fee_hint_passed_to_build(machine_factory):
    dex = FakeDex(priority_fee=42_000)
    await machine_factory(dex=dex).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0))
    assert dex.build_calls[0]["priority_fee"] == 42_000


@pytest.mark.asyncio
async def test_unconfirmed_transaction_is_warning_only(machine_factory, history_store):
    rpc = FakeRpc(confirm_errors={"sig2": ConfirmationTimeout("not confirmed within 60s")})
    outcome = await machine_factory(rpc=rpc).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0))

    assert outcome.success is True
    assert outcome.tx_ids == ["sig1", "sig2"]
    assert outcome.unconfirmed_tx_ids == ["sig2"]

    _, records = trades(history_store)
    assert records[0].status == HistoryStatus.SUCCESS
    assert records[0].tx_hashes == ["sig1", "sig2"]
    assert records[0].unconfirmed_tx_hashes == ["sig2"]


@pytest.mark.asyncio
async def test_unconfirmed_transaction_fails_when_configured(machine_factory, history_store):
    rpc = FakeRpc(confirm_errors={"sig1": ConfirmationTimeout("timeout")})
    outcome = await machine_factory(rpc=rpc, fail_on_unconfirmed=True).execute(
        TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0)
    )

    assert outcome.success is False
    assert outcome.tx_ids == ["sig1"]
    assert rpc.events == ["send:sig1", "confirm:sig1"]

    _, records = trades(history_store)
    assert records[0].status == HistoryStatus.FAILED
    assert records[0].tx_hashes == ["sig1"]


@pytest.mark.asyncio
async def test_broadcast_failure_keeps_sent_ids(machine_factory, history_store):
    rpc = FakeRpc(send_error=RpcError("blockhash not found"))
    outcome = await machine_factory(rpc=rpc).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0))

    assert outcome.success is False
    assert outcome.tx_ids == []
    assert "blockhash" in outcome.error
    count, _ = trades(history_store)
    assert count == 1


@pytest.mark.asyncio
async def test_cancel_during_confirmation_records_one_failed_trade(machine_factory, history_store):
    rpc = HangingConfirmRpc()
    task = asyncio.create_task(
        machine_factory(rpc=rpc).execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0, decision_id="d7"))
    )
    await asyncio.wait_for(rpc.confirm_started.wait(), timeout=1.0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert rpc.events == ["send:sig1", "confirm:sig1"]
    count, records = trades(history_store)
    assert count == 1
    assert records[0].status == HistoryStatus.FAILED
    assert records[0].tx_hashes == ["sig1"]
    assert records[0].decision_id == "d7"
    assert "cancelled in state BROADCAST" in records[0].error


@pytest.mark.asyncio
async def test_outcome_lists_state_transitions(machine_factory):
    outcome = await machine_factory().execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0))

    path = [(t["from"], t["to"]) for t in outcome.transitions]
    assert path == [
        ("SIZED", "QUOTED"),
        ("QUOTED", "FEE_ESTIMATED"),
        ("FEE_ESTIMATED", "BUILT"),
        ("BUILT", "SIGNED"),
        ("SIGNED", "BROADCAST"),
        ("BROADCAST", "CONFIRMING"),
        ("CONFIRMING", "BROADCAST"),
        ("BROADCAST", "CONFIRMING"),
        ("CONFIRMING", "DONE"),
    ]
    assert outcome.to_dict()["transitions"] == outcome.transitions


@pytest.mark.asyncio
async def test_failed_transition_carries_error(machine_factory):
    outcome = await machine_factory(dex=FakeDex(quote_error=QuoteError("no route"))).execute(
        TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0)
    )

    assert outcome.transitions[-1]["from"] == "SIZED"
    assert outcome.transitions[-1]["to"] == "FAILED"
    assert "no route" in outcome.transitions[-1]["message"]


@pytest.mark.asyncio
async def test_all_transactions_signed_before_first_broadcast(machine_factory):
    rpc = FakeRpc()

    class OrderedSigner(FakeSigner):
        def sign_all(self, encoded_transactions):
            rpc.events.append(f"sign:{len(encoded_transactions)}")
            return super().sign_all(encoded_transactions)

    dex = FakeDex(transactions=["dHgtMQ==", "dHgtMg==", "dHgtMw=="])
    outcome = await machine_factory(dex=dex, rpc=rpc, signer=OrderedSigner()).execute(
        TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0)
    )

    assert outcome.success
    assert rpc.events[0] == "sign:3"
    assert rpc.events[1:] == [
        "send:sig1", "confirm:sig1", "send:sig2", "confirm:sig2", "send:sig3", "confirm:sig3",
    ]


@pytest.mark.asyncio
async def test_empty_build_fails(machine_factory):
    outcome = await machine_factory(dex=FakeDex(transactions=[])).execute(
        TradeIntent(TradeSide.BUY, "SOL_USDT", 10.0)
    )
    assert outcome.success is False
    assert outcome.error == "No transactions to sign"


@pytest.mark.asyncio
async def test_history_failure_does_not_raise(pairs, risk):
    class BrokenStore:
        def save_trade(self, record):
            raise RuntimeError("disk full")

    rpc = FakeRpc(balances={USDT.mint: 10**9})
    machine = TradeExecutionStateMachine(
        FakeDex(), rpc, FakeSigner(), BalanceManager(rpc, WALLET, pairs), BrokenStore(), pairs, risk,
    )

    outcome = await machine.execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 1.0))

    assert outcome.success
    assert outcome.record_id is None


@pytest.mark.asyncio
async def test_execute_decision_sizes_from_balance(machine_factory):
    dex = FakeDex()
    machine = machine_factory(dex=dex)

    decision = TradingDecision(action=Buy(pair="SOL_USDT"), should_execute=True, confidence=Confidence.HIGH)
    outcome = await machine.execute_decision(decision, decision_id="d7")

    # 2% of 1000 USDT
    assert outcome.success
    assert dex.quote_calls[0]["amount"] == 20_000_000


@pytest.mark.asyncio
async def test_execute_decision_medium_confidence_sell(machine_factory):
    dex = FakeDex()
    decision = TradingDecision(action=Sell(pair="SOL_USD"), should_execute=True, confidence=Confidence.MEDIUM)

    await machine_factory(dex=dex).execute_decision(decision)

    # 5% of 10 SOL
    assert dex.quote_calls[0]["amount"] == 500_000_000


@pytest.mark.asyncio
async def test_execute_decision_zero_balance_fails_without_quote(machine_factory, history_store):
    dex = FakeDex()
    rpc = FakeRpc(balances={})
    decision = TradingDecision(action=Buy(pair="SOL_USDT"), should_execute=True, confidence=Confidence.HIGH)

    outcome = await machine_factory(dex=dex, rpc=rpc).execute_decision(decision)

    assert outcome.success is False
    assert outcome.error == "amount too small"
    assert dex.quote_calls == []
    count, _ = trades(history_store)
    assert count == 1


@pytest.mark.asyncio
async def test_execute_decision_skips_wait(machine_factory, history_store):
    decision = TradingDecision(action=Wait(), should_execute=False, confidence=Confidence.LOW)

    assert await machine_factory().execute_decision(decision) is None
    count, _ = trades(history_store)
    assert count == 0


@pytest.mark.asyncio
async def test_execute_trade_validates_action(machine_factory):
    machine = machine_factory()
    with pytest.raises(ValueError):
        await machine.execute_trade("HOLD", "SOL_USDT", 1.0)

    outcome = await machine.execute_trade("buy", "SOL_USDT", 1.0)
    assert outcome.success
