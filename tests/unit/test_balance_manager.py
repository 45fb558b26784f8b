"""
Unit tests for BalanceManager.
"""

import pytest

from fakes import BTC, SOL, USDT, FakeRpc, WALLET
from portfolio_agent.portfolio.balance_manager import BalanceManager, TokenBalance, unique_tokens


def test_unique_tokens_dedupes_shared_quote(pairs):
    tokens = unique_tokens(pairs)
    assert [t.symbol for t in tokens] == ["SOL", "USDT", "BTC"]


def test_token_balance_ui_amount():
    balance = TokenBalance("SOL", SOL.mint, 1_500_000_000, 9)
    assert balance.balance == pytest.approx(1.5)
    assert balance.to_dict()["rawAmount"] == 1_500_000_000


@pytest.mark.asyncio
async def test_get_balances_reads_every_token(pairs):
    rpc = FakeRpc(balances={SOL.mint: 2 * 10**9, USDT.mint: 50 * 10**6, BTC.mint: 3 * 10**5})
    manager = BalanceManager(rpc, WALLET, pairs)

    balances = await manager.get_balances()

    assert set(balances) == {SOL.mint, USDT.mint, BTC.mint}
    assert balances[SOL.mint].balance == pytest.approx(2.0)
    assert balances[USDT.mint].balance == pytest.approx(50.0)
    assert balances[BTC.mint].balance == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_missing_token_account_is_zero(pairs):
    rpc = FakeRpc(balances={SOL.mint: 10**9})
    balances = await BalanceManager(rpc, WALLET, pairs).get_balances()
    assert balances[USDT.mint].raw_amount == 0


@pytest.mark.asyncio
async def test_rpc_failure_reports_zero_without_raising(pairs):
    rpc = FakeRpc(balances={SOL.mint: 10**9, USDT.mint: 10**6}, failing_mints=[SOL.mint])
    balances = await BalanceManager(rpc, WALLET, pairs).get_balances()
    assert balances[SOL.mint].raw_amount == 0
    assert balances[USDT.mint].raw_amount == 10**6


@pytest.mark.asyncio
async def test_balances_are_never_cached(pairs):
    rpc = FakeRpc(balances={SOL.mint: 10**9})
    manager = BalanceManager(rpc, WALLET, pairs)

    await manager.get_balances()
    rpc.balances[SOL.mint] = 5 * 10**9
    balances = await manager.get_balances()

    assert balances[SOL.mint].balance == pytest.approx(5.0)
    assert rpc.balance_reads == 6


@pytest.mark.asyncio
async def test_get_single_balance(pairs):
    manager = BalanceManager(FakeRpc(balances={BTC.mint: 10**6}), WALLET, pairs)
    assert (await manager.get_balance(BTC.mint)).balance == pytest.approx(1.0)
    assert await manager.get_balance("unknown-mint") is None
