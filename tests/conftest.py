"""
Shared pytest fixtures.
"""

import pytest

from fakes import SOL, USDT, FakeDex, FakeRpc, FakeSigner, make_pairs
from portfolio_agent.config.settings import RiskConfig
from portfolio_agent.storage.history_store import HistoryStore


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def pairs():
    return make_pairs()


@pytest.fixture
def risk():
    return RiskConfig(low_risk_pct=0.02, high_risk_pct=0.05, slippage_bps=1000)


@pytest.fixture
def history_store():
    store = HistoryStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def fake_rpc():
    return FakeRpc(balances={SOL.mint: 10 * 10**9, USDT.mint: 1_000 * 10**6})


@pytest.fixture
def fake_dex():
    return FakeDex()


@pytest.fixture
def fake_signer():
    return FakeSigner()

