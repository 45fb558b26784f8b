"""
Unit tests for provider payload parsing and history normalization.
"""

import pytest

from portfolio_agent.core.errors import PriceHistoryError
from portfolio_agent.market_data.aggregator import TimeRange, normalize_history
from portfolio_agent.market_data.birdeye_client import parse_history_items, to_birdeye_resolution
from portfolio_agent.market_data.kamino_client import parse_reserve, select_reserves
from portfolio_agent.market_data.models import LendingReserve


def test_parse_history_items():
    payload = {
        "success": True,
        "data": {"items": [
            {"unixTime": 100, "value": 1.5},
            {"unixTime": "200", "value": "2.5"},
            {"unixTime": 300},
        ]},
    }
    assert parse_history_items(payload) == [(100, 1.5), (200, 2.5)]


@pytest.mark.parametrize("payload", [{"success": False}, {}, None, []])
def test_parse_history_items_rejects_failures(payload):
    with pytest.raises(PriceHistoryError):
        parse_history_items(payload)


def test_resolution_mapping():
    assert to_birdeye_resolution("240") == "4H"
    assert to_birdeye_resolution("d") == "1D"
    assert to_birdeye_resolution("unknown") == "4H"


def test_parse_reserve_tolerates_strings():
    reserve = parse_reserve({
        "reserve": "abc",
        "liquidityToken": "USDC",
        "totalSupplyUsd": "1000000",
        "totalBorrowUsd": "450000",
        "maxLtv": "0.8",
        "borrowApy": "0.07",
        "supplyApy": None,
    })
    assert reserve.token == "USDC"
    assert reserve.total_supply_usd == 1_000_000
    assert reserve.utilization == pytest.approx(0.45)
    assert reserve.supply_apy == 0.0


def reserve(token, supply_usd):
    return LendingReserve(
        reserve=f"r-{token}", token=token, total_supply_usd=supply_usd,
        total_borrow_usd=0, max_ltv=0.5, borrow_apy=0.05, supply_apy=0.03,
    )


def test_select_reserves_by_interest():
    selected = select_reserves([reserve("USDC", 10), reserve("JUP", 99), reserve("mSOL", 5)], ["USDC", "SOL"])
    assert set(selected) == {"USDC", "mSOL"}


def test_select_reserves_falls_back_to_largest():
    selected = select_reserves(
        [reserve("AAA", 10), reserve("BBB", 30), reserve("CCC", 20)], ["USDC"], fallback_top_n=2
    )
    assert list(selected) == ["BBB", "CCC"]


def test_normalize_orders_and_dedupes():
    series = normalize_history("SOL_USD", [(300, 3.0), (100, 1.0), (200, 2.0), (200, 2.5)], 60, now=1000)
    assert series.timestamps == [100, 200, 300]
    assert series.prices == [1.0, 2.5, 3.0]


def test_normalize_drops_future_samples():
    series = normalize_history("SOL_USD", [(100, 1.0), (5000, 9.0)], 60, now=1000)
    assert series.timestamps == [100]


def test_normalize_rebases_all_future_series():
    series = normalize_history("SOL_USD", [(5000, 1.0), (5060, 2.0), (5120, 3.0)], 60, now=1000)
    assert series.timestamps == [880, 940, 1000]
    assert series.prices == [1.0, 2.0, 3.0]


def test_normalize_empty_is_failed_series():
    series = normalize_history("SOL_USD", [], 60, now=1000)
    assert series.failed
    assert series.is_empty


def test_time_range_validated():
    with pytest.raises(ValueError):
        TimeRange(start=10, end=10)
