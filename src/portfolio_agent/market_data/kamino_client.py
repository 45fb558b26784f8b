"""
Kamino lending-market client.

GET /kamino-market/{market}/reserves/metrics returns one record per reserve
with string-encoded USD totals and APYs. Only reserves for tokens of interest
are kept; if none are listed, the largest reserves by supplied USD are used.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from portfolio_agent.core.errors import LendingDataError
from portfolio_agent.market_data.models import LendingMarketSnapshot, LendingReserve

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_reserve(record: Dict[str, Any]) -> LendingReserve:
    return LendingReserve(
        reserve=str(record.get("reserve", "")),
        token=str(record.get("liquidityToken", "")),
        total_supply_usd=_as_float(record.get("totalSupplyUsd")),
        total_borrow_usd=_as_float(record.get("totalBorrowUsd")),
        max_ltv=_as_float(record.get("maxLtv")),
        borrow_apy=_as_float(record.get("borrowApy")),
        supply_apy=_as_float(record.get("supplyApy")),
    )


def select_reserves(
    reserves: Iterable[LendingReserve],
    interested_tokens: Iterable[str],
    fallback_top_n: int = 5,
) -> Dict[str, LendingReserve]:
    """
    Keep reserves whose token matches (or contains) an interesting symbol.

    Falls back to the ``fallback_top_n`` largest reserves by supplied USD.
    """
    reserves = [r for r in reserves if r.token]
    wanted = [t.upper() for t in interested_tokens]

    selected = {
        r.token: r for r in reserves
        if any(w in r.token.upper() for w in wanted)
    }
    if selected:
        return selected

    top = sorted(reserves, key=lambda r: r.total_supply_usd, reverse=True)[:fallback_top_n]
    return {r.token: r for r in top}


class KaminoClient:
    """Async client for Kamino reserve metrics."""

    def __init__(
        self,
        api_url: str = "https://api.kamino.finance",
        market_id: str = "7u3HeHxYDLhnCoErrtycNokbQYbWGzLs6JSDqGAv5PfF",
        env: str = "mainnet-beta",
        interested_tokens: Optional[List[str]] = None,
        fallback_top_n: int = 5,
        timeout_seconds: float = 10.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.market_id = market_id
        self.env = env
        self.interested_tokens = interested_tokens or ["SOL", "USDC", "USDT"]
        self.fallback_top_n = fallback_top_n
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def get_reserves(self, market_id: Optional[str] = None) -> List[LendingReserve]:
        """
        Fetch raw reserve metrics for a market.

        Raises:
            LendingDataError: On transport errors, timeouts or unexpected payloads
        """
        market_id = market_id or self.market_id
        url = f"{self.api_url}/kamino-market/{market_id}/reserves/metrics"

        session = await self._get_session()
        try:
            async with session.get(url, params={"env": self.env}) as response:
                if response.status != 200:
                    text = await response.text()
                    raise LendingDataError(f"Lending metrics request failed: {response.status} - {text[:200]}")
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise LendingDataError(f"Lending metrics request timed out after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise LendingDataError(f"Lending metrics request failed: {e}") from e
        except ValueError as e:
            raise LendingDataError(f"Lending metrics response is not JSON: {e}") from e

        if not isinstance(payload, list):
            raise LendingDataError("Invalid response format from lending reserves API")

        return [parse_reserve(record) for record in payload if isinstance(record, dict)]

    async def get_market_snapshot(self, market_id: Optional[str] = None) -> LendingMarketSnapshot:
        """Fetch and filter reserves into a LendingMarketSnapshot."""
        market_id = market_id or self.market_id
        reserves = await self.get_reserves(market_id)
        selected = select_reserves(reserves, self.interested_tokens, self.fallback_top_n)

        if not selected:
            raise LendingDataError("Lending market returned no reserves")

        logger.info(
            f"Lending metrics received: {len(reserves)} reserves, {len(selected)} selected "
            f"({', '.join(list(selected)[:10])})"
        )
        return LendingMarketSnapshot(market_id=market_id, reserves=selected, fetched_at=int(time.time()))

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
