"""
Birdeye price-history client.

Wraps GET /defi/history_price for pool ("pair") addresses on Solana. Every
request carries an explicit timeout; transport errors, timeouts, non-200
statuses and unsuccessful payloads all raise PriceHistoryError so callers can
retry them uniformly.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from portfolio_agent.core.errors import PriceHistoryError

logger = logging.getLogger(__name__)

# Minutes / day codes -> Birdeye "type" parameter
RESOLUTION_MAP = {
    "1": "1m",
    "5": "5m",
    "15": "15m",
    "30": "30m",
    "60": "1H",
    "120": "2H",
    "240": "4H",
    "360": "6H",
    "720": "12H",
    "D": "1D",
    "1D": "1D",
    "W": "1W",
    "1W": "1W",
}


def to_birdeye_resolution(resolution: str) -> str:
    """Map a resolution code to Birdeye's interval type, defaulting to 4H."""
    return RESOLUTION_MAP.get(str(resolution).upper(), "4H")


def parse_history_items(payload: Dict[str, Any]) -> List[Tuple[int, float]]:
    """
    Extract ``(unixTime, value)`` tuples from a history_price payload.

    Raises:
        PriceHistoryError: If the payload is not a successful response
    """
    if not isinstance(payload, dict) or not payload.get("success"):
        raise PriceHistoryError("Invalid response structure from price-history API")

    items = (payload.get("data") or {}).get("items") or []
    parsed = []
    for item in items:
        try:
            parsed.append((int(item["unixTime"]), float(item["value"])))
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Skipping malformed history item: {item}")
    return parsed


class BirdeyeClient:
    """
    Async client for the Birdeye public API.

    The aiohttp session is created lazily and must be released with close().
    """

    def __init__(
        self,
        base_url: str = "https://public-api.birdeye.so",
        api_key: Optional[str] = None,
        chain: str = "solana",
        timeout_seconds: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.chain = chain
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json", "x-chain": self.chain}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    async def get_price_history(
        self,
        address: str,
        resolution: str,
        time_from: int,
        time_to: int,
    ) -> List[Tuple[int, float]]:
        """
        Fetch price history for a pool address.

        Args:
            address: Pool (pair) address
            resolution: Resolution code, e.g. '240' or 'D'
            time_from: Start, unix seconds
            time_to: End, unix seconds

        Returns:
            List of (unix seconds, price) in provider order
        """
        params = {
            "address": address,
            "address_type": "pair",
            "type": to_birdeye_resolution(resolution),
            "time_from": str(int(time_from)),
            "time_to": str(int(time_to)),
            "ui_amount_mode": "raw",
        }

        session = await self._get_session()
        try:
            async with session.get(
                f"{self.base_url}/defi/history_price",
                params=params,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise PriceHistoryError(f"Price history request failed: {response.status} - {text[:200]}")
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise PriceHistoryError(f"Price history request timed out after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise PriceHistoryError(f"Price history request failed: {e}") from e
        except ValueError as e:
            raise PriceHistoryError(f"Price history response is not JSON: {e}") from e

        return parse_history_items(payload)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
