"""
Raydium Trade API adapter (Solana).

Endpoints:
- GET  {swap_host}/compute/swap-base-in      exact-input quote
- POST {swap_host}/transaction/swap-base-in  build versioned transactions
- GET  {base_host}{priority_fee_endpoint}    priority fee tiers
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from portfolio_agent.integrations.dex.aggregator_adapter import (
    BuildError,
    DEXAggregator,
    FeeEstimateError,
    QuoteError,
    SwapQuote,
)

logger = logging.getLogger(__name__)


class RaydiumAdapter(DEXAggregator):
    """Raydium swap quotes and transaction building over aiohttp."""

    name = "raydium"

    def __init__(
        self,
        swap_host: str = "https://transaction-v1.raydium.io",
        base_host: str = "https://api-v3.raydium.io",
        priority_fee_endpoint: str = "/compute/priority-fee",
        tx_version: str = "V0",
        timeout_seconds: float = 10.0,
    ):
        super().__init__(timeout_seconds)
        self.swap_host = swap_host.rstrip("/")
        self.base_host = base_host.rstrip("/")
        self.priority_fee_endpoint = priority_fee_endpoint
        self.tx_version = tx_version
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def _request(self, method: str, url: str, error_cls, **kwargs) -> Dict[str, Any]:
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status != 200:
                    text = await response.text()
                    raise error_cls(f"Raydium {response.status}: {text[:200]}")
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise error_cls(f"Raydium request timed out after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise error_cls(f"Raydium request failed: {e}") from e
        except ValueError as e:
            raise error_cls(f"Raydium returned invalid JSON: {e}") from e

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> SwapQuote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(int(slippage_bps)),
            "txVersion": self.tx_version,
        }
        payload = await self._request(
            "GET", f"{self.swap_host}/compute/swap-base-in", QuoteError, params=params
        )

        if not payload.get("success", False):
            raise QuoteError(f"Quote rejected: {payload.get('msg') or payload.get('message') or 'unknown error'}")

        data = payload.get("data") or {}
        try:
            output_amount = int(data["outputAmount"])
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteError(f"Quote missing outputAmount: {data}") from e

        price_impact = data.get("priceImpactPct")
        return SwapQuote(
            aggregator=self.name,
            input_mint=input_mint,
            output_mint=output_mint,
            input_amount=int(amount),
            output_amount=output_amount,
            slippage_bps=int(slippage_bps),
            price_impact_pct=float(price_impact) if price_impact is not None else None,
            raw_data=payload,
        )

    async def get_priority_fee(self) -> int:
        payload = await self._request(
            "GET", f"{self.base_host}{self.priority_fee_endpoint}", FeeEstimateError
        )
        try:
            return int(payload["data"]["default"]["h"])
        except (KeyError, TypeError, ValueError) as e:
            raise FeeEstimateError(f"Unexpected priority fee payload: {payload}") from e

    async def build_swap_transactions(
        self,
        quote: SwapQuote,
        wallet_address: str,
        priority_fee: int,
        wrap_sol: bool = False,
        unwrap_sol: bool = False,
        input_account: Optional[str] = None,
        output_account: Optional[str] = None,
    ) -> List[str]:
        body = {
            "computeUnitPriceMicroLamports": str(int(priority_fee)),
            "swapResponse": quote.raw_data,
            "txVersion": self.tx_version,
            "wallet": wallet_address,
            "wrapSol": wrap_sol,
            "unwrapSol": unwrap_sol,
            "inputAccount": input_account,
            "outputAccount": output_account,
        }
        payload = await self._request(
            "POST", f"{self.swap_host}/transaction/swap-base-in", BuildError, json=body
        )

        if not payload.get("success", False):
            raise BuildError(f"API Error: {payload.get('msg') or payload.get('message') or 'Unknown error'}")

        transactions = [item.get("transaction") for item in payload.get("data") or [] if isinstance(item, dict)]
        transactions = [tx for tx in transactions if tx]
        if not transactions:
            raise BuildError("Build returned no transactions")

        logger.info(f"Transaction built ({len(transactions)} transaction(s))")
        return transactions

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
