"""
DEX Aggregator Adapter - Abstract Base Class and Quote Model.

This module defines the interface the trade state machine uses to swap:
- SwapQuote: Expected output for an exact-input swap
- DEXAggregator: Quote, priority-fee hint and transaction building
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


# ============================================================================
# Errors
# ============================================================================

class AggregatorError(Exception):
    """Base class for aggregator errors."""


class QuoteError(AggregatorError):
    """Quote request failed or returned an unusable payload."""


class BuildError(AggregatorError):
    """Transaction build request failed."""


class FeeEstimateError(AggregatorError):
    """Priority fee hint unavailable."""


# ============================================================================
# Quote Model
# ============================================================================

@dataclass
class SwapQuote:
    """
    Exact-input swap quote.

    Amounts are raw integer units of the respective mint.
    """
    aggregator: str
    input_mint: str
    output_mint: str
    input_amount: int
    output_amount: int
    slippage_bps: int
    price_impact_pct: Optional[float] = None
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def minimum_output(self) -> int:
        return int(self.output_amount * (10000 - self.slippage_bps) // 10000)

    def __repr__(self) -> str:
        return (
            f"SwapQuote({self.input_mint[:6]}.. -> {self.output_mint[:6]}.., "
            f"in={self.input_amount}, out={self.output_amount}, "
            f"slippage_bps={self.slippage_bps}, aggregator={self.aggregator})"
        )


# ============================================================================
# DEX Aggregator Abstract Base Class
# ============================================================================

class DEXAggregator(ABC):
    """
    Abstract base class for DEX aggregators.

    Implementations must apply an explicit timeout to every request and raise
    the errors above rather than returning partial results.
    """

    name = "aggregator"

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> SwapQuote:
        """
        Quote an exact-input swap.

        Raises:
            QuoteError: If the quote fails
        """

    @abstractmethod
    async def get_priority_fee(self) -> int:
        """
        Priority fee hint in micro-lamports per compute unit.

        Raises:
            FeeEstimateError: If no hint is available
        """

    @abstractmethod
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
        """
        Build unsigned versioned transactions for a quote.

        Returns:
            One or more base64-encoded transactions, in send order

        Raises:
            BuildError: If the build fails or returns no transactions
        """

    async def close(self) -> None:
        """Release network resources."""
