"""
Balance Manager - wallet balances for every token the agent trades.

Balances are always read fresh from the chain. A token whose balance cannot
be read reports zero so callers never have to handle partial failures.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from portfolio_agent.config.settings import TokenConfig, TradingPairConfig
from portfolio_agent.integrations.solana.rpc_client import NATIVE_SOL_MINT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenBalance:
    """Balance of one token in the agent's wallet."""

    symbol: str
    mint: str
    raw_amount: int
    decimals: int

    @property
    def balance(self) -> float:
        return self.raw_amount / (10 ** self.decimals)

    def to_dict(self) -> Dict:
        return {
            'symbol': self.symbol,
            'mint': self.mint,
            'balance': self.balance,
            'rawAmount': self.raw_amount,
            'decimals': self.decimals,
        }


def unique_tokens(pairs: List[TradingPairConfig]) -> List[TokenConfig]:
    """Base and quote tokens of ``pairs``, deduplicated by mint, in first-seen order."""
    seen: Dict[str, TokenConfig] = {}
    for pair in pairs:
        for token in (pair.base, pair.quote):
            if token.mint not in seen:
                seen[token.mint] = token
    return list(seen.values())


class BalanceManager:
    """
    Reads wallet balances for the tokens of all enabled trading pairs.

    Example:
        manager = BalanceManager(rpc, wallet_address, config.trading.enabled_pairs)
        balances = await manager.get_balances()
        sol = balances["So111..."].balance
    """

    def __init__(self, rpc, wallet_address: str, pairs: List[TradingPairConfig]):
        self.rpc = rpc
        self.wallet_address = wallet_address
        self.pairs = pairs

    @property
    def tokens(self) -> List[TokenConfig]:
        return unique_tokens(self.pairs)

    async def get_token_balance(self, token: TokenConfig) -> TokenBalance:
        """Balance of one token; zero on any failure or missing account."""
        try:
            if token.mint == NATIVE_SOL_MINT:
                raw = await self.rpc.get_sol_balance(self.wallet_address)
            else:
                raw = await self.rpc.get_token_balance(self.wallet_address, token.mint)
                if raw is None:
                    logger.debug(f"No token account for {token.symbol}, balance is 0")
                    raw = 0
        except Exception as e:
            logger.warning(f"Failed to read {token.symbol} balance, using 0: {e}")
            raw = 0

        return TokenBalance(symbol=token.symbol, mint=token.mint, raw_amount=int(raw), decimals=token.decimals)

    async def get_balances(self) -> Dict[str, TokenBalance]:
        """All token balances keyed by mint. Never raises."""
        tokens = self.tokens
        results = await asyncio.gather(*(self.get_token_balance(t) for t in tokens))
        balances = {b.mint: b for b in results}
        logger.debug(
            "Balances: " + ", ".join(f"{b.symbol}={b.balance:.6f}" for b in results)
        )
        return balances

    async def get_balance(self, mint: str) -> Optional[TokenBalance]:
        """Fresh balance of a single tracked token, or None if the mint is not tracked."""
        for token in self.tokens:
            if token.mint == mint:
                return await self.get_token_balance(token)
        return None
