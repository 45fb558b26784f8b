"""
In-memory fakes for the price API, advisory providers, DEX aggregator,
Solana RPC and signer. No test touches the network.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Union

from portfolio_agent.config.settings import TokenConfig, TradingPairConfig
from portfolio_agent.integrations.dex.aggregator_adapter import FeeEstimateError, SwapQuote

WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
SOL = TokenConfig(symbol="SOL", mint="So11111111111111111111111111111111111111112", decimals=9)
USDT = TokenConfig(symbol="USDT", mint="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", decimals=6)
BTC = TokenConfig(symbol="BTC", mint="9n4nbM75f5Ui33ZbPYXn59EwSgE8CGsHtAeTH5YFeJ9E", decimals=6)


def make_pairs() -> List[TradingPairConfig]:
    return [
        TradingPairConfig(name="SOL_USDT", base=SOL, quote=USDT),
        TradingPairConfig(name="BTC_USDT", base=BTC, quote=USDT),
    ]


# ============================================================================
# Fakes
# ============================================================================

class FakePriceSource:
    """Price history keyed by pool address; a value may be an exception or a list of per-call results."""

    def __init__(self, responses: Dict[str, object]):
        self.responses = responses
        self.calls: List[str] = []

    async def get_price_history(self, address, resolution, time_from, time_to):
        self.calls.append(address)
        response = self.responses[address]
        if isinstance(response, list) and response and isinstance(response[0], (list, BaseException)):
            response = response.pop(0)
        if isinstance(response, BaseException):
            raise response
        return list(response)


class FakeProvider:
    """Advisory provider returning canned text or raising."""

    def __init__(self, name: str, response: Union[str, BaseException, Callable[[str], str]], delay: float = 0.0):
        self.name = name
        self.response = response
        self.delay = delay
        self.calls: List[Dict[str, object]] = []

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.2) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "temperature": temperature})
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.response, BaseException):
            raise self.response
        if callable(self.response):
            return self.response(system_prompt)
        return self.response


class FakeDex:
    """DEX aggregator returning a fixed quote and transactions."""

    name = "fake"

    def __init__(
        self,
        output_amount: int = 1_000_000_000,
        transactions: Optional[List[str]] = None,
        quote_error: Optional[Exception] = None,
        fee_error: bool = False,
        priority_fee: int = 25_000,
    ):
        self.output_amount = output_amount
        self.transactions = transactions if transactions is not None else ["dHgtMQ==", "dHgtMg=="]
        self.quote_error = quote_error
        self.fee_error = fee_error
        self.priority_fee = priority_fee
        self.quote_calls: List[Dict[str, object]] = []
        self.build_calls: List[Dict[str, object]] = []

    async def get_quote(self, input_mint, output_mint, amount, slippage_bps):
        self.quote_calls.append({
            "input_mint": input_mint, "output_mint": output_mint,
            "amount": amount, "slippage_bps": slippage_bps,
        })
        if self.quote_error:
            raise self.quote_error
        return SwapQuote(
            aggregator=self.name,
            input_mint=input_mint,
            output_mint=output_mint,
            input_amount=amount,
            output_amount=self.output_amount,
            slippage_bps=slippage_bps,
            raw_data={"success": True, "data": {"outputAmount": str(self.output_amount)}},
        )

    async def get_priority_fee(self):
        if self.fee_error:
            raise FeeEstimateError("fee endpoint down")
        return self.priority_fee

    async def build_swap_transactions(self, quote, wallet_address, priority_fee, wrap_sol=False,
                                      unwrap_sol=False, input_account=None, output_account=None):
        self.build_calls.append({
            "wallet": wallet_address, "priority_fee": priority_fee,
            "wrap_sol": wrap_sol, "unwrap_sol": unwrap_sol,
            "input_account": input_account, "output_account": output_account,
        })
        return list(self.transactions)

    async def close(self):
        pass


class FakeSigner:
    address = WALLET

    def __init__(self):
        self.signed: List[str] = []

    def sign_all(self, encoded_transactions):
        self.signed.extend(encoded_transactions)
        return [f"signed:{tx}".encode() for tx in encoded_transactions]


class FakeRpc:
    """
    Solana RPC fake.

    ``balances`` maps mint -> raw amount; a missing SPL mint means no token
    account. ``confirm_errors`` maps signature -> exception raised on confirm.
    """

    def __init__(
        self,
        balances: Optional[Dict[str, int]] = None,
        failing_mints: Optional[List[str]] = None,
        confirm_errors: Optional[Dict[str, Exception]] = None,
        send_error: Optional[Exception] = None,
    ):
        self.balances = balances or {}
        self.failing_mints = failing_mints or []
        self.confirm_errors = confirm_errors or {}
        self.send_error = send_error
        self.events: List[str] = []
        self.balance_reads = 0

    async def get_sol_balance(self, owner):
        self.balance_reads += 1
        if SOL.mint in self.failing_mints:
            raise RuntimeError("rpc unavailable")
        return self.balances.get(SOL.mint, 0)

    async def get_token_balance(self, owner, mint):
        self.balance_reads += 1
        if mint in self.failing_mints:
            raise RuntimeError("rpc unavailable")
        return self.balances.get(mint)

    async def send_transaction(self, raw):
        if self.send_error:
            raise self.send_error
        signature = f"sig{len([e for e in self.events if e.startswith('send')]) + 1}"
        self.events.append(f"send:{signature}")
        return signature

    async def confirm_transaction(self, signature, timeout=None):
        self.events.append(f"confirm:{signature}")
        error = self.confirm_errors.get(signature)
        if error:
            raise error


def trading_response(action: str, pair: Optional[str], risk_note: str = "Moderate risk") -> str:
    pair_json = f'"{pair}"' if pair else "null"
    return (
        "Here is my analysis:\n```json\n"
        f'{{"action": "{action}", "pair": {pair_json}, '
        '"reasoning": {"marketCondition": "Trending", "technicalAnalysis": "RSI rising", '
        f'"riskAssessment": "{risk_note}", "pairSelection": "Strongest momentum", '
        '"comparativeAnalysis": {"volatilityComparison": "lower", "trendAlignment": "aligned", '
        '"relativeStrength": "strong", "correlationImpact": "low"}}}\n```'
    )


def lending_response(token: Optional[str], apy: float, pool: float = 5_000_000, util: float = 45.0) -> str:
    token_json = f'"{token}"' if token else "null"
    return (
        f'{{"recommended_pair": {token_json}, "supply_apy": "{apy * 100:.2f}%", '
        f'"supply_apy_decimal": {apy}, "reason": "Best risk-adjusted yield", '
        f'"pool_size_usd": {pool}, "pool_size_formatted": "${pool / 1e6:.1f}M", '
        f'"utilization_rate": {util}, "reserve_address": "reserve-{token or "none"}"}}'
    )
