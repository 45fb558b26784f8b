"""
Solana RPC client wrapper.

Thin layer over solana-py's AsyncClient exposing only what the agent needs:
native and SPL balances, raw transaction broadcast and confirmation. All RPC
failures surface as RpcError.
"""

import asyncio
import logging
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.models import TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature

logger = logging.getLogger(__name__)

NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")


class RpcError(Exception):
    """RPC request failed."""


class ConfirmationTimeout(RpcError):
    """Transaction was not confirmed within the wait window."""


class TransactionFailed(RpcError):
    """Transaction landed with an error status."""


def associated_token_address(owner: str, mint: str) -> str:
    """Associated token account address of ``owner`` for ``mint``."""
    address, _ = Pubkey.find_program_address(
        [
            bytes(Pubkey.from_string(owner)),
            bytes(TOKEN_PROGRAM_ID),
            bytes(Pubkey.from_string(mint)),
        ],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return str(address)


class SolanaRpcClient:
    """Async Solana JSON-RPC access with explicit timeouts."""

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        request_timeout: float = 15.0,
        confirm_timeout: float = 60.0,
    ):
        self.rpc_url = rpc_url
        self.commitment = Commitment(commitment)
        self.request_timeout = request_timeout
        self.confirm_timeout = confirm_timeout
        self.client = AsyncClient(rpc_url, commitment=self.commitment, timeout=request_timeout)

    async def _call(self, description: str, coro, timeout: Optional[float] = None):
        try:
            return await asyncio.wait_for(coro, timeout=timeout or self.request_timeout)
        except asyncio.TimeoutError as e:
            raise RpcError(f"{description} timed out") from e
        except RpcError:
            raise
        except Exception as e:
            raise RpcError(f"{description} failed: {e}") from e

    async def get_sol_balance(self, owner: str) -> int:
        """Native balance in lamports."""
        resp = await self._call(
            "getBalance", self.client.get_balance(Pubkey.from_string(owner), commitment=self.commitment)
        )
        return int(resp.value)

    async def get_token_balance(self, owner: str, mint: str) -> Optional[int]:
        """
        Raw SPL balance held in the owner's associated token account.

        Returns None if the account does not exist.
        """
        ata = Pubkey.from_string(associated_token_address(owner, mint))

        info = await self._call("getAccountInfo", self.client.get_account_info(ata, commitment=self.commitment))
        if info.value is None:
            return None

        resp = await self._call(
            "getTokenAccountBalance", self.client.get_token_account_balance(ata, commitment=self.commitment)
        )
        return int(resp.value.amount)

    async def send_transaction(self, raw_transaction: bytes) -> str:
        """Broadcast a signed transaction with preflight checks; returns the signature."""
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
        resp = await self._call("sendTransaction", self.client.send_raw_transaction(raw_transaction, opts=opts))
        return str(resp.value)

    async def confirm_transaction(self, signature: str, timeout: Optional[float] = None) -> None:
        """
        Wait once for ``signature`` to reach the configured commitment.

        Raises:
            ConfirmationTimeout: If the wait exceeds ``timeout``
            TransactionFailed: If the transaction landed with an error
            RpcError: On other RPC failures
        """
        timeout = timeout or self.confirm_timeout
        try:
            resp = await asyncio.wait_for(
                self.client.confirm_transaction(Signature.from_string(signature), commitment=self.commitment),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeout(f"Transaction {signature} not confirmed within {timeout}s") from e
        except Exception as e:
            raise RpcError(f"confirmTransaction failed for {signature}: {e}") from e

        statuses = getattr(resp, "value", None) or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise TransactionFailed(f"Transaction {signature} failed: {status.err}")

    async def close(self) -> None:
        await self.client.close()
