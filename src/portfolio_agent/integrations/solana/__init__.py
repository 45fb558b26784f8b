"""Solana RPC access and transaction signing."""

from .rpc_client import (
    NATIVE_SOL_MINT,
    ConfirmationTimeout,
    RpcError,
    SolanaRpcClient,
    TransactionFailed,
    associated_token_address,
)
from .wallet import WalletSigner

__all__ = [
    'NATIVE_SOL_MINT',
    'ConfirmationTimeout',
    'RpcError',
    'SolanaRpcClient',
    'TransactionFailed',
    'associated_token_address',
    'WalletSigner',
]
