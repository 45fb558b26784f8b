"""
Wallet signer.

Holds the single configured keypair. Only the trade state machine's signing
step receives a WalletSigner; everything else works with the public address.
"""

import base64
import logging
from typing import List

from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

logger = logging.getLogger(__name__)


class WalletSigner:
    """Signs base64-encoded versioned transactions with one keypair."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_base58(cls, private_key: str) -> "WalletSigner":
        if not private_key:
            raise ValueError("Solana private key is not configured")
        return cls(Keypair.from_base58_string(private_key.strip()))

    @property
    def address(self) -> str:
        return str(self._keypair.pubkey())

    def sign_transaction(self, encoded: str) -> bytes:
        """Deserialize a base64 transaction, sign it and return the wire bytes."""
        unsigned = VersionedTransaction.from_bytes(base64.b64decode(encoded))
        signed = VersionedTransaction(unsigned.message, [self._keypair])
        return bytes(signed)

    def sign_all(self, encoded_transactions: List[str]) -> List[bytes]:
        """Sign every transaction; raises before returning if any one fails."""
        return [self.sign_transaction(tx) for tx in encoded_transactions]

    def __repr__(self) -> str:
        return f"WalletSigner(address={self.address})"
