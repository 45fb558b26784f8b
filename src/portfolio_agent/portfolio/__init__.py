"""Wallet balances."""

from .balance_manager import BalanceManager, TokenBalance, unique_tokens

__all__ = ['BalanceManager', 'TokenBalance', 'unique_tokens']
