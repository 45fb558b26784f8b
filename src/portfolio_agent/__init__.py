"""
Autonomous Solana portfolio agent.

Fetches market data, derives indicators and cross-asset signals, asks two
advisory providers for trading and lending decisions, merges them by
consensus, and executes agreed swaps on-chain.
"""

__version__ = "0.1.0"
