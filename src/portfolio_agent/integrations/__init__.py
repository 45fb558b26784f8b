"""External integrations: DEX aggregator and Solana RPC."""
