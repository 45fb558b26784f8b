"""
Configuration management module.

Loads configuration from YAML files and provides easy access.
"""

from .loader import ConfigLoader, load_config
from .settings import (
    AppConfig,
    AdvisoryConfig,
    AdvisoryProviderConfig,
    DEXConfig,
    ExecutionConfig,
    LendingConfig,
    MarketDataConfig,
    RiskConfig,
    SchedulerConfig,
    SolanaConfig,
    StorageConfig,
    SystemConfig,
    TokenConfig,
    TradingConfig,
    TradingPairConfig,
)

__all__ = [
    'ConfigLoader',
    'load_config',
    'AppConfig',
    'AdvisoryConfig',
    'AdvisoryProviderConfig',
    'DEXConfig',
    'ExecutionConfig',
    'LendingConfig',
    'MarketDataConfig',
    'RiskConfig',
    'SchedulerConfig',
    'SolanaConfig',
    'StorageConfig',
    'SystemConfig',
    'TokenConfig',
    'TradingConfig',
    'TradingPairConfig',
]
