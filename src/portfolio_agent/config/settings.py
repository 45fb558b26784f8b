"""
Configuration models using Pydantic for type-safe validation.

This module defines all configuration models for the portfolio agent:
- SystemConfig: Environment, log level, log file
- MarketDataConfig: Price-history provider and tracked pair addresses
- AdvisoryConfig: The two advisory providers used for consensus
- LendingConfig: Lending-market provider and APY threshold
- TradingConfig: Tradable token pairs
- RiskConfig: Risk tiers and slippage tolerance
- SolanaConfig / DEXConfig / ExecutionConfig: On-chain execution
- SchedulerConfig / StorageConfig: Cycle cadence and history database
"""

from typing import Dict, List, Optional
from pathlib import Path
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    model_config = ConfigDict(use_enum_values=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )

    json_logs: bool = Field(
        default=True,
        description="Emit JSON formatted log lines"
    )


# ============================================================================
# Market Data Configuration
# ============================================================================

class MarketDataConfig(BaseModel):
    """Price-history provider settings."""

    base_url: str = Field(
        default="https://public-api.birdeye.so",
        description="Price-history API base URL"
    )

    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Price-history API key"
    )

    chain: str = Field(
        default="solana",
        description="Chain header sent with each request"
    )

    resolution: str = Field(
        default="240",
        description="Candle resolution in minutes ('240') or a day code ('D')"
    )

    lookback_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Default history window in days"
    )

    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Per-request timeout in seconds"
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per pair before the pair is marked failed"
    )

    backoff_base_seconds: float = Field(
        default=2.0,
        ge=0,
        description="First retry delay; doubles on every further attempt"
    )

    pairs: Dict[str, str] = Field(
        default_factory=lambda: {
            "SOL_USD": "58oQChx4yWmvKdwLLZzBi4ChoCc2fqCUWBkwMihLYQo2",
            "BTC_USD": "A6S3kDFfAjEPV8oJErihw3D2UPwkBZDPFfnxGB9scxVe",
        },
        description="Tracked pair name -> pool address"
    )

    @property
    def resolution_minutes(self) -> int:
        """Resolution expressed in minutes."""
        code = self.resolution.upper()
        if code in ("D", "1D"):
            return 1440
        if code in ("W", "1W"):
            return 10080
        return int(self.resolution)

    @property
    def periods_per_day(self) -> int:
        """Number of samples covering one day at this resolution."""
        return max(1, 1440 // self.resolution_minutes)


# ============================================================================
# Advisory Provider Configuration
# ============================================================================

class AdvisoryProviderConfig(BaseModel):
    """One OpenAI-compatible advisory provider."""

    name: str = Field(
        description="Display name used in reasoning prefixes and logs"
    )

    base_url: str = Field(
        description="Base URL of the chat completions API"
    )

    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Provider API key"
    )

    model: str = Field(
        description="Model identifier"
    )

    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Request timeout in seconds"
    )

    trading_temperature: float = Field(default=0.2, ge=0, le=2)
    lending_temperature: float = Field(default=0.3, ge=0, le=2)
    max_tokens: int = Field(default=500, ge=50, le=8000)


class AdvisoryConfig(BaseModel):
    """Both advisory providers."""

    primary: AdvisoryProviderConfig = Field(
        default_factory=lambda: AdvisoryProviderConfig(
            name="GPT",
            base_url="https://api.openai.com/v1",
            model="gpt-4",
        )
    )

    secondary: AdvisoryProviderConfig = Field(
        default_factory=lambda: AdvisoryProviderConfig(
            name="GROK",
            base_url="https://api.x.ai/v1",
            model="grok-3-beta",
        )
    )


# ============================================================================
# Lending Configuration
# ============================================================================

class LendingConfig(BaseModel):
    """Lending-market provider settings."""

    enabled: bool = Field(
        default=True,
        description="Run the lending flow each cycle"
    )

    api_url: str = Field(
        default="https://api.kamino.finance",
        description="Lending-market API base URL"
    )

    market_id: str = Field(
        default="7u3HeHxYDLhnCoErrtycNokbQYbWGzLs6JSDqGAv5PfF",
        description="Lending market identifier"
    )

    env: str = Field(
        default="mainnet-beta",
        description="Cluster name passed to the metrics endpoint"
    )

    timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    min_apy_threshold: float = Field(
        default=0.01,
        ge=0,
        le=1,
        description="Minimum supply APY (decimal) required to act"
    )

    allocation_pct: float = Field(
        default=0.1,
        gt=0,
        le=1,
        description="Fraction of the token balance to allocate"
    )

    interested_tokens: List[str] = Field(
        default_factory=lambda: [
            "SOL", "USDC", "USDT", "ETH", "WBTC", "cbBTC", "tBTC", "jSOL", "vSOL", "mSOL",
        ]
    )

    fallback_top_n: int = Field(
        default=5,
        ge=1,
        description="Reserves kept by TVL when none of the interested tokens is listed"
    )


# ============================================================================
# Trading Configuration
# ============================================================================

class TokenConfig(BaseModel):
    """One SPL token (or native SOL)."""

    symbol: str
    mint: str
    decimals: int = Field(ge=0, le=18)


class TradingPairConfig(BaseModel):
    """One tradable pair."""

    name: str
    base: TokenConfig
    quote: TokenConfig
    enabled: bool = True


class TradingConfig(BaseModel):
    """Tradable pairs."""

    pairs: List[TradingPairConfig] = Field(default_factory=list)

    @field_validator("pairs")
    @classmethod
    def unique_pair_names(cls, v):
        """Validate that pair names are unique."""
        names = [p.name for p in v]
        if len(names) != len(set(names)):
            raise ValueError("trading pair names must be unique")
        return v

    @property
    def enabled_pairs(self) -> List[TradingPairConfig]:
        return [p for p in self.pairs if p.enabled]


# ============================================================================
# Risk Configuration
# ============================================================================

class RiskConfig(BaseModel):
    """Risk tiers used for position sizing."""

    low_risk_pct: float = Field(
        default=0.02,
        gt=0,
        le=1,
        description="Fraction of balance used when confidence is HIGH"
    )

    high_risk_pct: float = Field(
        default=0.05,
        gt=0,
        le=1,
        description="Fraction of balance used otherwise"
    )

    slippage_bps: int = Field(
        default=1000,
        ge=1,
        le=5000,
        description="Fixed slippage tolerance in basis points"
    )

    @model_validator(mode="after")
    def high_not_below_low(self):
        """Validate that high_risk_pct >= low_risk_pct."""
        if self.high_risk_pct < self.low_risk_pct:
            raise ValueError("high_risk_pct must be >= low_risk_pct")
        return self


# ============================================================================
# Solana / DEX / Execution Configuration
# ============================================================================

class SolanaConfig(BaseModel):
    """RPC node and signing key."""

    rpc_url: str = Field(default="https://api.mainnet-beta.solana.com")

    private_key: SecretStr = Field(
        default=SecretStr(""),
        description="Base58 encoded keypair"
    )

    request_timeout_seconds: float = Field(default=15.0, gt=0, le=120)

    confirm_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Upper bound for a single confirmation wait"
    )

    commitment: str = Field(default="confirmed")


class DEXConfig(BaseModel):
    """Swap aggregator endpoints."""

    swap_host: str = Field(default="https://transaction-v1.raydium.io")
    base_host: str = Field(default="https://api-v3.raydium.io")
    priority_fee_endpoint: str = Field(default="/compute/priority-fee")

    default_priority_fee: int = Field(
        default=100000,
        ge=0,
        description="Micro-lamports used when the fee hint is unavailable"
    )

    tx_version: str = Field(default="V0")
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)


class ExecutionConfig(BaseModel):
    """Trade execution behaviour."""

    fail_on_unconfirmed: bool = Field(
        default=False,
        description="Treat a transaction that never confirms as a failed trade"
    )


# ============================================================================
# Scheduler / Storage Configuration
# ============================================================================

class SchedulerConfig(BaseModel):
    """Decision cycle cadence."""

    interval_minutes: float = Field(default=240.0, gt=0)
    run_on_start: bool = Field(default=True)
    cycle_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="How long stop() waits for an in-flight cycle before cancelling it"
    )


class StorageConfig(BaseModel):
    """History database location."""

    db_path: str = Field(default="data/history.duckdb")

    @property
    def path(self) -> Path:
        return Path(self.db_path)


# ============================================================================
# Application Configuration
# ============================================================================

def _default_pairs() -> List[TradingPairConfig]:
    sol = TokenConfig(symbol="SOL", mint="So11111111111111111111111111111111111111112", decimals=9)
    usdt = TokenConfig(symbol="USDT", mint="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", decimals=6)
    btc = TokenConfig(symbol="BTC", mint="9n4nbM75f5Ui33ZbPYXn59EwSgE8CGsHtAeTH5YFeJ9E", decimals=6)
    return [
        TradingPairConfig(name="SOL_USDT", base=sol, quote=usdt),
        TradingPairConfig(name="BTC_USDT", base=btc, quote=usdt),
    ]


class AppConfig(BaseModel):
    """Complete application configuration."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    advisory: AdvisoryConfig = Field(default_factory=AdvisoryConfig)
    lending: LendingConfig = Field(default_factory=LendingConfig)
    trading: TradingConfig = Field(default_factory=lambda: TradingConfig(pairs=_default_pairs()))
    risk: RiskConfig = Field(default_factory=RiskConfig)
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    dex: DEXConfig = Field(default_factory=DEXConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
