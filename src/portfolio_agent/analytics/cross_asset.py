"""
Cross-asset analytics over all tracked pairs of one cycle.

Computes:
1. Pearson correlation of returns for every unordered pair of pairs
2. Relative strength (daily change)
3. Volatility rank (1 = most volatile)
4. Strongest trend (largest absolute OLS slope of price vs. sample index)
5. Market regime classification
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from portfolio_agent.analytics.indicators import (
    IndicatorSnapshot,
    IndicatorWindows,
    calculate_price_change,
    calculate_returns,
)
from portfolio_agent.market_data.models import PriceSeries

logger = logging.getLogger(__name__)

BULLISH_CHANGE_PCT = 1.0
REGIME_FRACTION = 0.6


class MarketRegime(str, Enum):
    """Market-wide risk appetite."""
    RISK_ON = "RISK_ON"
    RISK_OFF = "RISK_OFF"
    MIXED = "MIXED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class CrossAssetSignals:
    """Cross-pair metrics; correlation keys are sorted (pair_a, pair_b) tuples."""
    correlations: Dict[Tuple[str, str], float] = field(default_factory=dict)
    relative_strength: Dict[str, float] = field(default_factory=dict)
    volatility_rank: Dict[str, int] = field(default_factory=dict)
    strongest_trend: Optional[str] = None
    market_regime: MarketRegime = MarketRegime.UNKNOWN

    @classmethod
    def empty(cls) -> "CrossAssetSignals":
        return cls()

    def correlation(self, pair_a: str, pair_b: str) -> Optional[float]:
        return self.correlations.get(tuple(sorted((pair_a, pair_b))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlations": {f"{a}:{b}": round(v, 4) for (a, b), v in self.correlations.items()},
            "relativeStrength": {k: round(v, 2) for k, v in self.relative_strength.items()},
            "volatilityRank": dict(self.volatility_rank),
            "strongestTrend": self.strongest_trend,
            "marketRegime": self.market_regime.value,
        }


def pearson_correlation(returns_a: Sequence[float], returns_b: Sequence[float]) -> float:
    """
    Pearson correlation aligned on the shorter tail.

    Returns 0 when either series is empty or has zero variance.
    """
    n = min(len(returns_a), len(returns_b))
    if n == 0:
        return 0.0

    a = np.asarray(returns_a[-n:], dtype=float)
    b = np.asarray(returns_b[-n:], dtype=float)
    da = a - a.mean()
    db = b - b.mean()
    denom_a = float(np.dot(da, da))
    denom_b = float(np.dot(db, db))
    if denom_a == 0 or denom_b == 0:
        return 0.0
    return float(np.dot(da, db) / np.sqrt(denom_a * denom_b))


def trend_slope(prices: Sequence[float]) -> Optional[float]:
    """OLS slope of price against sample index, None for fewer than 2 samples."""
    n = len(prices)
    if n < 2:
        return None
    x = np.arange(n, dtype=float)
    y = np.asarray(prices, dtype=float)
    x_centered = x - x.mean()
    return float(np.dot(x_centered, y - y.mean()) / np.dot(x_centered, x_centered))


def classify_regime(daily_changes: Sequence[float]) -> MarketRegime:
    """RISK_ON / RISK_OFF when more than 60% of pairs moved > 1% the same way."""
    total = len(daily_changes)
    if total == 0:
        return MarketRegime.UNKNOWN

    bullish = sum(1 for c in daily_changes if c > BULLISH_CHANGE_PCT)
    bearish = sum(1 for c in daily_changes if c < -BULLISH_CHANGE_PCT)

    if bullish / total > REGIME_FRACTION:
        return MarketRegime.RISK_ON
    if bearish / total > REGIME_FRACTION:
        return MarketRegime.RISK_OFF
    return MarketRegime.MIXED


class CrossAssetAnalyzer:
    """Derives CrossAssetSignals from one cycle's series and snapshots."""

    def __init__(self, windows: Optional[IndicatorWindows] = None):
        self.windows = windows or IndicatorWindows()

    def analyze(
        self,
        series_by_pair: Mapping[str, PriceSeries],
        snapshots: Optional[Mapping[str, IndicatorSnapshot]] = None,
    ) -> CrossAssetSignals:
        """
        Compute all cross-asset signals.

        Any failure degrades the whole result to ``CrossAssetSignals.empty()``;
        partial results are never returned.
        """
        try:
            return self._analyze(series_by_pair, snapshots or {})
        except Exception as e:
            logger.error(f"Error calculating cross-asset signals: {e}", exc_info=True)
            return CrossAssetSignals.empty()

    def _analyze(
        self,
        series_by_pair: Mapping[str, PriceSeries],
        snapshots: Mapping[str, IndicatorSnapshot],
    ) -> CrossAssetSignals:
        pairs = sorted(series_by_pair)
        prices = {pair: series_by_pair[pair].prices for pair in pairs}
        returns = {pair: calculate_returns(prices[pair]) for pair in pairs}

        correlations = {
            (a, b): pearson_correlation(returns[a], returns[b])
            for a, b in combinations(pairs, 2)
        }

        relative_strength = {}
        for pair in pairs:
            snapshot = snapshots.get(pair)
            if snapshot is not None and not snapshot.is_default:
                relative_strength[pair] = snapshot.daily_change
            else:
                relative_strength[pair] = calculate_price_change(prices[pair], self.windows.daily)

        volatility = {
            pair: float(np.std(returns[pair])) if returns[pair].size else 0.0
            for pair in pairs
        }
        ranked = sorted(pairs, key=lambda p: volatility[p], reverse=True)
        volatility_rank = {pair: i + 1 for i, pair in enumerate(ranked)}

        strongest_trend = None
        max_strength = -1.0
        for pair in pairs:
            slope = trend_slope(prices[pair])
            if slope is not None and abs(slope) > max_strength:
                max_strength = abs(slope)
                strongest_trend = pair

        regime = classify_regime(
            [relative_strength[pair] for pair in pairs if len(prices[pair]) >= 2]
        )

        return CrossAssetSignals(
            correlations=correlations,
            relative_strength=relative_strength,
            volatility_rank=volatility_rank,
            strongest_trend=strongest_trend,
            market_regime=regime,
        )
