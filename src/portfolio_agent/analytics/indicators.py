"""
Technical Indicators - per-pair snapshot from a price series.

Implements:
1. Price change over day / week / month windows
2. SMA (Simple Moving Average) 20 / 50 / 200
3. Realized volatility of simple returns (daily / weekly)
4. RSI (Relative Strength Index) over the trailing period
5. Momentum
6. Support / resistance over the trailing 30 samples
7. Volume trend

All functions are pure; windows longer than the series yield 0 instead of
raising.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from portfolio_agent.market_data.models import PriceSeries

logger = logging.getLogger(__name__)

INVALID_DATA = "Invalid data"
SUPPORT_RESISTANCE_WINDOW = 30
RSI_PERIOD = 14
MOMENTUM_PERIOD = 14


@dataclass(frozen=True)
class IndicatorSnapshot:
    """
    Technical snapshot for one pair.

    Percentages (changes, volatility, distances) are expressed in percent.
    A snapshot with ``error`` set is the zeroed default and carries no signal.
    """
    pair: str
    current_price: float = 0.0
    daily_change: float = 0.0
    weekly_change: float = 0.0
    monthly_change: float = 0.0
    sma_20: float = 0.0
    sma_50: float = 0.0
    sma_200: float = 0.0
    above_sma_20: bool = False
    above_sma_50: bool = False
    above_sma_200: bool = False
    daily_volatility: float = 0.0
    weekly_volatility: float = 0.0
    rsi: float = 0.0
    momentum: float = 0.0
    volume_current: float = 0.0
    volume_trend: float = 0.0
    volume_above_average: bool = False
    support: float = 0.0
    resistance: float = 0.0
    distance_to_support: float = 0.0
    distance_to_resistance: float = 0.0
    timestamp: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def default(cls, pair: str, error: str = INVALID_DATA) -> "IndicatorSnapshot":
        return cls(pair=pair, error=error)

    @property
    def is_default(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Nested, rounded view used in advisory prompts."""
        data = {
            "timestamp": (
                datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat()
                if self.timestamp else None
            ),
            "price": {
                "current": self.current_price,
                "changes": {
                    "daily": round(self.daily_change, 2),
                    "weekly": round(self.weekly_change, 2),
                    "monthly": round(self.monthly_change, 2),
                },
            },
            "technicals": {
                "sma": {
                    "sma20": round(self.sma_20, 2),
                    "sma50": round(self.sma_50, 2),
                    "sma200": round(self.sma_200, 2),
                    "isAboveSMA20": self.above_sma_20,
                    "isAboveSMA50": self.above_sma_50,
                    "isAboveSMA200": self.above_sma_200,
                },
                "volatility": {
                    "daily": round(self.daily_volatility, 2),
                    "weekly": round(self.weekly_volatility, 2),
                },
                "volume": {
                    "current": self.volume_current,
                    "trend": round(self.volume_trend, 2),
                    "isAboveAverage": self.volume_above_average,
                },
                "levels": {
                    "support": round(self.support, 2),
                    "resistance": round(self.resistance, 2),
                    "distanceToSupport": round(self.distance_to_support, 2),
                    "distanceToResistance": round(self.distance_to_resistance, 2),
                },
                "rsi": round(self.rsi, 2),
                "momentum": round(self.momentum, 2),
            },
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class IndicatorWindows:
    """Sample counts for the day / week / month windows."""
    daily: int = 6
    weekly: int = 42
    monthly: int = 180

    @classmethod
    def for_periods_per_day(cls, periods_per_day: int) -> "IndicatorWindows":
        periods_per_day = max(1, int(periods_per_day))
        return cls(daily=periods_per_day, weekly=periods_per_day * 7, monthly=periods_per_day * 30)


def calculate_sma(prices: Sequence[float], period: int) -> float:
    """Simple moving average of the trailing ``period`` prices, 0 if too short."""
    if period <= 0 or len(prices) < period:
        return 0.0
    return float(np.mean(np.asarray(prices[-period:], dtype=float)))


def calculate_returns(prices: Sequence[float]) -> np.ndarray:
    """Simple returns between consecutive prices; a zero base yields 0."""
    arr = np.asarray(prices, dtype=float)
    if arr.size < 2:
        return np.array([], dtype=float)
    prev = arr[:-1]
    diff = np.diff(arr)
    return np.divide(diff, prev, out=np.zeros_like(diff), where=prev != 0)


def calculate_volatility(prices: Sequence[float], window: int) -> float:
    """
    Realized volatility over the trailing ``window`` prices.

    Population standard deviation of simple returns, in percent. Returns 0 if
    the series is shorter than the window.
    """
    if window < 2 or len(prices) < window:
        return 0.0
    returns = calculate_returns(prices[-window:])
    if returns.size == 0:
        return 0.0
    return float(np.std(returns) * 100)


def calculate_price_change(prices: Sequence[float], window: int) -> float:
    """
    Percent change over ``window`` intervals.

    Compares the last price with the one ``window`` samples before it, so a
    window of 6 needs 7 samples.
    """
    if window <= 0 or len(prices) < window + 1:
        return 0.0
    old = float(prices[-window - 1])
    if old == 0:
        return 0.0
    return (float(prices[-1]) - old) / old * 100


def calculate_rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """
    Calculate Relative Strength Index (RSI).

    RSI = 100 - (100 / (1 + RS)), RS = Average Gain / Average Loss

    Gains and losses are averaged over the trailing ``period`` price changes
    (fewer if the series is shorter). An average loss of 0 gives 100; fewer
    than two prices give the neutral 50.
    """
    if len(prices) < 2:
        return 50.0

    deltas = np.diff(np.asarray(prices, dtype=float))[-period:]
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains))
    avg_loss = float(np.mean(losses))

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))
    return float(min(100.0, max(0.0, rsi)))


def calculate_momentum(prices: Sequence[float], period: int = MOMENTUM_PERIOD) -> float:
    """price[-1] - price[-period], 0 if the series is shorter than the period."""
    if period <= 0 or len(prices) < period:
        return 0.0
    return float(prices[-1]) - float(prices[-period])


def calculate_support_resistance(
    prices: Sequence[float],
    window: int = SUPPORT_RESISTANCE_WINDOW,
) -> Dict[str, float]:
    """Min / max of the trailing window and their distance from the last price (%)."""
    if not prices:
        return {"support": 0.0, "resistance": 0.0, "distance_to_support": 0.0, "distance_to_resistance": 0.0}

    recent = np.asarray(prices[-window:], dtype=float)
    support = float(recent.min())
    resistance = float(recent.max())
    latest = float(prices[-1])

    if latest == 0:
        return {"support": support, "resistance": resistance, "distance_to_support": 0.0, "distance_to_resistance": 0.0}

    return {
        "support": support,
        "resistance": resistance,
        "distance_to_support": (latest - support) / latest * 100,
        "distance_to_resistance": (resistance - latest) / latest * 100,
    }


def calculate_volume_profile(volumes: Optional[List[float]]) -> Dict[str, Any]:
    """Latest volume against the series average; no volumes means no trend."""
    if not volumes:
        return {"current": 0.0, "trend": 0.0, "above_average": False}

    avg = float(np.mean(volumes))
    latest = float(volumes[-1])
    trend = (latest / avg - 1) * 100 if avg > 0 else 0.0
    return {"current": latest, "trend": trend, "above_average": latest > avg}


class IndicatorEngine:
    """Turns price series into IndicatorSnapshots."""

    def __init__(self, windows: Optional[IndicatorWindows] = None):
        self.windows = windows or IndicatorWindows()

    @classmethod
    def for_resolution(cls, periods_per_day: int) -> "IndicatorEngine":
        return cls(IndicatorWindows.for_periods_per_day(periods_per_day))

    def compute(self, series: PriceSeries) -> IndicatorSnapshot:
        """
        Compute the snapshot for one series.

        Empty series or series without timestamps produce the default snapshot
        tagged with ``"Invalid data"``.
        """
        if series.is_empty or any(p.timestamp is None for p in series.points):
            logger.warning(
                f"No usable price data for {series.pair}, using default indicators",
                extra={"pair": series.pair},
            )
            return IndicatorSnapshot.default(series.pair)

        prices = series.prices
        latest = float(prices[-1])
        w = self.windows

        sma_20 = calculate_sma(prices, 20)
        sma_50 = calculate_sma(prices, 50)
        sma_200 = calculate_sma(prices, 200)
        levels = calculate_support_resistance(prices)
        volume = calculate_volume_profile(series.volumes)

        return IndicatorSnapshot(
            pair=series.pair,
            current_price=latest,
            daily_change=calculate_price_change(prices, w.daily),
            weekly_change=calculate_price_change(prices, w.weekly),
            monthly_change=calculate_price_change(prices, w.monthly),
            sma_20=sma_20,
            sma_50=sma_50,
            sma_200=sma_200,
            above_sma_20=latest > sma_20,
            above_sma_50=latest > sma_50,
            above_sma_200=latest > sma_200,
            daily_volatility=calculate_volatility(prices, w.daily),
            weekly_volatility=calculate_volatility(prices, w.weekly),
            rsi=calculate_rsi(prices, RSI_PERIOD),
            momentum=calculate_momentum(prices, MOMENTUM_PERIOD),
            volume_current=volume["current"],
            volume_trend=volume["trend"],
            volume_above_average=volume["above_average"],
            support=levels["support"],
            resistance=levels["resistance"],
            distance_to_support=levels["distance_to_support"],
            distance_to_resistance=levels["distance_to_resistance"],
            timestamp=series.points[-1].timestamp,
        )

    def compute_all(self, series_by_pair: Dict[str, PriceSeries]) -> Dict[str, IndicatorSnapshot]:
        return {pair: self.compute(series) for pair, series in series_by_pair.items()}
