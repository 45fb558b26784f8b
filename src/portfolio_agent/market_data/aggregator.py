"""
Market data aggregator.

Fetches one PriceSeries per tracked pair concurrently. Each pair is retried
independently; a pair that exhausts its attempts becomes an explicit failed
series so the rest of the cycle can proceed. The call only fails when no
pair produced a non-empty series.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from portfolio_agent.core.errors import NoMarketDataError
from portfolio_agent.market_data.models import PricePoint, PriceSeries
from portfolio_agent.utils.retry import BackoffPolicy, with_retry

logger = logging.getLogger(__name__)


class PriceHistorySource(Protocol):
    async def get_price_history(
        self, address: str, resolution: str, time_from: int, time_to: int
    ) -> List[Tuple[int, float]]:
        ...


@dataclass(frozen=True)
class TimeRange:
    """Inclusive window in unix seconds."""
    start: int
    end: int

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("time range end must be after start")


def normalize_history(
    pair: str,
    items: Sequence[Tuple[int, float]],
    interval_seconds: int,
    now: int,
) -> PriceSeries:
    """
    Build a PriceSeries from raw ``(timestamp, price)`` items.

    Samples are ordered, duplicate timestamps collapse to the last value and
    future timestamps are dropped. If every timestamp lies in the future the
    values are kept and re-anchored to ``now - (N-1-i) * interval``.
    """
    if not items:
        return PriceSeries.failed_series(pair, "No price data returned")

    by_ts: Dict[int, float] = {}
    for ts, value in sorted(items, key=lambda item: item[0]):
        by_ts[int(ts)] = float(value)
    ordered = sorted(by_ts.items())

    past = [(ts, value) for ts, value in ordered if ts <= now]
    if past:
        dropped = len(ordered) - len(past)
        if dropped:
            logger.warning(f"Dropped {dropped} future samples for {pair}", extra={"pair": pair})
        return PriceSeries(pair=pair, points=[PricePoint(ts, value) for ts, value in past])

    n = len(ordered)
    logger.warning(
        f"All {n} samples for {pair} are in the future, re-basing to now",
        extra={"pair": pair},
    )
    points = [
        PricePoint(now - (n - 1 - i) * interval_seconds, value)
        for i, (_, value) in enumerate(ordered)
    ]
    return PriceSeries(pair=pair, points=points)


class MarketDataAggregator:
    """Concurrent, per-pair-retried price history for every tracked pair."""

    def __init__(
        self,
        client: PriceHistorySource,
        pairs: Dict[str, str],
        resolution: str = "240",
        resolution_minutes: int = 240,
        lookback_days: int = 30,
        max_attempts: int = 3,
        backoff: Optional[BackoffPolicy] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            client: Price-history source
            pairs: Tracked pair name -> pool address
            resolution: Provider resolution code
            resolution_minutes: Sample spacing used when re-basing timestamps
            lookback_days: Default window when no time range is given
            max_attempts: Attempts per pair
            backoff: Delay schedule between attempts
        """
        self.client = client
        self.pairs = dict(pairs)
        self.resolution = resolution
        self.interval_seconds = resolution_minutes * 60
        self.lookback_days = lookback_days
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffPolicy(base_delay=2.0, factor=2.0)
        self._clock = clock
        self._sleep = sleep

    @property
    def tracked_pairs(self) -> List[str]:
        return list(self.pairs)

    def default_time_range(self) -> TimeRange:
        now = int(self._clock())
        return TimeRange(start=now - self.lookback_days * 86400, end=now)

    async def fetch_pair(self, pair: str, time_range: TimeRange) -> PriceSeries:
        """Fetch one pair with retries; never raises."""
        address = self.pairs[pair]

        async def _request():
            return await self.client.get_price_history(
                address, self.resolution, time_range.start, time_range.end
            )

        try:
            items = await with_retry(
                _request,
                attempts=self.max_attempts,
                policy=self.backoff,
                description=f"{pair} price history",
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error(f"Error fetching market data for {pair}: {e}", extra={"pair": pair})
            return PriceSeries.failed_series(pair, str(e))

        return normalize_history(pair, items, self.interval_seconds, int(self._clock()))

    async def fetch_all(self, time_range: Optional[TimeRange] = None) -> Dict[str, PriceSeries]:
        """
        Fetch every tracked pair concurrently.

        Raises:
            NoMarketDataError: If no pair produced a non-empty series
        """
        time_range = time_range or self.default_time_range()
        pairs = self.tracked_pairs

        results = await asyncio.gather(*(self.fetch_pair(pair, time_range) for pair in pairs))
        series_by_pair = dict(zip(pairs, results))

        valid = [pair for pair, series in series_by_pair.items() if not series.is_empty]
        if not valid:
            raise NoMarketDataError("No market data available for this cycle")

        logger.info(f"Market data fetched for {len(valid)}/{len(pairs)} pairs")
        return series_by_pair
