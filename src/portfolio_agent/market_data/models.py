"""
Market data models.

- PricePoint: one (timestamp, price, volume) sample
- PriceSeries: ordered samples for one tracked pair, materialized per cycle
- LendingReserve / LendingMarketSnapshot: lending-market metrics
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PricePoint:
    """One price sample. ``timestamp`` is unix seconds."""
    timestamp: int
    price: float
    volume: Optional[float] = None


@dataclass
class PriceSeries:
    """
    Price samples for one pair, strictly increasing timestamps.

    A failed series has no points and carries the reason; downstream code
    treats it as "no signal".
    """
    pair: str
    points: List[PricePoint] = field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None

    @classmethod
    def failed_series(cls, pair: str, reason: str) -> "PriceSeries":
        return cls(pair=pair, points=[], failed=True, error=reason)

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def prices(self) -> List[float]:
        return [p.price for p in self.points]

    @property
    def timestamps(self) -> List[int]:
        return [p.timestamp for p in self.points]

    @property
    def volumes(self) -> Optional[List[float]]:
        """Volumes, or None unless every sample carries one."""
        if not self.points or any(p.volume is None for p in self.points):
            return None
        return [float(p.volume) for p in self.points]

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class LendingReserve:
    """Metrics for one lending reserve."""
    reserve: str
    token: str
    total_supply_usd: float
    total_borrow_usd: float
    max_ltv: float
    borrow_apy: float
    supply_apy: float

    @property
    def utilization(self) -> float:
        if self.total_supply_usd <= 0:
            return 0.0
        return self.total_borrow_usd / self.total_supply_usd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reserve": self.reserve,
            "liquidityToken": self.token,
            "maxLtv": self.max_ltv,
            "borrowApy": self.borrow_apy,
            "supplyApy": self.supply_apy,
            "totalSupplyUsd": self.total_supply_usd,
            "totalBorrowUsd": self.total_borrow_usd,
            "utilization": round(self.utilization, 6),
        }


@dataclass(frozen=True)
class LendingMarketSnapshot:
    """Reserves of one lending market, keyed by token symbol."""
    market_id: str
    reserves: Dict[str, LendingReserve]
    fetched_at: int

    def to_prompt_payload(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.reserves.values()]
