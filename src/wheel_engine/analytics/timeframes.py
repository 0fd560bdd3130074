"""Group wheel positions by time to expiration."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional

from ..models import CONTRACT_MULTIPLIER, WheelMetrics
from .wheel_math import cost_to_close


class Timeframe(str, Enum):
    NEXT_30_DAYS = "30-days"
    NEXT_90_DAYS = "90-days"
    LONG_TERM = "long-term"


_LABELS = {
    Timeframe.NEXT_30_DAYS: "Next 30 Days",
    Timeframe.NEXT_90_DAYS: "Next 31-90 Days",
    Timeframe.LONG_TERM: "Long Term (90+ Days)",
}


def timeframe_for(days_to_expiry: int) -> Optional[Timeframe]:
    """Bucket for a position; ``None`` once it has expired."""
    if days_to_expiry < 0:
        return None
    if days_to_expiry <= 30:
        return Timeframe.NEXT_30_DAYS
    if days_to_expiry <= 90:
        return Timeframe.NEXT_90_DAYS
    return Timeframe.LONG_TERM


@dataclass(frozen=True)
class TimeframeBucket:
    """Aggregates over the short legs expiring inside one timeframe."""

    timeframe: Timeframe
    latest_expiry: date
    metrics: tuple[WheelMetrics, ...]
    total_premium: float
    shares_at_risk: int
    total_cost_to_close: float
    net_pnl: float
    avg_assignment_probability: Optional[float]

    @property
    def label(self) -> str:
        return _LABELS[self.timeframe]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeframe": self.timeframe.value,
            "label": self.label,
            "latest_expiry": self.latest_expiry.isoformat(),
            "positions": len(self.metrics),
            "total_premium": self.total_premium,
            "shares_at_risk": self.shares_at_risk,
            "total_cost_to_close": self.total_cost_to_close,
            "net_pnl": self.net_pnl,
            "avg_assignment_probability": self.avg_assignment_probability,
        }


def _bucket(timeframe: Timeframe, items: list[WheelMetrics]) -> TimeframeBucket:
    premium = sum(m.premium_collected for m in items)
    closing = sum(cost_to_close(m.leg.current_value, m.leg.contracts) for m in items)
    probabilities = [m.assignment_probability for m in items if m.assignment_probability is not None]
    avg_probability = (
        round(sum(probabilities) / len(probabilities), 4) if probabilities else None
    )

    return TimeframeBucket(
        timeframe=timeframe,
        latest_expiry=max(m.leg.expiry for m in items),
        metrics=tuple(items),
        total_premium=round(premium, 2),
        shares_at_risk=sum(m.leg.abs_contracts for m in items) * CONTRACT_MULTIPLIER,
        total_cost_to_close=round(closing, 2),
        net_pnl=round(premium - closing, 2),
        avg_assignment_probability=avg_probability,
    )


def group_by_timeframe(metrics: Iterable[WheelMetrics], as_of: date) -> list[TimeframeBucket]:
    """
    Bucket metrics into next-30, 31-90 and 90+ day groups.

    Expired legs are left out and empty buckets are not returned. Buckets
    come back in chronological order.
    """
    grouped: dict[Timeframe, list[WheelMetrics]] = {tf: [] for tf in Timeframe}
    for m in metrics:
        timeframe = timeframe_for((m.leg.expiry - as_of).days)
        if timeframe is not None:
            grouped[timeframe].append(m)

    return [_bucket(tf, items) for tf, items in grouped.items() if items]
