"""Wheel strategy analytics."""

from .timeframes import Timeframe, TimeframeBucket, group_by_timeframe, timeframe_for
from .wheel import (
    DEFAULT_MONEYNESS_SCALE,
    WheelAnalytics,
    WheelPhase,
    WheelSummary,
    intrinsic_value,
    moneyness,
    moneyness_probability,
    option_mtm,
    wheel_net,
)
from .wheel_math import (
    compounding,
    cost_to_close,
    cycle_credit,
    gross_yield,
    risk_adjusted_return,
    unrealized_pl,
)

__all__ = [
    "DEFAULT_MONEYNESS_SCALE",
    "Timeframe",
    "TimeframeBucket",
    "WheelAnalytics",
    "WheelPhase",
    "WheelSummary",
    "compounding",
    "cost_to_close",
    "cycle_credit",
    "gross_yield",
    "group_by_timeframe",
    "intrinsic_value",
    "moneyness",
    "moneyness_probability",
    "option_mtm",
    "risk_adjusted_return",
    "timeframe_for",
    "unrealized_pl",
    "wheel_net",
]
