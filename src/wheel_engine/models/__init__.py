"""Immutable data models shared by every engine component."""

from .account import AccountContext
from .greeks import GreeksQuote
from .leg import CONTRACT_MULTIPLIER, OptionKind, OptionLeg, QuoteKey, format_strike
from .strategy import (
    AssignmentSource,
    RiskKind,
    RiskProfile,
    Strategy,
    StrategyType,
    WheelMetrics,
)

__all__ = [
    "AccountContext",
    "AssignmentSource",
    "CONTRACT_MULTIPLIER",
    "GreeksQuote",
    "OptionKind",
    "OptionLeg",
    "QuoteKey",
    "RiskKind",
    "RiskProfile",
    "Strategy",
    "StrategyType",
    "WheelMetrics",
    "format_strike",
]
