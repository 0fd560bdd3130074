"""Strategy, risk profile and wheel metric records.

These are derived data: rebuilt on every analysis run and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

from .greeks import GreeksQuote
from .leg import OptionLeg


class StrategyType(str, Enum):
    """Closed set of recognized strategies."""

    COVERED_CALL = "CoveredCall"
    CASH_SECURED_PUT = "CashSecuredPut"
    BULL_PUT_SPREAD = "BullPutSpread"
    BEAR_CALL_SPREAD = "BearCallSpread"
    BULL_CALL_SPREAD = "BullCallSpread"
    BEAR_PUT_SPREAD = "BearPutSpread"
    IRON_CONDOR = "IronCondor"
    NAKED_CALL = "NakedCall"
    NAKED_PUT = "NakedPut"
    LONG_CALL = "LongCall"
    LONG_PUT = "LongPut"
    UNKNOWN = "Unknown"

    @property
    def is_vertical(self) -> bool:
        return self in VERTICAL_SPREADS

    @property
    def is_credit_vertical(self) -> bool:
        return self in (StrategyType.BULL_PUT_SPREAD, StrategyType.BEAR_CALL_SPREAD)


VERTICAL_SPREADS = frozenset(
    {
        StrategyType.BULL_PUT_SPREAD,
        StrategyType.BEAR_CALL_SPREAD,
        StrategyType.BULL_CALL_SPREAD,
        StrategyType.BEAR_PUT_SPREAD,
    }
)


class RiskKind(str, Enum):
    """Shape of the downside."""

    DEFINED = "defined"
    UNDEFINED = "undefined"
    COVERED = "covered"


@dataclass(frozen=True)
class RiskProfile:
    """
    Deterministic risk metrics for one strategy.

    ``None`` means the value is unavailable (missing cost basis) or unbounded;
    the ``*_unbounded`` flags tell the two apart. Currency is in dollars.
    """

    net_premium: float
    max_profit: Optional[float]
    max_loss: Optional[float]
    breakevens: tuple[float, ...]
    risk_kind: RiskKind
    collateral: Optional[float] = None
    collateral_shares: int = 0
    max_profit_unbounded: bool = False
    max_loss_unbounded: bool = False

    def __post_init__(self) -> None:
        if len(self.breakevens) > 2:
            raise ValueError(f"At most two breakevens expected, got {len(self.breakevens)}")
        if self.max_profit_unbounded and self.max_profit is not None:
            raise ValueError("Unbounded max profit cannot carry a value")
        if self.max_loss_unbounded and self.max_loss is not None:
            raise ValueError("Unbounded max loss cannot carry a value")

    @property
    def is_credit(self) -> bool:
        return self.net_premium > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "net_premium": self.net_premium,
            "max_profit": self.max_profit,
            "max_loss": self.max_loss,
            "breakevens": list(self.breakevens),
            "risk_kind": self.risk_kind.value,
            "collateral": self.collateral,
            "collateral_shares": self.collateral_shares,
            "max_profit_unbounded": self.max_profit_unbounded,
            "max_loss_unbounded": self.max_loss_unbounded,
        }


class AssignmentSource(str, Enum):
    """Where an assignment probability came from."""

    DELTA = "delta"
    MONEYNESS = "moneyness"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class WheelMetrics:
    """
    Wheel-specific P&L views for one short leg.

    ``option_mtm`` is the conventional mark-to-market; ``wheel_net`` is the
    realized profit if assigned and stays ``None`` without a cost basis.
    """

    leg: OptionLeg
    premium_collected: float
    current_value: float
    option_mtm: float
    wheel_net: Optional[float]
    assignment_probability: Optional[float]
    assignment_source: AssignmentSource
    assignment_profit: Optional[float] = None
    intrinsic: Optional[float] = None
    extrinsic: Optional[float] = None
    cycle_return: Optional[float] = None
    greeks: Optional[GreeksQuote] = None
    greeks_stale: bool = False

    def __post_init__(self) -> None:
        p = self.assignment_probability
        if p is not None and not 0.0 <= p <= 1.0:
            raise ValueError(f"Assignment probability must be in [0, 1], got {p}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "leg": self.leg.to_dict(),
            "premium_collected": self.premium_collected,
            "current_value": self.current_value,
            "option_mtm": self.option_mtm,
            "wheel_net": self.wheel_net,
            "assignment_probability": self.assignment_probability,
            "assignment_source": self.assignment_source.value,
            "assignment_profit": self.assignment_profit,
            "intrinsic": self.intrinsic,
            "extrinsic": self.extrinsic,
            "cycle_return": self.cycle_return,
            "greeks": self.greeks.to_dict() if self.greeks else None,
            "greeks_stale": self.greeks_stale,
        }


@dataclass(frozen=True)
class Strategy:
    """A classified position group with its risk profile."""

    strategy_type: StrategyType
    symbol: str
    expiry: date
    legs: tuple[OptionLeg, ...]
    risk: RiskProfile
    wheel_metrics: tuple[WheelMetrics, ...] = field(default_factory=tuple)

    @property
    def name(self) -> str:
        return self.strategy_type.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy_type.value,
            "symbol": self.symbol,
            "expiry": self.expiry.isoformat(),
            "legs": [leg.to_dict() for leg in self.legs],
            "risk": self.risk.to_dict(),
            "wheel_metrics": [m.to_dict() for m in self.wheel_metrics],
        }
