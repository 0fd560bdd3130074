"""Wheel strategy P&L views.

Two views are reported side by side for every short leg:

* ``option_mtm``: conventional mark-to-market of the option alone.
* ``wheel_net``: what the trade realizes if the option is assigned, using
  the cost basis of the shares. Without a cost basis it is ``None``.

Assignment probability prefers a provider delta and falls back to a
moneyness heuristic. Neither is ever defaulted to zero.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional

from scipy.stats import norm

from ..models import (
    CONTRACT_MULTIPLIER,
    AccountContext,
    AssignmentSource,
    GreeksQuote,
    OptionKind,
    OptionLeg,
    WheelMetrics,
)
from ..utils import get_logger
from .wheel_math import compounding, cost_to_close, gross_yield, risk_adjusted_return, unrealized_pl

logger = get_logger(__name__)

# Moneyness (as a fraction of strike) that maps to one standard deviation
DEFAULT_MONEYNESS_SCALE = 0.05


def _money(value: float) -> float:
    return round(value, 2)


def option_mtm(leg: OptionLeg) -> float:
    """
    Mark-to-market of one leg in dollars.

    Short legs gain when the option loses value; long legs are the inverse.

    >>> from datetime import date
    >>> leg = OptionLeg("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL, -1, 2.2832, 6.35)
    >>> option_mtm(leg)
    -406.68
    """
    pnl = unrealized_pl(leg.premium_total, cost_to_close(leg.current_value, leg.contracts))
    return _money(pnl if leg.is_short else -pnl)


def wheel_net(leg: OptionLeg, cost_basis: Optional[float]) -> Optional[float]:
    """Premium plus the share gain (or loss) locked in by assignment."""
    if cost_basis is None:
        return None
    shares = CONTRACT_MULTIPLIER * leg.abs_contracts
    if leg.kind is OptionKind.CALL:
        on_assignment = (leg.strike - cost_basis) * shares
    else:
        on_assignment = (cost_basis - leg.strike) * shares
    return _money(leg.premium_total + on_assignment)


def moneyness(kind: OptionKind, strike: float, price: float) -> float:
    """Signed distance into the money, relative to the strike."""
    m = (price - strike) / strike
    return m if kind is OptionKind.CALL else -m


def moneyness_probability(
    kind: OptionKind, strike: float, price: float, scale: float = DEFAULT_MONEYNESS_SCALE
) -> float:
    """
    Heuristic assignment probability from moneyness alone.

    Monotonic in moneyness and bounded to [0, 1]; at the money gives 0.5.

    >>> moneyness_probability(OptionKind.CALL, 100.0, 100.0)
    0.5
    """
    if price <= 0:
        raise ValueError(f"Price must be positive, got {price}")
    if scale <= 0:
        raise ValueError(f"Scale must be positive, got {scale}")
    p = float(norm.cdf(moneyness(kind, strike, price) / scale))
    return min(max(p, 0.0), 1.0)


def intrinsic_value(leg: OptionLeg, price: float) -> float:
    """Exercise value of the leg in dollars at ``price``."""
    if leg.kind is OptionKind.CALL:
        per_share = max(price - leg.strike, 0.0)
    else:
        per_share = max(leg.strike - price, 0.0)
    return per_share * CONTRACT_MULTIPLIER * leg.abs_contracts


class WheelPhase(str, Enum):
    """Where a symbol sits in the put/call cycle."""

    CASH_SECURED_PUT = "cash_secured_put"
    COVERED_CALL = "covered_call"


@dataclass(frozen=True)
class WheelSummary:
    """
    Per-symbol roll-up of wheel metrics.

    Totals over optional values only include legs where the value is known;
    the ``*_unavailable`` counters say how many legs were left out.
    """

    symbol: str
    phase: WheelPhase
    shares: int
    cost_basis: Optional[float]
    current_price: Optional[float]
    short_contracts: int
    total_premium: float
    total_option_mtm: float
    total_wheel_net: Optional[float]
    wheel_net_unavailable: int
    stock_unrealized_pnl: Optional[float]
    annualized_yield: Optional[float] = None
    compounded_yield: Optional[float] = None
    risk_adjusted_yield: Optional[float] = None

    @property
    def mark_pnl(self) -> Optional[float]:
        """Option MTM plus the unrealized gain on shares."""
        if self.stock_unrealized_pnl is None:
            return None
        return _money(self.total_option_mtm + self.stock_unrealized_pnl)

    @property
    def wheel_pnl(self) -> Optional[float]:
        return self.total_wheel_net

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "phase": self.phase.value,
            "shares": self.shares,
            "cost_basis": self.cost_basis,
            "current_price": self.current_price,
            "short_contracts": self.short_contracts,
            "total_premium": self.total_premium,
            "total_option_mtm": self.total_option_mtm,
            "total_wheel_net": self.total_wheel_net,
            "wheel_net_unavailable": self.wheel_net_unavailable,
            "stock_unrealized_pnl": self.stock_unrealized_pnl,
            "mark_pnl": self.mark_pnl,
            "annualized_yield": self.annualized_yield,
            "compounded_yield": self.compounded_yield,
            "risk_adjusted_yield": self.risk_adjusted_yield,
        }


class WheelAnalytics:
    """
    Compute wheel metrics for short legs.

    Parameters
    ----------
    moneyness_scale : float
        Width of the moneyness heuristic; smaller values make the
        probability switch from 0 to 1 more sharply around the strike.
    """

    def __init__(self, moneyness_scale: float = DEFAULT_MONEYNESS_SCALE):
        if moneyness_scale <= 0:
            raise ValueError(f"Moneyness scale must be positive, got {moneyness_scale}")
        self.moneyness_scale = moneyness_scale

    def assignment_probability(
        self,
        leg: OptionLeg,
        current_price: Optional[float] = None,
        greeks: Optional[GreeksQuote] = None,
    ) -> tuple[Optional[float], AssignmentSource]:
        """Probability of assignment and where it came from."""
        if greeks is not None and greeks.delta is not None:
            return greeks.abs_delta, AssignmentSource.DELTA
        if current_price is not None and current_price > 0:
            p = moneyness_probability(leg.kind, leg.strike, current_price, self.moneyness_scale)
            return round(p, 4), AssignmentSource.MONEYNESS
        return None, AssignmentSource.UNAVAILABLE

    def metrics_for(
        self,
        leg: OptionLeg,
        account: AccountContext,
        current_price: Optional[float] = None,
        greeks: Optional[GreeksQuote] = None,
        greeks_stale: bool = False,
    ) -> WheelMetrics:
        """
        Build ``WheelMetrics`` for one short leg.

        Raises
        ------
        ValueError
            If ``leg`` is long
        """
        if not leg.is_short:
            raise ValueError(f"Wheel metrics apply to short legs only, got {leg}")

        cost_basis = account.cost_basis_for(leg.symbol)
        net = wheel_net(leg, cost_basis)
        probability, source = self.assignment_probability(leg, current_price, greeks)

        premium = _money(leg.premium_total)
        assignment_profit = None
        cycle_return = None
        if net is not None and cost_basis is not None:
            assignment_profit = _money(net - premium)
            capital = cost_basis * CONTRACT_MULTIPLIER * leg.abs_contracts
            cycle_return = round(net / capital * 100, 4)

        intrinsic = None
        extrinsic = None
        if current_price is not None and current_price > 0:
            intrinsic = _money(intrinsic_value(leg, current_price))
            extrinsic = _money(max(leg.current_value_total - intrinsic, 0.0))

        if source is AssignmentSource.UNAVAILABLE:
            logger.debug(
                "Assignment probability unavailable",
                extra={"symbol": leg.symbol, "strike": leg.strike, "kind": leg.kind.value},
            )

        return WheelMetrics(
            leg=leg,
            premium_collected=premium,
            current_value=_money(leg.current_value_total),
            option_mtm=option_mtm(leg),
            wheel_net=net,
            assignment_probability=probability,
            assignment_source=source,
            assignment_profit=assignment_profit,
            intrinsic=intrinsic,
            extrinsic=extrinsic,
            cycle_return=cycle_return,
            greeks=greeks,
            greeks_stale=greeks_stale and greeks is not None,
        )

    def summarize_symbol(
        self,
        symbol: str,
        metrics: Iterable[WheelMetrics],
        account: AccountContext,
        current_price: Optional[float] = None,
        as_of: Optional[date] = None,
    ) -> WheelSummary:
        """Roll the metrics of one underlying up into a ``WheelSummary``."""
        symbol = symbol.upper()
        items: Sequence[WheelMetrics] = [m for m in metrics if m.leg.symbol == symbol]

        shares = account.shares_for(symbol)
        cost_basis = account.cost_basis_for(symbol)

        total_premium = _money(sum(m.premium_collected for m in items))
        total_mtm = _money(sum(m.option_mtm for m in items))
        known_net = [m.wheel_net for m in items if m.wheel_net is not None]
        total_net = _money(sum(known_net)) if known_net else None

        stock_pnl = None
        if cost_basis is not None and current_price is not None and shares:
            stock_pnl = _money((current_price - cost_basis) * shares)

        annualized = compounded = risk_adjusted = None
        if as_of is not None and current_price is not None and items:
            nearest = min(m.leg.expiry for m in items)
            covered = sum(m.leg.abs_contracts for m in items) * CONTRACT_MULTIPLIER
            annualized = gross_yield(total_premium, covered, current_price, (nearest - as_of).days)
            if annualized is not None:
                compounded = round(compounding(annualized), 4)
                probabilities = [
                    m.assignment_probability for m in items if m.assignment_probability is not None
                ]
                if probabilities:
                    avg = sum(probabilities) / len(probabilities)
                    risk_adjusted = round(risk_adjusted_return(annualized, avg), 4)
                annualized = round(annualized, 4)

        return WheelSummary(
            symbol=symbol,
            phase=WheelPhase.COVERED_CALL if shares > 0 else WheelPhase.CASH_SECURED_PUT,
            shares=shares,
            cost_basis=cost_basis,
            current_price=current_price,
            short_contracts=sum(m.leg.abs_contracts for m in items),
            total_premium=total_premium,
            total_option_mtm=total_mtm,
            total_wheel_net=total_net,
            wheel_net_unavailable=len(items) - len(known_net),
            stock_unrealized_pnl=stock_pnl,
            annualized_yield=annualized,
            compounded_yield=compounded,
            risk_adjusted_yield=risk_adjusted,
        )
