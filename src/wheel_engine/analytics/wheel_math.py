"""Pure wheel strategy arithmetic.

Inputs are plain numbers so the helpers can be reused by the analytics layer
and by anything rendering a what-if table. Functions that would need to
divide by zero return ``None`` instead of pretending the answer is 0.
"""

from __future__ import annotations

from typing import Optional

from ..models import CONTRACT_MULTIPLIER

# Roughly 40 DTE per cycle
DEFAULT_CYCLES_PER_YEAR = 9

# Share of the assignment probability charged against the return
ASSIGNMENT_PENALTY = 0.3


def cycle_credit(mid: float) -> float:
    """Credit in dollars for one contract sold at ``mid`` per share."""
    return mid * CONTRACT_MULTIPLIER


def gross_yield(credit: float, shares: int, price: float, dte: int) -> Optional[float]:
    """
    Annualized yield of ``credit`` on the capital at risk, in percent.

    Parameters
    ----------
    credit : float
        Total credit received in dollars
    shares : int
        Shares covered by the position
    price : float
        Current underlying price
    dte : int
        Days to expiration

    Returns
    -------
    Optional[float]
        ``None`` when capital at risk or days to expiration is zero

    Examples
    --------
    >>> round(gross_yield(228.32, 100, 61.0, 30), 2)
    45.54
    """
    if shares <= 0 or price <= 0 or dte <= 0:
        return None
    capital_at_risk = shares * price
    return credit / capital_at_risk * 365 / dte * 100


def compounding(gross: float, cycles: int = DEFAULT_CYCLES_PER_YEAR) -> float:
    """Compounded annual return in percent from a per-year gross yield."""
    if cycles <= 0:
        raise ValueError(f"Cycles must be positive, got {cycles}")
    per_cycle = gross / cycles / 100
    return ((1 + per_cycle) ** cycles - 1) * 100


def cost_to_close(current_mid: float, contracts: int) -> float:
    """Dollars needed to buy back ``contracts`` at ``current_mid`` per share."""
    return current_mid * CONTRACT_MULTIPLIER * abs(contracts)


def unrealized_pl(premium_collected: float, current_cost_to_close: float) -> float:
    return premium_collected - current_cost_to_close


def risk_adjusted_return(annualized_return: float, assignment_probability: float) -> float:
    """Discount a return by the chance of being assigned."""
    if not 0.0 <= assignment_probability <= 1.0:
        raise ValueError(
            f"Assignment probability must be in [0, 1], got {assignment_probability}"
        )
    return annualized_return * (1 - assignment_probability * ASSIGNMENT_PENALTY)
