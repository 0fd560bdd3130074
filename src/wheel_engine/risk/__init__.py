"""Risk metrics for detected strategies."""

from .calculator import RiskCalculator, net_premium

__all__ = [
    "RiskCalculator",
    "net_premium",
]
