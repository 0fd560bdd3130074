"""Account context supplied once per analysis run."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountContext:
    """
    Immutable account snapshot.

    Attributes
    ----------
    shares : Mapping[str, int]
        Shares held per underlying symbol
    cost_basis : Mapping[str, float]
        Per-share cost basis per underlying symbol
    cash_balance : float
        Cash available to secure short puts

    Examples
    --------
    >>> account = AccountContext(shares={"IBIT": 1400}, cost_basis={"IBIT": 59.09})
    >>> account.shares_for("ibit")
    1400
    >>> account.cost_basis_for("ETHA") is None
    True
    """

    shares: Mapping[str, int] = field(default_factory=dict)
    cost_basis: Mapping[str, float] = field(default_factory=dict)
    cash_balance: float = 0.0

    def __post_init__(self) -> None:
        """Freeze mappings and validate values."""
        shares = {str(k).upper(): int(v) for k, v in dict(self.shares).items()}
        basis = {str(k).upper(): float(v) for k, v in dict(self.cost_basis).items()}

        for symbol, qty in shares.items():
            if qty < 0:
                raise ValueError(f"Share count cannot be negative for {symbol}, got {qty}")

        for symbol, value in basis.items():
            if value <= 0:
                raise ValueError(f"Cost basis must be positive for {symbol}, got {value}")

        object.__setattr__(self, "shares", MappingProxyType(shares))
        object.__setattr__(self, "cost_basis", MappingProxyType(basis))
        object.__setattr__(self, "cash_balance", float(self.cash_balance))

        logger.debug(
            "Account context created",
            extra={
                "symbols": sorted(shares),
                "cash_balance": self.cash_balance,
            },
        )

    def shares_for(self, symbol: str) -> int:
        return self.shares.get(symbol.upper(), 0)

    def cost_basis_for(self, symbol: str) -> Optional[float]:
        return self.cost_basis.get(symbol.upper())

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for serialization."""
        return {
            "shares": dict(self.shares),
            "cost_basis": dict(self.cost_basis),
            "cash_balance": self.cash_balance,
        }
