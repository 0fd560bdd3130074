"""Option leg model with signed quantity semantics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum

logger = logging.getLogger(__name__)

CONTRACT_MULTIPLIER = 100


class OptionKind(str, Enum):
    """Option contract kind."""

    CALL = "CALL"
    PUT = "PUT"


def format_strike(strike: float) -> str:
    """Render a strike without trailing zeros (``61.0`` -> ``"61"``)."""
    text = f"{strike:.4f}".rstrip("0").rstrip(".")
    return text or "0"


@dataclass(frozen=True, order=True)
class QuoteKey:
    """
    Identity of one option contract for Greeks lookups.

    The string form ``SYMBOL-STRIKE-YYYY-MM-DD-KIND`` is what gets persisted.

    Examples
    --------
    >>> key = QuoteKey("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL)
    >>> str(key)
    'IBIT-61-2025-07-18-CALL'
    >>> QuoteKey.parse("IBIT-61-2025-07-18-CALL") == key
    True
    """

    symbol: str
    strike: float
    expiry: date
    kind: OptionKind

    def __str__(self) -> str:
        return f"{self.symbol}-{format_strike(self.strike)}-{self.expiry.isoformat()}-{self.kind.value}"

    @classmethod
    def parse(cls, text: str) -> QuoteKey:
        """Parse the persisted string form back into a key."""
        parts = text.rsplit("-", 5)
        if len(parts) != 6:
            raise ValueError(f"Invalid quote key: {text!r}")
        symbol, strike, year, month, day, kind = parts
        return cls(
            symbol=symbol,
            strike=float(strike),
            expiry=date(int(year), int(month), int(day)),
            kind=OptionKind(kind),
        )


@dataclass(frozen=True)
class OptionLeg:
    """
    Immutable option leg after normalization.

    Attributes
    ----------
    symbol : str
        Underlying ticker, uppercase
    strike : float
        Strike price, positive
    expiry : date
        Expiration date
    kind : OptionKind
        CALL or PUT
    contracts : int
        Signed contract count (negative = short/sold, positive = long/bought)
    premium : float
        Per-share premium paid or received when the leg was opened
    current_value : float
        Per-share current market value

    Examples
    --------
    >>> leg = OptionLeg("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL, -1, 2.2832, 6.35)
    >>> leg.is_short
    True
    >>> round(leg.premium_total, 2)
    228.32
    """

    symbol: str
    strike: float
    expiry: date
    kind: OptionKind
    contracts: int
    premium: float
    current_value: float = 0.0

    def __post_init__(self) -> None:
        """Validate leg fields."""
        if not self.symbol or self.symbol != self.symbol.upper():
            raise ValueError(f"Symbol must be a non-empty uppercase string, got: {self.symbol!r}")

        if isinstance(self.contracts, bool) or not isinstance(self.contracts, int):
            raise TypeError(f"Contracts must be an integer, got: {type(self.contracts)}")

        if self.contracts == 0:
            raise ValueError("Contracts cannot be zero")

        if not self.strike > 0:
            raise ValueError(f"Strike must be positive, got {self.strike}")

        if self.premium < 0:
            raise ValueError(f"Premium cannot be negative, got {self.premium}")

        if self.current_value < 0:
            raise ValueError(f"Current value cannot be negative, got {self.current_value}")

    @property
    def is_short(self) -> bool:
        return self.contracts < 0

    @property
    def is_long(self) -> bool:
        return self.contracts > 0

    @property
    def abs_contracts(self) -> int:
        return abs(self.contracts)

    @property
    def premium_total(self) -> float:
        """Premium in dollars across all contracts (always non-negative)."""
        return self.premium * CONTRACT_MULTIPLIER * self.abs_contracts

    @property
    def current_value_total(self) -> float:
        """Current market value in dollars across all contracts."""
        return self.current_value * CONTRACT_MULTIPLIER * self.abs_contracts

    @property
    def signed_premium(self) -> float:
        """Cash flow of opening the leg: credit positive for shorts, debit negative for longs."""
        return -self.contracts * self.premium * CONTRACT_MULTIPLIER

    @property
    def quote_key(self) -> QuoteKey:
        return QuoteKey(self.symbol, self.strike, self.expiry, self.kind)

    def with_contracts(self, quantity: int) -> OptionLeg:
        """Copy of this leg holding ``quantity`` contracts on the same side."""
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")
        signed = -quantity if self.is_short else quantity
        return replace(self, contracts=signed)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "strike": self.strike,
            "expiry": self.expiry.isoformat(),
            "kind": self.kind.value,
            "contracts": self.contracts,
            "premium": self.premium,
            "current_value": self.current_value,
        }

    def __str__(self) -> str:
        side = "Short" if self.is_short else "Long"
        return (
            f"{side} {self.abs_contracts} {self.symbol} ${self.strike:.2f} "
            f"{self.kind.value.title()} exp {self.expiry.isoformat()}"
        )
