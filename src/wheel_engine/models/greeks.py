"""Greeks quote model with validation ranges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GreeksQuote:
    """
    Risk sensitivities for a single option contract.

    All sensitivities are optional because providers omit them for illiquid
    contracts. ``fetched_at`` is always timezone-aware UTC.

    Attributes
    ----------
    delta : Optional[float]
        Range: [-1, 1] (calls: [0, 1], puts: [-1, 0])
    gamma : Optional[float]
        Range: [0, inf)
    theta : Optional[float]
        Per-day time decay, usually negative
    vega : Optional[float]
        Range: [0, inf)
    implied_volatility : Optional[float]
        Annualized, as a fraction (0.55 = 55%)
    fetched_at : datetime
        When the provider produced the quote

    Examples
    --------
    >>> quote = GreeksQuote(delta=-0.35, gamma=0.02)
    >>> quote.abs_delta
    0.35
    """

    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    implied_volatility: Optional[float] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        """Validate Greek values are within expected ranges."""
        if self.delta is not None and not -1 <= self.delta <= 1:
            raise ValueError(f"Delta must be between -1 and 1, got {self.delta}")

        if self.gamma is not None and self.gamma < 0:
            raise ValueError(f"Gamma must be non-negative, got {self.gamma}")

        if self.vega is not None and self.vega < 0:
            raise ValueError(f"Vega must be non-negative, got {self.vega}")

        if self.implied_volatility is not None and self.implied_volatility < 0:
            raise ValueError(
                f"Implied volatility must be non-negative, got {self.implied_volatility}"
            )

        if self.theta is not None and self.theta > 0:
            logger.warning("Positive theta detected (unusual)", extra={"theta": self.theta})

        if self.fetched_at.tzinfo is None:
            raise ValueError("fetched_at must be timezone-aware")

    @property
    def abs_delta(self) -> Optional[float]:
        return None if self.delta is None else abs(self.delta)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "delta": self.delta,
            "gamma": self.gamma,
            "theta": self.theta,
            "vega": self.vega,
            "implied_volatility": self.implied_volatility,
            "fetched_at": self.fetched_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GreeksQuote:
        """Create a quote from its serialized form."""
        fetched_raw = data.get("fetched_at")
        fetched_at = (
            datetime.fromisoformat(fetched_raw)
            if isinstance(fetched_raw, str)
            else datetime.now(timezone.utc)
        )
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return cls(
            delta=data.get("delta"),
            gamma=data.get("gamma"),
            theta=data.get("theta"),
            vega=data.get("vega"),
            implied_volatility=data.get("implied_volatility"),
            fetched_at=fetched_at,
        )

    def __str__(self) -> str:
        parts = []
        if self.delta is not None:
            parts.append(f"Δ={self.delta:.3f}")
        if self.gamma is not None:
            parts.append(f"Γ={self.gamma:.3f}")
        if self.theta is not None:
            parts.append(f"Θ={self.theta:.3f}")
        if self.vega is not None:
            parts.append(f"ν={self.vega:.3f}")
        if self.implied_volatility is not None:
            parts.append(f"IV={self.implied_volatility:.1%}")

        return f"GreeksQuote({', '.join(parts)})" if parts else "GreeksQuote(empty)"
