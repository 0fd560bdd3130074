"""Canonicalize raw leg records from the extraction front end.

Raw records arrive with inconsistent date formats, mixed-case symbols and
numbers formatted the way brokerage exports print them. Anything that cannot
be turned into a valid ``OptionLeg`` is dropped with a warning; the rest of
the batch continues.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal, Optional

from ..exceptions import LegValidationError
from ..models import CONTRACT_MULTIPLIER, OptionKind, OptionLeg
from ..utils import get_logger

logger = get_logger(__name__)

PremiumBasis = Literal["per_share", "total"]

# Tried in order after the ISO fast path
_DATE_FORMATS = (
    "%b-%d-%Y",  # Jul-18-2025
    "%B-%d-%Y",  # July-18-2025
    "%b %d %Y",  # Jul 18 2025
    "%b %d, %Y",  # Jul 18, 2025
    "%B %d %Y",
    "%B %d, %Y",
    "%d-%b-%Y",  # 18-Jul-2025
    "%m/%d/%Y",  # 07/18/2025
    "%m/%d/%y",  # 07/18/25
    "%Y%m%d",  # 20250718
    "%Y/%m/%d",
)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "symbol": ("symbol", "ticker", "underlying"),
    "strike": ("strike", "strikePrice", "strike_price"),
    "expiry": ("expiry", "expiration", "expirationDate", "expiration_date"),
    "kind": ("optionType", "option_type", "type", "kind"),
    "contracts": ("contracts", "quantity", "qty"),
    "premium": ("premium", "premiumCollected", "premium_collected"),
    "current_value": ("currentValue", "current_value", "mark"),
}


@dataclass(frozen=True)
class RejectedLeg:
    """A raw record that failed validation."""

    index: int
    raw: Mapping[str, Any]
    reason: str
    field: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "reason": self.reason, "field": self.field}


@dataclass(frozen=True)
class NormalizationResult:
    """Legs that passed validation plus the ones that were dropped."""

    legs: tuple[OptionLeg, ...]
    rejected: tuple[RejectedLeg, ...] = field(default_factory=tuple)


def normalize_expiry(value: Any) -> date:
    """
    Parse an expiry in any supported format into a ``date``.

    >>> normalize_expiry("Jul-18-2025").isoformat()
    '2025-07-18'
    >>> normalize_expiry("2025-07-18").isoformat()
    '2025-07-18'
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise LegValidationError(f"Expiry must be a non-empty string, got {value!r}", "expiry")

    text = value.strip()
    if _ISO_DATE.match(text):
        try:
            return date.fromisoformat(text)
        except ValueError as e:
            raise LegValidationError(f"Invalid ISO expiry {text!r}: {e}", "expiry") from e

    # Drop a trailing time component ("2025-07-18T00:00:00", "07/18/2025 16:00")
    head = re.split(r"[T ]\d{1,2}:\d{2}", text, maxsplit=1)[0].strip()
    if _ISO_DATE.match(head):
        return normalize_expiry(head)

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).date()
        except ValueError:
            continue

    raise LegValidationError(f"Unrecognized expiry format: {text!r}", "expiry")


def parse_number(value: Any, field_name: str) -> float:
    """Parse a numeric field, tolerating ``$``, thousands separators and ``(x)`` negatives."""
    if isinstance(value, bool):
        raise LegValidationError(f"{field_name} must be numeric, got bool", field_name)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace("$", "").replace(",", "")
        negative = cleaned.startswith("(") and cleaned.endswith(")")
        cleaned = cleaned.strip("()").strip()
        try:
            number = float(cleaned)
        except ValueError as e:
            raise LegValidationError(
                f"{field_name} is not numeric: {value!r}", field_name
            ) from e
        if negative:
            number = -number
    else:
        raise LegValidationError(f"{field_name} is not numeric: {value!r}", field_name)

    if number != number or number in (float("inf"), float("-inf")):
        raise LegValidationError(f"{field_name} must be finite, got {value!r}", field_name)
    return number


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    for alias in _FIELD_ALIASES[name]:
        if alias in raw and raw[alias] is not None:
            return raw[alias]
    return None


def _parse_kind(value: Any) -> OptionKind:
    text = str(value or "").strip().upper()
    if text in ("CALL", "C"):
        return OptionKind.CALL
    if text in ("PUT", "P"):
        return OptionKind.PUT
    raise LegValidationError(f"Unknown option type: {value!r}", "kind")


def _parse_contracts(raw: Mapping[str, Any]) -> int:
    value = _pick(raw, "contracts")
    if value is None:
        raise LegValidationError("Missing contract count", "contracts")
    number = parse_number(value, "contracts")
    if not number.is_integer():
        raise LegValidationError(f"Contract count must be whole, got {value!r}", "contracts")
    contracts = int(number)
    if contracts == 0:
        raise LegValidationError("Contract count cannot be zero", "contracts")

    # Some exports carry an unsigned count plus an explicit side
    position = str(raw.get("position") or "").strip().upper()
    if position == "SHORT" and contracts > 0:
        contracts = -contracts
    elif position == "LONG" and contracts < 0:
        contracts = -contracts
    return contracts


def normalize_leg(raw: Mapping[str, Any], premium_basis: PremiumBasis = "per_share") -> OptionLeg:
    """Normalize one raw record or raise ``LegValidationError``."""
    if not isinstance(raw, Mapping):
        raise LegValidationError(f"Leg must be a mapping, got {type(raw).__name__}")

    symbol = str(_pick(raw, "symbol") or "").strip().upper()
    # Option symbols sometimes arrive as "IBIT 07/18/2025 61.00 C"
    symbol = symbol.split(" ")[0]
    if not symbol:
        raise LegValidationError("Missing symbol", "symbol")

    strike_raw = _pick(raw, "strike")
    if strike_raw is None:
        raise LegValidationError("Missing strike", "strike")
    strike = parse_number(strike_raw, "strike")
    if strike <= 0:
        raise LegValidationError(f"Strike must be positive, got {strike_raw!r}", "strike")

    expiry = normalize_expiry(_pick(raw, "expiry"))
    kind = _parse_kind(_pick(raw, "kind"))
    contracts = _parse_contracts(raw)

    premium_raw = _pick(raw, "premium")
    if premium_raw is None:
        raise LegValidationError("Missing premium", "premium")
    premium = abs(parse_number(premium_raw, "premium"))

    current_raw = _pick(raw, "current_value")
    current_value = abs(parse_number(current_raw, "current_value")) if current_raw is not None else 0.0

    if premium_basis == "total":
        divisor = CONTRACT_MULTIPLIER * abs(contracts)
        premium /= divisor
        current_value /= divisor

    return OptionLeg(
        symbol=symbol,
        strike=strike,
        expiry=expiry,
        kind=kind,
        contracts=contracts,
        premium=premium,
        current_value=current_value,
    )


def normalize_legs(
    raw_legs: Iterable[Mapping[str, Any]],
    *,
    premium_basis: PremiumBasis = "per_share",
) -> NormalizationResult:
    """
    Normalize a batch of raw legs.

    Parameters
    ----------
    raw_legs : Iterable[Mapping[str, Any]]
        Records shaped ``{symbol, strike, expiry, optionType, contracts,
        premium, currentValue}``
    premium_basis : {"per_share", "total"}
        Whether ``premium``/``currentValue`` are quoted per share or as dollar
        totals for the whole leg

    Returns
    -------
    NormalizationResult
        Valid legs in input order and the rejected records
    """
    legs: list[OptionLeg] = []
    rejected: list[RejectedLeg] = []

    for index, raw in enumerate(raw_legs):
        try:
            legs.append(normalize_leg(raw, premium_basis))
        except (LegValidationError, ValueError, TypeError) as e:
            field_name = getattr(e, "field", None)
            logger.warning(
                "Skipping malformed leg",
                extra={"index": index, "reason": str(e), "field": field_name},
            )
            rejected.append(
                RejectedLeg(
                    index=index,
                    raw=dict(raw) if isinstance(raw, Mapping) else {"value": raw},
                    reason=str(e),
                    field=field_name,
                )
            )

    return NormalizationResult(legs=tuple(legs), rejected=tuple(rejected))
