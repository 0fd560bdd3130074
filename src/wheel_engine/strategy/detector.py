"""Classify normalized legs into named option strategies.

Legs are grouped per underlying, then per expiry, and matched most-specific
first: iron condors, then vertical spreads, then single-leg positions. The
detector keeps no state between calls, so distinct symbols can be processed
concurrently.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ..models import CONTRACT_MULTIPLIER, AccountContext, OptionKind, OptionLeg, StrategyType
from ..utils import get_logger, timed_operation

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetectedPosition:
    """Legs that together form one strategy, ordered by strike."""

    strategy_type: StrategyType
    symbol: str
    expiry: date
    legs: tuple[OptionLeg, ...]

    @property
    def quantity(self) -> int:
        """Contracts per leg of the structure."""
        return min(leg.abs_contracts for leg in self.legs)


class _PoolEntry:
    __slots__ = ("leg", "remaining")

    def __init__(self, leg: OptionLeg):
        self.leg = leg
        self.remaining = leg.abs_contracts

    def take(self, quantity: int) -> OptionLeg:
        self.remaining -= quantity
        return self.leg.with_contracts(quantity)


class _Coverage:
    """Shares and cash of one underlying not yet pledged to a covered call or secured put."""

    __slots__ = ("shares", "cash")

    def __init__(self, shares: int, cash: float):
        self.shares = shares
        self.cash = cash


class _LegPool:
    """Working set of one (symbol, expiry) group; quantities are consumed as legs match."""

    def __init__(self, legs: Iterable[OptionLeg]):
        ordered = sorted(
            legs,
            key=lambda leg: (
                leg.strike,
                leg.kind.value,
                leg.contracts,
                leg.premium,
                leg.current_value,
            ),
        )
        self.entries = [_PoolEntry(leg) for leg in ordered]

    def available(self, kind: OptionKind, short: bool) -> list[_PoolEntry]:
        return [
            e
            for e in self.entries
            if e.remaining > 0 and e.leg.kind is kind and e.leg.is_short == short
        ]

    def leftovers(self) -> list[OptionLeg]:
        return [e.leg.with_contracts(e.remaining) for e in self.entries if e.remaining > 0]


class StrategyDetector:
    """
    Deterministic strategy classifier.

    Parameters
    ----------
    current_prices : Mapping[str, float], optional
        Underlying prices. When a price is known, an iron condor must have it
        between its short strikes.
    """

    def __init__(self, current_prices: Optional[Mapping[str, float]] = None):
        self.current_prices = {k.upper(): float(v) for k, v in (current_prices or {}).items()}

    @timed_operation(threshold_ms=100.0)
    def detect(self, legs: Iterable[OptionLeg], account: AccountContext) -> list[DetectedPosition]:
        """Classify every leg; each contract ends up in exactly one position."""
        by_symbol: dict[str, list[OptionLeg]] = defaultdict(list)
        for leg in legs:
            by_symbol[leg.symbol].append(leg)

        detected: list[DetectedPosition] = []
        for symbol in sorted(by_symbol):
            detected.extend(self.detect_symbol(symbol, by_symbol[symbol], account))

        logger.debug(
            "Strategies detected",
            extra={
                "symbols": len(by_symbol),
                "positions": len(detected),
            },
        )
        return detected

    def detect_symbol(
        self, symbol: str, legs: Iterable[OptionLeg], account: AccountContext
    ) -> list[DetectedPosition]:
        """Classify the legs of a single underlying."""
        by_expiry: dict[date, list[OptionLeg]] = defaultdict(list)
        for leg in legs:
            by_expiry[leg.expiry].append(leg)

        price = self.current_prices.get(symbol)
        coverage = _Coverage(account.shares_for(symbol), account.cash_balance)
        detected: list[DetectedPosition] = []

        for expiry in sorted(by_expiry):
            group = by_expiry[expiry]
            try:
                positions = self._detect_group(symbol, expiry, group, price, coverage)
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Could not resolve strategy, falling back to Unknown",
                    extra={"symbol": symbol, "expiry": expiry.isoformat(), "error": str(e)},
                )
                positions = [
                    DetectedPosition(
                        StrategyType.UNKNOWN,
                        symbol,
                        expiry,
                        tuple(sorted(group, key=lambda leg: leg.strike)),
                    )
                ]
            detected.extend(positions)

        return detected

    def _detect_group(
        self,
        symbol: str,
        expiry: date,
        legs: list[OptionLeg],
        price: Optional[float],
        coverage: _Coverage,
    ) -> list[DetectedPosition]:
        pool = _LegPool(legs)
        found: list[DetectedPosition] = []

        found.extend(self._match_condors(symbol, expiry, pool, price))
        found.extend(self._match_verticals(symbol, expiry, pool))

        for leg in pool.leftovers():
            strategy_type = self._classify_single(leg, coverage)
            found.append(DetectedPosition(strategy_type, symbol, expiry, (leg,)))

        return found

    def _match_condors(
        self, symbol: str, expiry: date, pool: _LegPool, price: Optional[float]
    ) -> list[DetectedPosition]:
        found = []
        while True:
            combo = self._find_condor(pool, price)
            if combo is None:
                return found
            quantity = min(entry.remaining for entry in combo)
            legs = tuple(entry.take(quantity) for entry in combo)
            found.append(DetectedPosition(StrategyType.IRON_CONDOR, symbol, expiry, legs))

    @staticmethod
    def _find_condor(
        pool: _LegPool, price: Optional[float]
    ) -> Optional[tuple[_PoolEntry, _PoolEntry, _PoolEntry, _PoolEntry]]:
        long_puts = pool.available(OptionKind.PUT, short=False)
        short_puts = pool.available(OptionKind.PUT, short=True)
        short_calls = pool.available(OptionKind.CALL, short=True)
        long_calls = pool.available(OptionKind.CALL, short=False)

        if not (long_puts and short_puts and short_calls and long_calls):
            return None

        for sp in reversed(short_puts):
            for lp in reversed(long_puts):
                if lp.leg.strike >= sp.leg.strike:
                    continue
                for sc in short_calls:
                    if sc.leg.strike <= sp.leg.strike:
                        continue
                    if price is not None and not sp.leg.strike <= price <= sc.leg.strike:
                        continue
                    for lc in long_calls:
                        if lc.leg.strike > sc.leg.strike:
                            return lp, sp, sc, lc
        return None

    def _match_verticals(
        self, symbol: str, expiry: date, pool: _LegPool
    ) -> list[DetectedPosition]:
        found = []
        for kind in (OptionKind.PUT, OptionKind.CALL):
            for short in pool.available(kind, short=True):
                while short.remaining > 0:
                    partner = self._nearest_long(pool, short)
                    if partner is None:
                        break
                    quantity = min(short.remaining, partner.remaining)
                    short_leg = short.take(quantity)
                    long_leg = partner.take(quantity)
                    strategy_type = self._classify_vertical(short_leg, long_leg)
                    legs = tuple(sorted((short_leg, long_leg), key=lambda leg: leg.strike))
                    found.append(DetectedPosition(strategy_type, symbol, expiry, legs))
        return found

    @staticmethod
    def _nearest_long(pool: _LegPool, short: _PoolEntry) -> Optional[_PoolEntry]:
        candidates = [
            e
            for e in pool.available(short.leg.kind, short=False)
            if e.leg.strike != short.leg.strike
        ]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda e: (abs(e.leg.strike - short.leg.strike), e.leg.strike),
        )

    @staticmethod
    def _classify_vertical(short_leg: OptionLeg, long_leg: OptionLeg) -> StrategyType:
        if short_leg.kind is OptionKind.PUT:
            if short_leg.strike > long_leg.strike:
                return StrategyType.BULL_PUT_SPREAD
            return StrategyType.BEAR_PUT_SPREAD
        if short_leg.strike < long_leg.strike:
            return StrategyType.BEAR_CALL_SPREAD
        return StrategyType.BULL_CALL_SPREAD

    @staticmethod
    def _classify_single(leg: OptionLeg, coverage: _Coverage) -> StrategyType:
        required = CONTRACT_MULTIPLIER * leg.abs_contracts

        if leg.is_short and leg.kind is OptionKind.CALL:
            if coverage.shares >= required:
                coverage.shares -= required
                return StrategyType.COVERED_CALL
            return StrategyType.NAKED_CALL

        if leg.is_short and leg.kind is OptionKind.PUT:
            collateral = leg.strike * required
            if coverage.cash >= collateral:
                coverage.cash -= collateral
                return StrategyType.CASH_SECURED_PUT
            return StrategyType.NAKED_PUT

        if leg.is_long and leg.kind is OptionKind.CALL:
            return StrategyType.LONG_CALL

        if leg.is_long and leg.kind is OptionKind.PUT:
            return StrategyType.LONG_PUT

        return StrategyType.UNKNOWN
