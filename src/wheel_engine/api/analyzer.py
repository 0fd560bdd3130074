"""
Position analysis entry point.

Runs raw legs through normalization, strategy detection, risk calculation
and wheel analytics. Greeks are optional: ``analyze`` takes whatever the
caller already has, ``analyze_with_greeks`` fetches them first.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from ..analytics import TimeframeBucket, WheelAnalytics, WheelSummary, group_by_timeframe
from ..config import EngineConfig
from ..exceptions import LegValidationError
from ..greeks import GreeksFetcher, GreeksResult
from ..models import AccountContext, QuoteKey, Strategy, StrategyType, WheelMetrics
from ..portfolio import NormalizationResult, RejectedLeg, normalize_legs, parse_number
from ..risk import RiskCalculator
from ..strategy import DetectedPosition, StrategyDetector
from ..utils import get_logger, timed_operation

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Everything produced by one analysis run."""

    strategies: tuple[Strategy, ...]
    summaries: tuple[WheelSummary, ...] = field(default_factory=tuple)
    rejected: tuple[RejectedLeg, ...] = field(default_factory=tuple)
    greeks_status: Mapping[str, str] = field(default_factory=dict)
    timeframes: tuple[TimeframeBucket, ...] = field(default_factory=tuple)

    @property
    def wheel_metrics(self) -> list[WheelMetrics]:
        return [m for s in self.strategies for m in s.wheel_metrics]

    def by_type(self, strategy_type: StrategyType) -> list[Strategy]:
        return [s for s in self.strategies if s.strategy_type is strategy_type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategies": [s.to_dict() for s in self.strategies],
            "summaries": [s.to_dict() for s in self.summaries],
            "rejected": [r.to_dict() for r in self.rejected],
            "greeks": dict(self.greeks_status),
            "timeframes": [t.to_dict() for t in self.timeframes],
        }


def _first(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return None


def parse_account(data: Optional[Mapping[str, Any]]) -> AccountContext:
    """
    Build an ``AccountContext`` from the upstream snapshot.

    Accepts ``{sharesPerSymbol, costBasisPerSymbol, cashBalance}`` (snake_case
    spellings too). Missing sections mean no shares, no basis and no cash.

    Raises
    ------
    ValueError
        If a section has the wrong shape or a value is not numeric
    """
    data = data or {}
    shares_raw = _first(data, "sharesPerSymbol", "shares_per_symbol", "shares") or {}
    basis_raw = _first(data, "costBasisPerSymbol", "cost_basis_per_symbol", "cost_basis") or {}
    cash_raw = _first(data, "cashBalance", "cash_balance", "cash")

    if not isinstance(shares_raw, Mapping) or not isinstance(basis_raw, Mapping):
        raise ValueError("sharesPerSymbol and costBasisPerSymbol must be objects")

    shares = {}
    try:
        for symbol, qty in shares_raw.items():
            value = parse_number(qty, f"shares[{symbol}]")
            if not value.is_integer():
                raise ValueError(f"Share count for {symbol} must be whole, got {qty!r}")
            shares[symbol] = int(value)

        basis = {s: parse_number(v, f"cost_basis[{s}]") for s, v in basis_raw.items()}
        cash = parse_number(cash_raw, "cash_balance") if cash_raw is not None else 0.0
    except LegValidationError as e:
        raise ValueError(str(e)) from e

    return AccountContext(shares=shares, cost_basis=basis, cash_balance=cash)


class PositionAnalyzer:
    """
    Orchestrates one analysis run.

    Parameters
    ----------
    config : EngineConfig, optional
        Engine configuration; defaults apply when omitted
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.calculator = RiskCalculator()
        self.wheel = WheelAnalytics(self.config.analysis.moneyness_scale)

    def normalize(self, raw_legs: Iterable[Mapping[str, Any]]) -> NormalizationResult:
        return normalize_legs(raw_legs, premium_basis=self.config.analysis.premium_basis)

    @timed_operation(threshold_ms=250.0)
    def analyze(
        self,
        raw_legs: Iterable[Mapping[str, Any]],
        account: AccountContext,
        current_prices: Optional[Mapping[str, float]] = None,
        greeks: Optional[Mapping[QuoteKey, GreeksResult]] = None,
        as_of: Optional[date] = None,
    ) -> AnalysisResult:
        """Analyze raw legs with whatever Greeks the caller supplies."""
        return self._analyze(self.normalize(raw_legs), account, current_prices, greeks, as_of)

    async def analyze_with_greeks(
        self,
        raw_legs: Iterable[Mapping[str, Any]],
        account: AccountContext,
        fetcher: GreeksFetcher,
        current_prices: Optional[Mapping[str, float]] = None,
        as_of: Optional[date] = None,
    ) -> AnalysisResult:
        """Fetch Greeks for every short leg, then analyze."""
        normalized = self.normalize(raw_legs)
        keys = [leg.quote_key for leg in normalized.legs if leg.is_short]
        greeks = await fetcher.fetch_many(keys)
        return self._analyze(normalized, account, current_prices, greeks, as_of)

    def _analyze(
        self,
        normalized: NormalizationResult,
        account: AccountContext,
        current_prices: Optional[Mapping[str, float]],
        greeks: Optional[Mapping[QuoteKey, GreeksResult]],
        as_of: Optional[date],
    ) -> AnalysisResult:
        prices = {k.upper(): float(v) for k, v in (current_prices or {}).items()}
        greeks = greeks or {}

        detected = StrategyDetector(prices).detect(normalized.legs, account)

        strategies = []
        metrics_by_symbol: dict[str, list[WheelMetrics]] = defaultdict(list)
        for position in detected:
            strategy = self._build_strategy(position, account, prices.get(position.symbol), greeks)
            strategies.append(strategy)
            metrics_by_symbol[strategy.symbol].extend(strategy.wheel_metrics)

        summaries = tuple(
            self.wheel.summarize_symbol(symbol, items, account, prices.get(symbol), as_of)
            for symbol, items in sorted(metrics_by_symbol.items())
            if items
        )

        timeframes: tuple[TimeframeBucket, ...] = ()
        if as_of is not None:
            all_metrics = [m for items in metrics_by_symbol.values() for m in items]
            timeframes = tuple(group_by_timeframe(all_metrics, as_of))

        logger.info(
            "Analysis complete",
            extra={
                "legs": len(normalized.legs),
                "rejected": len(normalized.rejected),
                "strategies": len(strategies),
                "greeks_keys": len(greeks),
            },
        )

        return AnalysisResult(
            strategies=tuple(strategies),
            summaries=summaries,
            rejected=normalized.rejected,
            greeks_status={str(k): r.status.value for k, r in sorted(greeks.items())},
            timeframes=timeframes,
        )

    def _build_strategy(
        self,
        position: DetectedPosition,
        account: AccountContext,
        price: Optional[float],
        greeks: Mapping[QuoteKey, GreeksResult],
    ) -> Strategy:
        try:
            risk = self.calculator.calculate(position, account)
        except (ValueError, ZeroDivisionError) as e:
            logger.warning(
                "Risk calculation failed, reporting as Unknown",
                extra={"symbol": position.symbol, "strategy": position.strategy_type.value, "error": str(e)},
            )
            position = DetectedPosition(
                StrategyType.UNKNOWN, position.symbol, position.expiry, position.legs
            )
            risk = self.calculator.calculate(position, account)

        metrics = []
        for leg in position.legs:
            if not leg.is_short:
                continue
            result = greeks.get(leg.quote_key)
            quote = result.quote if result is not None else None
            stale = result.is_stale if result is not None else False
            metrics.append(self.wheel.metrics_for(leg, account, price, quote, stale))

        return Strategy(
            strategy_type=position.strategy_type,
            symbol=position.symbol,
            expiry=position.expiry,
            legs=position.legs,
            risk=risk,
            wheel_metrics=tuple(metrics),
        )
