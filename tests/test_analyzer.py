"""End-to-end tests for the position analyzer."""

from __future__ import annotations

from datetime import date

import pytest

from wheel_engine.api import PositionAnalyzer, parse_account
from wheel_engine.config import EngineConfig
from wheel_engine.greeks import GreeksCache, GreeksFetcher, GreeksResult, ResultStatus, SlidingWindowRateLimiter
from wheel_engine.models import AssignmentSource, GreeksQuote, OptionKind, QuoteKey, StrategyType
from wheel_engine.storage import MemoryStore

from conftest import raw_leg

IBIT_KEY = QuoteKey("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL)


def _bull_put() -> list[dict]:
    return [
        raw_leg(symbol="XYZ", strike=30, optionType="PUT", contracts=5, premium=1.006, currentValue=0.5),
        raw_leg(symbol="XYZ", strike=33, optionType="PUT", contracts=-5, premium=2.094, currentValue=1.2),
    ]


class StaticProvider:
    """Provider answering every key with a fixed delta."""

    def __init__(self) -> None:
        self.keys: list[QuoteKey] = []

    async def fetch(self, key: QuoteKey) -> GreeksQuote:
        self.keys.append(key)
        return GreeksQuote(delta=0.61 if key.kind is OptionKind.CALL else -0.25)


class TestParseAccount:
    def test_camel_case(self) -> None:
        account = parse_account(
            {"sharesPerSymbol": {"ibit": 1400}, "costBasisPerSymbol": {"IBIT": "59.09"}, "cashBalance": "$12,500"}
        )
        assert account.shares_for("IBIT") == 1400
        assert account.cost_basis_for("IBIT") == 59.09
        assert account.cash_balance == 12500.0

    def test_snake_case(self) -> None:
        account = parse_account({"shares_per_symbol": {"ETHA": 300}, "cash_balance": 100})
        assert account.shares_for("ETHA") == 300
        assert account.cost_basis_for("ETHA") is None

    def test_missing_is_empty(self) -> None:
        account = parse_account(None)
        assert dict(account.shares) == {}
        assert account.cash_balance == 0.0

    def test_fractional_shares(self) -> None:
        with pytest.raises(ValueError, match="whole"):
            parse_account({"sharesPerSymbol": {"IBIT": 1.5}})

    def test_non_numeric(self) -> None:
        with pytest.raises(ValueError):
            parse_account({"cashBalance": "lots"})

    def test_wrong_shape(self) -> None:
        with pytest.raises(ValueError, match="must be objects"):
            parse_account({"sharesPerSymbol": [1400]})


class TestAnalyze:
    """Raw legs in, classified strategies out."""

    def test_covered_call_and_bull_put(self) -> None:
        account = parse_account({"sharesPerSymbol": {"IBIT": 1400}, "costBasisPerSymbol": {"IBIT": 59.09}})
        result = PositionAnalyzer().analyze([raw_leg(), *_bull_put()], account, {"IBIT": 66.0})

        assert [s.strategy_type for s in result.strategies] == [
            StrategyType.COVERED_CALL,
            StrategyType.BULL_PUT_SPREAD,
        ]
        covered = result.by_type(StrategyType.COVERED_CALL)[0]
        assert covered.risk.max_profit == 419.32
        assert covered.wheel_metrics[0].wheel_net == 419.32
        assert covered.wheel_metrics[0].option_mtm == -406.68
        assert covered.wheel_metrics[0].assignment_source is AssignmentSource.MONEYNESS

        spread = result.by_type(StrategyType.BULL_PUT_SPREAD)[0]
        assert spread.risk.max_profit == 544.0
        assert spread.risk.max_loss == 956.0
        assert spread.wheel_metrics[0].wheel_net is None
        assert spread.wheel_metrics[0].assignment_source is AssignmentSource.UNAVAILABLE

        assert [s.symbol for s in result.summaries] == ["IBIT", "XYZ"]
        assert result.rejected == ()
        assert result.timeframes == ()

    def test_malformed_leg_is_skipped(self) -> None:
        result = PositionAnalyzer().analyze(
            [raw_leg(), raw_leg(strike="abc")], parse_account({"sharesPerSymbol": {"IBIT": 100}})
        )
        assert len(result.strategies) == 1
        assert result.rejected[0].index == 1
        assert result.rejected[0].field == "strike"

    def test_supplied_greeks_drive_assignment(self) -> None:
        account = parse_account({"sharesPerSymbol": {"IBIT": 1400}})
        greeks = {IBIT_KEY: GreeksResult(IBIT_KEY, GreeksQuote(delta=0.42), ResultStatus.STALE)}
        result = PositionAnalyzer().analyze([raw_leg()], account, {"IBIT": 66.0}, greeks=greeks)

        metrics = result.wheel_metrics[0]
        assert metrics.assignment_probability == 0.42
        assert metrics.assignment_source is AssignmentSource.DELTA
        assert metrics.greeks_stale
        assert result.greeks_status == {"IBIT-61-2025-07-18-CALL": "stale"}

    def test_timeframes_with_valuation_date(self) -> None:
        account = parse_account({"sharesPerSymbol": {"IBIT": 1400}})
        result = PositionAnalyzer().analyze([raw_leg()], account, as_of=date(2025, 7, 1))

        assert len(result.timeframes) == 1
        bucket = result.timeframes[0]
        assert bucket.label == "Next 30 Days"
        assert bucket.total_premium == 228.32
        assert bucket.shares_at_risk == 100

    def test_total_premium_basis(self) -> None:
        config = EngineConfig(analysis={"premium_basis": "total"})
        account = parse_account({"sharesPerSymbol": {"IBIT": 100}})
        result = PositionAnalyzer(config).analyze([raw_leg(premium=228.32, currentValue=635)], account)

        assert result.wheel_metrics[0].premium_collected == 228.32
        assert result.wheel_metrics[0].current_value == 635.0

    def test_to_dict(self) -> None:
        result = PositionAnalyzer().analyze([raw_leg()], parse_account({"sharesPerSymbol": {"IBIT": 100}}))
        payload = result.to_dict()

        assert set(payload) == {"strategies", "summaries", "rejected", "greeks", "timeframes"}
        assert payload["strategies"][0]["strategy"] == "CoveredCall"
        assert payload["strategies"][0]["expiry"] == "2025-07-18"


class TestAnalyzeWithGreeks:
    @pytest.mark.asyncio
    async def test_fetches_short_legs_only(self) -> None:
        provider = StaticProvider()
        fetcher = GreeksFetcher(
            provider,
            GreeksCache(MemoryStore()),
            SlidingWindowRateLimiter(10_000, 1.0),
            retry_backoff=0.0,
        )
        account = parse_account({"sharesPerSymbol": {"IBIT": 1400}})

        result = await PositionAnalyzer().analyze_with_greeks(
            [raw_leg(), *_bull_put()], account, fetcher, {"IBIT": 66.0}
        )

        assert sorted(provider.keys) == [
            IBIT_KEY,
            QuoteKey("XYZ", 33.0, date(2025, 7, 18), OptionKind.PUT),
        ]
        assert set(result.greeks_status.values()) == {"fetched"}

        by_symbol = {m.leg.symbol: m for m in result.wheel_metrics}
        assert by_symbol["IBIT"].assignment_probability == 0.61
        assert by_symbol["XYZ"].assignment_probability == 0.25
        assert not by_symbol["IBIT"].greeks_stale
