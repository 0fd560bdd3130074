"""Tests for leg, account, Greeks and strategy records."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from hypothesis import given, strategies as st

from wheel_engine.models import (
    AccountContext,
    AssignmentSource,
    GreeksQuote,
    OptionKind,
    OptionLeg,
    QuoteKey,
    RiskKind,
    RiskProfile,
    StrategyType,
    WheelMetrics,
    format_strike,
)

from conftest import make_leg


class TestOptionLeg:
    """Signed quantity semantics and validation."""

    def test_short_leg_properties(self, ibit_call: OptionLeg) -> None:
        assert ibit_call.is_short
        assert not ibit_call.is_long
        assert ibit_call.abs_contracts == 1
        assert round(ibit_call.premium_total, 2) == 228.32
        assert round(ibit_call.current_value_total, 2) == 635.0

    def test_signed_premium_is_credit_for_shorts(self) -> None:
        short = make_leg(contracts=-2, premium=1.5)
        long = make_leg(contracts=3, premium=1.5)
        assert short.signed_premium == pytest.approx(300.0)
        assert long.signed_premium == pytest.approx(-450.0)

    def test_zero_contracts_rejected(self) -> None:
        with pytest.raises(ValueError, match="cannot be zero"):
            make_leg(contracts=0)

    def test_non_integer_contracts_rejected(self) -> None:
        with pytest.raises(TypeError):
            make_leg(contracts=1.5)  # type: ignore[arg-type]

    def test_lowercase_symbol_rejected(self) -> None:
        with pytest.raises(ValueError, match="uppercase"):
            make_leg(symbol="ibit")

    def test_non_positive_strike_rejected(self) -> None:
        with pytest.raises(ValueError, match="Strike"):
            make_leg(strike=0.0)

    def test_negative_premium_rejected(self) -> None:
        with pytest.raises(ValueError, match="Premium"):
            make_leg(premium=-1.0)

    def test_immutability(self, ibit_call: OptionLeg) -> None:
        with pytest.raises(AttributeError):
            ibit_call.contracts = 5  # type: ignore[misc]

    def test_with_contracts_keeps_side(self) -> None:
        short = make_leg(contracts=-5)
        assert short.with_contracts(2).contracts == -2
        long = make_leg(contracts=5)
        assert long.with_contracts(2).contracts == 2
        with pytest.raises(ValueError):
            short.with_contracts(0)

    def test_str(self, ibit_call: OptionLeg) -> None:
        assert str(ibit_call) == "Short 1 IBIT $61.00 Call exp 2025-07-18"

    @given(
        contracts=st.integers(min_value=-500, max_value=500).filter(lambda c: c != 0),
        premium=st.floats(min_value=0.0, max_value=1000.0, allow_nan=False),
    )
    def test_premium_total_is_never_negative(self, contracts: int, premium: float) -> None:
        leg = make_leg(contracts=contracts, premium=premium)
        assert leg.premium_total >= 0
        assert leg.abs_contracts == abs(contracts)


class TestQuoteKey:
    """Persisted string identity of a contract."""

    def test_string_form(self) -> None:
        key = QuoteKey("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL)
        assert str(key) == "IBIT-61-2025-07-18-CALL"

    def test_fractional_strike(self) -> None:
        key = QuoteKey("ETHA", 19.5, date(2025, 8, 15), OptionKind.PUT)
        assert str(key) == "ETHA-19.5-2025-08-15-PUT"
        assert QuoteKey.parse(str(key)) == key

    def test_hyphenated_symbol_parses(self) -> None:
        key = QuoteKey("BRK-B", 450.0, date(2025, 9, 19), OptionKind.PUT)
        assert QuoteKey.parse(str(key)) == key

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            QuoteKey.parse("IBIT-61")

    def test_leg_quote_key(self, ibit_call: OptionLeg) -> None:
        assert ibit_call.quote_key == QuoteKey("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL)

    def test_format_strike(self) -> None:
        assert format_strike(61.0) == "61"
        assert format_strike(2.50) == "2.5"
        assert format_strike(0.1234) == "0.1234"


class TestAccountContext:
    """Account snapshot normalization."""

    def test_symbols_are_uppercased(self) -> None:
        account = AccountContext(shares={"ibit": 300}, cost_basis={"ibit": 50.0})
        assert account.shares_for("IBIT") == 300
        assert account.cost_basis_for("Ibit") == 50.0

    def test_missing_symbol(self) -> None:
        account = AccountContext()
        assert account.shares_for("ETHA") == 0
        assert account.cost_basis_for("ETHA") is None

    def test_negative_shares_rejected(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            AccountContext(shares={"IBIT": -100})

    def test_non_positive_basis_rejected(self) -> None:
        with pytest.raises(ValueError, match="Cost basis"):
            AccountContext(cost_basis={"IBIT": 0.0})

    def test_mappings_are_read_only(self) -> None:
        account = AccountContext(shares={"IBIT": 100})
        with pytest.raises(TypeError):
            account.shares["IBIT"] = 200  # type: ignore[index]


class TestGreeksQuote:
    """Greeks validation and serialization."""

    def test_delta_range(self) -> None:
        with pytest.raises(ValueError, match="Delta"):
            GreeksQuote(delta=1.5)

    def test_negative_gamma_rejected(self) -> None:
        with pytest.raises(ValueError, match="Gamma"):
            GreeksQuote(gamma=-0.1)

    def test_naive_timestamp_rejected(self) -> None:
        with pytest.raises(ValueError, match="timezone-aware"):
            GreeksQuote(delta=0.3, fetched_at=datetime(2025, 7, 1))

    def test_abs_delta(self) -> None:
        assert GreeksQuote(delta=-0.35).abs_delta == 0.35
        assert GreeksQuote().abs_delta is None

    def test_dict_round_trip(self) -> None:
        fetched = datetime(2025, 7, 1, 15, 0, tzinfo=timezone.utc)
        quote = GreeksQuote(delta=0.42, gamma=0.03, theta=-0.05, vega=0.1,
                            implied_volatility=0.55, fetched_at=fetched)
        assert GreeksQuote.from_dict(quote.to_dict()) == quote

    def test_str_empty(self) -> None:
        assert str(GreeksQuote()) == "GreeksQuote(empty)"


class TestStrategyRecords:
    """Risk profile and wheel metric invariants."""

    def test_vertical_flags(self) -> None:
        assert StrategyType.BULL_PUT_SPREAD.is_vertical
        assert StrategyType.BULL_PUT_SPREAD.is_credit_vertical
        assert StrategyType.BULL_CALL_SPREAD.is_vertical
        assert not StrategyType.BULL_CALL_SPREAD.is_credit_vertical
        assert not StrategyType.IRON_CONDOR.is_vertical

    def test_twelve_variants(self) -> None:
        assert len(StrategyType) == 12

    def test_too_many_breakevens(self) -> None:
        with pytest.raises(ValueError, match="breakevens"):
            RiskProfile(0.0, None, None, (1.0, 2.0, 3.0), RiskKind.DEFINED)

    def test_unbounded_loss_has_no_value(self) -> None:
        with pytest.raises(ValueError, match="Unbounded max loss"):
            RiskProfile(100.0, 100.0, 500.0, (), RiskKind.UNDEFINED, max_loss_unbounded=True)

    def test_assignment_probability_range(self, ibit_call: OptionLeg) -> None:
        with pytest.raises(ValueError, match="Assignment probability"):
            WheelMetrics(
                leg=ibit_call,
                premium_collected=228.32,
                current_value=635.0,
                option_mtm=-406.68,
                wheel_net=None,
                assignment_probability=1.2,
                assignment_source=AssignmentSource.DELTA,
            )
