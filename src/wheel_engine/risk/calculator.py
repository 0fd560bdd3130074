"""Deterministic risk metrics for detected strategies.

All currency values are dollars for the whole position (premium per share
times the 100-share multiplier times contracts). Net premium is signed with
credits positive.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from ..models import (
    CONTRACT_MULTIPLIER,
    AccountContext,
    OptionKind,
    OptionLeg,
    RiskKind,
    RiskProfile,
    StrategyType,
)
from ..strategy import DetectedPosition
from ..utils import get_logger

logger = get_logger(__name__)


def _money(value: float) -> float:
    return round(value, 2)


def _price(value: float) -> float:
    return round(value, 4)


def net_premium(legs: Sequence[OptionLeg]) -> float:
    """Signed premium across legs: shorts contribute credit, longs debit."""
    return _money(sum(leg.signed_premium for leg in legs))


class RiskCalculator:
    """
    Compute a ``RiskProfile`` for each detected strategy.

    Examples
    --------
    >>> from datetime import date
    >>> legs = (
    ...     OptionLeg("XYZ", 30.0, date(2025, 7, 18), OptionKind.PUT, 5, 1.006),
    ...     OptionLeg("XYZ", 33.0, date(2025, 7, 18), OptionKind.PUT, -5, 2.094),
    ... )
    >>> position = DetectedPosition(StrategyType.BULL_PUT_SPREAD, "XYZ", date(2025, 7, 18), legs)
    >>> RiskCalculator().calculate(position, AccountContext()).net_premium
    544.0
    """

    def calculate(self, position: DetectedPosition, account: AccountContext) -> RiskProfile:
        """Dispatch on strategy type; every variant is handled explicitly."""
        strategy_type = position.strategy_type
        legs = position.legs

        if strategy_type.is_vertical:
            return self._vertical(strategy_type, legs)
        if strategy_type is StrategyType.IRON_CONDOR:
            return self._iron_condor(legs)
        if strategy_type is StrategyType.COVERED_CALL:
            return self._covered_call(legs[0], account.cost_basis_for(position.symbol))
        if strategy_type is StrategyType.CASH_SECURED_PUT:
            return self._short_put(legs[0], RiskKind.COVERED)
        if strategy_type is StrategyType.NAKED_PUT:
            return self._short_put(legs[0], RiskKind.UNDEFINED)
        if strategy_type is StrategyType.NAKED_CALL:
            return self._naked_call(legs[0])
        if strategy_type is StrategyType.LONG_CALL:
            return self._long_call(legs[0])
        if strategy_type is StrategyType.LONG_PUT:
            return self._long_put(legs[0])
        return self._unknown(legs)

    def _vertical(self, strategy_type: StrategyType, legs: Sequence[OptionLeg]) -> RiskProfile:
        short = next(leg for leg in legs if leg.is_short)
        long = next(leg for leg in legs if leg.is_long)
        quantity = min(short.abs_contracts, long.abs_contracts)
        shares = CONTRACT_MULTIPLIER * quantity

        premium = net_premium((short, long))
        spread_value = abs(short.strike - long.strike) * shares

        if strategy_type.is_credit_vertical:
            credit = premium
            max_profit = credit
            max_loss = spread_value - credit
            per_share = credit / shares
            if short.kind is OptionKind.PUT:
                breakeven = short.strike - per_share
            else:
                breakeven = short.strike + per_share
        else:
            debit = -premium
            max_profit = spread_value - debit
            max_loss = debit
            per_share = debit / shares
            if long.kind is OptionKind.CALL:
                breakeven = long.strike + per_share
            else:
                breakeven = long.strike - per_share

        return RiskProfile(
            net_premium=premium,
            max_profit=_money(max_profit),
            max_loss=_money(max_loss),
            breakevens=(_price(breakeven),),
            risk_kind=RiskKind.DEFINED,
            collateral=_money(max(max_loss, 0.0)),
        )

    def _iron_condor(self, legs: Sequence[OptionLeg]) -> RiskProfile:
        long_put, short_put, short_call, long_call = legs
        put_side = self._vertical(StrategyType.BULL_PUT_SPREAD, (long_put, short_put))
        call_side = self._vertical(StrategyType.BEAR_CALL_SPREAD, (short_call, long_call))

        quantity = min(leg.abs_contracts for leg in legs)
        shares = CONTRACT_MULTIPLIER * quantity
        credit = _money(put_side.net_premium + call_side.net_premium)
        per_share = credit / shares
        max_loss = put_side.max_loss + call_side.max_loss
        # Margin covers the wider wing only; at most one wing can finish in the money
        widest = max(short_put.strike - long_put.strike, long_call.strike - short_call.strike)
        collateral = max(widest * shares - credit, 0.0)

        return RiskProfile(
            net_premium=credit,
            max_profit=_money(put_side.max_profit + call_side.max_profit),
            max_loss=_money(max_loss),
            breakevens=(_price(short_put.strike - per_share), _price(short_call.strike + per_share)),
            risk_kind=RiskKind.DEFINED,
            collateral=_money(collateral),
        )

    def _covered_call(self, leg: OptionLeg, cost_basis: Optional[float]) -> RiskProfile:
        premium = net_premium((leg,))
        shares = CONTRACT_MULTIPLIER * leg.abs_contracts

        if cost_basis is None:
            logger.debug(
                "No cost basis for covered call, profit and loss unavailable",
                extra={"symbol": leg.symbol, "strike": leg.strike},
            )
            max_profit = None
            max_loss = None
            breakevens: tuple[float, ...] = ()
        else:
            max_profit = _money((leg.strike - cost_basis) * shares + premium)
            # Shares can fall to zero; the premium offsets part of that loss
            max_loss = _money(cost_basis * shares - premium)
            breakevens = (_price(cost_basis - premium / shares),)

        return RiskProfile(
            net_premium=premium,
            max_profit=max_profit,
            max_loss=max_loss,
            breakevens=breakevens,
            risk_kind=RiskKind.COVERED,
            collateral=0.0,
            collateral_shares=shares,
        )

    def _short_put(self, leg: OptionLeg, risk_kind: RiskKind) -> RiskProfile:
        premium = net_premium((leg,))
        shares = CONTRACT_MULTIPLIER * leg.abs_contracts
        obligation = leg.strike * shares

        return RiskProfile(
            net_premium=premium,
            max_profit=premium,
            max_loss=_money(obligation - premium),
            breakevens=(_price(leg.strike - premium / shares),),
            risk_kind=risk_kind,
            collateral=_money(obligation),
        )

    def _naked_call(self, leg: OptionLeg) -> RiskProfile:
        premium = net_premium((leg,))
        shares = CONTRACT_MULTIPLIER * leg.abs_contracts

        return RiskProfile(
            net_premium=premium,
            max_profit=premium,
            max_loss=None,
            breakevens=(_price(leg.strike + premium / shares),),
            risk_kind=RiskKind.UNDEFINED,
            collateral=None,
            max_loss_unbounded=True,
        )

    def _long_call(self, leg: OptionLeg) -> RiskProfile:
        premium = net_premium((leg,))
        shares = CONTRACT_MULTIPLIER * leg.abs_contracts
        debit = -premium

        return RiskProfile(
            net_premium=premium,
            max_profit=None,
            max_loss=_money(debit),
            breakevens=(_price(leg.strike + debit / shares),),
            risk_kind=RiskKind.UNDEFINED,
            collateral=0.0,
            max_profit_unbounded=True,
        )

    def _long_put(self, leg: OptionLeg) -> RiskProfile:
        premium = net_premium((leg,))
        shares = CONTRACT_MULTIPLIER * leg.abs_contracts
        debit = -premium

        return RiskProfile(
            net_premium=premium,
            max_profit=_money(leg.strike * shares - debit),
            max_loss=_money(debit),
            breakevens=(_price(leg.strike - debit / shares),),
            risk_kind=RiskKind.UNDEFINED,
            collateral=0.0,
        )

    def _unknown(self, legs: Sequence[OptionLeg]) -> RiskProfile:
        return RiskProfile(
            net_premium=net_premium(legs),
            max_profit=None,
            max_loss=None,
            breakevens=(),
            risk_kind=RiskKind.UNDEFINED,
        )
