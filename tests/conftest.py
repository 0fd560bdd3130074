"""Shared fixtures for wheel engine tests."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from wheel_engine.models import AccountContext, OptionKind, OptionLeg

EXPIRY = date(2025, 7, 18)


def make_leg(
    symbol: str = "IBIT",
    strike: float = 61.0,
    kind: OptionKind = OptionKind.CALL,
    contracts: int = -1,
    premium: float = 1.0,
    current_value: float = 0.5,
    expiry: date = EXPIRY,
) -> OptionLeg:
    return OptionLeg(symbol, strike, expiry, kind, contracts, premium, current_value)


def raw_leg(**overrides: Any) -> dict[str, Any]:
    """A raw record as the extraction front end produces it."""
    record: dict[str, Any] = {
        "symbol": "IBIT",
        "strike": 61,
        "expiry": "Jul-18-2025",
        "optionType": "CALL",
        "contracts": -1,
        "premium": 2.2832,
        "currentValue": 6.35,
    }
    record.update(overrides)
    return record


class VirtualClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds
        await asyncio.sleep(0)


class WallClock:
    """Settable UTC clock for cache ageing."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 7, 1, 14, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def ibit_account() -> AccountContext:
    return AccountContext(shares={"IBIT": 1400}, cost_basis={"IBIT": 59.09}, cash_balance=0.0)


@pytest.fixture
def ibit_call() -> OptionLeg:
    return make_leg("IBIT", 61.0, OptionKind.CALL, -1, 2.2832, 6.35)


@pytest.fixture
def virtual_clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def wall_clock() -> WallClock:
    return WallClock()
