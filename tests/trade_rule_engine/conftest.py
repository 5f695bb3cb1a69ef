"""
Shared fixtures for the trade rule engine tests.

All tests run against a fixed clock:
    NOW = Wednesday 2024-01-10 12:00 UTC
"""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from trade_rule_engine import (
    Candidate,
    HistoricalAggregator,
    MockClock,
    TradeDirection,
    TradeRecord,
    TradeStatus,
    get_testing_config,
)


NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Mock clock pinned to NOW."""
    return MockClock(NOW)


@pytest.fixture
def settings():
    """Every cap unlimited, base capital 10,000, UTC."""
    config = get_testing_config()
    config.capital.account_size = 10000.0
    return config


@pytest.fixture
def make_trade():
    """
    Factory for trade records.

    Closed trades exit one hour after entry unless given.
    """
    ids = count(1)

    def _make(
        entry_time=NOW - timedelta(hours=1),
        entry_price=100.0,
        stop_loss=None,
        position_size=1.0,
        leverage=None,
        pnl=None,
        closed=None,
        exit_time=None,
        asset="EURUSD",
    ):
        is_closed = closed if closed is not None else pnl is not None
        if is_closed and exit_time is None:
            exit_time = entry_time + timedelta(hours=1)
        return TradeRecord(
            trade_id=f"T{next(ids)}",
            asset=asset,
            direction=TradeDirection.LONG,
            entry_price=entry_price,
            position_size=position_size,
            entry_time=entry_time,
            stop_loss=stop_loss,
            leverage=leverage,
            exit_time=exit_time if is_closed else None,
            pnl=pnl,
            status=TradeStatus.CLOSED if is_closed else TradeStatus.OPEN,
        )

    return _make


@pytest.fixture
def aggregate():
    """Aggregate trades for the given settings at NOW (or ``at``)."""

    def _aggregate(trades, settings, at=NOW):
        return HistoricalAggregator.from_settings(settings).aggregate(trades, at)

    return _aggregate


@pytest.fixture
def candidate():
    """entry=100, stop=95, size=50 → risk 250."""
    return Candidate(
        asset="EURUSD",
        direction=TradeDirection.LONG,
        entry_price=100.0,
        stop_loss=95.0,
        position_size=50.0,
    )
