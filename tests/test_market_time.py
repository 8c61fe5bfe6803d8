"""
Tests for market calendar and timeframe helpers.

Tests:
1. Session buckets in America/New_York (including DST)
2. Weekend detection and day of week
3. Timeframe normalization, labels and trade types
"""

from datetime import datetime, timezone

import pytest

from tradegate.core.market_time import (
    day_of_week,
    market_session,
    normalize_timeframe,
    timeframe_label,
    trade_type,
)
from tradegate.core.types import MarketSession, TradeType


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize("moment,expected", [
    (utc(2024, 1, 10, 14, 0), MarketSession.PREMARKET),    # 09:00 EST
    (utc(2024, 1, 10, 15, 0), MarketSession.OPEN),         # 10:00 EST
    (utc(2024, 1, 10, 18, 0), MarketSession.MIDDAY),       # 13:00 EST
    (utc(2024, 1, 10, 20, 30), MarketSession.POWER_HOUR),  # 15:30 EST
    (utc(2024, 1, 10, 21, 30), MarketSession.AFTERHOURS),  # 16:30 EST
    (utc(2024, 1, 10, 2, 0), MarketSession.CLOSED),        # 21:00 EST previous day
    (utc(2024, 7, 10, 13, 45), MarketSession.OPEN),        # 09:45 EDT
    (utc(2024, 1, 13, 15, 0), MarketSession.WEEKEND),      # Saturday
])
def test_market_session(moment, expected):
    """Test session buckets are computed in New York time."""
    assert market_session(moment) == expected


def test_naive_timestamps_are_utc():
    """Test naive datetimes are treated as UTC."""
    assert market_session(datetime(2024, 1, 10, 15, 0)) == MarketSession.OPEN


def test_day_of_week_uses_market_time():
    """Test day of week rolls back across midnight UTC."""
    assert day_of_week(utc(2024, 1, 10, 15, 0)) == "WEDNESDAY"
    assert day_of_week(utc(2024, 1, 11, 2, 0)) == "WEDNESDAY"


@pytest.mark.parametrize("raw,expected", [
    ("15", "15"),
    (15, "15"),
    ("15m", "15"),
    ("1", "3"),
    ("10", "15"),
    ("45", "60"),
    ("1H", "60"),
    ("4h", "240"),
    ("D", "240"),
    (1440, "240"),
])
def test_normalize_timeframe(raw, expected):
    """Test timeframes map to the first bucket at or above them."""
    assert normalize_timeframe(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "0", "-5", float("nan"), True])
def test_normalize_timeframe_rejects_invalid(raw):
    with pytest.raises(ValueError):
        normalize_timeframe(raw)


def test_timeframe_label_and_trade_type():
    assert timeframe_label("5") == "5m"
    assert timeframe_label("60") == "1h"
    assert timeframe_label("240") == "4h"

    assert trade_type("3") == TradeType.SCALP
    assert trade_type("5") == TradeType.SCALP
    assert trade_type("15") == TradeType.DAY
    assert trade_type("60") == TradeType.DAY
    assert trade_type("240") == TradeType.SWING
