"""
Market calendar and timeframe helpers.

All session math happens in America/New_York regardless of the sender's
clock or timezone conventions.
"""

import math
from datetime import datetime, time, timezone
from typing import Union
from zoneinfo import ZoneInfo

from tradegate.core.types import MarketSession, TradeType

MARKET_TZ = ZoneInfo("America/New_York")

# Minute buckets accepted as canonical timeframes
TIMEFRAME_BUCKETS = (3, 5, 15, 30, 60, 240)

_TIMEFRAME_ALIASES = {
    "H": 60,
    "1H": 60,
    "2H": 120,
    "4H": 240,
    "D": 1440,
    "1D": 1440,
}

_SESSION_BOUNDS = (
    (time(4, 0), MarketSession.CLOSED),
    (time(9, 30), MarketSession.PREMARKET),
    (time(10, 30), MarketSession.OPEN),
    (time(15, 0), MarketSession.MIDDAY),
    (time(16, 0), MarketSession.POWER_HOUR),
    (time(20, 0), MarketSession.AFTERHOURS),
)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_market_time(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(MARKET_TZ)


def day_of_week(value: datetime) -> str:
    """Upper-case weekday name in market time, e.g. 'MONDAY'."""
    return to_market_time(value).strftime("%A").upper()


def market_session(value: datetime) -> MarketSession:
    """Session bucket for a timestamp."""
    local = to_market_time(value)
    if local.weekday() >= 5:
        return MarketSession.WEEKEND

    clock = local.time()
    for upper_bound, session in _SESSION_BOUNDS:
        if clock < upper_bound:
            return session
    return MarketSession.CLOSED


def normalize_timeframe(raw: Union[str, int, float]) -> str:
    """
    Map a sender timeframe onto the nearest canonical bucket.

    Accepts minutes ("15", 15, "15m") and hour/day labels ("1H", "4H", "D").
    The result is the first bucket at or above the requested minutes; longer
    timeframes collapse into the largest bucket.

    Raises:
        ValueError: If the value cannot be read as a positive number of minutes
    """
    if isinstance(raw, bool):
        raise ValueError(f"invalid timeframe: {raw!r}")

    if isinstance(raw, (int, float)):
        minutes = float(raw)
    else:
        text = str(raw).strip().upper()
        if text in _TIMEFRAME_ALIASES:
            minutes = float(_TIMEFRAME_ALIASES[text])
        else:
            if text.endswith("M"):
                text = text[:-1]
            try:
                minutes = float(text)
            except ValueError:
                raise ValueError(f"invalid timeframe: {raw!r}") from None

    if not math.isfinite(minutes) or minutes <= 0:
        raise ValueError(f"invalid timeframe: {raw!r}")

    for bucket in TIMEFRAME_BUCKETS:
        if minutes <= bucket:
            return str(bucket)
    return str(TIMEFRAME_BUCKETS[-1])


def timeframe_label(timeframe: str) -> str:
    """'15' -> '15m', '60' -> '1h', '240' -> '4h'."""
    minutes = int(timeframe)
    if minutes % 60 == 0:
        return f"{minutes // 60}h"
    return f"{minutes}m"


def trade_type(timeframe: str) -> TradeType:
    minutes = int(timeframe)
    if minutes <= 5:
        return TradeType.SCALP
    if minutes <= 60:
        return TradeType.DAY
    return TradeType.SWING
