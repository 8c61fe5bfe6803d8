"""
Shared enumerations for signals, gates, decisions and the ledger.
"""

from enum import Enum


class Direction(str, Enum):
    """Trade direction."""
    LONG = "LONG"
    SHORT = "SHORT"


class QualityTier(str, Enum):
    """Signal quality tier reported by the sender."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]


_QUALITY_RANK = {
    QualityTier.LOW: 0,
    QualityTier.MEDIUM: 1,
    QualityTier.HIGH: 2,
    QualityTier.EXTREME: 3,
}


class VolatilityRegime(str, Enum):
    """Volatility classification of the current market regime."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class TrendRegime(str, Enum):
    """Trend classification of the current market regime."""
    STRONG_BULL = "STRONG_BULL"
    BULL = "BULL"
    NEUTRAL = "NEUTRAL"
    BEAR = "BEAR"
    STRONG_BEAR = "STRONG_BEAR"


class RegimeBias(str, Enum):
    """Directional bias published with the regime phase."""
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


class MarketSession(str, Enum):
    """US equity session buckets (America/New_York)."""
    PREMARKET = "PREMARKET"
    OPEN = "OPEN"                # 09:30 - 10:30
    MIDDAY = "MIDDAY"            # 10:30 - 15:00
    POWER_HOUR = "POWER_HOUR"    # 15:00 - 16:00
    AFTERHOURS = "AFTERHOURS"    # 16:00 - 20:00
    CLOSED = "CLOSED"
    WEEKEND = "WEEKEND"


class TradeType(str, Enum):
    """Holding style implied by the timeframe bucket."""
    SCALP = "SCALP"
    DAY = "DAY"
    SWING = "SWING"


class GateMode(str, Enum):
    """How a failing gate affects the decision."""
    HARD = "HARD"    # failure forces SKIP
    SOFT = "SOFT"    # failure only lowers the confluence contribution


class DecisionKind(str, Enum):
    """Final verdict for one signal."""
    ACT_LONG = "ACT_LONG"
    ACT_SHORT = "ACT_SHORT"
    WAIT = "WAIT"
    SKIP = "SKIP"

    @property
    def is_actionable(self) -> bool:
        return self in (DecisionKind.ACT_LONG, DecisionKind.ACT_SHORT)


class ExitReason(str, Enum):
    """Reason a position was closed."""
    TARGET_1 = "TARGET_1"
    TARGET_2 = "TARGET_2"
    STOP_LOSS = "STOP_LOSS"
    THETA_DECAY = "THETA_DECAY"
    MANUAL = "MANUAL"


class PayloadKind(str, Enum):
    """Inbound payload shapes accepted by the normalizer."""
    TRADINGVIEW = "tradingview"
    ULTIMATE_OPTIONS = "ultimate_options"


class FrozenDict(dict):
    """
    Read-only dict.

    Still a dict subclass, so pydantic validates, compares and serializes
    it like any other dict field.
    """

    def _readonly(self, *args, **kwargs):
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = _readonly
    __delitem__ = _readonly
    __ior__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly

    def __reduce__(self):
        return (type(self), (dict(self),))

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


def freeze(value):
    """Recursively turn dicts into FrozenDicts and lists into tuples."""
    if isinstance(value, dict):
        return FrozenDict((k, freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value
