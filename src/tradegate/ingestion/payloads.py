"""
Inbound payload shapes, one variant per sender kind.

Payloads are validated into a tagged union at the boundary; nothing past
the normalizer ever sees a raw dict. Numeric fields are deliberately
loose here (negative and non-finite values are accepted) so the
normalizer can apply and record its safe-positive coercions.
"""

import json
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from tradegate.core.errors import MalformedSignal
from tradegate.core.types import PayloadKind

RawTimestamp = Union[int, float, str, datetime]
RawTimeframe = Union[int, float, str]


class PayloadSection(BaseModel):
    """Base for payload sections; unknown sender fields are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class InstrumentInfo(PayloadSection):
    ticker: str = Field(min_length=1)
    exchange: Optional[str] = None
    current_price: float

    @field_validator('ticker', mode='before')
    @classmethod
    def strip_ticker(cls, v):
        return v.strip() if isinstance(v, str) else v


class EntryLevels(PayloadSection):
    price: Optional[float] = None
    stop_loss: Optional[float] = None
    target_1: Optional[float] = None
    target_2: Optional[float] = None
    stop_reason: Optional[str] = None


class RiskInfo(PayloadSection):
    amount: Optional[float] = None
    rr_ratio_t1: Optional[float] = None
    rr_ratio_t2: Optional[float] = None
    stop_distance_pct: Optional[float] = None
    position_multiplier: Optional[float] = None
    account_risk_pct: Optional[float] = None


class MarketContextInfo(PayloadSection):
    vwap: Optional[float] = None
    price_vs_vwap_pct: Optional[float] = None
    atr: Optional[float] = None
    volume_vs_avg: Optional[float] = None
    day_change_pct: Optional[float] = None


class TrendInfo(PayloadSection):
    ema_8: Optional[float] = None
    ema_21: Optional[float] = None
    ema_50: Optional[float] = None
    alignment: Optional[str] = None
    strength: Optional[float] = None
    rsi: Optional[float] = None
    macd_signal: Optional[str] = None


# ============================================================================
# TradingView (enriched indicator alert)
# ============================================================================

class TradingViewSignalInfo(PayloadSection):
    type: str
    timeframe: Optional[RawTimeframe] = None
    quality: str = "MEDIUM"
    ai_score: float
    timestamp: Optional[RawTimestamp] = None
    bar_time: Optional[RawTimestamp] = None


class TradingViewPayload(PayloadSection):
    """
    Enriched TradingView alert.

    Sender-supplied time context (market session, day of week) may be
    present in the JSON but is not modeled; those values are derived.
    """

    kind: Literal["tradingview"] = "tradingview"
    signal: TradingViewSignalInfo
    instrument: InstrumentInfo
    entry: EntryLevels = Field(default_factory=EntryLevels)
    risk: RiskInfo = Field(default_factory=RiskInfo)
    market_context: MarketContextInfo = Field(default_factory=MarketContextInfo)
    trend: TrendInfo = Field(default_factory=TrendInfo)
    score_breakdown: Dict[str, float] = Field(default_factory=dict)
    components: List[str] = Field(default_factory=list)

    @property
    def bar_time(self) -> Optional[RawTimestamp]:
        return self.signal.bar_time if self.signal.bar_time is not None else self.signal.timestamp


# ============================================================================
# Ultimate Options (minimal alert)
# ============================================================================

class UltimateOptionsSignalInfo(PayloadSection):
    type: str
    ai_score: float
    quality: str = "MEDIUM"
    timeframe: Optional[RawTimeframe] = None


class UltimateOptionsPayload(PayloadSection):
    """Minimal options alert: no levels, so they are derived downstream."""

    kind: Literal["ultimate_options"] = "ultimate_options"
    signal: UltimateOptionsSignalInfo
    instrument: InstrumentInfo
    components: List[str] = Field(default_factory=list)
    risk: RiskInfo = Field(default_factory=RiskInfo)
    entry: EntryLevels = Field(default_factory=EntryLevels)
    timestamp: Optional[RawTimestamp] = None

    @property
    def bar_time(self) -> Optional[RawTimestamp]:
        return self.timestamp


SignalPayload = Annotated[
    Union[TradingViewPayload, UltimateOptionsPayload],
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER = TypeAdapter(SignalPayload)


def _decode(body: Union[bytes, str, Dict[str, Any]]) -> Dict[str, Any]:
    data: Any = body
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        if isinstance(data, str):
            data = json.loads(data)
        # TradingView may wrap the alert JSON as a string under "text"
        if isinstance(data, dict) and set(data) == {"text"} and isinstance(data["text"], str):
            data = json.loads(data["text"])
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedSignal("body", f"Malformed signal: body is not valid JSON ({e})") from e

    if not isinstance(data, dict):
        raise MalformedSignal("body", "Malformed signal: payload must be a JSON object")
    return data


def parse_payload(
    kind: PayloadKind,
    body: Union[bytes, str, Dict[str, Any]]
) -> Union[TradingViewPayload, UltimateOptionsPayload]:
    """
    Validate a raw body into the payload variant for `kind`.

    The variant tag comes from the router's sender binding, never from the
    body itself.

    Raises:
        MalformedSignal: Body is not JSON or a required field is missing/invalid
    """
    data = {**_decode(body), "kind": kind.value}
    try:
        return _PAYLOAD_ADAPTER.validate_python(data)
    except ValidationError as e:
        error = e.errors()[0]
        loc = [str(part) for part in error["loc"]]
        if loc and loc[0] == kind.value:
            loc = loc[1:]
        field = ".".join(loc) or "body"
        raise MalformedSignal(field, f"Malformed signal: field '{field}': {error['msg']}") from e
