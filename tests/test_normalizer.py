"""
Tests for payload parsing and signal normalization.

Tests:
1. TradingView payloads (plain and {"text": ...} wrapped)
2. Derived temporal fields ignore sender-supplied copies
3. Safe-positive coercions are clamped and recorded
4. Malformed payloads name the offending field
5. Ultimate Options payloads get derived levels and sender timeframe
"""

import json
from datetime import datetime, timezone

import pytest

from tradegate.config.settings import GateConfig
from tradegate.core.errors import MalformedSignal
from tradegate.core.types import Direction, MarketSession, PayloadKind, QualityTier, TradeType
from tradegate.ingestion.normalizer import SignalNormalizer
from tradegate.ingestion.payloads import TradingViewPayload, UltimateOptionsPayload, parse_payload

RECEIVED_AT = datetime(2024, 1, 10, 15, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def normalizer():
    return SignalNormalizer(GateConfig())


def normalize(normalizer, kind, body, default_timeframe=None):
    payload = parse_payload(kind, body)
    return normalizer.normalize(payload, RECEIVED_AT, source=kind.value, default_timeframe=default_timeframe)


def test_tradingview_payload(normalizer, tradingview_body):
    """Test a complete TradingView alert becomes the canonical signal."""
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, tradingview_body)

    assert signal.kind == PayloadKind.TRADINGVIEW
    assert signal.ticker == "SPY"
    assert signal.direction == Direction.LONG
    assert signal.timeframe == "15"
    assert signal.quality == QualityTier.HIGH
    assert signal.ai_score == 8.5
    assert signal.entry_price == 450.25
    assert signal.stop_loss == 447.25
    assert signal.target_1 == 456.25
    assert signal.risk.rr_ratio_t1 == 2.0
    assert signal.market.volume_vs_avg == 1.3
    assert signal.trend.alignment == "BULLISH"
    assert signal.component_scores["mtf"] == 1.5
    assert signal.coercions == ()


def test_text_wrapped_payload(normalizer, tradingview_payload):
    """Test the {"text": "<json>"} wrapper is unwrapped."""
    wrapped = json.dumps({"text": json.dumps(tradingview_payload)})
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, wrapped)
    assert signal.ticker == "SPY"


def test_derived_fields_ignore_sender_copies(normalizer, tradingview_body):
    """Test session and day of week come from the bar time, not time_context."""
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, tradingview_body)

    # Payload claims AFTERHOURS on a SUNDAY
    assert signal.market_session == MarketSession.OPEN
    assert signal.day_of_week == "WEDNESDAY"
    assert signal.timeframe_label == "15m"
    assert signal.trade_type == TradeType.DAY


def test_epoch_millisecond_bar_time(normalizer, tradingview_payload):
    tradingview_payload["signal"]["bar_time"] = 1704898800000
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, json.dumps(tradingview_payload))
    assert signal.bar_time == datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc)


def test_direction_synonyms(normalizer, tradingview_payload):
    tradingview_payload["signal"]["type"] = "sell"
    tradingview_payload["entry"] = {}
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, json.dumps(tradingview_payload))
    assert signal.direction == Direction.SHORT
    assert signal.stop_loss > signal.entry_price
    assert signal.target_1 < signal.entry_price


def test_safe_positive_coercion_recorded(normalizer, tradingview_payload):
    """Test negative/non-finite risk fields clamp to the floor and are recorded."""
    tradingview_payload["risk"]["amount"] = -300.0
    tradingview_payload["risk"]["position_multiplier"] = float("inf")
    body = json.dumps(tradingview_payload)  # emits Infinity, which json.loads accepts

    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, body)

    floor = GateConfig().normalizer.safe_positive_floor
    assert signal.risk.amount == floor
    assert signal.risk.position_multiplier == floor
    assert any(c.startswith("risk.amount") for c in signal.coercions)
    assert any(c.startswith("risk.position_multiplier") for c in signal.coercions)


def test_ai_score_clamped(normalizer, tradingview_payload):
    tradingview_payload["signal"]["ai_score"] = 14.0
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, json.dumps(tradingview_payload))
    assert signal.ai_score == 10.5
    assert any(c.startswith("signal.ai_score") for c in signal.coercions)


def test_non_finite_component_score_dropped_and_recorded(normalizer, tradingview_payload):
    tradingview_payload["score_breakdown"]["gamma"] = float("nan")
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, tradingview_payload)

    assert "gamma" not in signal.component_scores
    assert signal.component_scores["strat"] == 2.0
    assert "score_breakdown.gamma: nan -> dropped" in signal.coercions


def test_signal_component_scores_are_read_only(normalizer, tradingview_body):
    signal = normalize(normalizer, PayloadKind.TRADINGVIEW, tradingview_body)

    with pytest.raises(TypeError):
        signal.component_scores["strat"] = -99.0
    with pytest.raises(TypeError):
        signal.component_scores.clear()
    assert signal.component_scores["strat"] == 2.0


@pytest.mark.parametrize("mutate,field", [
    (lambda p: p["instrument"].pop("ticker"), "instrument.ticker"),
    (lambda p: p["instrument"].update(ticker="   "), "instrument.ticker"),
    (lambda p: p["signal"].pop("ai_score"), "signal.ai_score"),
    (lambda p: p["signal"].update(type="SIDEWAYS"), "signal.type"),
    (lambda p: p["signal"].update(quality="SUPREME"), "signal.quality"),
    (lambda p: p["signal"].update(timeframe="soon"), "signal.timeframe"),
    (lambda p: p["instrument"].update(current_price=-1), "instrument.current_price"),
    (lambda p: p["entry"].update(stop_loss=0), "entry.stop_loss"),
    (lambda p: p["signal"].update(bar_time="yesterday-ish"), "bar_time"),
])
def test_malformed_fields_are_named(normalizer, tradingview_payload, mutate, field):
    """Test MalformedSignal names the missing or invalid field."""
    mutate(tradingview_payload)
    with pytest.raises(MalformedSignal) as exc_info:
        normalize(normalizer, PayloadKind.TRADINGVIEW, json.dumps(tradingview_payload))
    assert exc_info.value.field == field


def test_missing_timeframe_without_default(normalizer, tradingview_payload):
    tradingview_payload["signal"].pop("timeframe")
    with pytest.raises(MalformedSignal) as exc_info:
        normalize(normalizer, PayloadKind.TRADINGVIEW, json.dumps(tradingview_payload))
    assert exc_info.value.field == "signal.timeframe"


@pytest.mark.parametrize("body", [b"not json", "[1, 2, 3]", '{"text": "{broken"}'])
def test_unparseable_body(body):
    with pytest.raises(MalformedSignal) as exc_info:
        parse_payload(PayloadKind.TRADINGVIEW, body)
    assert exc_info.value.field == "body"


def test_payload_kind_comes_from_route(tradingview_body):
    """Test the router-assigned kind selects the variant, not the body."""
    payload = parse_payload(PayloadKind.TRADINGVIEW, tradingview_body)
    assert isinstance(payload, TradingViewPayload)

    body = json.dumps({
        "kind": "tradingview",
        "signal": {"type": "LONG", "ai_score": 7.0, "quality": "MEDIUM"},
        "instrument": {"ticker": "QQQ", "exchange": "NASDAQ", "current_price": 400.0},
    })
    assert isinstance(parse_payload(PayloadKind.ULTIMATE_OPTIONS, body), UltimateOptionsPayload)


def test_ultimate_options_derives_levels(normalizer):
    """Test a minimal alert gets levels from configured percentages."""
    body = json.dumps({
        "signal": {"type": "LONG", "ai_score": 7.0, "quality": "MEDIUM"},
        "instrument": {"ticker": "qqq", "exchange": "NASDAQ", "current_price": 400.0},
        "components": ["gamma", "flow"],
        "risk": {"rr_ratio_t1": 2.0, "rr_ratio_t2": 4.0},
    })

    signal = normalize(normalizer, PayloadKind.ULTIMATE_OPTIONS, body, default_timeframe="15")

    assert signal.kind == PayloadKind.ULTIMATE_OPTIONS
    assert signal.ticker == "QQQ"
    assert signal.timeframe == "15"
    assert signal.entry_price == 400.0
    assert signal.stop_loss == pytest.approx(396.0)
    assert signal.target_1 == pytest.approx(408.0)
    assert signal.target_2 == pytest.approx(416.0)
    assert signal.bar_time is None
    assert signal.market_session == MarketSession.OPEN  # falls back to receipt time
    assert any("sender default" in c for c in signal.coercions)
    assert any(c.startswith("entry.stop_loss") for c in signal.coercions)


def test_normalization_is_deterministic(normalizer, tradingview_body):
    first = normalize(normalizer, PayloadKind.TRADINGVIEW, tradingview_body)
    second = normalize(normalizer, PayloadKind.TRADINGVIEW, tradingview_body)
    assert first == second
