"""
Shared fixtures: canonical SPY signal/snapshot builders, temp directories
and ledgers.
"""

import json
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tradegate.config.settings import GateConfig
from tradegate.core.types import Direction, PayloadKind, QualityTier, RegimeBias
from tradegate.decision.models import Signal
from tradegate.ledger.ledger import DecisionLedger
from tradegate.market.snapshot import MarketSnapshot, RegimeSnapshot

# Wednesday 2024-01-10 10:00 America/New_York (OPEN session)
BAR_TIME = datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc)
RECEIVED_AT = datetime(2024, 1, 10, 15, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    # Cleanup
    shutil.rmtree(temp_dir)


@pytest.fixture
def gate_config():
    return GateConfig()


@pytest.fixture
def make_signal():
    """Factory for the SPY LONG 15m HIGH signal; keyword overrides apply."""

    def _make(**overrides) -> Signal:
        fields = dict(
            source="tradingview",
            kind=PayloadKind.TRADINGVIEW,
            ticker="SPY",
            exchange="AMEX",
            direction=Direction.LONG,
            timeframe="15",
            quality=QualityTier.HIGH,
            ai_score=8.5,
            price=450.25,
            entry_price=450.25,
            stop_loss=447.25,
            target_1=456.25,
            target_2=459.25,
            components=("strat", "trend", "vwap"),
            component_scores={"strat": 2.0, "trend": 1.5},
            bar_time=BAR_TIME,
            received_at=RECEIVED_AT,
        )
        fields.update(overrides)
        return Signal(**fields)

    return _make


@pytest.fixture
def make_regime():
    def _make(**overrides) -> RegimeSnapshot:
        fields = dict(phase=2, phase_name="MARKUP", confidence=80.0, bias=RegimeBias.LONG)
        fields.update(overrides)
        return RegimeSnapshot(**fields)

    return _make


@pytest.fixture
def make_snapshot(make_regime):
    """Factory for a healthy SPY snapshot (market gate score 88.6)."""

    def _make(**overrides) -> MarketSnapshot:
        fields = dict(
            ticker="SPY",
            fetched_at=RECEIVED_AT,
            spread_bps=2.0,
            atr_spike=1.2,
            depth_score=80.0,
            volume_ratio=1.3,
            gamma_bias="NEUTRAL",
            regime=make_regime(),
        )
        fields.update(overrides)
        return MarketSnapshot(**fields)

    return _make


@pytest.fixture
def tradingview_payload():
    """Enriched TradingView alert body for the SPY signal."""
    return {
        "signal": {
            "type": "LONG",
            "timeframe": "15",
            "quality": "HIGH",
            "ai_score": 8.5,
            "timestamp": 1704898800000,
            "bar_time": "2024-01-10T15:00:00Z",
        },
        "instrument": {"exchange": "AMEX", "ticker": "SPY", "current_price": 450.25},
        "entry": {
            "price": 450.25,
            "stop_loss": 447.25,
            "target_1": 456.25,
            "target_2": 459.25,
            "stop_reason": "ATR",
        },
        "risk": {
            "amount": 300.0,
            "rr_ratio_t1": 2.0,
            "rr_ratio_t2": 3.0,
            "stop_distance_pct": 0.67,
            "position_multiplier": 1.0,
            "account_risk_pct": 1.0,
        },
        "market_context": {
            "vwap": 449.8,
            "price_vs_vwap_pct": 0.1,
            "atr": 2.1,
            "volume_vs_avg": 1.3,
            "day_change_pct": 0.4,
        },
        "trend": {
            "ema_8": 450.1,
            "ema_21": 449.5,
            "ema_50": 447.9,
            "alignment": "BULLISH",
            "strength": 72,
            "rsi": 58,
            "macd_signal": "BULLISH",
        },
        "score_breakdown": {"strat": 2.0, "trend": 1.5, "gamma": 1.0, "vwap": 1.0, "mtf": 1.5, "golf": 1.5},
        "components": ["strat", "trend", "vwap"],
        "time_context": {"market_session": "AFTERHOURS", "day_of_week": "SUNDAY"},
    }


@pytest.fixture
def tradingview_body(tradingview_payload):
    return json.dumps(tradingview_payload)


@pytest.fixture
def ledger():
    """In-memory ledger."""
    ledger = DecisionLedger(path=":memory:")
    yield ledger
    ledger.close()


@pytest.fixture
def file_ledger(temp_dir):
    ledger = DecisionLedger(path=str(temp_dir / "ledger.duckdb"))
    yield ledger
    ledger.close()
