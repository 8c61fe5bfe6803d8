"""
Signal Normalizer - raw sender payload -> canonical Signal.

Rules:
- Required fields that are missing or invalid raise MalformedSignal naming the field
- Risk/size fields that are negative or non-finite are clamped to the
  configured safe-positive floor; every coercion is recorded on the Signal
- Missing entry/stop/target levels are derived from configured percentages
- Day of week and market session are never read from the payload; the
  Signal derives them from the bar time (or receipt time)

The normalizer is pure: no I/O, no shared state.
"""

import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Union
import logging

from pydantic import ValidationError

from tradegate.config.settings import GateConfig
from tradegate.core.errors import MalformedSignal
from tradegate.core.market_time import ensure_utc, normalize_timeframe
from tradegate.core.types import Direction, PayloadKind, QualityTier
from tradegate.decision.models import MarketIndicators, RiskParams, Signal, TrendIndicators
from tradegate.ingestion.payloads import (
    EntryLevels,
    RawTimestamp,
    RiskInfo,
    TradingViewPayload,
    UltimateOptionsPayload,
)

logger = logging.getLogger(__name__)

DIRECTION_SYNONYMS = {
    "LONG": Direction.LONG,
    "BUY": Direction.LONG,
    "BULLISH": Direction.LONG,
    "SHORT": Direction.SHORT,
    "SELL": Direction.SHORT,
    "BEARISH": Direction.SHORT,
}

# Epoch values above this are milliseconds
_EPOCH_MS_THRESHOLD = 1e12


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


class SignalNormalizer:
    """Converts validated payload variants into canonical Signals."""

    def __init__(self, config: GateConfig, name: str = "SignalNormalizer"):
        self.config = config
        self.settings = config.normalizer
        self.ai_score_max = config.quality.ai_score_max
        self.logger = logging.getLogger(f"{__name__}.{name}")

    def normalize(
        self,
        payload: Union[TradingViewPayload, UltimateOptionsPayload],
        received_at: datetime,
        source: str,
        default_timeframe: Optional[str] = None,
    ) -> Signal:
        """
        Build the canonical Signal for one payload.

        Args:
            payload: Validated payload variant
            received_at: Receipt timestamp
            source: Sender identifier
            default_timeframe: Sender default used when the payload has none

        Returns:
            Immutable Signal

        Raises:
            MalformedSignal: Missing or invalid required field
        """
        coercions: List[str] = []
        info = payload.signal

        direction = self._direction(info.type)
        quality = self._quality(info.quality)
        timeframe = self._timeframe(info.timeframe, default_timeframe, coercions)
        ai_score = self._ai_score(info.ai_score, coercions)

        price = payload.instrument.current_price
        if not _finite(price) or price <= 0:
            raise MalformedSignal("instrument.current_price", f"Malformed signal: invalid price {price!r}")

        entry, stop, target_1, target_2 = self._levels(payload.entry, price, direction, coercions)

        market_context = getattr(payload, "market_context", None)
        trend = getattr(payload, "trend", None)
        score_breakdown = getattr(payload, "score_breakdown", {})

        try:
            signal = Signal(
                source=source,
                kind=PayloadKind(payload.kind),
                ticker=payload.instrument.ticker,
                exchange=payload.instrument.exchange,
                direction=direction,
                timeframe=timeframe,
                quality=quality,
                ai_score=ai_score,
                price=price,
                entry_price=entry,
                stop_loss=stop,
                target_1=target_1,
                target_2=target_2,
                risk=self._risk(payload.risk, coercions),
                trend=TrendIndicators(**trend.model_dump()) if trend is not None else TrendIndicators(),
                market=self._market(market_context, coercions),
                components=tuple(payload.components),
                component_scores=self._component_scores(score_breakdown, coercions),
                bar_time=self._bar_time(payload.bar_time),
                received_at=received_at,
                coercions=tuple(coercions),
            )
        except ValidationError as e:
            field = ".".join(str(part) for part in e.errors()[0]["loc"]) or "signal"
            raise MalformedSignal(field, f"Malformed signal: {e.errors()[0]['msg']} ({field})") from e

        if coercions:
            self.logger.info(
                f"Normalized {signal.ticker} from {source} with {len(coercions)} coercion(s): "
                f"{'; '.join(coercions)}",
                extra={'sender': source, 'ticker': signal.ticker},
            )
        return signal

    # ------------------------------------------------------------------
    # Field rules
    # ------------------------------------------------------------------

    @staticmethod
    def _direction(raw: str) -> Direction:
        direction = DIRECTION_SYNONYMS.get(str(raw).strip().upper())
        if direction is None:
            raise MalformedSignal("signal.type", f"Malformed signal: unknown direction {raw!r}")
        return direction

    @staticmethod
    def _quality(raw: str) -> QualityTier:
        try:
            return QualityTier(str(raw).strip().upper())
        except ValueError:
            raise MalformedSignal("signal.quality", f"Malformed signal: unknown quality {raw!r}") from None

    @staticmethod
    def _timeframe(raw, default_timeframe: Optional[str], coercions: List[str]) -> str:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if default_timeframe is None:
                raise MalformedSignal("signal.timeframe")
            coercions.append(f"signal.timeframe: missing -> sender default {default_timeframe}")
            raw = default_timeframe
        try:
            return normalize_timeframe(raw)
        except ValueError as e:
            raise MalformedSignal("signal.timeframe", f"Malformed signal: {e}") from e

    @staticmethod
    def _component_scores(score_breakdown: Dict[str, float], coercions: List[str]) -> Dict[str, float]:
        scores = {}
        for name, value in score_breakdown.items():
            if _finite(value):
                scores[name] = value
            else:
                coercions.append(f"score_breakdown.{name}: {value} -> dropped")
        return scores

    def _ai_score(self, raw: float, coercions: List[str]) -> float:
        if not _finite(raw):
            raise MalformedSignal("signal.ai_score", f"Malformed signal: ai_score {raw!r} is not finite")
        clamped = min(max(raw, 0.0), self.ai_score_max)
        if clamped != raw:
            coercions.append(f"signal.ai_score: {raw} -> {clamped}")
        return clamped

    def _levels(
        self,
        levels: EntryLevels,
        price: float,
        direction: Direction,
        coercions: List[str]
    ) -> Tuple[float, float, float, Optional[float]]:
        for name in ("price", "stop_loss", "target_1", "target_2"):
            value = getattr(levels, name)
            if value is not None and (not _finite(value) or value <= 0):
                raise MalformedSignal(f"entry.{name}", f"Malformed signal: invalid level entry.{name}={value!r}")

        sign = 1.0 if direction == Direction.LONG else -1.0

        entry = levels.price
        if entry is None:
            entry = price
            coercions.append(f"entry.price: missing -> current price {price}")

        stop = levels.stop_loss
        if stop is None:
            stop = round(entry * (1 - sign * self.settings.default_stop_pct), 4)
            coercions.append(f"entry.stop_loss: missing -> {stop} ({self.settings.default_stop_pct:.2%})")

        target_1 = levels.target_1
        if target_1 is None:
            target_1 = round(entry * (1 + sign * self.settings.default_target_1_pct), 4)
            coercions.append(f"entry.target_1: missing -> {target_1} ({self.settings.default_target_1_pct:.2%})")

        target_2 = levels.target_2
        if target_2 is None and levels.target_1 is None:
            target_2 = round(entry * (1 + sign * self.settings.default_target_2_pct), 4)
            coercions.append(f"entry.target_2: missing -> {target_2} ({self.settings.default_target_2_pct:.2%})")

        return entry, stop, target_1, target_2

    def _safe_positive(self, field: str, value: Optional[float], coercions: List[str]) -> Optional[float]:
        if value is None:
            return None
        if not math.isfinite(value) or value < 0:
            coercions.append(f"{field}: {value} -> {self.settings.safe_positive_floor}")
            return self.settings.safe_positive_floor
        return value

    def _risk(self, risk: RiskInfo, coercions: List[str]) -> RiskParams:
        return RiskParams(**{
            name: self._safe_positive(f"risk.{name}", value, coercions)
            for name, value in risk.model_dump().items()
        })

    def _market(self, context, coercions: List[str]) -> MarketIndicators:
        if context is None:
            return MarketIndicators()

        def finite_or_none(field: str, value: Optional[float]) -> Optional[float]:
            if value is not None and not math.isfinite(value):
                coercions.append(f"market_context.{field}: {value} -> None")
                return None
            return value

        return MarketIndicators(
            vwap=finite_or_none("vwap", context.vwap),
            vwap_deviation_pct=finite_or_none("price_vs_vwap_pct", context.price_vs_vwap_pct),
            atr=self._safe_positive("market_context.atr", context.atr, coercions),
            volume_vs_avg=self._safe_positive("market_context.volume_vs_avg", context.volume_vs_avg, coercions),
            day_change_pct=finite_or_none("day_change_pct", context.day_change_pct),
        )

    @staticmethod
    def _bar_time(raw: Optional[RawTimestamp]) -> Optional[datetime]:
        """Parse ISO-8601 strings or epoch seconds/milliseconds."""
        if raw is None:
            return None
        if isinstance(raw, datetime):
            return ensure_utc(raw)

        try:
            if isinstance(raw, str):
                text = raw.strip()
                try:
                    raw = float(text)
                except ValueError:
                    return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))

            if isinstance(raw, bool) or not math.isfinite(raw):
                raise ValueError(f"invalid timestamp {raw!r}")
            seconds = raw / 1000.0 if raw > _EPOCH_MS_THRESHOLD else float(raw)
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError) as e:
            raise MalformedSignal("bar_time", f"Malformed signal: unreadable bar time {raw!r}") from e
