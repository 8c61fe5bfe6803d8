"""
Decision data models.

Signal        - canonical, immutable trading-opportunity candidate
GateResult    - output of one gate (pass/fail, score, every failing reason)
GateResults   - ordered, read-only mapping gate name -> GateResult
Decision      - verdict plus the evidence that produced it

All models are frozen pydantic models so they can be shared across
concurrent evaluations and serialized into the ledger unchanged.
"""

from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from tradegate.core import market_time
from tradegate.core.market_time import ensure_utc
from tradegate.core.types import (
    DecisionKind,
    Direction,
    FrozenDict,
    GateMode,
    MarketSession,
    PayloadKind,
    QualityTier,
    TradeType,
    freeze,
)
from tradegate.market.snapshot import MarketSnapshot, RegimeSnapshot


# ============================================================================
# Signal
# ============================================================================

class RiskParams(BaseModel):
    """Sender-supplied risk parameters (after safe-positive coercion)."""

    model_config = ConfigDict(frozen=True)

    amount: Optional[float] = None
    rr_ratio_t1: Optional[float] = None
    rr_ratio_t2: Optional[float] = None
    stop_distance_pct: Optional[float] = None
    position_multiplier: Optional[float] = None
    account_risk_pct: Optional[float] = None


class TrendIndicators(BaseModel):
    """Trend state reported with the signal."""

    model_config = ConfigDict(frozen=True)

    ema_8: Optional[float] = None
    ema_21: Optional[float] = None
    ema_50: Optional[float] = None
    alignment: Optional[str] = None
    strength: Optional[float] = None
    rsi: Optional[float] = None
    macd_signal: Optional[str] = None


class MarketIndicators(BaseModel):
    """Market context reported with the signal."""

    model_config = ConfigDict(frozen=True)

    vwap: Optional[float] = None
    vwap_deviation_pct: Optional[float] = None
    atr: Optional[float] = None
    volume_vs_avg: Optional[float] = None
    day_change_pct: Optional[float] = None


class Signal(BaseModel):
    """
    Canonical trading-opportunity candidate.

    Derived fields (day of week, market session, timeframe label and trade
    type) are computed properties; values a sender supplied for them are
    never read.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="Sender identifier")
    kind: PayloadKind = Field(description="Payload shape the signal was parsed from")
    ticker: str
    exchange: Optional[str] = None
    direction: Direction
    timeframe: str = Field(description="Canonical timeframe bucket in minutes")
    quality: QualityTier
    ai_score: float = Field(ge=0.0)

    price: float = Field(gt=0.0)
    entry_price: float = Field(gt=0.0)
    stop_loss: float = Field(gt=0.0)
    target_1: float = Field(gt=0.0)
    target_2: Optional[float] = Field(default=None, gt=0.0)

    risk: RiskParams = Field(default_factory=RiskParams)
    trend: TrendIndicators = Field(default_factory=TrendIndicators)
    market: MarketIndicators = Field(default_factory=MarketIndicators)

    components: Tuple[str, ...] = ()
    component_scores: Dict[str, float] = Field(default_factory=FrozenDict)

    bar_time: Optional[datetime] = None
    received_at: datetime
    coercions: Tuple[str, ...] = Field(
        default=(),
        description="Audit trail of values the normalizer clamped or derived"
    )

    @field_validator('bar_time', 'received_at')
    @classmethod
    def utc_timestamps(cls, v):
        return ensure_utc(v) if v is not None else v

    @field_validator('ticker')
    @classmethod
    def upper_ticker(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError('ticker must not be blank')
        return v

    @field_validator('component_scores')
    @classmethod
    def freeze_component_scores(cls, v):
        return FrozenDict(v)

    @property
    def event_time(self) -> datetime:
        """Bar time when the sender provided one, otherwise receipt time."""
        return self.bar_time or self.received_at

    @computed_field
    @property
    def day_of_week(self) -> str:
        return market_time.day_of_week(self.event_time)

    @computed_field
    @property
    def market_session(self) -> MarketSession:
        return market_time.market_session(self.event_time)

    @computed_field
    @property
    def timeframe_label(self) -> str:
        return market_time.timeframe_label(self.timeframe)

    @computed_field
    @property
    def trade_type(self) -> TradeType:
        return market_time.trade_type(self.timeframe)

    @property
    def stop_distance_pct(self) -> float:
        return abs(self.entry_price - self.stop_loss) / self.entry_price * 100

    @property
    def reward_risk(self) -> Optional[float]:
        """Reward/risk to target 1 computed from the levels."""
        risk = abs(self.entry_price - self.stop_loss)
        if risk == 0:
            return None
        return abs(self.target_1 - self.entry_price) / risk


# ============================================================================
# Gate Results
# ============================================================================

class GateResult(BaseModel):
    """
    Output of one gate.

    `reasons` lists every independent failure the gate found; `reason` is
    the human-readable summary. `details` holds JSON-native values only.
    """

    model_config = ConfigDict(frozen=True)

    gate: str
    passed: bool
    score: float = Field(ge=0.0, le=100.0)
    reason: str
    reasons: Tuple[str, ...] = ()
    details: Dict[str, Any] = Field(default_factory=FrozenDict)
    degraded: bool = False
    mode: GateMode = GateMode.HARD

    @field_validator('details')
    @classmethod
    def freeze_details(cls, v):
        return freeze(v)

    @property
    def is_hard_failure(self) -> bool:
        return not self.passed and self.mode == GateMode.HARD


class GateResults(Mapping):
    """Ordered, read-only mapping of gate name -> GateResult for one signal."""

    def __init__(self, results: Iterable[GateResult]):
        ordered = tuple(results)
        index: Dict[str, GateResult] = {}
        for result in ordered:
            if result.gate in index:
                raise ValueError(f"duplicate gate result: {result.gate}")
            index[result.gate] = result
        self._ordered = ordered
        self._index = MappingProxyType(index)

    def __getitem__(self, gate: str) -> GateResult:
        return self._index[gate]

    def __iter__(self) -> Iterator[str]:
        return (result.gate for result in self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __repr__(self) -> str:
        flags = ", ".join(f"{r.gate}={'pass' if r.passed else 'FAIL'}" for r in self._ordered)
        return f"GateResults({flags})"

    @property
    def ordered(self) -> Tuple[GateResult, ...]:
        return self._ordered

    def failed(self) -> List[GateResult]:
        return [r for r in self._ordered if not r.passed]

    def hard_failures(self) -> List[GateResult]:
        return [r for r in self._ordered if r.is_hard_failure]

    def degraded(self) -> List[GateResult]:
        return [r for r in self._ordered if r.degraded]


# ============================================================================
# Confluence Breakdown
# ============================================================================

class GateContribution(BaseModel):
    """How much one gate contributed to the confluence score."""

    model_config = ConfigDict(frozen=True)

    gate: str
    weight: float
    raw_score: float
    effective_score: float
    points: float = Field(description="Share of the 0-100 confluence score")
    passed: bool
    degraded: bool
    mode: GateMode


class ConfluenceBreakdown(BaseModel):
    """Per-gate audit of the confluence score."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    threshold: float
    total_weight: float
    contributions: Tuple[GateContribution, ...] = ()
    failed_gates: Tuple[str, ...] = ()
    hard_failed_gates: Tuple[str, ...] = ()
    degraded_gates: Tuple[str, ...] = ()


# ============================================================================
# Execution Plans
# ============================================================================

class ExecutionPlan(BaseModel):
    """Sizing and levels for an actionable (or would-be actionable) decision."""

    model_config = ConfigDict(frozen=True)

    direction: Direction
    trade_type: TradeType
    entry_price: float
    stop_loss: float
    target_1: float
    target_2: Optional[float] = None
    risk_reward: Optional[float] = None

    confidence: float = Field(description="Confluence score the plan was sized from")
    base_size: float = Field(description="Size multiplier before the quality boost")
    quality_boost: float
    volatility_cap: float
    phase_cap: float
    size_multiplier: float
    position_size_usd: float


class HypotheticalPlan(BaseModel):
    """What would have been executed had a WAIT/SKIP decision been ACT."""

    model_config = ConfigDict(frozen=True)

    would_have_executed: bool = Field(
        description="Confluence cleared the action threshold but a gate blocked it"
    )
    blocking_reasons: Tuple[str, ...] = ()
    plan: Optional[ExecutionPlan] = None


# ============================================================================
# Decision
# ============================================================================

class Decision(BaseModel):
    """Engine output for one signal."""

    model_config = ConfigDict(frozen=True)

    kind: DecisionKind
    reason: str
    reasons: Tuple[str, ...] = ()
    confluence_score: float = Field(ge=0.0, le=100.0)
    breakdown: ConfluenceBreakdown
    gate_results: Tuple[GateResult, ...]
    signal: Signal
    regime: Optional[RegimeSnapshot] = None
    market: Optional[MarketSnapshot] = Field(
        default=None,
        description="Market snapshot the gates evaluated, kept for replay"
    )
    execution: Optional[ExecutionPlan] = None
    hypothetical: Optional[HypotheticalPlan] = None
    engine_version: str
    config_version: str
    decided_at: datetime

    @field_validator('decided_at')
    @classmethod
    def utc_decided_at(cls, v):
        return ensure_utc(v)

    @model_validator(mode="after")
    def plan_matches_kind(self):
        """Only ACT decisions carry an execution plan."""
        if self.kind.is_actionable and self.execution is None:
            raise ValueError(f"{self.kind.value} decision requires an execution plan")
        if not self.kind.is_actionable and self.execution is not None:
            raise ValueError(f"{self.kind.value} decision must not carry an execution plan")
        return self

    @property
    def gates(self) -> GateResults:
        return GateResults(self.gate_results)

    @property
    def is_actionable(self) -> bool:
        return self.kind.is_actionable
