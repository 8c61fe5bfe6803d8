"""
Configuration models using Pydantic for type-safe validation.

This module defines all configuration models for the decision pipeline:
- GateConfig: Versioned, immutable gate thresholds, weights and modes
- SizingConfig: Volatility caps, phase caps, quality boosts, size bounds
- NormalizerConfig: Safe-positive floors and derived entry-level defaults
- LedgerConfig: DuckDB path and ledger behaviour
- PipelineConfig: Timeouts, retry policy, dead-letter location
- RoutingConfig: Sender bindings (payload kind, engine version, secrets)
- SystemConfig: Environment, log level, log output
"""

import hashlib
from typing import Dict, Optional, Tuple
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from tradegate.core.types import (
    Direction,
    FrozenDict,
    GateMode,
    MarketSession,
    PayloadKind,
    QualityTier,
    VolatilityRegime,
)


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )

    json_logs: bool = Field(
        default=True,
        description="Emit JSON-formatted log records"
    )


# ============================================================================
# Gate Configuration
# ============================================================================

class GateSettings(BaseModel):
    """Settings shared by every gate."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(
        default=True,
        description="Run this gate"
    )

    weight: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Weight of this gate in the confluence aggregate"
    )

    mode: GateMode = Field(
        default=GateMode.HARD,
        description="HARD failures force SKIP, SOFT failures only lower confluence"
    )

    failure_score: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Ceiling on the confluence contribution of a failing gate"
    )


class MarketConditionsGateConfig(GateSettings):
    """Spread, volatility, liquidity and gamma thresholds."""

    weight: float = Field(default=0.25, ge=0.0, le=1.0)
    failure_score: float = Field(default=25.0, ge=0.0, le=100.0)

    max_spread_bps: float = Field(
        default=12.0,
        gt=0.0,
        description="Maximum bid-ask spread in basis points"
    )

    max_atr_spike: float = Field(
        default=2.5,
        gt=0.0,
        description="Maximum ATR spike ratio (ATR14 / RV20)"
    )

    min_depth_score: float = Field(
        default=30.0,
        ge=0.0,
        le=100.0,
        description="Minimum market depth score"
    )

    min_volume_ratio: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum current-to-average volume ratio"
    )

    check_gamma: bool = Field(
        default=True,
        description="Fail on dealer gamma bias opposing the trade direction"
    )


class PhaseRule(BaseModel):
    """Directions and size cap allowed in one regime phase."""

    model_config = ConfigDict(frozen=True)

    allowed: Tuple[Direction, ...] = Field(
        description="Directions tradable in this phase"
    )

    size_cap: float = Field(
        gt=0.0,
        le=3.0,
        description="Maximum size multiplier in this phase"
    )


def _default_phase_rules() -> Dict[int, PhaseRule]:
    return FrozenDict({
        1: PhaseRule(allowed=(Direction.LONG,), size_cap=0.5),                  # accumulation
        2: PhaseRule(allowed=(Direction.LONG, Direction.SHORT), size_cap=1.0),  # markup
        3: PhaseRule(allowed=(Direction.SHORT,), size_cap=0.5),                 # distribution
        4: PhaseRule(allowed=(Direction.SHORT,), size_cap=0.75),                # markdown
    })


class RegimeGateConfig(GateSettings):
    """Regime/direction compatibility."""

    weight: float = Field(default=0.25, ge=0.0, le=1.0)

    min_confidence: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Minimum regime phase confidence (%)"
    )

    check_bias: bool = Field(
        default=True,
        description="Fail when the regime bias opposes the trade direction"
    )

    allow_missing: bool = Field(
        default=True,
        description="Pass at the neutral score when no regime data is available"
    )

    bias_conflict_factor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Score multiplier applied to confidence on a bias conflict"
    )

    phase_rules: Dict[int, PhaseRule] = Field(
        default_factory=_default_phase_rules,
        description="Per-phase allowed directions and size caps"
    )

    @field_validator('phase_rules')
    @classmethod
    def freeze_phase_rules(cls, v):
        return FrozenDict(v)


class QualityGateConfig(GateSettings):
    """Signal quality tier and AI score minimums."""

    weight: float = Field(default=0.25, ge=0.0, le=1.0)
    failure_score: float = Field(default=40.0, ge=0.0, le=100.0)

    min_quality: QualityTier = Field(
        default=QualityTier.LOW,
        description="Lowest acceptable quality tier"
    )

    min_ai_score: float = Field(
        default=5.0,
        ge=0.0,
        description="Lowest acceptable AI score"
    )

    ai_score_max: float = Field(
        default=10.5,
        gt=0.0,
        description="AI score scale maximum"
    )


class RiskGateConfig(GateSettings):
    """Stop distance and reward/risk sanity bounds."""

    weight: float = Field(default=0.15, ge=0.0, le=1.0)

    min_stop_distance_pct: float = Field(
        default=0.05,
        ge=0.0,
        description="Minimum stop distance from entry (%)"
    )

    max_stop_distance_pct: float = Field(
        default=10.0,
        gt=0.0,
        description="Maximum stop distance from entry (%)"
    )

    min_rr: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum reward/risk ratio to target 1"
    )

    max_rr: float = Field(
        default=10.0,
        gt=0.0,
        description="Maximum plausible reward/risk ratio to target 1"
    )

    @model_validator(mode="after")
    def bounds_ordered(self):
        """Validate that upper bounds are above lower bounds."""
        if self.max_stop_distance_pct <= self.min_stop_distance_pct:
            raise ValueError('max_stop_distance_pct must be > min_stop_distance_pct')
        if self.max_rr <= self.min_rr:
            raise ValueError('max_rr must be > min_rr')
        return self


class SessionGateConfig(GateSettings):
    """Market session restrictions."""

    weight: float = Field(default=0.10, ge=0.0, le=1.0)
    mode: GateMode = Field(default=GateMode.SOFT)
    failure_score: float = Field(default=25.0, ge=0.0, le=100.0)

    restricted_sessions: Tuple[MarketSession, ...] = Field(
        default=(MarketSession.AFTERHOURS, MarketSession.CLOSED, MarketSession.WEEKEND),
        description="Sessions in which signals fail this gate"
    )


class SizingConfig(BaseModel):
    """Execution sizing rules. The quality boost is applied here only."""

    model_config = ConfigDict(frozen=True)

    volatility_caps: Dict[VolatilityRegime, float] = Field(
        default=FrozenDict({
            VolatilityRegime.LOW: 1.2,
            VolatilityRegime.NORMAL: 1.0,
            VolatilityRegime.HIGH: 0.7,
            VolatilityRegime.EXTREME: 0.4,
        }),
        description="Size cap per volatility regime"
    )

    quality_boosts: Dict[QualityTier, float] = Field(
        default=FrozenDict({
            QualityTier.LOW: 0.85,
            QualityTier.MEDIUM: 1.0,
            QualityTier.HIGH: 1.15,
            QualityTier.EXTREME: 1.3,
        }),
        description="Size multiplier per quality tier"
    )

    default_phase: int = Field(
        default=2,
        ge=1,
        le=4,
        description="Phase whose cap applies when no regime data is available"
    )

    size_min: float = Field(
        default=0.5,
        gt=0.0,
        description="Lower bound of the size multiplier"
    )

    size_max: float = Field(
        default=3.0,
        gt=0.0,
        description="Upper bound of the size multiplier"
    )

    base_position_usd: float = Field(
        default=1000.0,
        gt=0.0,
        description="Notional of a 1.0x position"
    )

    @field_validator('volatility_caps', 'quality_boosts')
    @classmethod
    def freeze_tables(cls, v):
        return FrozenDict(v)

    @field_validator('size_max')
    @classmethod
    def size_max_above_min(cls, v, info):
        """Validate that size_max >= size_min."""
        if 'size_min' in info.data and v < info.data['size_min']:
            raise ValueError('size_max must be >= size_min')
        return v


class NormalizerConfig(BaseModel):
    """Signal normalization defaults."""

    model_config = ConfigDict(frozen=True)

    safe_positive_floor: float = Field(
        default=0.01,
        gt=0.0,
        description="Floor for negative or non-finite risk/size fields"
    )

    default_stop_pct: float = Field(
        default=0.01,
        gt=0.0,
        lt=1.0,
        description="Stop distance used when a sender omits the stop level"
    )

    default_target_1_pct: float = Field(
        default=0.02,
        gt=0.0,
        description="Target 1 distance used when a sender omits it"
    )

    default_target_2_pct: float = Field(
        default=0.04,
        gt=0.0,
        description="Target 2 distance used when a sender omits it"
    )


class GateConfig(BaseModel):
    """
    Named, versioned and immutable decision configuration.

    One GateConfig is bound to one DecisionEngine. Changing any value
    means building a new GateConfig (and a new engine), never mutating
    this one mid-evaluation.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        default="default",
        description="Configuration name"
    )

    version: str = Field(
        default="1",
        description="Configuration version recorded with every decision"
    )

    action_threshold: float = Field(
        default=70.0,
        ge=0.0,
        le=100.0,
        description="Minimum confluence score for ACT decisions"
    )

    neutral_score: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Score used by gates running without their inputs"
    )

    market_conditions: MarketConditionsGateConfig = Field(default_factory=MarketConditionsGateConfig)
    regime: RegimeGateConfig = Field(default_factory=RegimeGateConfig)
    quality: QualityGateConfig = Field(default_factory=QualityGateConfig)
    risk: RiskGateConfig = Field(default_factory=RiskGateConfig)
    session: SessionGateConfig = Field(default_factory=SessionGateConfig)

    sizing: SizingConfig = Field(default_factory=SizingConfig)
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig)

    @model_validator(mode="after")
    def has_weighted_gate(self):
        """At least one enabled gate must carry weight."""
        if not any(s.enabled and s.weight > 0 for s in self.gate_settings().values()):
            raise ValueError('at least one enabled gate must have a positive weight')
        return self

    def gate_settings(self) -> Dict[str, GateSettings]:
        """Gate name -> settings, in evaluation order."""
        return {
            "market_conditions": self.market_conditions,
            "regime": self.regime,
            "quality": self.quality,
            "risk": self.risk,
            "session": self.session,
        }

    @property
    def config_version(self) -> str:
        return f"{self.name}@{self.version}"

    def fingerprint(self) -> str:
        """Short content hash, distinguishes configs sharing a version label."""
        return hashlib.sha256(self.model_dump_json().encode()).hexdigest()[:12]


# ============================================================================
# Ledger Configuration
# ============================================================================

class LedgerConfig(BaseModel):
    """Decision ledger storage."""

    path: str = Field(
        default="data/ledger.duckdb",
        description="DuckDB database file (':memory:' for tests)"
    )

    table: str = Field(
        default="ledger_entries",
        description="Ledger table name"
    )

    create_schema: bool = Field(
        default=True,
        description="Create the ledger tables on startup if missing"
    )

    default_query_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Default page size for ledger queries"
    )


# ============================================================================
# Pipeline Configuration
# ============================================================================

class PipelineConfig(BaseModel):
    """Timeouts, retries and the dead-letter location."""

    snapshot_timeout_seconds: float = Field(
        default=2.0,
        gt=0.0,
        le=60.0,
        description="Market snapshot fetch timeout"
    )

    persistence_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=120.0,
        description="Ledger append/amend timeout"
    )

    max_append_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Attempts for a retryable append failure"
    )

    retry_backoff_seconds: float = Field(
        default=0.25,
        ge=0.0,
        description="Initial retry delay, doubled per attempt"
    )

    dead_letter_path: str = Field(
        default="data/dead_letter.jsonl",
        description="JSON-lines file receiving decisions that could not be stored"
    )


# ============================================================================
# Routing Configuration
# ============================================================================

class SenderConfig(BaseModel):
    """One upstream sender binding."""

    kind: PayloadKind = Field(
        description="Payload shape this sender emits"
    )

    engine_version: Optional[str] = Field(
        default=None,
        description="Engine version handling this sender (defaults to the active version)"
    )

    hmac_secret: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret for HMAC-SHA256 body signatures"
    )

    bearer_token: Optional[SecretStr] = Field(
        default=None,
        description="Accepted bearer token"
    )

    default_timeframe: Optional[str] = Field(
        default=None,
        description="Timeframe assumed when the payload carries none"
    )

    enabled: bool = Field(
        default=True,
        description="Accept events from this sender"
    )

    @field_validator('hmac_secret', 'bearer_token', mode='before')
    @classmethod
    def blank_secret_is_none(cls, v):
        """Unset ${ENV} placeholders resolve to '' and mean no secret."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class RoutingConfig(BaseModel):
    """Single table of sender -> engine bindings."""

    active_version: str = Field(
        default="v1",
        description="Engine version receiving senders without an explicit binding"
    )

    senders: Dict[str, SenderConfig] = Field(
        default_factory=dict,
        description="Sender identifier -> binding"
    )


# ============================================================================
# Complete Application Configuration
# ============================================================================

class AppConfig(BaseModel):
    """Complete application configuration."""

    system: SystemConfig = Field(
        default_factory=SystemConfig,
        description="System configuration"
    )

    gates: GateConfig = Field(
        default_factory=GateConfig,
        description="Decision gate configuration"
    )

    ledger: LedgerConfig = Field(
        default_factory=LedgerConfig,
        description="Ledger storage configuration"
    )

    pipeline: PipelineConfig = Field(
        default_factory=PipelineConfig,
        description="Pipeline timeouts and retries"
    )

    routing: RoutingConfig = Field(
        default_factory=RoutingConfig,
        description="Sender routing"
    )
