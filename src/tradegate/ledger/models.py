"""
Ledger data models.

LedgerEntry   - persisted Decision (with its Signal and GateResults)
ExitOutcome   - trade-closing outcome attached once by amend
LedgerQuery   - validated filters for ledger reads
OutcomeAggregates - win rate and P&L over amended entries
"""

import hashlib
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from tradegate.core.market_time import ensure_utc
from tradegate.core.types import (
    DecisionKind,
    ExitReason,
    FrozenDict,
    QualityTier,
    TradeType,
    VolatilityRegime,
)
from tradegate.decision.models import Decision, GateResults, Signal


class ExitOutcome(BaseModel):
    """Outcome of a closed position."""

    model_config = ConfigDict(frozen=True)

    exit_time: datetime
    exit_price: float = Field(gt=0.0)
    pnl_gross: float
    pnl_net: float
    exit_reason: ExitReason
    hold_time_seconds: Optional[int] = Field(default=None, ge=0)
    total_commission: Optional[float] = Field(default=None, ge=0.0)
    notes: Optional[str] = None
    outcome_id: Optional[str] = Field(
        default=None,
        description="Caller-supplied identity; defaults to a hash of the outcome"
    )

    @field_validator('exit_time')
    @classmethod
    def utc_exit_time(cls, v):
        return ensure_utc(v)

    def identity(self) -> str:
        """Outcome identity used to make amend idempotent."""
        if self.outcome_id:
            return self.outcome_id
        canonical = self.model_dump_json(exclude={"outcome_id"})
        return hashlib.sha256(canonical.encode()).hexdigest()


class LedgerEntry(BaseModel):
    """One durable ledger row."""

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    schema_version: int
    sender: str
    decision: Decision
    exit_outcome: Optional[ExitOutcome] = None
    exit_outcome_id: Optional[str] = None
    amended_at: Optional[datetime] = None

    @field_validator('created_at', 'amended_at')
    @classmethod
    def utc_times(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def signal(self) -> Signal:
        return self.decision.signal

    @property
    def gate_results(self) -> GateResults:
        return self.decision.gates

    @property
    def kind(self) -> DecisionKind:
        return self.decision.kind

    @property
    def confluence_score(self) -> float:
        return self.decision.confluence_score

    @property
    def is_amended(self) -> bool:
        return self.exit_outcome_id is not None


class LedgerQuery(BaseModel):
    """Ledger read filters. All filters are optional and combined with AND."""

    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None
    ticker: Optional[str] = None
    decision: Optional[DecisionKind] = None
    timeframe: Optional[str] = None
    quality: Optional[QualityTier] = None
    engine_version: Optional[str] = None
    sender: Optional[str] = None
    trade_type: Optional[TradeType] = None
    regime_volatility: Optional[VolatilityRegime] = None
    has_exit: Optional[bool] = None

    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    newest_first: bool = True

    @field_validator('from_time', 'to_time')
    @classmethod
    def utc_bounds(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def from_time_naive(self) -> Optional[datetime]:
        return to_naive_utc(self.from_time) if self.from_time else None

    @property
    def to_time_naive(self) -> Optional[datetime]:
        return to_naive_utc(self.to_time) if self.to_time else None


class OutcomeAggregates(BaseModel):
    """Decision counts and realized P&L over a filtered slice of the ledger."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_decision: Dict[str, int] = Field(default_factory=FrozenDict)
    with_exit: int = Field(default=0, description="Entries carrying an exit outcome")
    with_hypothetical: int = 0
    avg_confluence: Optional[float] = None
    total_pnl_net: float = 0.0
    wins: int = Field(default=0, description="Exits with positive net P&L")
    losses: int = Field(default=0, description="Exits with negative net P&L")

    @field_validator('by_decision')
    @classmethod
    def freeze_counts(cls, v):
        return FrozenDict(v)

    @computed_field
    @property
    def win_rate(self) -> Optional[float]:
        """Wins over all exits; breakeven exits count against it."""
        return self.wins / self.with_exit if self.with_exit else None

    @computed_field
    @property
    def avg_pnl_net(self) -> Optional[float]:
        return self.total_pnl_net / self.with_exit if self.with_exit else None


def to_naive_utc(value: datetime) -> datetime:
    """DuckDB TIMESTAMP columns hold naive UTC."""
    return ensure_utc(value).replace(tzinfo=None)


def from_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    return value.replace(tzinfo=timezone.utc) if value is not None else None
