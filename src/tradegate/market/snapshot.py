"""
Market snapshot models and provider interface.

The snapshot is the market context visible at decision time: liquidity,
volatility, options positioning and the classified regime. Providers are
external collaborators; the pipeline fetches with a bounded timeout and
falls back to MarketSnapshot.unavailable() on any failure.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field

from tradegate.core.errors import DegradedMarketData
from tradegate.core.types import RegimeBias, TrendRegime, VolatilityRegime

logger = logging.getLogger(__name__)


class RegimeSnapshot(BaseModel):
    """Market regime inputs captured when a decision is made."""

    model_config = ConfigDict(frozen=True)

    phase: Optional[int] = Field(default=None, ge=1, le=4, description="Regime phase 1-4")
    phase_name: Optional[str] = Field(default=None, description="ACCUMULATION, MARKUP, ...")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=100.0, description="Phase confidence (%)")
    bias: RegimeBias = RegimeBias.NEUTRAL
    volatility: VolatilityRegime = VolatilityRegime.NORMAL
    trend: TrendRegime = TrendRegime.NEUTRAL
    liquidity: Optional[str] = None
    iv_rank: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class MarketSnapshot(BaseModel):
    """Point-in-time market context for one ticker."""

    model_config = ConfigDict(frozen=True)

    ticker: str
    fetched_at: Optional[datetime] = None

    spread_bps: Optional[float] = Field(default=None, ge=0.0)
    atr_spike: Optional[float] = Field(default=None, ge=0.0, description="ATR14 / RV20")
    depth_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    volume_ratio: Optional[float] = Field(default=None, ge=0.0, description="Current / average volume")
    gamma_bias: Optional[str] = Field(default=None, description="POSITIVE, NEGATIVE or NEUTRAL")

    regime: Optional[RegimeSnapshot] = None

    available: bool = True
    unavailable_reason: Optional[str] = None

    @classmethod
    def unavailable(cls, ticker: str, reason: str) -> "MarketSnapshot":
        """Placeholder used when the provider failed or timed out."""
        return cls(ticker=ticker, available=False, unavailable_reason=reason)


# ============================================================================
# Providers
# ============================================================================

class MarketSnapshotProvider(ABC):
    """Source of market snapshots."""

    def __init__(self, name: str = None):
        self.name = name or self.__class__.__name__
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @abstractmethod
    async def fetch(self, ticker: str) -> MarketSnapshot:
        """
        Fetch the current snapshot for a ticker.

        Raises:
            DegradedMarketData: If no usable data is available
        """
        pass


class StaticSnapshotProvider(MarketSnapshotProvider):
    """In-memory provider, fed by upstream regime/market webhooks or tests."""

    def __init__(self, snapshots: Optional[Dict[str, MarketSnapshot]] = None, name: str = None):
        super().__init__(name)
        self._snapshots: Dict[str, MarketSnapshot] = {
            ticker.upper(): snapshot for ticker, snapshot in (snapshots or {}).items()
        }

    def update(self, snapshot: MarketSnapshot) -> None:
        self._snapshots[snapshot.ticker.upper()] = snapshot

    async def fetch(self, ticker: str) -> MarketSnapshot:
        snapshot = self._snapshots.get(ticker.upper())
        if snapshot is None:
            raise DegradedMarketData(f"no snapshot for {ticker}")
        return snapshot
