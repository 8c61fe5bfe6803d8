"""
Position sizing for actionable and hypothetical decisions.

size = clamp(min(confidence / 100, volatility_cap, phase_cap) * quality_boost,
             size_min, size_max)

rounded to 2 decimals. The quality boost enters here and nowhere else.
"""

from typing import Optional
import logging

from tradegate.config.settings import GateConfig
from tradegate.core.types import VolatilityRegime
from tradegate.decision.models import ExecutionPlan, Signal
from tradegate.market.snapshot import RegimeSnapshot

logger = logging.getLogger(__name__)


class PositionSizer:
    """Builds execution plans from a signal, its confluence score and the regime."""

    def __init__(self, name: str = "PositionSizer"):
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def size_multiplier(
        self,
        signal: Signal,
        confidence: float,
        regime: Optional[RegimeSnapshot],
        config: GateConfig
    ) -> dict:
        """
        Compute the size multiplier and the caps that shaped it.

        Returns:
            Dict with base_size, volatility_cap, phase_cap, quality_boost
            and size_multiplier
        """
        sizing = config.sizing

        volatility = regime.volatility if regime is not None else VolatilityRegime.NORMAL
        volatility_cap = sizing.volatility_caps.get(volatility, 1.0)

        phase = regime.phase if regime is not None and regime.phase is not None else sizing.default_phase
        rule = config.regime.phase_rules.get(phase)
        phase_cap = rule.size_cap if rule is not None else 1.0

        base_size = min(confidence / 100, volatility_cap, phase_cap)
        quality_boost = sizing.quality_boosts.get(signal.quality, 1.0)
        boosted = base_size * quality_boost
        size = round(min(sizing.size_max, max(sizing.size_min, boosted)), 2)

        return {
            "base_size": round(base_size, 4),
            "volatility_cap": volatility_cap,
            "phase_cap": phase_cap,
            "quality_boost": quality_boost,
            "size_multiplier": size,
        }

    def plan(
        self,
        signal: Signal,
        confidence: float,
        regime: Optional[RegimeSnapshot],
        config: GateConfig
    ) -> ExecutionPlan:
        """
        Build the execution plan for a signal.

        Args:
            signal: Canonical signal
            confidence: Confluence score the plan is sized from
            regime: Regime snapshot captured at decision time
            config: Gate configuration (sizing section)

        Returns:
            ExecutionPlan
        """
        sizing = self.size_multiplier(signal, confidence, regime, config)
        rr = signal.reward_risk

        plan = ExecutionPlan(
            direction=signal.direction,
            trade_type=signal.trade_type,
            entry_price=signal.entry_price,
            stop_loss=signal.stop_loss,
            target_1=signal.target_1,
            target_2=signal.target_2,
            risk_reward=round(rr, 4) if rr is not None else None,
            confidence=confidence,
            position_size_usd=round(sizing["size_multiplier"] * config.sizing.base_position_usd, 2),
            **sizing,
        )

        self.logger.debug(
            f"Sized {signal.ticker} {signal.direction.value}: base={plan.base_size:.2f} "
            f"boost={plan.quality_boost:.2f} -> {plan.size_multiplier:.2f}x (${plan.position_size_usd:,.2f})"
        )
        return plan
