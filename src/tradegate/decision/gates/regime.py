"""
Regime Gate

Validates that the market regime (phase, confidence, bias) allows the
signal's direction. HARD mode turns a failure into SKIP; SOFT mode only
lowers the gate's confluence contribution. The gate itself scores the
same either way; the engine applies the mode.
"""

from typing import List, Optional

from tradegate.config.settings import GateConfig
from tradegate.core.types import RegimeBias
from tradegate.decision.gates.base import Gate
from tradegate.decision.models import GateResult, Signal
from tradegate.market.snapshot import MarketSnapshot


class RegimeGate(Gate):
    """Regime / direction compatibility gate."""

    gate_name = "regime"

    def evaluate(
        self,
        signal: Signal,
        snapshot: Optional[MarketSnapshot],
        config: GateConfig
    ) -> GateResult:
        settings = config.regime
        regime = snapshot.regime if snapshot is not None and snapshot.available else None

        if regime is None or regime.phase is None:
            if settings.allow_missing:
                return self.build_result(
                    config,
                    score=config.neutral_score,
                    failures=[],
                    pass_reason="No regime data available, neutral score applied",
                    details={"degraded_reason": "regime unavailable"},
                    degraded=True,
                )
            return self.build_result(
                config,
                score=settings.failure_score,
                failures=["Regime data required but not available"],
                pass_reason="",
                details={"degraded_reason": "regime unavailable"},
                degraded=True,
            )

        direction = signal.direction
        confidence = regime.confidence if regime.confidence is not None else config.neutral_score
        phase_label = f"phase {regime.phase}" + (f" ({regime.phase_name})" if regime.phase_name else "")

        failures: List[str] = []
        scores: List[float] = [confidence]

        rule = settings.phase_rules.get(regime.phase)
        allowed = [d.value for d in rule.allowed] if rule else []
        if direction.value not in allowed:
            failures.append(f"{direction.value} trades not allowed in {phase_label}")
            scores.append(0.0)

        if confidence < settings.min_confidence:
            failures.append(
                f"Regime confidence too low: {confidence:.0f}% < {settings.min_confidence:.0f}%"
            )

        if settings.check_bias and regime.bias != RegimeBias.NEUTRAL and regime.bias.value != direction.value:
            failures.append(
                f"Regime bias ({regime.bias.value}) conflicts with trade direction ({direction.value})"
            )
            scores.append(confidence * settings.bias_conflict_factor)

        return self.build_result(
            config,
            score=min(scores),
            failures=failures,
            pass_reason=f"{phase_label.capitalize()} allows {direction.value}, confidence {confidence:.0f}%",
            details={
                "phase": regime.phase,
                "phase_name": regime.phase_name,
                "confidence": confidence,
                "bias": regime.bias.value,
                "volatility": regime.volatility.value,
                "direction": direction.value,
                "allowed": allowed,
            },
        )
