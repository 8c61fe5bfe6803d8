"""
Quality Gate

Checks the signal's quality tier and AI score against configured minimums.
The score is the AI score on a 0-100 scale and never depends on the tier:
the tier only feeds the sizing boost.
"""

from typing import List, Optional

from tradegate.config.settings import GateConfig
from tradegate.decision.gates.base import Gate
from tradegate.decision.models import GateResult, Signal
from tradegate.market.snapshot import MarketSnapshot


class QualityGate(Gate):
    """Signal quality admission gate."""

    gate_name = "quality"

    def evaluate(
        self,
        signal: Signal,
        snapshot: Optional[MarketSnapshot],
        config: GateConfig
    ) -> GateResult:
        settings = config.quality
        failures: List[str] = []

        if signal.quality.rank < settings.min_quality.rank:
            failures.append(
                f"Quality {signal.quality.value} below minimum {settings.min_quality.value}"
            )

        if signal.ai_score < settings.min_ai_score:
            failures.append(
                f"AI score {signal.ai_score:.1f} below minimum {settings.min_ai_score:.1f}"
            )

        score = min(100.0, signal.ai_score / settings.ai_score_max * 100)

        return self.build_result(
            config,
            score=score,
            failures=failures,
            pass_reason=f"Quality {signal.quality.value}, AI score {signal.ai_score:.1f}/{settings.ai_score_max:.1f}",
            details={
                "quality": signal.quality.value,
                "ai_score": signal.ai_score,
                "ai_score_max": settings.ai_score_max,
                "components": list(signal.components),
            },
        )
