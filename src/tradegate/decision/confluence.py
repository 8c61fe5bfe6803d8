"""
Confluence Score Calculator

Aggregates GateResults into a single 0-100 confluence score:

    score = sum(weight_g * effective_g) / sum(weight_g)

where effective_g is the gate's score, capped at the gate's configured
failure_score when the gate failed. Weights and failure scores come from
GateConfig; the result depends on nothing else.
"""

from typing import Optional
import logging

from tradegate.config.settings import GateConfig
from tradegate.decision.models import ConfluenceBreakdown, GateContribution, GateResults

logger = logging.getLogger(__name__)


class ConfluenceCalculator:
    """
    Calculates the weighted confluence score from cached gate results.

    This is a pure calculation component - no side effects or state.
    The quality boost is not applied here; it only affects position sizing.
    """

    def __init__(self, name: str = "ConfluenceCalculator"):
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def calculate(self, results: GateResults, config: GateConfig) -> ConfluenceBreakdown:
        """
        Calculate confluence score from gate results.

        Args:
            results: Cached results of the single evaluation pass
            config: Gate configuration (weights, failure scores, threshold)

        Returns:
            ConfluenceBreakdown with the score and per-gate contributions

        Raises:
            ValueError: If a result names a gate the config does not know
        """
        settings = config.gate_settings()

        unknown = [gate for gate in results if gate not in settings]
        if unknown:
            raise ValueError(f"No configuration for gates: {unknown}")

        total_weight = sum(settings[gate].weight for gate in results)

        contributions = []
        weighted_sum = 0.0
        for result in results.ordered:
            gate_settings = settings[result.gate]
            effective = result.score if result.passed else min(result.score, gate_settings.failure_score)
            weighted_sum += gate_settings.weight * effective
            points = (gate_settings.weight * effective / total_weight) if total_weight > 0 else 0.0
            contributions.append(GateContribution(
                gate=result.gate,
                weight=gate_settings.weight,
                raw_score=result.score,
                effective_score=round(effective, 4),
                points=round(points, 4),
                passed=result.passed,
                degraded=result.degraded,
                mode=result.mode,
            ))

        score = round(weighted_sum / total_weight, 2) if total_weight > 0 else 0.0

        self.logger.debug(
            f"Confluence calculated: {score:.1f}/100 "
            f"(threshold {config.action_threshold:.1f}, {len(contributions)} gates)"
        )
        for c in sorted(contributions, key=lambda c: c.points, reverse=True):
            self.logger.debug(f"  • {c.gate}: +{c.points:.2f} points")

        return ConfluenceBreakdown(
            score=score,
            threshold=config.action_threshold,
            total_weight=round(total_weight, 6),
            contributions=tuple(contributions),
            failed_gates=tuple(r.gate for r in results.failed()),
            hard_failed_gates=tuple(r.gate for r in results.hard_failures()),
            degraded_gates=tuple(r.gate for r in results.degraded()),
        )

    def get_confidence_level(self, score: float, config: Optional[GateConfig] = None) -> str:
        """
        Get confidence level label for a confluence score.

        Score ranges:
        - >= 85: very_high
        - >= action threshold: high
        - >= neutral score: medium
        - >= neutral / 2: low
        - below: insufficient

        Args:
            score: Confluence score (0-100)
            config: Gate configuration supplying threshold and neutral score

        Returns:
            Confidence level string
        """
        config = config or GateConfig()

        if score >= 85.0:
            return 'very_high'
        elif score >= config.action_threshold:
            return 'high'
        elif score >= config.neutral_score:
            return 'medium'
        elif score >= config.neutral_score / 2:
            return 'low'
        else:
            return 'insufficient'
