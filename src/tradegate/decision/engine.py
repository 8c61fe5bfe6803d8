"""
Decision Engine - Core signal-to-decision orchestrator.

For each signal:
1. Runs every configured gate exactly once (results cached per call)
2. Aggregates the cached results into a confluence score
3. Any HARD gate failure -> SKIP (reason = union of failing gate reasons)
4. Confluence below the action threshold -> WAIT
5. Otherwise ACT_LONG / ACT_SHORT, and only then builds the execution plan

Design Pattern: Composition
- Gates are injected and composable
- GateConfig is bound at construction and never mutated
- decide() keeps all state on the stack, so concurrent calls need no locking
"""

from typing import List, Optional
import logging

from tradegate.config.settings import GateConfig
from tradegate.core.types import DecisionKind, Direction
from tradegate.decision.confluence import ConfluenceCalculator
from tradegate.decision.gates import Gate, default_gates
from tradegate.decision.models import (
    ConfluenceBreakdown,
    Decision,
    GateResults,
    HypotheticalPlan,
    Signal,
)
from tradegate.decision.sizing import PositionSizer
from tradegate.market.snapshot import MarketSnapshot
from tradegate.utils.logger import get_decision_logger

logger = logging.getLogger(__name__)


class DecisionEngine:
    """
    Main decision engine bound to one immutable GateConfig.

    Composition Design:
    - Gates: independent evaluators (HARD or SOFT per config)
    - Confluence calculator: weighted aggregate of cached gate results
    - Position sizer: execution plan with the quality boost
    """

    def __init__(
        self,
        config: GateConfig,
        gates: Optional[List[Gate]] = None,
        version: str = "v1",
        name: str = "DecisionEngine"
    ):
        """
        Initialize decision engine.

        Args:
            config: Frozen gate configuration bound to this engine
            gates: Gates to run (defaults to every enabled gate in config)
            version: Engine version recorded on every decision
            name: Engine name for logging
        """
        self.config = config
        self.gates = list(gates) if gates is not None else default_gates(config)
        self.version = version
        self.name = name

        names = [g.gate_name for g in self.gates]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate gates configured: {names}")

        self.confluence_calculator = ConfluenceCalculator()
        self.sizer = PositionSizer()

        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.audit = get_decision_logger(f"{__name__}.{name}.audit")
        self.logger.info(
            f"DecisionEngine {version} initialized: {len(self.gates)} gates {names}, "
            f"config={config.config_version} ({config.fingerprint()}), "
            f"action_threshold={config.action_threshold:.1f}"
        )

    @property
    def config_version(self) -> str:
        return self.config.config_version

    def evaluate_gates(self, signal: Signal, snapshot: Optional[MarketSnapshot] = None) -> GateResults:
        """Run each gate once and return the ordered, read-only results."""
        return GateResults(gate.evaluate(signal, snapshot, self.config) for gate in self.gates)

    def decide(self, signal: Signal, snapshot: Optional[MarketSnapshot] = None) -> Decision:
        """
        Derive the decision for one signal.

        Args:
            signal: Canonical signal
            snapshot: Market snapshot (None or unavailable -> market gates degrade)

        Returns:
            Decision carrying breakdown, gate results, regime snapshot and,
            for ACT decisions, the execution plan
        """
        results = self.evaluate_gates(signal, snapshot)
        breakdown = self.confluence_calculator.calculate(results, self.config)
        regime = snapshot.regime if snapshot is not None and snapshot.available else None

        for failed in results.failed():
            self.audit.gate_failed(failed.gate, signal.ticker, list(failed.reasons) or [failed.reason])

        hard_failures = results.hard_failures()
        if hard_failures:
            decision = self._skip(signal, results, breakdown, regime, hard_failures, snapshot)
        elif breakdown.score < self.config.action_threshold:
            decision = self._wait(signal, results, breakdown, regime, snapshot)
        else:
            decision = self._act(signal, results, breakdown, regime, snapshot)

        self.audit.decision_made(
            signal.ticker,
            decision.kind.value,
            decision.confluence_score,
            sender=signal.source,
        )
        return decision

    # ------------------------------------------------------------------
    # Outcome builders
    # ------------------------------------------------------------------

    def _skip(self, signal, results, breakdown, regime, hard_failures, market) -> Decision:
        reasons = tuple(
            f"{result.gate}: {reason}"
            for result in hard_failures
            for reason in (result.reasons or (result.reason,))
        )
        self.logger.info(
            f"❌ SKIP {signal.ticker}: {len(hard_failures)} hard gate(s) failed "
            f"(confluence {breakdown.score:.1f} recorded)"
        )
        return self._build(
            DecisionKind.SKIP,
            reason="Hard gate failure: " + "; ".join(reasons),
            reasons=reasons,
            signal=signal,
            results=results,
            breakdown=breakdown,
            regime=regime,
            market=market,
            hypothetical=self._hypothetical(signal, breakdown, regime, reasons),
        )

    def _wait(self, signal, results, breakdown, regime, market) -> Decision:
        shortfall = self.config.action_threshold - breakdown.score
        headline = (
            f"Confluence {breakdown.score:.1f} below action threshold "
            f"{self.config.action_threshold:.1f}"
        )
        soft = tuple(
            f"{result.gate}: {reason}"
            for result in results.failed()
            for reason in (result.reasons or (result.reason,))
        )
        self.logger.info(f"⚠️  WAIT {signal.ticker}: {headline} (need {shortfall:.1f} more points)")
        return self._build(
            DecisionKind.WAIT,
            reason=headline,
            reasons=(headline,) + soft,
            signal=signal,
            results=results,
            breakdown=breakdown,
            regime=regime,
            market=market,
            hypothetical=self._hypothetical(signal, breakdown, regime, (headline,) + soft),
        )

    def _act(self, signal, results, breakdown, regime, market) -> Decision:
        kind = DecisionKind.ACT_LONG if signal.direction == Direction.LONG else DecisionKind.ACT_SHORT
        plan = self.sizer.plan(signal, breakdown.score, regime, self.config)
        confidence = self.confluence_calculator.get_confidence_level(breakdown.score, self.config)
        self.logger.info(
            f"🎯 {kind.value} {signal.ticker} | Confluence: {breakdown.score:.1f} | "
            f"Confidence: {confidence.upper()} | Size: {plan.size_multiplier:.2f}x"
        )
        return self._build(
            kind,
            reason=(
                f"Confluence {breakdown.score:.1f} >= action threshold "
                f"{self.config.action_threshold:.1f}, no hard gate failures"
            ),
            reasons=(),
            signal=signal,
            results=results,
            breakdown=breakdown,
            regime=regime,
            market=market,
            execution=plan,
        )

    def _hypothetical(self, signal, breakdown: ConfluenceBreakdown, regime, reasons) -> HypotheticalPlan:
        return HypotheticalPlan(
            would_have_executed=breakdown.score >= self.config.action_threshold,
            blocking_reasons=tuple(reasons),
            plan=self.sizer.plan(signal, breakdown.score, regime, self.config),
        )

    def _build(self, kind, reason, reasons, signal, results, breakdown, regime, market,
               execution=None, hypothetical=None) -> Decision:
        return Decision(
            kind=kind,
            reason=reason,
            reasons=reasons,
            confluence_score=breakdown.score,
            breakdown=breakdown,
            gate_results=results.ordered,
            signal=signal,
            regime=regime,
            market=market,
            execution=execution,
            hypothetical=hypothetical,
            engine_version=self.version,
            config_version=self.config.config_version,
            decided_at=signal.received_at,
        )


def decide(
    signal: Signal,
    config: GateConfig,
    snapshot: Optional[MarketSnapshot] = None,
    version: str = "v1"
) -> Decision:
    """Evaluate one signal with a throwaway engine bound to `config`."""
    return DecisionEngine(config, version=version).decide(signal, snapshot)


def create_default_decision_engine(
    config: Optional[GateConfig] = None,
    version: str = "v1"
) -> DecisionEngine:
    """
    Create decision engine with the default gate set.

    Args:
        config: Gate configuration (defaults to GateConfig())
        version: Engine version label

    Returns:
        Configured DecisionEngine instance
    """
    return DecisionEngine(config or GateConfig(), version=version, name=f"DecisionEngine-{version}")
