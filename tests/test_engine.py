"""
Tests for the Decision Engine.

Tests:
1. Every gate runs exactly once per signal; cached results match a fresh pass
2. End-to-end SPY scenarios (ACT_LONG, hard-fail SKIP, soft-mode WAIT/ACT)
3. Quality boost changes size, never confluence
4. Missing market data degrades instead of failing
5. Concurrent decisions share no state
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from pydantic import ValidationError

from tradegate.config.settings import GateConfig, RegimeGateConfig
from tradegate.core.types import DecisionKind, Direction, GateMode, QualityTier, RegimeBias
from tradegate.decision.engine import DecisionEngine, create_default_decision_engine, decide
from tradegate.decision.gates import Gate, QualityGate, default_gates
from tradegate.decision.models import Decision


class CountingGate(Gate):
    """Wraps a gate and counts evaluate() calls."""

    def __init__(self, inner: Gate):
        self.gate_name = inner.gate_name
        super().__init__()
        self.inner = inner
        self.calls = 0

    def evaluate(self, signal, snapshot, config):
        self.calls += 1
        return self.inner.evaluate(signal, snapshot, config)


def soft_regime(threshold: float = 70.0) -> GateConfig:
    return GateConfig(action_threshold=threshold, regime=RegimeGateConfig(mode=GateMode.SOFT))


@pytest.fixture
def engine(gate_config):
    return DecisionEngine(gate_config)


@pytest.fixture
def incompatible_snapshot(make_snapshot, make_regime):
    """Phase 3 only allows SHORT; the SPY signal is LONG."""
    return make_snapshot(regime=make_regime(phase=3, phase_name="DISTRIBUTION"))


# ============================================================================
# Single evaluation pass
# ============================================================================

def test_each_gate_evaluated_exactly_once(make_signal, make_snapshot, gate_config):
    gates = [CountingGate(g) for g in default_gates(gate_config)]
    engine = DecisionEngine(gate_config, gates=gates)

    engine.decide(make_signal(), make_snapshot())

    assert [g.calls for g in gates] == [1, 1, 1, 1, 1]


@pytest.mark.parametrize("kind_snapshot", ["healthy", "incompatible", "missing"])
def test_each_gate_evaluated_once_on_every_path(make_signal, make_snapshot, incompatible_snapshot,
                                                gate_config, kind_snapshot):
    snapshot = {"healthy": make_snapshot(), "incompatible": incompatible_snapshot, "missing": None}[kind_snapshot]
    gates = [CountingGate(g) for g in default_gates(gate_config)]

    DecisionEngine(gate_config, gates=gates).decide(make_signal(), snapshot)

    assert all(g.calls == 1 for g in gates)


def test_cached_results_match_fresh_computation(engine, make_signal, make_snapshot, gate_config):
    """Test stored gate results are byte-identical to an independent pass."""
    signal, snapshot = make_signal(), make_snapshot(spread_bps=20.0)

    decision = engine.decide(signal, snapshot)
    fresh = [gate.evaluate(signal, snapshot, gate_config) for gate in default_gates(gate_config)]

    assert [r.model_dump_json() for r in decision.gate_results] == [r.model_dump_json() for r in fresh]
    assert list(decision.gates) == [r.gate for r in fresh]


def test_duplicate_gates_rejected(gate_config):
    with pytest.raises(ValueError):
        DecisionEngine(gate_config, gates=[QualityGate(), QualityGate()])


# ============================================================================
# End-to-end scenarios
# ============================================================================

def test_spy_all_gates_pass_acts_long(engine, make_signal, make_snapshot):
    signal = make_signal()
    decision = engine.decide(signal, make_snapshot())

    assert decision.kind == DecisionKind.ACT_LONG
    assert decision.confluence_score == pytest.approx(87.39, abs=0.01)
    assert decision.confluence_score == decision.breakdown.score
    assert all(r.passed for r in decision.gate_results)

    plan = decision.execution
    assert plan is not None
    assert plan.quality_boost == 1.15
    assert plan.size_multiplier == 1.0
    assert plan.position_size_usd == pytest.approx(1000.0)
    assert plan.risk_reward == 2.0

    assert decision.hypothetical is None
    assert decision.regime.phase == 2
    assert decision.decided_at == signal.received_at
    assert decision.engine_version == "v1"
    assert decision.config_version == "default@1"


def test_hard_regime_incompatible_skips(engine, make_signal, incompatible_snapshot):
    """Test SKIP references the regime gate and keeps the confluence score."""
    decision = engine.decide(make_signal(), incompatible_snapshot)

    assert decision.kind == DecisionKind.SKIP
    assert decision.execution is None
    assert any(r.startswith("regime:") for r in decision.reasons)
    assert "regime" in decision.reason
    assert decision.breakdown.hard_failed_gates == ("regime",)
    assert decision.breakdown.score == pytest.approx(67.39, abs=0.01)
    assert decision.confluence_score == decision.breakdown.score

    assert decision.hypothetical is not None
    assert decision.hypothetical.plan is not None
    assert not decision.hypothetical.would_have_executed


def test_hard_fail_skips_regardless_of_score(make_signal, incompatible_snapshot):
    config = GateConfig(action_threshold=0.0)
    decision = DecisionEngine(config).decide(make_signal(), incompatible_snapshot)

    assert decision.kind == DecisionKind.SKIP
    assert decision.hypothetical.would_have_executed


def test_soft_regime_only_lowers_score(make_signal, incompatible_snapshot):
    """Test soft mode turns the same input into WAIT (threshold 70) or ACT (threshold 60)."""
    waiting = DecisionEngine(soft_regime(70.0)).decide(make_signal(), incompatible_snapshot)
    assert waiting.kind == DecisionKind.WAIT
    assert waiting.confluence_score == pytest.approx(67.39, abs=0.01)
    assert waiting.reasons[0] == waiting.reason
    assert any(r.startswith("regime:") for r in waiting.reasons[1:])
    assert waiting.hypothetical.plan is not None

    acting = DecisionEngine(soft_regime(60.0)).decide(make_signal(), incompatible_snapshot)
    assert acting.kind == DecisionKind.ACT_LONG
    assert acting.execution is not None
    assert acting.breakdown.failed_gates == ("regime",)


def test_act_short(engine, make_signal, make_snapshot, make_regime):
    signal = make_signal(direction=Direction.SHORT, stop_loss=453.25, target_1=444.25, target_2=441.25)
    snapshot = make_snapshot(regime=make_regime(bias=RegimeBias.SHORT))

    decision = engine.decide(signal, snapshot)

    assert decision.kind == DecisionKind.ACT_SHORT
    assert decision.execution.direction == Direction.SHORT


def test_quality_boost_never_changes_confluence(engine, make_signal, make_snapshot):
    """Test signals differing only in quality tier share a score but not a size."""
    snapshot = make_snapshot()
    high = engine.decide(make_signal(quality=QualityTier.HIGH), snapshot)
    low = engine.decide(make_signal(quality=QualityTier.LOW), snapshot)

    assert high.kind == low.kind == DecisionKind.ACT_LONG
    assert high.confluence_score == low.confluence_score
    assert high.execution.size_multiplier == 1.0
    assert low.execution.size_multiplier == 0.74
    assert high.execution.size_multiplier > low.execution.size_multiplier


def test_missing_snapshot_degrades(engine, make_signal):
    decision = engine.decide(make_signal(), None)

    assert decision.kind in (DecisionKind.ACT_LONG, DecisionKind.WAIT)
    assert decision.breakdown.degraded_gates == ("market_conditions", "regime")
    assert decision.gates["market_conditions"].degraded
    assert decision.regime is None


def test_soft_session_failure_still_acts(engine, make_signal, make_snapshot):
    from datetime import datetime, timezone

    signal = make_signal(bar_time=datetime(2024, 1, 10, 22, 0, tzinfo=timezone.utc))
    decision = engine.decide(signal, make_snapshot())

    assert decision.kind == DecisionKind.ACT_LONG
    assert decision.breakdown.failed_gates == ("session",)
    assert decision.confluence_score == pytest.approx(77.39, abs=0.01)


# ============================================================================
# Purity and concurrency
# ============================================================================

def test_concurrent_decisions_are_independent(engine, make_signal, make_snapshot, incompatible_snapshot):
    inputs = [
        (make_signal(ticker=f"T{i}", quality=list(QualityTier)[i % 4]),
         make_snapshot(ticker=f"T{i}") if i % 2 else incompatible_snapshot)
        for i in range(40)
    ]
    sequential = [engine.decide(s, snap) for s, snap in inputs]

    with ThreadPoolExecutor(max_workers=8) as pool:
        parallel = list(pool.map(lambda args: engine.decide(*args), inputs))

    assert parallel == sequential


def test_module_level_decide(make_signal, make_snapshot, gate_config):
    decision = decide(make_signal(), gate_config, make_snapshot(), version="v2")
    assert decision.kind == DecisionKind.ACT_LONG
    assert decision.engine_version == "v2"


def test_default_engine_factory():
    engine = create_default_decision_engine(version="v3")
    assert engine.version == "v3"
    assert engine.config == GateConfig()


def test_act_decision_requires_plan(engine, make_signal, make_snapshot):
    decision = engine.decide(make_signal(), make_snapshot())
    data = decision.model_dump()
    data["execution"] = None
    with pytest.raises(ValidationError):
        Decision(**data)
