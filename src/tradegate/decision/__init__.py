"""
Decision Engine - Gate evaluation and decision derivation.

This module implements the decision-making layer that:
1. Runs every configured admission gate once per signal
2. Aggregates gate results into a weighted confluence score
3. Derives ACT_LONG / ACT_SHORT / WAIT / SKIP
4. Sizes actionable (and hypothetical) execution plans

Design Pattern: Composition
- Gates are independent, side-effect-free evaluators
- GateConfig is immutable and bound to one engine instance

Components:
- DecisionEngine: Main orchestrator
- Gate: Base for admission gates
- ConfluenceCalculator: Score aggregation
- PositionSizer: Execution sizing (quality boost)
- Data classes: Signal, GateResult, GateResults, Decision, ExecutionPlan
"""

from tradegate.decision.engine import DecisionEngine, create_default_decision_engine, decide
from tradegate.decision.confluence import ConfluenceCalculator
from tradegate.decision.sizing import PositionSizer
from tradegate.decision.models import (
    Signal,
    RiskParams,
    TrendIndicators,
    MarketIndicators,
    GateResult,
    GateResults,
    GateContribution,
    ConfluenceBreakdown,
    ExecutionPlan,
    HypotheticalPlan,
    Decision,
)
from tradegate.decision.gates import (
    Gate,
    MarketConditionsGate,
    RegimeGate,
    QualityGate,
    RiskGate,
    SessionGate,
    default_gates,
)

__all__ = [
    # Core engine
    'DecisionEngine',
    'create_default_decision_engine',
    'decide',
    'ConfluenceCalculator',
    'PositionSizer',

    # Data structures
    'Signal',
    'RiskParams',
    'TrendIndicators',
    'MarketIndicators',
    'GateResult',
    'GateResults',
    'GateContribution',
    'ConfluenceBreakdown',
    'ExecutionPlan',
    'HypotheticalPlan',
    'Decision',

    # Gates
    'Gate',
    'MarketConditionsGate',
    'RegimeGate',
    'QualityGate',
    'RiskGate',
    'SessionGate',
    'default_gates',
]
