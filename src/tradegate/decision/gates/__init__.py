"""
Admission gates.

Each gate is an independent, side-effect-free evaluator producing one
GateResult per signal. `default_gates(config)` builds the enabled gates
in evaluation order.
"""

from typing import List

from tradegate.config.settings import GateConfig
from tradegate.decision.gates.base import Gate
from tradegate.decision.gates.market_conditions import MarketConditionsGate
from tradegate.decision.gates.regime import RegimeGate
from tradegate.decision.gates.quality import QualityGate
from tradegate.decision.gates.risk import RiskGate
from tradegate.decision.gates.session import SessionGate

GATE_CLASSES = {
    MarketConditionsGate.gate_name: MarketConditionsGate,
    RegimeGate.gate_name: RegimeGate,
    QualityGate.gate_name: QualityGate,
    RiskGate.gate_name: RiskGate,
    SessionGate.gate_name: SessionGate,
}


def default_gates(config: GateConfig) -> List[Gate]:
    """Instantiate every enabled gate, in the order GateConfig lists them."""
    return [
        GATE_CLASSES[name]()
        for name, settings in config.gate_settings().items()
        if settings.enabled
    ]


__all__ = [
    'Gate',
    'MarketConditionsGate',
    'RegimeGate',
    'QualityGate',
    'RiskGate',
    'SessionGate',
    'GATE_CLASSES',
    'default_gates',
]
