"""
Base class for admission gates.

Gates are pure evaluators: given the same signal, snapshot and config they
return the same GateResult, and they never touch the ledger or any other
shared state.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

from tradegate.config.settings import GateConfig, GateSettings
from tradegate.decision.models import GateResult, Signal
from tradegate.market.snapshot import MarketSnapshot

logger = logging.getLogger(__name__)


class Gate(ABC):
    """
    Base class for admission gates.

    Each gate reads its own section of the GateConfig (looked up by the
    gate name) and reports:
    - passed: whether every condition held
    - score: 0-100 contribution before confluence weighting
    - reasons: every failing condition, never just the first
    - degraded: whether it ran without some of its inputs
    """

    gate_name: str = "gate"

    def __init__(self, name: str = None):
        self.name = name or self.gate_name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @abstractmethod
    def evaluate(
        self,
        signal: Signal,
        snapshot: Optional[MarketSnapshot],
        config: GateConfig
    ) -> GateResult:
        """
        Evaluate one signal.

        Args:
            signal: Canonical signal
            snapshot: Market snapshot, or None when the engine runs without one
            config: Gate configuration bound to the engine

        Returns:
            GateResult for this gate
        """
        pass

    def settings(self, config: GateConfig) -> GateSettings:
        return config.gate_settings()[self.gate_name]

    def build_result(
        self,
        config: GateConfig,
        score: float,
        failures: List[str],
        pass_reason: str,
        details: Optional[Dict[str, Any]] = None,
        degraded: bool = False,
    ) -> GateResult:
        """Assemble a GateResult; fails when any failure reason was collected."""
        passed = not failures
        result = GateResult(
            gate=self.gate_name,
            passed=passed,
            score=round(min(100.0, max(0.0, score)), 2),
            reason=pass_reason if passed else "; ".join(failures),
            reasons=tuple(failures),
            details=details or {},
            degraded=degraded,
            mode=self.settings(config).mode,
        )
        self.log_score(result)
        return result

    def log_score(self, result: GateResult) -> None:
        """Log gate outcome."""
        status = "pass" if result.passed else "FAIL"
        suffix = " (degraded)" if result.degraded else ""
        self.logger.debug(f"{self.name}: {status} score={result.score:.1f}{suffix} - {result.reason}")
