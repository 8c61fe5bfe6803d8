"""
Session Gate

Fails signals whose bar falls in a restricted market session
(after hours, closed, weekend by default). Soft by default.
"""

from typing import Optional

from tradegate.config.settings import GateConfig
from tradegate.decision.gates.base import Gate
from tradegate.decision.models import GateResult, Signal
from tradegate.market.snapshot import MarketSnapshot


class SessionGate(Gate):
    """Market-session admission gate."""

    gate_name = "session"

    def evaluate(
        self,
        signal: Signal,
        snapshot: Optional[MarketSnapshot],
        config: GateConfig
    ) -> GateResult:
        session = signal.market_session
        restricted = session in config.session.restricted_sessions

        return self.build_result(
            config,
            score=0.0 if restricted else 100.0,
            failures=[f"Signal in restricted session {session.value}"] if restricted else [],
            pass_reason=f"Session {session.value} open for trading",
            details={"session": session.value, "day_of_week": signal.day_of_week},
        )
