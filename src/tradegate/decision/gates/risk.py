"""
Risk Gate

Sanity checks on the trade levels:
- stop and target 1 on the correct side of entry for the direction
- stop distance within configured bounds
- reward/risk to target 1 within configured bounds

Score: min(100, 50 + 25 * reward_risk), 0 when reward/risk is undefined.
"""

from typing import List, Optional

from tradegate.config.settings import GateConfig
from tradegate.core.types import Direction
from tradegate.decision.gates.base import Gate
from tradegate.decision.models import GateResult, Signal
from tradegate.market.snapshot import MarketSnapshot


class RiskGate(Gate):
    """Risk-parameter sanity gate."""

    gate_name = "risk"

    def evaluate(
        self,
        signal: Signal,
        snapshot: Optional[MarketSnapshot],
        config: GateConfig
    ) -> GateResult:
        settings = config.risk
        failures: List[str] = []
        entry, stop, target = signal.entry_price, signal.stop_loss, signal.target_1

        if signal.direction == Direction.LONG:
            stop_ok, target_ok = stop < entry, target > entry
        else:
            stop_ok, target_ok = stop > entry, target < entry

        if not stop_ok:
            failures.append(
                f"Stop {stop:g} on wrong side of entry {entry:g} for {signal.direction.value}"
            )
        if not target_ok:
            failures.append(
                f"Target 1 {target:g} on wrong side of entry {entry:g} for {signal.direction.value}"
            )

        stop_pct = signal.stop_distance_pct
        if stop_pct < settings.min_stop_distance_pct:
            failures.append(
                f"Stop distance {stop_pct:.2f}% below minimum {settings.min_stop_distance_pct:.2f}%"
            )
        elif stop_pct > settings.max_stop_distance_pct:
            failures.append(
                f"Stop distance {stop_pct:.2f}% above maximum {settings.max_stop_distance_pct:.2f}%"
            )

        rr = signal.reward_risk
        if rr is None:
            failures.append("Reward/risk undefined: stop equals entry")
            score = 0.0
        else:
            if rr < settings.min_rr:
                failures.append(f"Reward/risk {rr:.2f} below minimum {settings.min_rr:.2f}")
            elif rr > settings.max_rr:
                failures.append(f"Reward/risk {rr:.2f} above maximum {settings.max_rr:.2f}")
            score = min(100.0, 50 + 25 * rr)

        return self.build_result(
            config,
            score=score,
            failures=failures,
            pass_reason=f"Risk levels sane: stop {stop_pct:.2f}%, R/R {rr:.2f}" if rr is not None else "",
            details={
                "stop_distance_pct": round(stop_pct, 4),
                "reward_risk": round(rr, 4) if rr is not None else None,
                "sender_rr_t1": signal.risk.rr_ratio_t1,
            },
        )
