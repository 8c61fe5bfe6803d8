"""
Market-Conditions Gate

Checks spread, ATR spike, depth, volume and dealer gamma against the
configured thresholds. Every violated threshold is reported; the gate
never stops at the first failure.

Component scores (0-100), averaged into the gate score:
- Spread:  pass max(50, 100 - 2*bps)        fail max(0, 100 - 5*(bps - max))
- ATR:     pass max(60, 100 - 15*spike)     fail max(0, 100 - 20*(spike - max))
- Depth:   the depth score itself
- Volume:  pass min(100, 50 + 50*ratio)     fail 50 * ratio / min_ratio
- Gamma:   pass 85                          fail 25

A missing input scores the configured neutral value and marks the result
degraded. A missing snapshot degrades the whole gate to neutral.
"""

from typing import Dict, List, Optional

from tradegate.config.settings import GateConfig
from tradegate.core.types import Direction
from tradegate.decision.gates.base import Gate
from tradegate.decision.models import GateResult, Signal
from tradegate.market.snapshot import MarketSnapshot

GAMMA_PASS_SCORE = 85.0
GAMMA_FAIL_SCORE = 25.0


class MarketConditionsGate(Gate):
    """Liquidity / volatility / spread admission gate."""

    gate_name = "market_conditions"

    def evaluate(
        self,
        signal: Signal,
        snapshot: Optional[MarketSnapshot],
        config: GateConfig
    ) -> GateResult:
        settings = config.market_conditions
        neutral = config.neutral_score

        if snapshot is None or not snapshot.available:
            why = snapshot.unavailable_reason if snapshot is not None else "no snapshot supplied"
            return self.build_result(
                config,
                score=neutral,
                failures=[],
                pass_reason=f"Market data unavailable ({why}), neutral score applied",
                details={"degraded_reason": why, "components": {}, "missing": ["snapshot"]},
                degraded=True,
            )

        components: Dict[str, float] = {}
        failures: List[str] = []
        missing: List[str] = []
        details = {}

        # Spread
        spread = snapshot.spread_bps
        if spread is None:
            missing.append("spread_bps")
            components["spread"] = neutral
        elif spread > settings.max_spread_bps:
            failures.append(f"Spread too wide: {spread:.1f}bps > {settings.max_spread_bps:.1f}bps")
            components["spread"] = max(0.0, 100 - (spread - settings.max_spread_bps) * 5)
        else:
            components["spread"] = max(50.0, 100 - spread * 2)

        # Volatility spike
        atr = snapshot.atr_spike
        if atr is None:
            missing.append("atr_spike")
            components["atr"] = neutral
        elif atr > settings.max_atr_spike:
            failures.append(f"ATR spike: {atr:.2f} > {settings.max_atr_spike:.2f}")
            components["atr"] = max(0.0, 100 - (atr - settings.max_atr_spike) * 20)
        else:
            components["atr"] = max(60.0, 100 - atr * 15)

        # Depth
        depth = snapshot.depth_score
        if depth is None:
            missing.append("depth_score")
            components["depth"] = neutral
        else:
            if depth < settings.min_depth_score:
                failures.append(f"Insufficient depth: {depth:.0f} < {settings.min_depth_score:.0f}")
            components["depth"] = depth

        # Volume, falling back to the sender's volume-vs-average
        volume = snapshot.volume_ratio
        details["volume_source"] = "snapshot"
        if volume is None and signal.market.volume_vs_avg is not None:
            volume = signal.market.volume_vs_avg
            details["volume_source"] = "signal"
        if volume is None:
            missing.append("volume_ratio")
            details["volume_source"] = None
            components["volume"] = neutral
        elif volume < settings.min_volume_ratio:
            failures.append(f"Volume too thin: {volume:.2f}x < {settings.min_volume_ratio:.2f}x average")
            components["volume"] = 50 * volume / settings.min_volume_ratio
        else:
            components["volume"] = min(100.0, 50 + 50 * volume)

        # Dealer gamma positioning
        if settings.check_gamma:
            gamma = (snapshot.gamma_bias or "").upper()
            if not gamma:
                missing.append("gamma_bias")
                components["gamma"] = neutral
            elif (gamma == "POSITIVE" and signal.direction == Direction.SHORT) or (
                gamma == "NEGATIVE" and signal.direction == Direction.LONG
            ):
                failures.append(f"Gamma headwind: {gamma} bias conflicts with {signal.direction.value}")
                components["gamma"] = GAMMA_FAIL_SCORE
            else:
                components["gamma"] = GAMMA_PASS_SCORE

        score = sum(components.values()) / len(components)
        details.update({
            "components": {name: round(value, 2) for name, value in components.items()},
            "missing": missing,
            "spread_bps": spread,
            "atr_spike": atr,
            "depth_score": depth,
            "volume_ratio": volume,
        })

        return self.build_result(
            config,
            score=score,
            failures=failures,
            pass_reason=f"Market conditions acceptable ({len(components)} checks)",
            details=details,
            degraded=bool(missing),
        )
