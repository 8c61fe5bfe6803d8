"""
Decision Replayer - re-evaluates stored decisions to verify determinism.

A ledger entry carries the signal and the market snapshot its gates saw,
plus the engine and config versions that decided it. Replaying feeds the
same inputs to the engine registered under that version and compares the
outcome field by field:
- MATCH: decision kind, confluence score and breakdown agree
- MISMATCH: same versions, different outcome (config content drifted or
  the engine is not deterministic)
- VERSION_MISMATCH: no engine for the recorded engine/config version
- ERROR: the replay itself raised
"""

import time
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from pydantic import BaseModel, ConfigDict, computed_field

from tradegate.core.types import DecisionKind
from tradegate.decision.engine import DecisionEngine
from tradegate.decision.models import Decision
from tradegate.ledger.models import LedgerEntry, LedgerQuery

DEFAULT_TOLERANCE = 0.001

_CONTRIBUTION_FIELDS = ("weight", "raw_score", "effective_score", "points", "passed", "degraded", "mode")


class ReplayStatus(str, Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    ERROR = "ERROR"


class FieldMismatch(BaseModel):
    """One field that differs between the stored and the replayed decision."""

    model_config = ConfigDict(frozen=True)

    field: str
    original: Any = None
    replayed: Any = None


class ReplayResult(BaseModel):
    """Outcome of replaying one ledger entry."""

    model_config = ConfigDict(frozen=True)

    status: ReplayStatus
    entry_id: str
    original_engine_version: str
    original_config_version: str
    replay_engine_version: Optional[str] = None
    replay_config_version: Optional[str] = None

    original_kind: DecisionKind
    original_confluence: float
    replayed_kind: Optional[DecisionKind] = None
    replayed_confluence: Optional[float] = None

    mismatches: Tuple[FieldMismatch, ...] = ()
    error: Optional[str] = None
    duration_ms: float = 0.0


class BatchReplayResult(BaseModel):
    """Replay results for many entries with summary counts."""

    model_config = ConfigDict(frozen=True)

    results: Tuple[ReplayResult, ...] = ()

    def _count(self, status: ReplayStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @computed_field
    @property
    def total(self) -> int:
        return len(self.results)

    @computed_field
    @property
    def matches(self) -> int:
        return self._count(ReplayStatus.MATCH)

    @computed_field
    @property
    def mismatches(self) -> int:
        return self._count(ReplayStatus.MISMATCH)

    @computed_field
    @property
    def version_mismatches(self) -> int:
        return self._count(ReplayStatus.VERSION_MISMATCH)

    @computed_field
    @property
    def errors(self) -> int:
        return self._count(ReplayStatus.ERROR)

    @computed_field
    @property
    def match_rate(self) -> float:
        return self.matches / self.total if self.total else 0.0

    def report(self) -> str:
        """Plain-text audit report."""
        avg_ms = sum(r.duration_ms for r in self.results) / self.total if self.total else 0.0
        lines = [
            "=== Decision Replay Audit Report ===",
            "",
            f"Total Entries: {self.total}",
            f"Matches: {self.matches} ({self.match_rate * 100:.1f}%)",
            f"Mismatches: {self.mismatches}",
            f"Version Mismatches: {self.version_mismatches}",
            f"Errors: {self.errors}",
            f"Avg Replay Duration: {avg_ms:.2f}ms",
            "",
        ]

        mismatched = [r for r in self.results if r.status == ReplayStatus.MISMATCH]
        if mismatched:
            lines += ["=== Mismatches ===", ""]
            for result in mismatched:
                lines.append(f"Entry: {result.entry_id}")
                lines.append(
                    f"  Original: {result.original_kind.value} (confluence: {result.original_confluence})"
                )
                lines.append(
                    f"  Replayed: {result.replayed_kind.value} (confluence: {result.replayed_confluence})"
                )
                for mismatch in result.mismatches:
                    lines.append(f"  - {mismatch.field}: {mismatch.original} -> {mismatch.replayed}")
                lines.append("")

        unversioned = [r for r in self.results if r.status == ReplayStatus.VERSION_MISMATCH]
        if unversioned:
            lines += ["=== Version Mismatches ===", ""]
            for result in unversioned:
                lines.append(
                    f"Entry: {result.entry_id} recorded "
                    f"{result.original_engine_version} / {result.original_config_version}, "
                    f"available {result.replay_engine_version} / {result.replay_config_version}"
                )
            lines.append("")

        failed = [r for r in self.results if r.status == ReplayStatus.ERROR]
        if failed:
            lines += ["=== Errors ===", ""]
            for result in failed:
                lines.append(f"Entry: {result.entry_id}")
                lines.append(f"  Error: {result.error}")
                lines.append("")

        return "\n".join(lines)


class DecisionReplayer:
    """
    Replays ledger entries through the engine that originally decided them.

    Example:
        replayer = DecisionReplayer({"v1": engine_v1, "v2": engine_v2})
        result = replayer.replay(ledger.get(entry_id))
        batch = replayer.replay_ledger(ledger, LedgerQuery(ticker="SPY"))
        print(batch.report())
    """

    def __init__(
        self,
        engines: Union[DecisionEngine, Mapping[str, DecisionEngine]],
        tolerance: float = DEFAULT_TOLERANCE,
        name: str = "DecisionReplayer"
    ):
        """
        Initialize the replayer.

        Args:
            engines: One engine, or engines keyed by engine version
            tolerance: Absolute tolerance for numeric comparisons
            name: Logger name suffix
        """
        if isinstance(engines, DecisionEngine):
            engines = {engines.version: engines}
        self.engines = dict(engines)
        self.tolerance = tolerance
        self.logger = logging.getLogger(f"{__name__}.{name}")

    def replay(self, entry: LedgerEntry) -> ReplayResult:
        """
        Replay one entry and compare against what was stored.

        Args:
            entry: Ledger entry

        Returns:
            ReplayResult with per-field mismatches
        """
        started = time.perf_counter()
        original = entry.decision
        base = {
            "entry_id": entry.id,
            "original_engine_version": original.engine_version,
            "original_config_version": original.config_version,
            "original_kind": original.kind,
            "original_confluence": original.confluence_score,
        }

        engine = self.engines.get(original.engine_version)
        if engine is None or engine.config_version != original.config_version:
            self.logger.warning(
                f"No engine for {original.engine_version} / {original.config_version}, "
                f"entry {entry.id} not replayed",
                extra={"entry_id": entry.id},
            )
            return ReplayResult(
                status=ReplayStatus.VERSION_MISMATCH,
                replay_engine_version=engine.version if engine else None,
                replay_config_version=engine.config_version if engine else None,
                duration_ms=_elapsed_ms(started),
                **base,
            )

        base["replay_engine_version"] = engine.version
        base["replay_config_version"] = engine.config_version

        try:
            replayed = engine.decide(original.signal, original.market)
        except Exception as e:
            self.logger.exception(f"Replay of entry {entry.id} raised")
            return ReplayResult(
                status=ReplayStatus.ERROR,
                error=str(e),
                duration_ms=_elapsed_ms(started),
                **base,
            )

        mismatches = self.compare(original, replayed)
        status = ReplayStatus.MISMATCH if mismatches else ReplayStatus.MATCH
        if mismatches:
            self.logger.warning(
                f"Replay MISMATCH for entry {entry.id}: "
                f"{', '.join(m.field for m in mismatches)}",
                extra={"entry_id": entry.id},
            )

        return ReplayResult(
            status=status,
            replayed_kind=replayed.kind,
            replayed_confluence=replayed.confluence_score,
            mismatches=tuple(mismatches),
            duration_ms=_elapsed_ms(started),
            **base,
        )

    def replay_batch(self, entries: Iterable[LedgerEntry]) -> BatchReplayResult:
        batch = BatchReplayResult(results=tuple(self.replay(entry) for entry in entries))
        self.logger.info(
            f"Replayed {batch.total} entries: {batch.matches} match, {batch.mismatches} mismatch, "
            f"{batch.version_mismatches} version mismatch, {batch.errors} error"
        )
        return batch

    def replay_ledger(self, ledger, filters: Optional[LedgerQuery] = None, **kwargs) -> BatchReplayResult:
        """Replay the entries a ledger query returns."""
        return self.replay_batch(ledger.query(filters, **kwargs))

    def verify_determinism(self, entry: LedgerEntry, iterations: int = 10) -> bool:
        """True if replaying the entry repeatedly always yields the same outcome."""
        results = [self.replay(entry) for _ in range(iterations)]
        first = results[0]
        return all(
            r.status == first.status
            and r.replayed_kind == first.replayed_kind
            and r.replayed_confluence == first.replayed_confluence
            for r in results
        )

    def compare(self, original: Decision, replayed: Decision) -> List[FieldMismatch]:
        """Fields that differ between two decisions for the same signal."""
        mismatches: List[FieldMismatch] = []
        self._check(mismatches, "decision", original.kind, replayed.kind)
        self._check(mismatches, "confluence_score", original.confluence_score, replayed.confluence_score)

        before, after = original.breakdown, replayed.breakdown
        for field in ("threshold", "total_weight", "failed_gates", "hard_failed_gates", "degraded_gates"):
            self._check(mismatches, f"breakdown.{field}", getattr(before, field), getattr(after, field))

        replayed_contributions = {c.gate: c for c in after.contributions}
        for contribution in before.contributions:
            match = replayed_contributions.pop(contribution.gate, None)
            if match is None:
                self._check(mismatches, f"breakdown.{contribution.gate}", contribution.gate, None)
                continue
            for field in _CONTRIBUTION_FIELDS:
                self._check(
                    mismatches,
                    f"breakdown.{contribution.gate}.{field}",
                    getattr(contribution, field),
                    getattr(match, field),
                )
        for gate in replayed_contributions:
            self._check(mismatches, f"breakdown.{gate}", None, gate)

        if original.execution is not None and replayed.execution is not None:
            self._check(
                mismatches,
                "execution.size_multiplier",
                original.execution.size_multiplier,
                replayed.execution.size_multiplier,
            )
        return mismatches

    def _check(self, mismatches: List[FieldMismatch], field: str, original, replayed) -> None:
        if _is_number(original) and _is_number(replayed):
            if abs(original - replayed) <= self.tolerance:
                return
        elif original == replayed:
            return
        mismatches.append(FieldMismatch(field=field, original=_plain(original), replayed=_plain(replayed)))


def _plain(value):
    return value.value if isinstance(value, Enum) else value


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
