"""
Signal Pipeline - route -> snapshot -> decide -> append.

Async orchestration around the synchronous core:
- The market snapshot fetch is bounded by a timeout; any failure degrades
  market gates to neutral instead of failing the decision
- Ledger calls run in a worker thread under a timeout; a timeout surfaces
  as PersistenceTimeout (retryable)
- Appends reuse one pre-generated entry id across retries, so a retry after
  a timeout that actually landed never duplicates the entry
- A decision that cannot be stored is dead-lettered, reported to failure
  callbacks and re-raised; it is never dropped silently
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Mapping, Optional, Union
import logging

from tradegate.config.settings import AppConfig, PipelineConfig
from tradegate.core.errors import DegradedMarketData, PersistenceError, PersistenceTimeout
from tradegate.decision.engine import DecisionEngine
from tradegate.decision.models import Decision
from tradegate.ingestion.router import RoutedSignal, SignalRouter
from tradegate.ledger.dead_letter import DeadLetterQueue
from tradegate.ledger.ledger import DecisionLedger
from tradegate.ledger.models import ExitOutcome
from tradegate.market.snapshot import MarketSnapshot, MarketSnapshotProvider
from tradegate.utils.logger import get_decision_logger

logger = logging.getLogger(__name__)

FailureCallback = Callable[[PersistenceError, Decision], None]


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of processing one inbound event."""
    entry_id: str
    decision: Decision
    routed: RoutedSignal
    snapshot: MarketSnapshot

    @property
    def snapshot_degraded(self) -> bool:
        return not self.snapshot.available


class SignalPipeline:
    """
    End-to-end handler for inbound sender events.

    Example:
        pipeline = SignalPipeline(router, ledger, provider, config.pipeline)
        result = await pipeline.process("tradingview", body, headers)
    """

    def __init__(
        self,
        router: SignalRouter,
        ledger: DecisionLedger,
        snapshot_provider: Optional[MarketSnapshotProvider] = None,
        config: Optional[PipelineConfig] = None,
        dead_letter: Optional[DeadLetterQueue] = None
    ):
        """
        Initialize the pipeline.

        Args:
            router: Canonical sender router
            ledger: Decision ledger
            snapshot_provider: Market data source (None -> every snapshot is unavailable)
            config: Timeouts and retry policy
            dead_letter: Queue receiving decisions that could not be stored
        """
        self.router = router
        self.ledger = ledger
        self.snapshot_provider = snapshot_provider
        self.config = config or PipelineConfig()
        self.dead_letter = dead_letter
        self._failure_callbacks: List[FailureCallback] = []
        self.audit = get_decision_logger(f"{__name__}.audit")

    @classmethod
    def from_config(
        cls,
        app_config: AppConfig,
        snapshot_provider: Optional[MarketSnapshotProvider] = None
    ) -> "SignalPipeline":
        """Build engine, router, ledger and dead-letter queue from configuration."""
        version = app_config.routing.active_version
        engine = DecisionEngine(app_config.gates, version=version, name=f"DecisionEngine-{version}")
        return cls(
            router=SignalRouter(app_config.routing, {version: engine}),
            ledger=DecisionLedger.from_config(app_config.ledger),
            snapshot_provider=snapshot_provider,
            config=app_config.pipeline,
            dead_letter=DeadLetterQueue(app_config.pipeline.dead_letter_path),
        )

    def on_persistence_failure(self, callback: FailureCallback) -> None:
        """Register a callback notified when a decision could not be stored."""
        self._failure_callbacks.append(callback)

    async def process(
        self,
        sender: str,
        body: Union[bytes, str],
        headers: Optional[Mapping[str, str]] = None,
        received_at: Optional[datetime] = None
    ) -> PipelineResult:
        """
        Process one inbound event.

        Raises:
            UnknownSender / AuthenticationFailure / MalformedSignal: Rejected
                before any gate runs; nothing is persisted
            PersistenceError: Decision computed but not stored (already
                dead-lettered and reported to failure callbacks)
        """
        routed = self.router.route(sender, body, headers, received_at)
        signal = routed.signal

        snapshot = await self._fetch_snapshot(signal.ticker)

        with self.audit.performance.timer("decide", ticker=signal.ticker):
            decision = routed.engine.decide(signal, snapshot)

        entry_id = await self._append(decision)
        return PipelineResult(entry_id=entry_id, decision=decision, routed=routed, snapshot=snapshot)

    async def _fetch_snapshot(self, ticker: str) -> MarketSnapshot:
        if self.snapshot_provider is None:
            return MarketSnapshot.unavailable(ticker, "no snapshot provider configured")

        try:
            return await asyncio.wait_for(
                self.snapshot_provider.fetch(ticker),
                timeout=self.config.snapshot_timeout_seconds,
            )
        except asyncio.TimeoutError:
            reason = f"snapshot fetch timed out after {self.config.snapshot_timeout_seconds}s"
        except DegradedMarketData as e:
            reason = e.reason
        except Exception as e:
            reason = f"snapshot provider error: {e}"

        logger.warning(f"Market data degraded for {ticker}: {reason}", extra={'ticker': ticker})
        return MarketSnapshot.unavailable(ticker, reason)

    async def _append_once(self, decision: Decision, entry_id: str) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.ledger.append, decision, entry_id),
                timeout=self.config.persistence_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise PersistenceTimeout(
                f"Ledger append timed out after {self.config.persistence_timeout_seconds}s",
                payload=DecisionLedger.decision_payload(entry_id, decision),
            ) from None

    async def _append(self, decision: Decision) -> str:
        """Append with retry/backoff; dead-letter and re-raise on final failure."""
        entry_id = str(uuid.uuid4())
        attempts = self.config.max_append_attempts

        for attempt in range(attempts):
            try:
                with self.audit.performance.timer("ledger_append", entry_id=entry_id):
                    stored_id = await self._append_once(decision, entry_id)
                self.audit.performance.log_metric("ledger_append_attempts", attempt + 1, entry_id=entry_id)
                return stored_id

            except PersistenceError as e:
                self.audit.persistence_failure(
                    e.error_code,
                    f"attempt {attempt + 1}/{attempts}: {e.message}",
                    retryable=e.retryable,
                    entry_id=entry_id,
                    ticker=decision.signal.ticker,
                )
                if not e.retryable or attempt == attempts - 1:
                    self._surface_failure(e, decision, entry_id)
                    raise

            wait_time = self.config.retry_backoff_seconds * (2 ** attempt)
            logger.info(f"Retrying ledger append for {entry_id} in {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

    def _surface_failure(self, error: PersistenceError, decision: Decision, entry_id: str) -> None:
        if error.payload is None:
            error.payload = DecisionLedger.decision_payload(entry_id, decision)

        if self.dead_letter is not None:
            self.dead_letter.write(error)

        for callback in self._failure_callbacks:
            try:
                callback(error, decision)
            except Exception:
                logger.exception(f"Persistence failure callback raised for entry {entry_id}")

    async def amend(self, entry_id: str, outcome: ExitOutcome) -> bool:
        """
        Attach an exit outcome under the persistence timeout.

        Returns:
            True if stored, False if the same outcome was already present
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.ledger.amend, entry_id, outcome),
                timeout=self.config.persistence_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise PersistenceTimeout(
                f"Ledger amend for {entry_id} timed out after {self.config.persistence_timeout_seconds}s",
                payload={"entry_id": entry_id, "exit_outcome": outcome.model_dump(mode="json")},
            ) from None
