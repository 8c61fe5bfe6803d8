"""
Decision Ledger - durable append-then-amend store of decisions (DuckDB).

Guarantees:
- append is a single INSERT: the full entry is stored or nothing is
- append is idempotent on entry id (ON CONFLICT DO NOTHING), so retries
  after a timeout never duplicate an entry
- a store whose columns lag the entry shape raises SchemaMismatch and
  blocks every further write until the schema is fixed and re-verified
- amend is a conditional UPDATE keyed on "no outcome yet"; re-applying
  the same outcome is a no-op, a different outcome is an AmendConflict

Each operation runs on its own cursor, so appends from different threads
do not serialize on a Python lock.
"""

import json
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging

import duckdb

from tradegate.config.settings import LedgerConfig
from tradegate.core.errors import AmendConflict, NotFound, PersistenceError, SchemaMismatch
from tradegate.decision.models import (
    ConfluenceBreakdown,
    Decision,
    ExecutionPlan,
    GateResult,
    HypotheticalPlan,
    Signal,
)
from tradegate.ledger.models import (
    ExitOutcome,
    LedgerEntry,
    LedgerQuery,
    OutcomeAggregates,
    from_naive_utc,
    to_naive_utc,
)
from tradegate.ledger.queries import (
    amend_entry_query,
    build_aggregate_query,
    build_count_query,
    build_filter_query,
    calculate_aggregates,
    execute_query,
    exit_outcome_id_query,
    insert_entry_query,
    select_entry_query,
)
from tradegate.ledger.schema import (
    APPEND_COLUMNS,
    DEFAULT_TABLE,
    LEDGER_COLUMNS,
    SCHEMA_VERSION,
    create_all_tables,
    find_missing_columns,
    get_table_stats,
)
from tradegate.market.snapshot import MarketSnapshot, RegimeSnapshot
from tradegate.utils.logger import get_decision_logger

logger = logging.getLogger(__name__)

_SCHEMA_ERRORS = (duckdb.BinderException, duckdb.CatalogException)

AMEND_CONFLICT_RETRIES = 5


class DecisionLedger:
    """
    DuckDB-backed decision ledger.

    Example:
        ledger = DecisionLedger(path="data/ledger.duckdb")
        entry_id = ledger.append(decision)
        ledger.amend(entry_id, outcome)
        recent = ledger.query(LedgerQuery(ticker="SPY", limit=20))
    """

    def __init__(
        self,
        path: str = ":memory:",
        table: str = DEFAULT_TABLE,
        create_schema: bool = True,
        default_query_limit: int = 100,
    ):
        """
        Initialize the ledger.

        Args:
            path: DuckDB database file, or ':memory:'
            table: Ledger table name
            create_schema: Create tables and indexes if they are missing
            default_query_limit: Page size used when query() gets no filters
        """
        self.path = path
        self.table = table
        self.default_query_limit = default_query_limit

        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = duckdb.connect(path)
        self._lock = threading.Lock()
        self._schema_verified = False
        self._blocked_columns: Optional[List[str]] = None
        self.audit = get_decision_logger(f"{__name__}.audit")

        if create_schema:
            create_all_tables(self._conn, table)

        missing = find_missing_columns(self._conn, table)
        if missing:
            logger.critical(
                f"Ledger table '{table}' is missing columns {missing}; appends will be refused"
            )

        logger.info(f"DecisionLedger initialized: path={path} table={table}")

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "DecisionLedger":
        return cls(
            path=config.path,
            table=config.table,
            create_schema=config.create_schema,
            default_query_limit=config.default_query_limit,
        )

    # ------------------------------------------------------------------
    # Connection / schema helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _cursor(self):
        with self._lock:
            cursor = self._conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def verify_schema(self) -> List[str]:
        """Return expected columns the store lacks (empty when the shape matches)."""
        with self._cursor() as cursor:
            return find_missing_columns(cursor, self.table)

    @property
    def writes_blocked(self) -> bool:
        return self._blocked_columns is not None

    def reset_schema_block(self) -> bool:
        """
        Re-verify the schema after a fix and lift the write block if it matches.

        Returns:
            True if writes are allowed again
        """
        missing = self.verify_schema()
        with self._lock:
            if missing:
                self._blocked_columns = missing
                self._schema_verified = False
                return False
            self._blocked_columns = None
            self._schema_verified = True
        logger.warning("Ledger schema re-verified, write block lifted")
        return True

    def _block(self, missing: List[str]) -> None:
        with self._lock:
            self._blocked_columns = list(missing)
            self._schema_verified = False

    def _ensure_writable(self, payload: Dict[str, Any]) -> None:
        """Raise SchemaMismatch if the store cannot take a full entry."""
        if self._blocked_columns is not None:
            raise SchemaMismatch(
                f"Ledger writes blocked: table '{self.table}' missing columns {self._blocked_columns}",
                missing_columns=self._blocked_columns,
                payload=payload,
            )
        if self._schema_verified:
            return

        try:
            missing = self.verify_schema()
        except duckdb.Error as e:
            self.audit.persistence_failure(
                "persistence_error", str(e), retryable=True, entry_id=payload.get("entry_id")
            )
            raise PersistenceError(f"Ledger schema check failed: {e}", payload=payload) from e
        if missing:
            self._block(missing)
            self.audit.schema_mismatch(self.table, missing, entry_id=payload.get("entry_id"))
            raise SchemaMismatch(
                f"Ledger table '{self.table}' missing columns {missing}",
                missing_columns=missing,
                payload=payload,
            )
        with self._lock:
            self._schema_verified = True

    def _schema_error(self, error: Exception, payload: Dict[str, Any]) -> SchemaMismatch:
        """Translate a binder/catalog error into SchemaMismatch and block writes."""
        missing = self.verify_schema()
        self._block(missing)
        self.audit.schema_mismatch(self.table, missing, entry_id=payload.get("entry_id"))
        return SchemaMismatch(
            f"Ledger schema rejected write: {error}",
            missing_columns=missing,
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def decision_payload(entry_id: str, decision: Decision) -> Dict[str, Any]:
        """JSON-native payload carried by persistence errors and dead letters."""
        return {"entry_id": entry_id, "decision": decision.model_dump(mode="json")}

    def _append_row(self, entry_id: str, decision: Decision, created_at: datetime) -> Dict[str, Any]:
        signal = decision.signal
        return {
            "id": entry_id,
            "created_at": to_naive_utc(created_at),
            "schema_version": SCHEMA_VERSION,
            "engine_version": decision.engine_version,
            "config_version": decision.config_version,
            "sender": signal.source,
            "ticker": signal.ticker,
            "timeframe": signal.timeframe,
            "quality": signal.quality.value,
            "direction": signal.direction.value,
            "trade_type": signal.trade_type.value,
            "regime_volatility": decision.regime.volatility.value if decision.regime else None,
            "decision": decision.kind.value,
            "decision_reason": decision.reason,
            "decision_reasons": json.dumps(list(decision.reasons)),
            "decided_at": to_naive_utc(decision.decided_at),
            "confluence_score": decision.confluence_score,
            "signal": signal.model_dump_json(),
            "decision_breakdown": decision.breakdown.model_dump_json(),
            "gate_results": json.dumps([r.model_dump(mode="json") for r in decision.gate_results]),
            "regime": decision.regime.model_dump_json() if decision.regime else None,
            "market_snapshot": decision.market.model_dump_json() if decision.market else None,
            "execution": decision.execution.model_dump_json() if decision.execution else None,
            "hypothetical": decision.hypothetical.model_dump_json() if decision.hypothetical else None,
        }

    def _row_to_entry(self, row: tuple) -> LedgerEntry:
        r = dict(zip(LEDGER_COLUMNS, row))
        decision = Decision(
            kind=r["decision"],
            reason=r["decision_reason"],
            reasons=json.loads(r["decision_reasons"] or "[]"),
            confluence_score=r["confluence_score"],
            breakdown=ConfluenceBreakdown.model_validate_json(r["decision_breakdown"]),
            gate_results=[GateResult.model_validate(g) for g in json.loads(r["gate_results"])],
            signal=Signal.model_validate_json(r["signal"]),
            regime=RegimeSnapshot.model_validate_json(r["regime"]) if r["regime"] else None,
            market=MarketSnapshot.model_validate_json(r["market_snapshot"]) if r["market_snapshot"] else None,
            execution=ExecutionPlan.model_validate_json(r["execution"]) if r["execution"] else None,
            hypothetical=(
                HypotheticalPlan.model_validate_json(r["hypothetical"]) if r["hypothetical"] else None
            ),
            engine_version=r["engine_version"],
            config_version=r["config_version"],
            decided_at=from_naive_utc(r["decided_at"]),
        )
        return LedgerEntry(
            id=r["id"],
            created_at=from_naive_utc(r["created_at"]),
            schema_version=r["schema_version"],
            sender=r["sender"],
            decision=decision,
            exit_outcome=ExitOutcome.model_validate_json(r["exit_outcome"]) if r["exit_outcome"] else None,
            exit_outcome_id=r["exit_outcome_id"],
            amended_at=from_naive_utc(r["amended_at"]),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def append(self, decision: Decision, entry_id: Optional[str] = None) -> str:
        """
        Durably store one decision.

        Args:
            decision: Decision to store (with its signal and gate results)
            entry_id: Pre-generated id; pass the same id when retrying

        Returns:
            Entry id

        Raises:
            SchemaMismatch: Store shape lags the entry shape (not retryable)
            PersistenceError: Any other storage failure (retryable)
        """
        entry_id = entry_id or str(uuid4())
        payload = self.decision_payload(entry_id, decision)

        self._ensure_writable(payload)

        row = self._append_row(entry_id, decision, datetime.now(timezone.utc))
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    insert_entry_query(self.table, APPEND_COLUMNS),
                    [row[column] for column in APPEND_COLUMNS],
                )
        except _SCHEMA_ERRORS as e:
            raise self._schema_error(e, payload) from e
        except duckdb.Error as e:
            self.audit.persistence_failure("persistence_error", str(e), retryable=True, entry_id=entry_id)
            raise PersistenceError(f"Ledger append failed: {e}", payload=payload) from e

        self.audit.entry_appended(entry_id, decision.signal.ticker, decision.kind.value)
        return entry_id

    def amend(self, entry_id: str, outcome: ExitOutcome) -> bool:
        """
        Attach an exit outcome to an entry, at most once.

        Args:
            entry_id: Ledger entry id
            outcome: Exit outcome

        Returns:
            True if this call stored the outcome, False if the same outcome
            was already stored (no-op)

        Raises:
            NotFound: No entry with this id
            AmendConflict: Entry already carries a different outcome
            SchemaMismatch / PersistenceError: Storage failures
        """
        outcome_id = outcome.identity()
        payload = {"entry_id": entry_id, "exit_outcome": outcome.model_dump(mode="json")}

        self._ensure_writable(payload)

        params = [
            outcome.model_dump_json(),
            outcome_id,
            to_naive_utc(datetime.now(timezone.utc)),
            entry_id,
        ]
        updated: List[tuple] = []
        for attempt in range(AMEND_CONFLICT_RETRIES):
            try:
                with self._cursor() as cursor:
                    updated = cursor.execute(amend_entry_query(self.table), params).fetchall()
                break
            except duckdb.TransactionException as e:
                # Concurrent amend on the same row; resolved against what it stores
                logger.info(f"Amend conflict on {entry_id} (attempt {attempt + 1}): {e}")
                time.sleep(0.01 * (attempt + 1))
            except _SCHEMA_ERRORS as e:
                raise self._schema_error(e, payload) from e
            except duckdb.Error as e:
                raise PersistenceError(f"Ledger amend failed: {e}", payload=payload) from e

        if updated:
            logger.info(f"Ledger entry {entry_id} amended: {outcome.exit_reason.value} pnl_net={outcome.pnl_net}")
            return True

        try:
            with self._cursor() as cursor:
                rows = execute_query(cursor, exit_outcome_id_query(self.table), [entry_id])
        except duckdb.Error as e:
            raise PersistenceError(f"Ledger amend check failed: {e}", payload=payload) from e

        if not rows:
            raise NotFound(entry_id)

        existing = rows[0][0]
        if existing == outcome_id:
            logger.debug(f"Ledger entry {entry_id} already carries outcome {outcome_id}, no-op")
            return False
        if existing is None:
            raise PersistenceError(
                f"Ledger amend for {entry_id} did not apply and left no outcome",
                payload=payload,
            )
        raise AmendConflict(entry_id, existing, outcome_id)

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        """Read one entry, or None if it does not exist."""
        try:
            with self._cursor() as cursor:
                rows = execute_query(cursor, select_entry_query(self.table), [entry_id])
        except duckdb.Error as e:
            raise PersistenceError(f"Ledger read failed: {e}") from e
        return self._row_to_entry(rows[0]) if rows else None

    def query(self, filters: Optional[LedgerQuery] = None, **kwargs) -> List[LedgerEntry]:
        """
        Read entries matching filters, newest first by default.

        Args:
            filters: LedgerQuery, or pass its fields as keyword arguments

        Returns:
            Matching entries
        """
        if filters is None:
            kwargs.setdefault("limit", self.default_query_limit)
            filters = LedgerQuery(**kwargs)

        sql, params = build_filter_query(self.table, filters)
        try:
            with self._cursor() as cursor:
                rows = execute_query(cursor, sql, params)
        except duckdb.Error as e:
            raise PersistenceError(f"Ledger query failed: {e}") from e
        return [self._row_to_entry(row) for row in rows]

    def count(self, filters: Optional[LedgerQuery] = None, **kwargs) -> int:
        filters = filters or LedgerQuery(**kwargs)
        sql, params = build_count_query(self.table, filters)
        try:
            with self._cursor() as cursor:
                return execute_query(cursor, sql, params)[0][0]
        except duckdb.Error as e:
            raise PersistenceError(f"Ledger count failed: {e}") from e

    def aggregates(self, filters: Optional[LedgerQuery] = None, **kwargs) -> OutcomeAggregates:
        """
        Win rate, P&L and decision counts over every entry matching filters.

        Args:
            filters: LedgerQuery (pagination ignored), or its fields as keyword arguments

        Returns:
            OutcomeAggregates
        """
        filters = filters or LedgerQuery(**kwargs)
        sql, params = build_aggregate_query(self.table, filters)
        try:
            with self._cursor() as cursor:
                rows = execute_query(cursor, sql, params)
        except duckdb.Error as e:
            raise PersistenceError(f"Ledger aggregates failed: {e}") from e
        return calculate_aggregates(rows)

    def stats(self) -> dict:
        with self._cursor() as cursor:
            return get_table_stats(cursor, self.table)

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()
        logger.info(f"DecisionLedger closed: {self.path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
