"""
Tests for the DuckDB decision ledger.

Tests:
1. append/get round-trip returns the exact decision and signal
2. Idempotent appends and amends; NotFound and AmendConflict
3. Query filters, ordering and pagination
4. Concurrent appends from threads
5. Schema mismatch blocks writes and keeps the decision payload
6. Dead-letter queue write and replay
7. Outcome aggregates over amended entries
"""

import threading
import time
from datetime import datetime, timezone

import duckdb
import pytest

from tradegate.core.errors import AmendConflict, NotFound, PersistenceError, SchemaMismatch
from tradegate.core.types import DecisionKind, ExitReason
from tradegate.decision.engine import DecisionEngine
from tradegate.decision.models import Decision
from tradegate.ledger import (
    LEDGER_COLUMNS,
    SCHEMA_VERSION,
    DeadLetterQueue,
    DecisionLedger,
    ExitOutcome,
    LedgerQuery,
    create_all_tables,
)


@pytest.fixture
def engine(gate_config):
    return DecisionEngine(gate_config)


@pytest.fixture
def act_decision(engine, make_signal, make_snapshot):
    return engine.decide(make_signal(), make_snapshot())


@pytest.fixture
def skip_decision(engine, make_signal, make_snapshot, make_regime):
    snapshot = make_snapshot(regime=make_regime(phase=3))
    return engine.decide(make_signal(ticker="QQQ", timeframe="5"), snapshot)


@pytest.fixture
def outcome():
    return ExitOutcome(
        exit_time=datetime(2024, 1, 10, 16, 30, tzinfo=timezone.utc),
        exit_price=456.25,
        pnl_gross=600.0,
        pnl_net=598.7,
        exit_reason=ExitReason.TARGET_1,
        hold_time_seconds=5400,
        total_commission=1.3,
    )


def legacy_table(path: str, drop_columns) -> None:
    """Create a ledger table from an older build that lacks some columns."""
    columns = []
    for name, sql_type in LEDGER_COLUMNS.items():
        if name in drop_columns:
            continue
        columns.append(f"{name} {sql_type} PRIMARY KEY" if name == "id" else f"{name} {sql_type}")
    conn = duckdb.connect(path)
    conn.execute(f"CREATE TABLE ledger_entries ({', '.join(columns)})")
    conn.close()


# ============================================================================
# Round trip
# ============================================================================

def test_append_get_round_trip(ledger, act_decision):
    """Test read-after-write returns exactly the appended decision and signal."""
    entry_id = ledger.append(act_decision)
    entry = ledger.get(entry_id)

    assert entry is not None
    assert entry.id == entry_id
    assert entry.decision == act_decision
    assert entry.signal == act_decision.signal
    assert entry.gate_results == act_decision.gates
    assert entry.confluence_score == act_decision.confluence_score
    assert entry.schema_version == SCHEMA_VERSION
    assert entry.sender == "tradingview"
    assert entry.exit_outcome is None
    assert not entry.is_amended


def test_round_trip_skip_with_hypothetical(ledger, skip_decision):
    entry = ledger.get(ledger.append(skip_decision))

    assert entry.kind == DecisionKind.SKIP
    assert entry.decision == skip_decision
    assert entry.decision.hypothetical == skip_decision.hypothetical
    assert entry.decision.breakdown.score == skip_decision.breakdown.score


def test_get_unknown_returns_none(ledger):
    assert ledger.get("missing") is None


def test_append_is_idempotent_on_entry_id(ledger, act_decision):
    """Test retrying an append with the same id leaves exactly one row."""
    first = ledger.append(act_decision, entry_id="fixed-id")
    second = ledger.append(act_decision, entry_id="fixed-id")

    assert first == second == "fixed-id"
    assert ledger.count() == 1


# ============================================================================
# Amend
# ============================================================================

def test_amend_twice_is_noop(ledger, act_decision, outcome):
    entry_id = ledger.append(act_decision)

    assert ledger.amend(entry_id, outcome) is True
    assert ledger.amend(entry_id, outcome) is False

    entry = ledger.get(entry_id)
    assert entry.exit_outcome == outcome
    assert entry.exit_outcome_id == outcome.identity()
    assert entry.amended_at is not None
    assert entry.decision == act_decision
    assert ledger.count(has_exit=True) == 1


def test_amend_unknown_id_mutates_nothing(ledger, act_decision, outcome):
    entry_id = ledger.append(act_decision)

    with pytest.raises(NotFound):
        ledger.amend("no-such-entry", outcome)

    assert ledger.count() == 1
    assert ledger.get(entry_id).exit_outcome is None


def test_amend_with_different_outcome_conflicts(ledger, act_decision, outcome):
    entry_id = ledger.append(act_decision)
    ledger.amend(entry_id, outcome)

    stop_out = outcome.model_copy(update={"exit_price": 447.25, "pnl_gross": -300.0,
                                          "pnl_net": -301.3, "exit_reason": ExitReason.STOP_LOSS})
    with pytest.raises(AmendConflict):
        ledger.amend(entry_id, stop_out)

    assert ledger.get(entry_id).exit_outcome == outcome


def test_outcome_identity(outcome):
    assert outcome.identity() == outcome.model_copy().identity()
    assert outcome.model_copy(update={"outcome_id": "fill-42"}).identity() == "fill-42"
    assert outcome.model_copy(update={"pnl_net": 1.0}).identity() != outcome.identity()


def test_concurrent_duplicate_amends(file_ledger, act_decision, outcome):
    """Test duplicate exit notifications racing each other store one outcome."""
    entry_id = file_ledger.append(act_decision)
    results, errors = [], []

    def amend():
        try:
            results.append(file_ledger.amend(entry_id, outcome))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=amend) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert results.count(True) == 1
    assert results.count(False) == 3
    assert file_ledger.get(entry_id).exit_outcome == outcome


# ============================================================================
# Query
# ============================================================================

def test_query_filters_and_order(ledger, act_decision, skip_decision):
    first = ledger.append(act_decision)
    time.sleep(0.01)
    second = ledger.append(skip_decision)
    time.sleep(0.01)
    third = ledger.append(act_decision)

    newest_first = ledger.query()
    assert [e.id for e in newest_first] == [third, second, first]

    oldest_first = ledger.query(LedgerQuery(newest_first=False))
    assert [e.id for e in oldest_first] == [first, second, third]

    assert [e.id for e in ledger.query(decision=DecisionKind.SKIP)] == [second]
    assert [e.id for e in ledger.query(ticker="spy")] == [third, first]
    assert [e.id for e in ledger.query(timeframe="5")] == [second]
    assert [e.id for e in ledger.query(engine_version="v1", limit=1)] == [third]
    assert [e.id for e in ledger.query(limit=1, offset=1)] == [second]
    assert ledger.query(ticker="IWM") == []


def test_query_time_range(ledger, act_decision):
    before = ledger.append(act_decision)
    time.sleep(0.01)
    cutoff = datetime.now(timezone.utc)
    time.sleep(0.01)
    after = ledger.append(act_decision)

    assert [e.id for e in ledger.query(from_time=cutoff)] == [after]
    assert [e.id for e in ledger.query(to_time=cutoff)] == [before]


def test_query_limit_bounds():
    with pytest.raises(ValueError):
        LedgerQuery(limit=0)
    with pytest.raises(ValueError):
        LedgerQuery(limit=5000)


def test_stats(ledger, act_decision, skip_decision, outcome):
    entry_id = ledger.append(act_decision)
    ledger.append(skip_decision)
    ledger.amend(entry_id, outcome)

    stats = ledger.stats()
    assert stats["total"] == 2
    assert stats["by_decision"] == {"ACT_LONG": 1, "SKIP": 1}
    assert stats["amended"] == 1


def test_outcome_aggregates(ledger, act_decision, skip_decision, outcome):
    winner = ledger.append(act_decision)
    loser = ledger.append(act_decision)
    flat = ledger.append(act_decision)
    ledger.append(skip_decision)

    ledger.amend(winner, outcome)
    ledger.amend(loser, outcome.model_copy(update={"pnl_gross": -300.0, "pnl_net": -301.3}))
    ledger.amend(flat, outcome.model_copy(update={"pnl_gross": 0.0, "pnl_net": 0.0}))

    aggregates = ledger.aggregates()
    assert aggregates.total == 4
    assert aggregates.by_decision == {"ACT_LONG": 3, "SKIP": 1}
    assert aggregates.with_exit == 3
    assert aggregates.with_hypothetical == 1
    assert aggregates.wins == 1
    assert aggregates.losses == 1
    assert aggregates.total_pnl_net == pytest.approx(297.4)
    assert aggregates.avg_pnl_net == pytest.approx(297.4 / 3)
    assert aggregates.win_rate == pytest.approx(1 / 3)
    assert aggregates.avg_confluence == pytest.approx(
        (3 * act_decision.confluence_score + skip_decision.confluence_score) / 4
    )

    amended = ledger.aggregates(has_exit=True, limit=1)
    assert amended.total == 3
    assert ledger.aggregates(ticker="QQQ").with_exit == 0


def test_outcome_aggregates_empty(ledger):
    aggregates = ledger.aggregates()
    assert aggregates.total == 0
    assert aggregates.win_rate is None
    assert aggregates.avg_pnl_net is None
    assert aggregates.avg_confluence is None
    assert aggregates.model_dump()["win_rate"] is None


# ============================================================================
# Concurrency
# ============================================================================

def test_concurrent_appends(file_ledger, act_decision):
    """Test appends from many threads all land, each exactly once."""
    ids, errors = [], []
    lock = threading.Lock()

    def write(n):
        try:
            for _ in range(n):
                entry_id = file_ledger.append(act_decision)
                with lock:
                    ids.append(entry_id)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=write, args=(10,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(set(ids)) == 80
    assert file_ledger.count() == 80


# ============================================================================
# Schema mismatch
# ============================================================================

def test_schema_mismatch_is_loud_and_keeps_payload(temp_dir, act_decision):
    """Test an outdated store raises SchemaMismatch and blocks further writes."""
    path = str(temp_dir / "legacy.duckdb")
    legacy_table(path, drop_columns=("regime_volatility", "hypothetical"))

    ledger = DecisionLedger(path=path, create_schema=False)
    with pytest.raises(SchemaMismatch) as exc_info:
        ledger.append(act_decision)

    error = exc_info.value
    assert isinstance(error, PersistenceError)
    assert not error.retryable
    assert set(error.missing_columns) == {"regime_volatility", "hypothetical"}
    assert Decision.model_validate(error.payload["decision"]) == act_decision
    assert ledger.writes_blocked

    with pytest.raises(SchemaMismatch):
        ledger.append(act_decision)
    assert ledger.reset_schema_block() is False
    ledger.close()

    conn = duckdb.connect(path)
    assert conn.execute("SELECT COUNT(*) FROM ledger_entries").fetchone()[0] == 0
    conn.execute("DROP TABLE ledger_entries")
    create_all_tables(conn)
    conn.close()

    # Same payload, same entry id, once the schema is fixed
    with DecisionLedger(path=path, create_schema=False) as fixed:
        entry_id = fixed.append(
            Decision.model_validate(error.payload["decision"]),
            entry_id=error.payload["entry_id"],
        )
        assert entry_id == error.payload["entry_id"]
        assert fixed.get(entry_id).decision == act_decision


def test_verify_schema(ledger):
    assert ledger.verify_schema() == []
    assert ledger.reset_schema_block() is True
    assert not ledger.writes_blocked


def test_broken_connection_on_first_write_is_typed(act_decision, outcome):
    """Test a storage failure during the first schema check still carries the decision."""
    broken = DecisionLedger(path=":memory:")
    broken.close()

    with pytest.raises(PersistenceError) as exc_info:
        broken.append(act_decision, entry_id="lost-1")

    error = exc_info.value
    assert not isinstance(error, SchemaMismatch)
    assert error.retryable
    assert error.payload["entry_id"] == "lost-1"
    assert Decision.model_validate(error.payload["decision"]) == act_decision

    with pytest.raises(PersistenceError) as exc_info:
        broken.amend("lost-1", outcome)
    assert exc_info.value.payload["entry_id"] == "lost-1"
    with pytest.raises(PersistenceError):
        broken.count()


# ============================================================================
# Dead letters
# ============================================================================

def test_dead_letter_write_and_replay(temp_dir, ledger, act_decision):
    queue = DeadLetterQueue(str(temp_dir / "dead" / "letters.jsonl"))
    payload = DecisionLedger.decision_payload("dl-1", act_decision)
    error = SchemaMismatch("table missing columns", missing_columns=["hypothetical"], payload=payload)

    record = queue.write(error)
    assert record["error_kind"] == "schema_mismatch"
    assert record["entry_id"] == "dl-1"
    assert not record["retryable"]
    assert len(queue) == 1

    assert queue.replay(ledger) == ["dl-1"]
    assert len(queue) == 0
    assert ledger.get("dl-1").decision == act_decision

    # Replaying again is harmless
    queue.write(error)
    assert queue.replay(ledger) == ["dl-1"]
    assert ledger.count() == 1


def test_dead_letter_replay_keeps_records_written_meanwhile(temp_dir, ledger, act_decision):
    """Test a failure dead-lettered while a replay is running survives the rewrite."""
    queue = DeadLetterQueue(str(temp_dir / "letters.jsonl"))
    queue.write(PersistenceError("timed out", payload=DecisionLedger.decision_payload("dl-1", act_decision)))
    late = PersistenceError("timed out", payload=DecisionLedger.decision_payload("late", act_decision))

    class BusyLedger:
        def append(self, decision, entry_id=None):
            queue.write(late)
            return ledger.append(decision, entry_id=entry_id)

    assert queue.replay(BusyLedger()) == ["dl-1"]
    assert [record["entry_id"] for record in queue.read_all()] == ["late"]

    assert queue.replay(ledger) == ["late"]
    assert len(queue) == 0
