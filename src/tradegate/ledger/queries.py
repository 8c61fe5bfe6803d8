"""
SQL query templates for the decision ledger.

Builders return SQL strings (and parameter lists where filters apply);
values always travel as bound parameters, never string-formatted in.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import duckdb

from tradegate.ledger.models import LedgerQuery, OutcomeAggregates
from tradegate.ledger.schema import AMEND_COLUMNS, LEDGER_COLUMNS

logger = logging.getLogger(__name__)

SELECT_COLUMNS = ", ".join(LEDGER_COLUMNS)


def insert_entry_query(table: str, columns: Sequence[str]) -> str:
    """
    INSERT for one ledger entry, idempotent on id.

    Re-running the same insert after a timeout or retry leaves exactly one row.
    """
    placeholders = ", ".join("?" for _ in columns)
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT (id) DO NOTHING"
    )


def select_entry_query(table: str) -> str:
    return f"SELECT {SELECT_COLUMNS} FROM {table} WHERE id = ?"


def amend_entry_query(table: str) -> str:
    """
    Conditional UPDATE attaching an exit outcome.

    Only matches rows with no outcome yet, so two concurrent amends cannot
    both win; RETURNING tells the caller whether this one did.
    """
    assignments = ", ".join(f"{column} = ?" for column in AMEND_COLUMNS)
    return (
        f"UPDATE {table} SET {assignments} "
        f"WHERE id = ? AND exit_outcome_id IS NULL RETURNING id"
    )


def exit_outcome_id_query(table: str) -> str:
    return f"SELECT exit_outcome_id FROM {table} WHERE id = ?"


def _where_clause(filters: LedgerQuery) -> Tuple[str, List[Any]]:
    conditions: List[str] = []
    params: List[Any] = []

    if filters.from_time is not None:
        conditions.append("created_at >= ?")
        params.append(filters.from_time_naive)
    if filters.to_time is not None:
        conditions.append("created_at <= ?")
        params.append(filters.to_time_naive)
    if filters.ticker:
        conditions.append("ticker = ?")
        params.append(filters.ticker.upper())
    if filters.decision is not None:
        conditions.append("decision = ?")
        params.append(filters.decision.value)
    if filters.timeframe:
        conditions.append("timeframe = ?")
        params.append(filters.timeframe)
    if filters.quality is not None:
        conditions.append("quality = ?")
        params.append(filters.quality.value)
    if filters.engine_version:
        conditions.append("engine_version = ?")
        params.append(filters.engine_version)
    if filters.sender:
        conditions.append("sender = ?")
        params.append(filters.sender)
    if filters.trade_type is not None:
        conditions.append("trade_type = ?")
        params.append(filters.trade_type.value)
    if filters.regime_volatility is not None:
        conditions.append("regime_volatility = ?")
        params.append(filters.regime_volatility.value)
    if filters.has_exit is True:
        conditions.append("exit_outcome_id IS NOT NULL")
    elif filters.has_exit is False:
        conditions.append("exit_outcome_id IS NULL")

    clause = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    return clause, params


def build_filter_query(table: str, filters: LedgerQuery) -> Tuple[str, List[Any]]:
    """
    Filtered, paginated ledger query.

    Ordered newest first by default; id breaks ties so paging is stable.

    Args:
        table: Ledger table name
        filters: Validated query filters

    Returns:
        (SQL string, parameters)
    """
    where, params = _where_clause(filters)
    order = "DESC" if filters.newest_first else "ASC"
    sql = (
        f"SELECT {SELECT_COLUMNS} FROM {table}{where} "
        f"ORDER BY created_at {order}, id {order} LIMIT ? OFFSET ?"
    )
    return sql, params + [filters.limit, filters.offset]


def build_count_query(table: str, filters: LedgerQuery) -> Tuple[str, List[Any]]:
    where, params = _where_clause(filters)
    return f"SELECT COUNT(*) FROM {table}{where}", params


def build_aggregate_query(table: str, filters: LedgerQuery) -> Tuple[str, List[Any]]:
    """
    Columns needed for outcome aggregates over every matching row.

    Pagination fields of `filters` are ignored.
    """
    where, params = _where_clause(filters)
    sql = (
        "SELECT decision, confluence_score, exit_outcome, hypothetical IS NOT NULL "
        f"FROM {table}{where}"
    )
    return sql, params


def calculate_aggregates(rows: Sequence[tuple]) -> OutcomeAggregates:
    """
    Fold aggregate-query rows into OutcomeAggregates.

    Args:
        rows: (decision, confluence_score, exit_outcome JSON, has_hypothetical)

    Returns:
        Counts per decision kind, average confluence and realized P&L
    """
    by_decision: Dict[str, int] = {}
    confluence_sum = 0.0
    with_exit = with_hypothetical = wins = losses = 0
    total_pnl_net = 0.0

    for decision, confluence_score, exit_outcome, has_hypothetical in rows:
        by_decision[decision] = by_decision.get(decision, 0) + 1
        confluence_sum += confluence_score
        if has_hypothetical:
            with_hypothetical += 1
        if exit_outcome:
            pnl_net = json.loads(exit_outcome)["pnl_net"]
            with_exit += 1
            total_pnl_net += pnl_net
            if pnl_net > 0:
                wins += 1
            elif pnl_net < 0:
                losses += 1

    return OutcomeAggregates(
        total=len(rows),
        by_decision=by_decision,
        with_exit=with_exit,
        with_hypothetical=with_hypothetical,
        avg_confluence=confluence_sum / len(rows) if rows else None,
        total_pnl_net=round(total_pnl_net, 2),
        wins=wins,
        losses=losses,
    )


def execute_query(
    conn: duckdb.DuckDBPyConnection,
    query: str,
    params: Optional[List[Any]] = None
) -> List[tuple]:
    """
    Execute a SQL query and return results.

    Args:
        conn: DuckDB connection or cursor
        query: SQL query string
        params: Optional query parameters

    Returns:
        Query results as list of tuples
    """
    try:
        if params:
            return conn.execute(query, params).fetchall()
        return conn.execute(query).fetchall()
    except Exception as e:
        logger.error(f"Error executing query: {e}")
        logger.debug(f"Query: {query}")
        raise
