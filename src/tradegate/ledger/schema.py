"""
DuckDB schema definitions for the decision ledger.

One row per LedgerEntry. Structured parts of the entry (signal, breakdown,
gate results, regime, market snapshot, plans, exit outcome) are stored as
JSON text; the columns the dashboard filters on are denormalized next to
them and indexed.
"""

import duckdb
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 4

DEFAULT_TABLE = "ledger_entries"
META_TABLE = "ledger_meta"

# Column name -> DuckDB type. Every append writes all of these.
LEDGER_COLUMNS: Dict[str, str] = {
    "id": "VARCHAR",
    "created_at": "TIMESTAMP",
    "schema_version": "INTEGER",
    "engine_version": "VARCHAR",
    "config_version": "VARCHAR",
    "sender": "VARCHAR",
    "ticker": "VARCHAR",
    "timeframe": "VARCHAR",
    "quality": "VARCHAR",
    "direction": "VARCHAR",
    "trade_type": "VARCHAR",
    "regime_volatility": "VARCHAR",
    "decision": "VARCHAR",
    "decision_reason": "VARCHAR",
    "decision_reasons": "VARCHAR",
    "decided_at": "TIMESTAMP",
    "confluence_score": "DOUBLE",
    "signal": "VARCHAR",
    "decision_breakdown": "VARCHAR",
    "gate_results": "VARCHAR",
    "regime": "VARCHAR",
    "market_snapshot": "VARCHAR",
    "execution": "VARCHAR",
    "hypothetical": "VARCHAR",
    "exit_outcome": "VARCHAR",
    "exit_outcome_id": "VARCHAR",
    "amended_at": "TIMESTAMP",
}

# Columns filled at append time (the rest are set by amend)
APPEND_COLUMNS: List[str] = [
    c for c in LEDGER_COLUMNS if c not in ("exit_outcome", "exit_outcome_id", "amended_at")
]

AMEND_COLUMNS: List[str] = ["exit_outcome", "exit_outcome_id", "amended_at"]

_NOT_NULL = {
    "created_at", "schema_version", "engine_version", "config_version", "sender",
    "ticker", "timeframe", "quality", "direction", "decision", "decision_reason",
    "decided_at", "confluence_score", "signal", "decision_breakdown", "gate_results",
}

INDEXED_COLUMNS = ("created_at", "decision", "ticker", "timeframe")


def ledger_table_sql(table: str = DEFAULT_TABLE) -> str:
    """CREATE TABLE statement for the ledger."""
    columns = []
    for name, sql_type in LEDGER_COLUMNS.items():
        if name == "id":
            columns.append(f"    id {sql_type} PRIMARY KEY")
        elif name in _NOT_NULL:
            columns.append(f"    {name} {sql_type} NOT NULL")
        else:
            columns.append(f"    {name} {sql_type}")
    return f"CREATE TABLE IF NOT EXISTS {table} (\n" + ",\n".join(columns) + "\n);"


def ledger_index_sql(table: str = DEFAULT_TABLE) -> List[str]:
    return [
        f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column});"
        for column in INDEXED_COLUMNS
    ]


META_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {META_TABLE} (
    key VARCHAR PRIMARY KEY,
    value VARCHAR NOT NULL
);
"""


def create_all_tables(conn: duckdb.DuckDBPyConnection, table: str = DEFAULT_TABLE) -> None:
    """
    Create ledger tables and indexes, and record the schema version.

    Args:
        conn: DuckDB connection
        table: Ledger table name
    """
    try:
        conn.execute(ledger_table_sql(table))
        for statement in ledger_index_sql(table):
            conn.execute(statement)

        conn.execute(META_TABLE_SQL)
        conn.execute(
            f"INSERT INTO {META_TABLE} VALUES ('schema_version', ?) ON CONFLICT DO NOTHING",
            [str(SCHEMA_VERSION)],
        )

        logger.info(f"Ledger schema ready: table={table} schema_version={get_schema_version(conn)}")

    except Exception as e:
        logger.error(f"Error creating ledger tables: {e}")
        raise


def get_table_columns(conn: duckdb.DuckDBPyConnection, table: str = DEFAULT_TABLE) -> List[str]:
    """Column names currently present on the ledger table (empty if it does not exist)."""
    rows = conn.execute(
        "SELECT column_name FROM information_schema.columns WHERE table_name = ? ORDER BY ordinal_position",
        [table],
    ).fetchall()
    return [row[0] for row in rows]


def find_missing_columns(conn: duckdb.DuckDBPyConnection, table: str = DEFAULT_TABLE) -> List[str]:
    """Expected columns the store does not have, in schema order."""
    present = set(get_table_columns(conn, table))
    return [column for column in LEDGER_COLUMNS if column not in present]


def get_schema_version(conn: duckdb.DuckDBPyConnection) -> Optional[int]:
    """Recorded schema version, or None when the meta table is absent."""
    try:
        row = conn.execute(
            f"SELECT value FROM {META_TABLE} WHERE key = 'schema_version'"
        ).fetchone()
    except duckdb.CatalogException:
        return None
    return int(row[0]) if row else None


def get_table_stats(conn: duckdb.DuckDBPyConnection, table: str = DEFAULT_TABLE) -> dict:
    """
    Get ledger statistics.

    Args:
        conn: DuckDB connection
        table: Ledger table name

    Returns:
        Dictionary with total rows, rows per decision kind and amended rows
    """
    stats = {"total": 0, "by_decision": {}, "amended": 0}

    try:
        stats["total"] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        for decision, count in conn.execute(
            f"SELECT decision, COUNT(*) FROM {table} GROUP BY decision ORDER BY decision"
        ).fetchall():
            stats["by_decision"][decision] = count
        stats["amended"] = conn.execute(
            f"SELECT COUNT(*) FROM {table} WHERE exit_outcome_id IS NOT NULL"
        ).fetchone()[0]
    except Exception as e:
        logger.error(f"Error getting ledger stats: {e}")
        raise

    return stats
