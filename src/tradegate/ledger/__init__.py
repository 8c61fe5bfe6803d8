"""
Decision ledger: durable, append-then-amend record of every decision.
"""

from tradegate.ledger.dead_letter import DeadLetterQueue
from tradegate.ledger.ledger import DecisionLedger
from tradegate.ledger.models import ExitOutcome, LedgerEntry, LedgerQuery, OutcomeAggregates
from tradegate.ledger.replay import BatchReplayResult, DecisionReplayer, ReplayResult, ReplayStatus
from tradegate.ledger.schema import (
    DEFAULT_TABLE,
    LEDGER_COLUMNS,
    SCHEMA_VERSION,
    create_all_tables,
    find_missing_columns,
)

__all__ = [
    'DecisionLedger',
    'DeadLetterQueue',
    'ExitOutcome',
    'LedgerEntry',
    'LedgerQuery',
    'OutcomeAggregates',
    'DecisionReplayer',
    'ReplayResult',
    'BatchReplayResult',
    'ReplayStatus',
    'DEFAULT_TABLE',
    'LEDGER_COLUMNS',
    'SCHEMA_VERSION',
    'create_all_tables',
    'find_missing_columns',
]
