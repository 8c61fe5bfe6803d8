"""
tradegate - signal-to-decision pipeline.

Inbound sender events are authenticated, normalized into Signals, run
through admission gates, scored for confluence, turned into a Decision
(ACT_LONG / ACT_SHORT / WAIT / SKIP) and recorded in the DuckDB ledger.
"""

__version__ = "0.3.0"
