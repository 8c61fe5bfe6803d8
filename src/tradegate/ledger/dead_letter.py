"""
Dead-letter queue for decisions the ledger could not store.

Append-only JSON lines, one failed write per line, carrying the full
serialized decision so it can be replayed once the ledger is healthy.
"""

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple
import logging

from tradegate.core.errors import PersistenceError
from tradegate.decision.models import Decision

logger = logging.getLogger(__name__)


class DeadLetterQueue:
    """File-backed queue of failed ledger writes."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._replay_lock = threading.Lock()

    def write(self, error: PersistenceError) -> Dict[str, Any]:
        """
        Record a failed write.

        Args:
            error: Persistence error carrying the serialized payload

        Returns:
            The record that was written
        """
        payload = error.payload or {}
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_kind": error.error_code,
            "message": error.message,
            "retryable": error.retryable,
            "missing_columns": getattr(error, "missing_columns", []),
            "entry_id": payload.get("entry_id"),
            "payload": payload,
        }
        line = json.dumps(record, default=str)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

        logger.warning(
            f"Dead-lettered entry {record['entry_id']} [{record['error_kind']}] to {self.path}",
            extra={"entry_id": record["entry_id"], "error_kind": record["error_kind"]},
        )
        return record

    def read_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            records, _ = self._read_from(0)
        return records

    def _read_from(self, offset: int) -> Tuple[List[Dict[str, Any]], int]:
        """Records after byte `offset` and the offset at end of file. Caller holds the lock."""
        if not self.path.exists():
            return [], 0
        with open(self.path, "rb") as f:
            f.seek(offset)
            data = f.read()
        records = [json.loads(line) for line in data.decode("utf-8").splitlines() if line.strip()]
        return records, offset + len(data)

    def __len__(self) -> int:
        return len(self.read_all())

    def replay(self, ledger) -> List[str]:
        """
        Re-append every dead-lettered decision under its original entry id.

        Appends are idempotent on entry id, so replaying twice is harmless.
        Records that still fail stay in the queue; the rest are removed.
        Records written while the replay runs are kept.

        Args:
            ledger: DecisionLedger to write into

        Returns:
            Entry ids that were stored
        """
        with self._replay_lock:
            with self._lock:
                records, offset = self._read_from(0)

            stored: List[str] = []
            remaining: List[Dict[str, Any]] = []

            for record in records:
                payload = record.get("payload") or {}
                if "decision" not in payload:
                    remaining.append(record)
                    continue
                decision = Decision.model_validate(payload["decision"])
                try:
                    stored.append(ledger.append(decision, entry_id=payload["entry_id"]))
                except PersistenceError as e:
                    logger.error(f"Replay of {payload['entry_id']} failed: {e}")
                    remaining.append(record)

            with self._lock:
                arrived, _ = self._read_from(offset)
                remaining.extend(arrived)
                staging = self.path.with_name(self.path.name + ".tmp")
                with open(staging, "w", encoding="utf-8") as f:
                    for record in remaining:
                        f.write(json.dumps(record, default=str) + "\n")
                os.replace(staging, self.path)

        logger.info(f"Dead-letter replay: {len(stored)} stored, {len(remaining)} remaining")
        return stored
