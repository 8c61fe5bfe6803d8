"""
Error taxonomy for the signal-to-decision pipeline.

Rejections happen before gates run:
- MalformedSignal: bad or missing input field
- AuthenticationFailure / UnknownSender: boundary-level rejects

Non-fatal:
- DegradedMarketData: snapshot unavailable, market gates fall back to neutral

Persistence (always carry the serialized decision payload):
- PersistenceError: retryable append/amend failure
- PersistenceTimeout: bounded ledger call ran out of time
- SchemaMismatch: store shape no longer matches the entry shape (non-retryable)
- NotFound / AmendConflict: amend target problems
"""

from typing import Any, Dict, List, Optional


class TradegateError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


# ============================================================================
# Ingestion Errors
# ============================================================================

class MalformedSignal(TradegateError):
    """Inbound event is missing a field or carries an invalid value."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(
            message or f"Malformed signal: invalid or missing field '{field}'",
            error_code="malformed_signal",
        )


class AuthenticationFailure(TradegateError):
    """Request failed both HMAC and bearer-token verification."""

    def __init__(self, sender: str, message: str = "Authentication failed"):
        self.sender = sender
        super().__init__(f"{message} (sender={sender})", error_code="authentication_failure")


class UnknownSender(TradegateError):
    """No router binding exists for the sender identifier."""

    def __init__(self, sender: str):
        self.sender = sender
        super().__init__(f"No route configured for sender '{sender}'", error_code="unknown_sender")


class DegradedMarketData(TradegateError):
    """Market snapshot could not be fetched; market gates run degraded."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Market data degraded: {reason}", error_code="degraded_market_data")


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(TradegateError):
    """
    Ledger append/amend failed.

    Attributes:
        payload: Serialized entry that was being written, kept so the caller
            can queue it for a durable retry or manual recovery
        retryable: Whether retrying the same write may succeed
    """

    def __init__(
        self,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
        retryable: bool = True,
        error_code: str = "persistence_error",
    ):
        self.payload = payload
        self.retryable = retryable
        super().__init__(message, error_code=error_code)


class PersistenceTimeout(PersistenceError):
    """Ledger call exceeded its timeout."""

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message, payload=payload, retryable=True, error_code="persistence_timeout")


class SchemaMismatch(PersistenceError):
    """Ledger schema lags the entry shape. Never retried."""

    def __init__(
        self,
        message: str,
        missing_columns: Optional[List[str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        self.missing_columns = list(missing_columns or [])
        super().__init__(message, payload=payload, retryable=False, error_code="schema_mismatch")


class NotFound(TradegateError):
    """Ledger entry does not exist."""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}", error_code="not_found")


class AmendConflict(TradegateError):
    """Entry already carries a different exit outcome."""

    def __init__(self, entry_id: str, existing_outcome_id: str, outcome_id: str):
        self.entry_id = entry_id
        self.existing_outcome_id = existing_outcome_id
        self.outcome_id = outcome_id
        super().__init__(
            f"Entry {entry_id} already amended with outcome {existing_outcome_id}; "
            f"refusing outcome {outcome_id}",
            error_code="amend_conflict",
        )
