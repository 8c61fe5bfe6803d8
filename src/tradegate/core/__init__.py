"""Core building blocks shared across the pipeline."""

from tradegate.core.errors import (
    TradegateError,
    MalformedSignal,
    AuthenticationFailure,
    UnknownSender,
    DegradedMarketData,
    PersistenceError,
    PersistenceTimeout,
    SchemaMismatch,
    NotFound,
    AmendConflict,
)

__all__ = [
    'TradegateError',
    'MalformedSignal',
    'AuthenticationFailure',
    'UnknownSender',
    'DegradedMarketData',
    'PersistenceError',
    'PersistenceTimeout',
    'SchemaMismatch',
    'NotFound',
    'AmendConflict',
]
