"""
Enhanced Logging Utilities

Provides structured logging with:
- JSON formatting for production
- Performance metrics
- Context correlation
- Decision/persistence audit helpers
"""

import logging
import json
import sys
import time
from datetime import datetime
from typing import Optional
from pathlib import Path
import threading
from contextlib import contextmanager

from tradegate.config.settings import SystemConfig


# Extra record attributes copied into JSON output when present
EXTRA_FIELDS = (
    'correlation_id',
    'sender',
    'ticker',
    'decision',
    'confluence_score',
    'entry_id',
    'gate',
    'error_kind',
    'execution_time',
    'metric_name',
    'metric_value',
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """Logger for tracking performance metrics."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._start_times = {}
        self._lock = threading.Lock()

    @contextmanager
    def timer(self, operation: str, **context):
        """Context manager for timing operations."""
        start_time = time.perf_counter()
        operation_id = f"{operation}_{threading.get_ident()}_{start_time}"

        try:
            with self._lock:
                self._start_times[operation_id] = start_time
            yield
        finally:
            execution_time = time.perf_counter() - start_time

            with self._lock:
                self._start_times.pop(operation_id, None)

            extra = {'execution_time': execution_time, **context}
            self.logger.debug(f"Operation completed: {operation} ({execution_time * 1000:.1f}ms)", extra=extra)

    def log_metric(self, metric_name: str, value: float, **context):
        """Log a performance metric."""
        extra = {'metric_name': metric_name, 'metric_value': value, **context}
        self.logger.info(f"Metric: {metric_name}={value}", extra=extra)


class DecisionLogger:
    """Specialized logger for decisions and their persistence."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.performance = PerformanceLogger(self.logger)

    def decision_made(self, ticker: str, decision: str, confluence_score: float, **context):
        """Log a computed decision."""
        extra = {
            'ticker': ticker,
            'decision': decision,
            'confluence_score': confluence_score,
            **context
        }
        self.logger.info(f"Decision: {decision} for {ticker} (confluence={confluence_score:.1f})", extra=extra)

    def gate_failed(self, gate: str, ticker: str, reasons: list, **context):
        """Log a failing gate with every reason it reported."""
        extra = {'gate': gate, 'ticker': ticker, **context}
        self.logger.info(f"Gate {gate} failed for {ticker}: {'; '.join(reasons)}", extra=extra)

    def entry_appended(self, entry_id: str, ticker: str, decision: str, **context):
        """Log a ledger append."""
        extra = {'entry_id': entry_id, 'ticker': ticker, 'decision': decision, **context}
        self.logger.info(f"Ledger entry {entry_id} appended ({ticker} {decision})", extra=extra)

    def persistence_failure(self, error_kind: str, message: str, retryable: bool, **context):
        """Log a persistence failure. Non-retryable failures log at CRITICAL."""
        extra = {'error_kind': error_kind, **context}
        if retryable:
            self.logger.warning(f"Persistence failure [{error_kind}]: {message}", extra=extra)
        else:
            self.logger.critical(f"Persistence failure [{error_kind}]: {message}", extra=extra)

    def schema_mismatch(self, table: str, missing_columns: list, **context):
        """Log a ledger schema mismatch; writes stay blocked until re-verified."""
        self.persistence_failure(
            'schema_mismatch',
            f"table '{table}' missing columns {missing_columns}, ledger writes blocked",
            retryable=False,
            **context
        )


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True,
    correlation_id: Optional[str] = None
) -> logging.Logger:
    """
    Setup enhanced logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting
        correlation_id: Optional correlation ID for request tracking

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if correlation_id:
        old_factory = logging.getLogRecordFactory()

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            record.correlation_id = correlation_id
            return record

        logging.setLogRecordFactory(record_factory)

    return logger


def get_decision_logger(name: str) -> DecisionLogger:
    """Get a decision-specific logger instance."""
    return DecisionLogger(name)


def configure_logging(system: SystemConfig, correlation_id: Optional[str] = None) -> logging.Logger:
    """Apply the system section of the application config."""
    return setup_logging(
        log_level=system.log_level.value,
        log_file=system.log_file,
        json_format=system.json_logs,
        correlation_id=correlation_id,
    )
