"""Logging and shared utilities."""

from tradegate.utils.logger import (
    JSONFormatter,
    PerformanceLogger,
    DecisionLogger,
    setup_logging,
    get_decision_logger,
    configure_logging,
)

__all__ = [
    'JSONFormatter',
    'PerformanceLogger',
    'DecisionLogger',
    'setup_logging',
    'get_decision_logger',
    'configure_logging',
]
