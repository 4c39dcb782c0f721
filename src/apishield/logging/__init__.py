"""
Structured logging module.

Provides JSON logging with correlation IDs and request context propagation.
"""

from apishield.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from apishield.logging.context_managers import LogContext, OperationContext
from apishield.logging.formatters import ConsoleFormatter, JSONFormatter
from apishield.logging.setup import get_logger, setup_logging
from apishield.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Context Managers
    "LogContext",
    "OperationContext",
    # Utilities
    "log_with_context",
    "log_exception",
]
