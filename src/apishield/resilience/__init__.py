"""
Resilience patterns for outbound HTTP calls.

Provides:
- RetryConfig: status/network retry classification and backoff delays
- BackoffTimer: cancellable backoff sleeps
"""

from apishield.resilience.retry import (
    DEFAULT_RETRY,
    DEFAULT_RETRYABLE_STATUSES,
    BackoffTimer,
    RetryConfig,
)

__all__ = [
    "DEFAULT_RETRY",
    "DEFAULT_RETRYABLE_STATUSES",
    "BackoffTimer",
    "RetryConfig",
]
