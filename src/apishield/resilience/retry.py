"""
Retry policy for transient HTTP failures.

Two independent ceilings apply:
- Network failures and timeouts (no response): max_network_retries
- Responses with a retryable status: max_retries

Delays grow exponentially from base_delay_ms with ±20% jitter. Sleeps go
through a BackoffTimer so a client shutting down can cancel them.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_JITTER_RATIO = 0.2


def coerce_bool(value) -> bool:
    # bool("false") would be True
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    max_network_retries: int = 2
    base_delay_ms: float = 1000.0
    exponential_base: float = 2.0

    # Upper bound for any single delay; None means uncapped
    max_delay_ms: float | None = None

    # If True, a 429's Retry-After raises the delay to at least the server hint
    respect_retry_after: bool = False

    retryable_statuses: frozenset[int] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_STATUSES
    )
    jitter_ratio: float = DEFAULT_JITTER_RATIO

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_retries = int(self.max_retries)
        self.max_network_retries = int(self.max_network_retries)
        self.base_delay_ms = float(self.base_delay_ms)
        self.exponential_base = float(self.exponential_base)
        if self.max_delay_ms is not None:
            self.max_delay_ms = float(self.max_delay_ms)
        self.respect_retry_after = coerce_bool(self.respect_retry_after)
        self.retryable_statuses = frozenset(int(s) for s in self.retryable_statuses)
        self.jitter_ratio = float(self.jitter_ratio)

    def base_delay(self, attempt: int) -> float:
        """
        Pre-jitter delay in milliseconds.

        Args:
            attempt: 1-indexed retry number
        """
        return self.base_delay_ms * (self.exponential_base ** (attempt - 1))

    def get_delay(
        self,
        attempt: int,
        retry_after: float | None = None,
        rng: random.Random | None = None,
    ) -> int:
        """
        Calculate the delay before retry number `attempt`.

        Args:
            attempt: 1-indexed retry number
            retry_after: Server hint in seconds (429 Retry-After)
            rng: Random source, module-level random when None

        Returns:
            Delay in whole milliseconds, never negative
        """
        base = self.base_delay(attempt)
        uniform = rng.uniform if rng is not None else random.uniform
        jitter = uniform(-self.jitter_ratio, self.jitter_ratio) * base
        delay = max(0, round(base + jitter))

        if self.respect_retry_after and retry_after is not None:
            delay = max(delay, round(retry_after * 1000))

        if self.max_delay_ms is not None:
            delay = min(delay, round(self.max_delay_ms))

        return delay

    def is_retryable_status(self, status: int) -> bool:
        return status in self.retryable_statuses

    def should_retry_status(self, status: int, retry_count: int) -> bool:
        """
        Determine if a response should be retried.

        Args:
            status: HTTP status of the response
            retry_count: Status retries already performed for this request
        """
        return self.is_retryable_status(status) and retry_count < self.max_retries

    def should_retry_network(self, network_retry_count: int) -> bool:
        """Determine if a failure without a response should be retried."""
        return network_retry_count < self.max_network_retries


DEFAULT_RETRY = RetryConfig()


class BackoffTimer:
    """
    Tracks pending backoff sleeps so they can be cancelled together.

    Cancelling a sleep raises asyncio.CancelledError in the request that was
    waiting on it.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def sleep(self, delay_ms: float) -> None:
        """Sleep for delay_ms milliseconds unless cancelled."""
        task = asyncio.ensure_future(asyncio.sleep(max(0.0, delay_ms) / 1000))
        self._pending.add(task)
        try:
            await task
        finally:
            self._pending.discard(task)

    def cancel_all(self) -> int:
        """
        Cancel every pending sleep.

        Returns:
            Number of sleeps cancelled
        """
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(
                "Cancelled pending backoff timers",
                extra={"retry_count": len(pending)},
            )
        return len(pending)


__all__ = [
    "DEFAULT_RETRYABLE_STATUSES",
    "DEFAULT_JITTER_RATIO",
    "DEFAULT_RETRY",
    "RetryConfig",
    "BackoffTimer",
]
