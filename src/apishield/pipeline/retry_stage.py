"""
Retry stage for transient failures.

Retries failures without a response (network errors, attempt timeouts) and
responses with a retryable status, each against its own ceiling. Counters live
on the RequestDescriptor. When retries run out the last response is returned,
or the last transport error re-raised, unchanged.
"""

import logging

from apishield.errors.classifiers import parse_retry_after
from apishield.errors.exceptions import TransportError
from apishield.pipeline.types import CallNext
from apishield.resilience.retry import DEFAULT_RETRY, BackoffTimer, RetryConfig
from apishield.transport.models import RequestDescriptor, Response

logger = logging.getLogger(__name__)


def _log_retry_attempt(
    request: RequestDescriptor,
    attempt: int,
    max_attempts: int,
    delay_ms: int,
    reason: str,
    server_retry_after: float | None = None,
) -> None:
    extra: dict[str, object] = {
        "http_method": request.method,
        "http_path": request.path,
        "correlation_id": request.correlation_id,
        "attempt": attempt,
        "max_attempts": max_attempts,
        "delay_ms": delay_ms,
        "retry_reason": reason,
    }
    if server_retry_after is not None:
        extra["server_retry_after"] = server_retry_after
    logger.warning(
        "Retryable failure for %s %s (%s), retry %d/%d in %dms",
        request.method,
        request.path,
        reason,
        attempt,
        max_attempts,
        delay_ms,
        extra=extra,
    )


def _log_retry_exhausted(
    request: RequestDescriptor,
    attempts: int,
    reason: str,
) -> None:
    logger.error(
        "Retries exhausted for %s %s (%s)",
        request.method,
        request.path,
        reason,
        extra={
            "http_method": request.method,
            "http_path": request.path,
            "correlation_id": request.correlation_id,
            "max_attempts": attempts,
            "retry_reason": reason,
        },
    )


class RetryStage:
    """
    Retries transient failures with exponential backoff.

    Requests marked retry_disabled pass straight through.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        timer: BackoffTimer | None = None,
    ):
        self.config = config or DEFAULT_RETRY
        self.timer = timer or BackoffTimer()

    async def __call__(self, request: RequestDescriptor, call_next: CallNext) -> Response:
        if request.retry_disabled:
            return await call_next(request)

        while True:
            try:
                response = await call_next(request)
            except TransportError as e:
                reason = e.category.value
                if not self.config.should_retry_network(request.network_retry_count):
                    if request.network_retry_count:
                        _log_retry_exhausted(request, request.network_retry_count, reason)
                    raise

                request.network_retry_count += 1
                delay_ms = self.config.get_delay(request.network_retry_count)
                _log_retry_attempt(
                    request,
                    request.network_retry_count,
                    self.config.max_network_retries,
                    delay_ms,
                    reason,
                )
                await self.timer.sleep(delay_ms)
                continue

            if not self.config.is_retryable_status(response.status):
                if response.ok and (request.retry_count or request.network_retry_count):
                    logger.info(
                        "Request recovered after retries: %s %s",
                        request.method,
                        request.path,
                        extra={
                            "http_method": request.method,
                            "http_path": request.path,
                            "http_status": response.status,
                            "correlation_id": request.correlation_id,
                            "retry_count": request.retry_count,
                            "network_retry_count": request.network_retry_count,
                        },
                    )
                return response

            reason = f"HTTP {response.status}"
            if not self.config.should_retry_status(response.status, request.retry_count):
                _log_retry_exhausted(request, request.retry_count, reason)
                return response

            retry_after = None
            if response.status == 429:
                retry_after = parse_retry_after(response.get_header("Retry-After"))

            request.retry_count += 1
            delay_ms = self.config.get_delay(request.retry_count, retry_after=retry_after)
            _log_retry_attempt(
                request,
                request.retry_count,
                self.config.max_retries,
                delay_ms,
                reason,
                server_retry_after=retry_after,
            )
            await self.timer.sleep(delay_ms)


__all__ = ["RetryStage"]
