"""
Request pipeline: an explicit, ordered chain of middleware stages.

Default order (outermost first):
    CorrelationStage → ErrorNormalizationStage → AuthStage → RetryStage → transport

Auth sits outside Retry so a refresh-and-replay does not use a transient
retry slot; a 401 is not retryable, so Retry hands it straight back to Auth.
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence

from apishield.errors.normalizer import normalize_exception
from apishield.pipeline.notifications import Notifier
from apishield.pipeline.types import CallNext, Stage
from apishield.resilience.retry import BackoffTimer
from apishield.transport.models import RequestDescriptor, Response
from apishield.types import Transport

logger = logging.getLogger(__name__)


def _bind(stage: Stage, call_next: CallNext) -> CallNext:
    async def handler(request: RequestDescriptor) -> Response:
        return await stage(request, call_next)

    return handler


class RequestPipeline:
    """
    Runs requests through a fixed list of stages ending at the transport.

    Pipelines hold no global state; any number may coexist with different
    stages or transports.

    Args:
        transport: Transport that sends a single attempt
        stages: Middleware, outermost first
        notifier: Receives the timeout notification when a cutoff expires
        timers: Backoff timers cancelled by close()

    Example:
        pipeline = RequestPipeline(transport, [CorrelationStage(), RetryStage()])
        response = await pipeline.execute(RequestDescriptor("GET", "/users"))
    """

    def __init__(
        self,
        transport: Transport,
        stages: Sequence[Stage] = (),
        notifier: Notifier | None = None,
        timers: Iterable[BackoffTimer] = (),
    ):
        self.transport = transport
        self.stages = list(stages)
        self.notifier = notifier or Notifier()
        self._timers = list(timers)
        for stage in self.stages:
            timer = getattr(stage, "timer", None)
            if isinstance(timer, BackoffTimer) and timer not in self._timers:
                self._timers.append(timer)

        handler: CallNext = self.transport.send
        for stage in reversed(self.stages):
            handler = _bind(stage, handler)
        self._handler = handler

    async def execute(
        self,
        request: RequestDescriptor,
        cutoff_ms: float | None = None,
    ) -> Response:
        """
        Run a request through every stage.

        Args:
            request: The request; stages record state on it
            cutoff_ms: Deadline for the whole call including retries and
                backoff, None for no deadline

        Returns:
            The successful Response

        Raises:
            NormalizedError: Any terminal failure (with the default stages)
        """
        if cutoff_ms is None:
            return await self._handler(request)

        try:
            return await asyncio.wait_for(self._handler(request), timeout=cutoff_ms / 1000)
        except TimeoutError as e:
            error = normalize_exception(e, correlation_id=request.correlation_id)
            logger.warning(
                f"Request cutoff expired: {request.method} {request.path}",
                extra={
                    "http_method": request.method,
                    "http_path": request.path,
                    "correlation_id": request.correlation_id,
                    "error_category": error.category.value,
                    "threshold_ms": cutoff_ms,
                },
            )
            self.notifier.notify_error(error)
            raise error from e

    async def close(self) -> None:
        """Cancel outstanding backoff sleeps."""
        cancelled = sum(timer.cancel_all() for timer in self._timers)
        if cancelled:
            logger.info(f"Pipeline closed, cancelled {cancelled} pending backoff timer(s)")


__all__ = ["RequestPipeline"]
