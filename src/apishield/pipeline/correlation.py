"""Correlation-ID assignment and request timing."""

import logging
import time
import uuid

from apishield.logging.context_managers import LogContext
from apishield.pipeline.types import CallNext
from apishield.transport.models import RequestDescriptor, Response

logger = logging.getLogger(__name__)

DEFAULT_CORRELATION_HEADER = "Correlation-ID"
DEFAULT_SLOW_REQUEST_THRESHOLD_MS = 2000


class CorrelationStage:
    """
    Tags each request with a fresh Correlation-ID.

    The id is set once per logical request, so replays after a refresh or a
    retry carry the same id. It is bound into the logging context while the
    rest of the pipeline runs.
    """

    def __init__(
        self,
        header_name: str = DEFAULT_CORRELATION_HEADER,
        enable_logging: bool = False,
        slow_request_threshold_ms: float | None = DEFAULT_SLOW_REQUEST_THRESHOLD_MS,
    ):
        self.header_name = header_name
        self.enable_logging = enable_logging
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def __call__(self, request: RequestDescriptor, call_next: CallNext) -> Response:
        if request.correlation_id is None:
            request.correlation_id = str(uuid.uuid4())
        if request.started_at is None:
            request.started_at = time.monotonic()
        request.set_header(self.header_name, request.correlation_id)

        with LogContext(
            correlation_id=request.correlation_id,
            http_method=request.method,
            http_path=request.path,
        ):
            if self.enable_logging:
                logger.debug(
                    "API request starting",
                    extra={
                        "http_method": request.method,
                        "http_path": request.path,
                        "correlation_id": request.correlation_id,
                    },
                )

            response = await call_next(request)

            duration_ms = (time.monotonic() - request.started_at) * 1000
            self._log_completion(request, response, duration_ms)
            return response

    def _log_completion(
        self,
        request: RequestDescriptor,
        response: Response,
        duration_ms: float,
    ) -> None:
        extra = {
            "http_method": request.method,
            "http_path": request.path,
            "http_status": response.status,
            "correlation_id": request.correlation_id,
            "duration_ms": round(duration_ms, 2),
        }
        if self.slow_request_threshold_ms and duration_ms > self.slow_request_threshold_ms:
            logger.warning(
                f"Slow request: {request.method} {request.path} took {duration_ms:.0f}ms",
                extra={**extra, "threshold_ms": self.slow_request_threshold_ms},
            )
        elif self.enable_logging:
            logger.debug("API request completed", extra=extra)
