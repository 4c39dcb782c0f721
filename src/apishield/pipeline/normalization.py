"""Error normalization stage."""

import logging

from apishield.errors.normalizer import normalize_exception, normalize_response
from apishield.logging.utilities import log_exception
from apishield.pipeline.notifications import Notifier
from apishield.pipeline.types import CallNext
from apishield.transport.models import RequestDescriptor, Response

logger = logging.getLogger(__name__)


class ErrorNormalizationStage:
    """
    Turns every failure from the inner stages into one NormalizedError.

    Successful responses pass through. Failed responses and exceptions are
    classified, logged, reported to the notifier (unless suppressed) and
    raised as NormalizedError. This stage never retries.
    """

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier or Notifier()

    async def __call__(self, request: RequestDescriptor, call_next: CallNext) -> Response:
        try:
            response = await call_next(request)
        except Exception as e:
            error = normalize_exception(e, correlation_id=request.correlation_id)
            self._report(request, error)
            if error is e:
                raise
            raise error from e

        if response.ok:
            return response

        error = normalize_response(response, correlation_id=request.correlation_id)
        self._report(request, error)
        raise error

    def _report(self, request: RequestDescriptor, error) -> None:
        log_exception(
            logger,
            error,
            f"Request failed: {request.method} {request.path}",
            level=logging.WARNING,
            include_traceback=False,
            http_method=request.method,
            http_path=request.path,
            http_status=error.status,
            correlation_id=error.correlation_id,
        )
        self.notifier.notify_error(error)


__all__ = ["ErrorNormalizationStage"]
