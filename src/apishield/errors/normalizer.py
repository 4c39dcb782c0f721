"""
Conversion of terminal failures into NormalizedError.

Every failure the pipeline can surface (non-2xx response, transport failure,
caller cutoff, unexpected exception) maps onto exactly one NormalizedError
using the fixed status table in apishield.errors.classifiers.
"""

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from apishield.errors.classifiers import (
    DEFAULT_TOAST_MS,
    LONG_TOAST_MS,
    NETWORK_MESSAGE,
    RATE_LIMITED_WAIT_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    TIMEOUT_MESSAGE,
    UNEXPECTED_MESSAGE,
    format_seconds,
    get_status_mapping,
    parse_retry_after,
)
from apishield.errors.exceptions import (
    AuthError,
    NormalizedError,
    RequestTimeoutError,
    TransportError,
)
from apishield.transport.models import Response
from apishield.types import ErrorCategory

logger = logging.getLogger(__name__)


class ErrorBody(BaseModel):
    """Schema for JSON error payloads returned by the API.

    Only the fields the normalizer reads are declared; anything else the
    server sends is kept as extra data.

    Attributes:
        message: Human-readable message, preferred for some statuses
        error: Technical error string
        errors: Field-level validation detail (422)
    """

    model_config = ConfigDict(extra="allow")

    message: str | None = Field(default=None, description="Server message")
    error: str | None = Field(default=None, description="Technical error text")
    errors: Any = Field(default=None, description="Validation detail")

    @field_validator("message", "error", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str | None:
        """Accept non-string scalars and drop empty strings."""
        if v is None:
            return None
        if not isinstance(v, str):
            v = json.dumps(v) if isinstance(v, (dict, list)) else str(v)
        return v.strip() or None

    @classmethod
    def from_payload(cls, body: Any) -> "ErrorBody":
        """
        Build from a response body of any shape.

        Non-JSON text and malformed payloads yield an empty ErrorBody.
        """
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="replace")
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except ValueError:
                return cls()
        if not isinstance(body, dict):
            return cls()
        try:
            return cls.model_validate(body)
        except ValidationError:
            logger.debug("Unparseable error body", extra={"body_type": type(body).__name__})
            return cls()


def normalize_response(
    response: Response,
    correlation_id: str | None = None,
) -> NormalizedError:
    """
    Normalize a failed HTTP response.

    Args:
        response: Response with a non-2xx/3xx status
        correlation_id: Fallback when the response does not carry one

    Returns:
        NormalizedError for the status
    """
    status = response.status
    mapping = get_status_mapping(status)
    body = ErrorBody.from_payload(response.body)

    user_message = mapping.message
    if mapping.prefer_server_message and body.message:
        user_message = body.message

    retry_after = None
    validation_errors = None
    show_notification = True

    if mapping.category == ErrorCategory.RATE_LIMITED:
        retry_after = parse_retry_after(response.get_header("Retry-After"))
        if retry_after is not None:
            user_message = RATE_LIMITED_WAIT_MESSAGE.format(seconds=format_seconds(retry_after))
    elif mapping.category == ErrorCategory.VALIDATION:
        validation_errors = body.errors
    elif mapping.category == ErrorCategory.UNAUTHORIZED:
        # Auth stage owns user feedback for expired sessions
        show_notification = False

    technical_message = body.error or body.message or f"Request failed with status {status}"

    return NormalizedError(
        mapping.category,
        user_message,
        technical_message=technical_message,
        status=status,
        retry_after=retry_after,
        validation_errors=validation_errors,
        original=response,
        correlation_id=response.correlation_id or correlation_id,
        show_notification=show_notification,
        notification_duration_ms=mapping.duration_ms,
    )


def normalize_exception(
    error: BaseException,
    correlation_id: str | None = None,
) -> NormalizedError:
    """
    Normalize an exception raised while no usable response was available.

    Args:
        error: Transport failure, cutoff, refresh failure or unexpected error
        correlation_id: Correlation-ID of the failed request, if known

    Returns:
        NormalizedError (the input itself when it already is one)
    """
    if isinstance(error, NormalizedError):
        return error

    if isinstance(error, (RequestTimeoutError, TimeoutError)):
        return NormalizedError(
            ErrorCategory.TIMEOUT,
            TIMEOUT_MESSAGE,
            technical_message=str(error) or "Request timed out",
            original=error,
            correlation_id=correlation_id,
            notification_duration_ms=DEFAULT_TOAST_MS,
        )

    if isinstance(error, TransportError):
        return NormalizedError(
            ErrorCategory.NETWORK,
            NETWORK_MESSAGE,
            technical_message=str(error),
            original=error,
            correlation_id=correlation_id,
            notification_duration_ms=LONG_TOAST_MS,
        )

    if isinstance(error, AuthError):
        return NormalizedError(
            ErrorCategory.UNAUTHORIZED,
            SESSION_EXPIRED_MESSAGE,
            technical_message=str(error),
            status=getattr(error, "status", None),
            original=error,
            correlation_id=correlation_id,
            show_notification=False,
        )

    return NormalizedError(
        ErrorCategory.UNKNOWN,
        UNEXPECTED_MESSAGE,
        technical_message=str(error) or type(error).__name__,
        original=error,
        correlation_id=correlation_id,
        notification_duration_ms=DEFAULT_TOAST_MS,
    )


def normalize_failure(
    failure: Response | BaseException,
    correlation_id: str | None = None,
) -> NormalizedError:
    """Normalize either a failed Response or an exception."""
    if isinstance(failure, Response):
        return normalize_response(failure, correlation_id)
    return normalize_exception(failure, correlation_id)


__all__ = [
    "ErrorBody",
    "normalize_response",
    "normalize_exception",
    "normalize_failure",
]
