"""
HTTP status and transport exception classification.

Maps HTTP status codes onto the fixed ErrorCategory taxonomy together with the
user-facing message and display duration for each, and maps low-level
aiohttp/asyncio exceptions onto the TransportError hierarchy.
"""

import math
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import NamedTuple

import aiohttp

from apishield.errors.exceptions import (
    NetworkError,
    RequestTimeoutError,
    TransportError,
)
from apishield.types import ErrorCategory

DEFAULT_TOAST_MS = 5000
LONG_TOAST_MS = 7000


class StatusMapping(NamedTuple):
    """Classification entry for one HTTP status code."""

    category: ErrorCategory
    message: str
    # Server-provided "message" replaces the default when True
    prefer_server_message: bool
    duration_ms: int


NETWORK_MESSAGE = "Network error. Please check your internet connection."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."
RATE_LIMITED_MESSAGE = "Too many requests. Please wait a moment and try again."
RATE_LIMITED_WAIT_MESSAGE = "Too many requests. Please wait {seconds} seconds and try again."
UNKNOWN_STATUS_MESSAGE = "An error occurred ({status}). Please try again."
UNEXPECTED_MESSAGE = "An unexpected error occurred"

_STATUS_MAP: dict[int, StatusMapping] = {
    400: StatusMapping(
        ErrorCategory.BAD_REQUEST,
        "Invalid request. Please check your input.",
        True,
        DEFAULT_TOAST_MS,
    ),
    401: StatusMapping(
        ErrorCategory.UNAUTHORIZED, SESSION_EXPIRED_MESSAGE, False, DEFAULT_TOAST_MS
    ),
    403: StatusMapping(
        ErrorCategory.FORBIDDEN,
        "Access denied. You do not have permission to perform this action.",
        False,
        DEFAULT_TOAST_MS,
    ),
    404: StatusMapping(
        ErrorCategory.NOT_FOUND,
        "The requested resource was not found.",
        True,
        DEFAULT_TOAST_MS,
    ),
    408: StatusMapping(ErrorCategory.TIMEOUT, TIMEOUT_MESSAGE, False, DEFAULT_TOAST_MS),
    409: StatusMapping(
        ErrorCategory.CONFLICT,
        "Conflict. The resource already exists or has been modified.",
        True,
        DEFAULT_TOAST_MS,
    ),
    422: StatusMapping(
        ErrorCategory.VALIDATION,
        "Validation failed. Please check your input.",
        True,
        DEFAULT_TOAST_MS,
    ),
    429: StatusMapping(
        ErrorCategory.RATE_LIMITED, RATE_LIMITED_MESSAGE, False, LONG_TOAST_MS
    ),
    500: StatusMapping(
        ErrorCategory.SERVER_ERROR,
        "Server error. Our team has been notified. Please try again later.",
        False,
        LONG_TOAST_MS,
    ),
    502: StatusMapping(
        ErrorCategory.UNAVAILABLE,
        "Service temporarily unavailable. Please try again in a few moments.",
        False,
        LONG_TOAST_MS,
    ),
    503: StatusMapping(
        ErrorCategory.UNAVAILABLE,
        "Service temporarily unavailable. Please try again in a few moments.",
        False,
        LONG_TOAST_MS,
    ),
    504: StatusMapping(
        ErrorCategory.GATEWAY_TIMEOUT,
        "Gateway timeout. The server took too long to respond. Please try again.",
        False,
        LONG_TOAST_MS,
    ),
}


def get_status_mapping(status: int) -> StatusMapping:
    """Return the classification entry for a status, falling back to UNKNOWN."""
    entry = _STATUS_MAP.get(status)
    if entry:
        return entry
    return StatusMapping(
        ErrorCategory.UNKNOWN,
        UNKNOWN_STATUS_MESSAGE.format(status=status),
        True,
        DEFAULT_TOAST_MS,
    )


def classify_http_status(status: int) -> ErrorCategory:
    """Classify an HTTP error status into an error category."""
    return get_status_mapping(status).category


def classify_transport_exception(
    error: BaseException,
    context: dict | None = None,
) -> TransportError:
    """
    Classify an exception raised before any response arrived.

    Args:
        error: Exception from the HTTP client (aiohttp, asyncio, OS level)
        context: Additional context merged into the resulting error

    Returns:
        RequestTimeoutError for timeouts, NetworkError for everything else
    """
    if isinstance(error, TransportError):
        if context:
            error.context.update(context)
        return error

    ctx = {"error_type": type(error).__name__}
    if context:
        ctx.update(context)

    # aiohttp.ServerTimeoutError subclasses TimeoutError, so check timeouts first
    if isinstance(error, TimeoutError):
        return RequestTimeoutError(f"Request timed out: {error}", cause=error, context=ctx)

    if isinstance(error, aiohttp.ClientConnectionError):
        return NetworkError(f"Connection error: {error}", cause=error, context=ctx)

    if isinstance(error, (aiohttp.ClientError, OSError)):
        return NetworkError(f"Transport error: {error}", cause=error, context=ctx)

    # String fallback for exotic client libraries
    error_str = str(error).lower()
    if "timeout" in error_str or "timed out" in error_str:
        return RequestTimeoutError(f"Request timed out: {error}", cause=error, context=ctx)
    return NetworkError(f"Transport error: {error}", cause=error, context=ctx)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("5") or an HTTP-date. Returns None when the header
    is missing or unparseable; dates in the past yield 0.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        seconds = None

    if seconds is not None:
        if math.isnan(seconds) or math.isinf(seconds):
            return None
        return max(0.0, seconds)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    return max(0.0, (retry_at - now).total_seconds())


def format_seconds(seconds: float) -> str:
    """Render a retry-after hint as whole seconds for display."""
    return str(math.ceil(seconds))


__all__ = [
    "StatusMapping",
    "DEFAULT_TOAST_MS",
    "LONG_TOAST_MS",
    "NETWORK_MESSAGE",
    "TIMEOUT_MESSAGE",
    "SESSION_EXPIRED_MESSAGE",
    "RATE_LIMITED_MESSAGE",
    "RATE_LIMITED_WAIT_MESSAGE",
    "UNKNOWN_STATUS_MESSAGE",
    "UNEXPECTED_MESSAGE",
    "get_status_mapping",
    "classify_http_status",
    "classify_transport_exception",
    "parse_retry_after",
    "format_seconds",
]
