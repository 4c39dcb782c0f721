"""
Core types and protocols used across modules.

This module provides the error taxonomy, notification severity levels and the
protocol definitions for the collaborators the pipeline talks to (transport,
session store, notification sink).
"""

from collections.abc import Awaitable
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from apishield.auth.session import SessionCredentials
    from apishield.pipeline.notifications import NotificationEvent
    from apishield.transport.models import RequestDescriptor, Response


class ErrorCategory(Enum):
    """
    Machine-readable classification of terminal request failures.

    Values are part of the public contract: callers switch on them to decide
    what to render, so they never change once released.

    Categories:
        NETWORK: No response reached the client (DNS, refused, reset)
        TIMEOUT: The attempt or the caller's cutoff expired (also 408)
        BAD_REQUEST: 400
        UNAUTHORIZED: 401, surfaced only when refresh-and-replay failed
        FORBIDDEN: 403
        NOT_FOUND: 404
        CONFLICT: 409
        VALIDATION: 422, carries field-level detail
        RATE_LIMITED: 429, carries a retry-after hint when the server sends one
        SERVER_ERROR: 500
        UNAVAILABLE: 502 / 503
        GATEWAY_TIMEOUT: 504
        UNKNOWN: Anything else
    """

    NETWORK = "network"
    TIMEOUT = "timeout"
    BAD_REQUEST = "badRequest"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "notFound"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    RATE_LIMITED = "rateLimited"
    SERVER_ERROR = "serverError"
    UNAVAILABLE = "unavailable"
    GATEWAY_TIMEOUT = "gatewayTimeout"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """True for categories the retry stage may recover from."""
        return self in TRANSIENT_CATEGORIES


TRANSIENT_CATEGORIES = frozenset(
    {
        ErrorCategory.NETWORK,
        ErrorCategory.TIMEOUT,
        ErrorCategory.RATE_LIMITED,
        ErrorCategory.SERVER_ERROR,
        ErrorCategory.UNAVAILABLE,
        ErrorCategory.GATEWAY_TIMEOUT,
    }
)


class Severity(Enum):
    """Display severity for notification events."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class Transport(Protocol):
    """
    Protocol for the HTTP transport the pipeline wraps.

    Implementations return a Response for every status code and raise
    TransportError subclasses only when no response was received.
    """

    async def send(self, request: "RequestDescriptor") -> "Response":
        """
        Send a request and return the response.

        Raises:
            NetworkError: The server could not be reached
            RequestTimeoutError: No response within the attempt timeout
        """
        ...


class SessionStore(Protocol):
    """
    Protocol for credential storage.

    Credentials are all-or-nothing: both tokens are present or the session is
    logged out.
    """

    def get_access_token(self) -> str | None: ...

    def get_refresh_token(self) -> str | None: ...

    def get_credentials(self) -> "SessionCredentials | None": ...

    def set_credentials(
        self,
        access_token: str,
        refresh_token: str,
        *,
        user_id: str | None = None,
        user_type: str | None = None,
    ) -> None: ...

    def clear(self) -> None: ...


class NotificationSink(Protocol):
    """
    Protocol for user-facing notification sinks (toasts, banners, logs).

    notify() may be synchronous or return an awaitable; either way the
    pipeline never waits on it.
    """

    def notify(self, event: "NotificationEvent") -> Awaitable[Any] | None: ...


__all__ = [
    "ErrorCategory",
    "TRANSIENT_CATEGORIES",
    "Severity",
    "Transport",
    "SessionStore",
    "NotificationSink",
]
