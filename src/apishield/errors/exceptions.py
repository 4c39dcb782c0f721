"""
Unified exception hierarchy for apishield.

Internal failures (transport, refresh, configuration) carry enough context for
logging; NormalizedError is the only type that crosses the public boundary.
"""

from typing import Any

from apishield.types import ErrorCategory


class ApiShieldError(Exception):
    """
    Base exception for all apishield errors.

    Attributes:
        message: Human-readable error description
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Transport Errors (no response received)
# =============================================================================


class TransportError(ApiShieldError):
    """Base class for failures where no HTTP response reached the client."""

    category: ErrorCategory = ErrorCategory.NETWORK


class NetworkError(TransportError):
    """Connection refused/reset, DNS failure, TLS failure."""

    category = ErrorCategory.NETWORK


class RequestTimeoutError(TransportError):
    """The attempt timed out before a response arrived."""

    category = ErrorCategory.TIMEOUT


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(ApiShieldError):
    """Base class for credential refresh failures."""


class TokenRefreshError(AuthError):
    """The refresh call failed or returned an unusable payload."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status = status


class MissingRefreshTokenError(AuthError):
    """No refresh credential is stored, so refresh cannot be attempted."""

    def __init__(self) -> None:
        super().__init__("No refresh token available")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ApiShieldError):
    """Client configuration is invalid."""


# =============================================================================
# Normalized Error (public)
# =============================================================================


class NormalizedError(ApiShieldError):
    """
    Stable, user-presentable error returned for every terminal failure.

    Attributes:
        category: ErrorCategory for programmatic handling
        status: HTTP status, None when no response was received
        user_message: Message suitable for display
        technical_message: Detail for logs and debugging
        retry_after: Seconds the server asked us to wait (429 only)
        validation_errors: Field-level detail from a 422 body
        original: The failure this error was built from (exception or Response)
        correlation_id: Correlation-ID of the request, when known
        show_notification: False when another component owns user feedback
        notification_duration_ms: Suggested display time for the notification
    """

    def __init__(
        self,
        category: ErrorCategory,
        user_message: str,
        *,
        technical_message: str | None = None,
        status: int | None = None,
        retry_after: float | None = None,
        validation_errors: Any = None,
        original: Any = None,
        correlation_id: str | None = None,
        show_notification: bool = True,
        notification_duration_ms: int = 5000,
    ):
        cause = original if isinstance(original, Exception) else None
        super().__init__(user_message, cause=cause)
        self.category = category
        self.status = status
        self.user_message = user_message
        self.technical_message = technical_message or user_message
        self.retry_after = retry_after
        self.validation_errors = validation_errors
        self.original = original
        self.correlation_id = correlation_id
        self.show_notification = show_notification
        self.notification_duration_ms = notification_duration_ms

    @property
    def is_transient(self) -> bool:
        return self.category.is_transient

    def __str__(self) -> str:
        prefix = f"[{self.category.value}"
        if self.status is not None:
            prefix += f" {self.status}"
        return f"{prefix}] {self.user_message}"

    def to_dict(self) -> dict[str, Any]:
        """Serializable view for logging and API boundaries."""
        return {
            "category": self.category.value,
            "status": self.status,
            "user_message": self.user_message,
            "technical_message": self.technical_message,
            "retry_after": self.retry_after,
            "validation_errors": self.validation_errors,
            "correlation_id": self.correlation_id,
        }


__all__ = [
    "ApiShieldError",
    "TransportError",
    "NetworkError",
    "RequestTimeoutError",
    "AuthError",
    "TokenRefreshError",
    "MissingRefreshTokenError",
    "ConfigurationError",
    "NormalizedError",
]
