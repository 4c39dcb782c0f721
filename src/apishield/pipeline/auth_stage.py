"""Credential injection and refresh-and-replay on 401."""

import logging
from collections.abc import Callable
from typing import Any, NoReturn

from apishield.auth.refresh import RefreshCoordinator
from apishield.errors.classifiers import SESSION_EXPIRED_MESSAGE
from apishield.errors.exceptions import AuthError, NormalizedError
from apishield.pipeline.notifications import fire_and_forget
from apishield.pipeline.types import CallNext
from apishield.transport.models import RequestDescriptor, Response
from apishield.types import ErrorCategory, SessionStore

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
USER_ID_HEADER = "X-User-ID"
USER_TYPE_HEADER = "X-User-Type"


class AuthStage:
    """
    Attaches the session's bearer token and recovers from expired tokens.

    On a 401 the request is replayed exactly once with a refreshed token. A
    second 401, a missing refresh token or a failed refresh ends the session:
    the store is cleared, on_session_expired is invoked and an `unauthorized`
    NormalizedError is raised with its notification suppressed.
    """

    def __init__(
        self,
        store: SessionStore,
        coordinator: RefreshCoordinator,
        on_session_expired: Callable[[NormalizedError], Any] | None = None,
    ):
        self.store = store
        self.coordinator = coordinator
        self.on_session_expired = on_session_expired

    def apply_credentials(self, request: RequestDescriptor) -> str | None:
        """
        Set or remove auth headers from the current session.

        Returns:
            The access token sent, None when unauthenticated
        """
        credentials = self.store.get_credentials()
        if credentials is None:
            request.remove_header(AUTHORIZATION_HEADER)
            request.remove_header(USER_ID_HEADER)
            request.remove_header(USER_TYPE_HEADER)
            return None

        request.set_header(AUTHORIZATION_HEADER, f"Bearer {credentials.access_token}")
        if credentials.user_id:
            request.set_header(USER_ID_HEADER, credentials.user_id)
        if credentials.user_type:
            request.set_header(USER_TYPE_HEADER, credentials.user_type)
        return credentials.access_token

    async def __call__(self, request: RequestDescriptor, call_next: CallNext) -> Response:
        sent_token = self.apply_credentials(request)
        response = await call_next(request)
        if response.status != 401:
            return response

        if request.auth_retried:
            self._expire_session(request, response, "Request rejected after token refresh")

        request.auth_retried = True

        current_token = self.store.get_access_token()
        if current_token is not None and current_token != sent_token:
            logger.debug(
                "Session token changed since request was sent, replaying without refresh",
                extra={"correlation_id": request.correlation_id},
            )
        else:
            try:
                await self.coordinator.refresh()
            except AuthError as e:
                self._expire_session(request, e, f"Token refresh failed: {e}")

        logger.info(
            "Replaying request with refreshed token",
            extra={
                "http_method": request.method,
                "http_path": request.path,
                "correlation_id": request.correlation_id,
                "auth_retried": True,
            },
        )
        self.apply_credentials(request)
        response = await call_next(request)
        if response.status == 401:
            self._expire_session(request, response, "Request rejected after token refresh")
        return response

    def _expire_session(
        self,
        request: RequestDescriptor,
        failure: Response | Exception,
        reason: str,
    ) -> NoReturn:
        self.store.clear()

        error = NormalizedError(
            ErrorCategory.UNAUTHORIZED,
            SESSION_EXPIRED_MESSAGE,
            technical_message=reason,
            status=401,
            original=failure,
            correlation_id=request.correlation_id,
            show_notification=False,
        )

        logger.debug(
            f"Session expired: {reason}",
            extra={
                "http_method": request.method,
                "http_path": request.path,
                "correlation_id": request.correlation_id,
                "error_category": ErrorCategory.UNAUTHORIZED.value,
            },
        )

        if self.on_session_expired is not None:
            fire_and_forget(
                self.on_session_expired, error, description="on_session_expired hook"
            )

        if isinstance(failure, Exception):
            raise error from failure
        raise error


__all__ = [
    "AUTHORIZATION_HEADER",
    "USER_ID_HEADER",
    "USER_TYPE_HEADER",
    "AuthStage",
]
