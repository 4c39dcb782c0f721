"""Single-flight access token refresh."""

import asyncio
import logging
import uuid
from typing import Protocol

from pydantic import ValidationError

from apishield.auth.models import RefreshRequest, RefreshResponse
from apishield.errors.exceptions import (
    AuthError,
    MissingRefreshTokenError,
    TokenRefreshError,
    TransportError,
)
from apishield.logging.context_managers import OperationContext
from apishield.transport.models import RequestDescriptor
from apishield.types import SessionStore, Transport

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_PATH = "/api/auth/refresh"
DEFAULT_CORRELATION_HEADER = "Correlation-ID"


class RefreshProvider(Protocol):
    """Exchanges a refresh token for a new access token."""

    async def refresh(self, refresh_token: str) -> RefreshResponse: ...


class HttpRefreshProvider:
    """
    Refreshes tokens by POSTing to the API's refresh endpoint.

    Sends {"refreshToken": ...} through the raw transport, bypassing the
    request pipeline so a failing refresh is never itself retried or
    refreshed. Each refresh call gets its own Correlation-ID.
    """

    def __init__(
        self,
        transport: Transport,
        refresh_path: str = DEFAULT_REFRESH_PATH,
        timeout_ms: float | None = None,
        correlation_header: str = DEFAULT_CORRELATION_HEADER,
    ):
        self.transport = transport
        self.refresh_path = refresh_path
        self.timeout_ms = timeout_ms
        self.correlation_header = correlation_header

    async def refresh(self, refresh_token: str) -> RefreshResponse:
        """
        Exchange the refresh token.

        Raises:
            TokenRefreshError: Transport failure, non-2xx status or bad payload
        """
        correlation_id = str(uuid.uuid4())
        request = RequestDescriptor(
            "POST",
            self.refresh_path,
            body=RefreshRequest(refresh_token=refresh_token).to_payload(),
            retry_disabled=True,
            timeout_ms=self.timeout_ms,
            correlation_id=correlation_id,
        )
        request.set_header(self.correlation_header, correlation_id)

        with OperationContext(
            logger,
            "token_refresh",
            http_path=self.refresh_path,
            correlation_id=correlation_id,
        ) as op:
            try:
                response = await self.transport.send(request)
            except TransportError as e:
                raise TokenRefreshError(f"Refresh request failed: {e}", cause=e) from e

            op.add_context(refresh_status=response.status)

            if not response.ok:
                raise TokenRefreshError(
                    f"Refresh rejected: HTTP {response.status}",
                    status=response.status,
                )

            if not isinstance(response.body, dict):
                raise TokenRefreshError(
                    "Refresh response is not a JSON object",
                    status=response.status,
                )

            try:
                return RefreshResponse.model_validate(response.body)
            except ValidationError as e:
                raise TokenRefreshError(
                    "Refresh response has no access token",
                    status=response.status,
                    cause=e,
                ) from e


def _retrieve_exception(task: asyncio.Task) -> None:
    # Failures reach waiters through the shielded await; this keeps asyncio
    # from reporting them as never retrieved when every waiter was cancelled.
    if not task.cancelled():
        task.exception()


class RefreshCoordinator:
    """
    Ensures at most one token refresh is in flight.

    The first caller starts a refresh task; callers arriving while it runs
    await the same task and receive the same token or the same exception.
    Waiters await through asyncio.shield, so cancelling one waiter does not
    cancel the shared refresh.

    Usage:
        coordinator = RefreshCoordinator(store, HttpRefreshProvider(transport))
        token = await coordinator.refresh()
    """

    def __init__(self, store: SessionStore, provider: RefreshProvider):
        self.store = store
        self.provider = provider
        self._pending: asyncio.Task | None = None

    @property
    def is_refreshing(self) -> bool:
        return self._pending is not None

    async def refresh(self) -> str:
        """
        Obtain a new access token, joining an in-flight refresh if any.

        Returns:
            The new access token (already stored)

        Raises:
            MissingRefreshTokenError: No refresh token stored
            TokenRefreshError: The refresh call failed
        """
        # No await between the check and the assignment
        task = self._pending
        if task is None:
            refresh_token = self.store.get_refresh_token()
            if not refresh_token:
                raise MissingRefreshTokenError()
            task = asyncio.ensure_future(self._run_refresh(refresh_token))
            task.add_done_callback(_retrieve_exception)
            self._pending = task
            logger.debug("Starting token refresh")
        else:
            logger.debug("Joining in-flight token refresh")

        return await asyncio.shield(task)

    async def _run_refresh(self, refresh_token: str) -> str:
        try:
            try:
                result = await self.provider.refresh(refresh_token)
            except Exception as e:
                self.store.clear()
                logger.warning(
                    f"Token refresh failed, session cleared: {e}",
                    extra={
                        "error_type": type(e).__name__,
                        "refresh_status": getattr(e, "status", None),
                    },
                )
                if isinstance(e, AuthError):
                    raise
                raise TokenRefreshError(f"Token refresh failed: {e}", cause=e) from e

            # Keep the old refresh token when the server does not rotate it
            self.store.set_credentials(
                result.access_token, result.refresh_token or refresh_token
            )
            logger.info("Access token refreshed")
            return result.access_token
        finally:
            if self._pending is asyncio.current_task():
                self._pending = None

    async def close(self) -> None:
        """Cancel an in-flight refresh, if any."""
        task = self._pending
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._pending = None


__all__ = [
    "DEFAULT_REFRESH_PATH",
    "RefreshProvider",
    "HttpRefreshProvider",
    "RefreshCoordinator",
]
