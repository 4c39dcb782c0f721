"""
High-level API client.

Wires the session store, refresh coordinator, transport and default stage
chain into one object application code calls:

    async with ApiClient(load_config()) as client:
        client.login(access_token, refresh_token, user_id="42")
        user = await client.get("/api/users/42", response_model=User)
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from apishield.auth.refresh import HttpRefreshProvider, RefreshCoordinator, RefreshProvider
from apishield.auth.session import InMemorySessionStore
from apishield.config import ClientConfig, get_config
from apishield.errors.classifiers import UNEXPECTED_MESSAGE
from apishield.errors.exceptions import NormalizedError
from apishield.pipeline.auth_stage import AuthStage
from apishield.pipeline.correlation import CorrelationStage
from apishield.pipeline.normalization import ErrorNormalizationStage
from apishield.pipeline.notifications import Notifier
from apishield.pipeline.pipeline import RequestPipeline
from apishield.pipeline.retry_stage import RetryStage
from apishield.resilience.retry import BackoffTimer
from apishield.transport.http_client import AiohttpTransport
from apishield.transport.models import RequestDescriptor, Response
from apishield.types import ErrorCategory, NotificationSink, SessionStore, Transport

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiClient:
    """
    Resilient JSON API client.

    Every call returns a successful Response (or a validated model) or raises
    NormalizedError.

    Args:
        config: Client configuration; the process-wide default when None
        store: Session store; a fresh in-memory store when None
        transport: Transport; an AiohttpTransport owned by the client when None
        sinks: Notification sinks for terminal errors
        on_session_expired: Called (fire-and-forget) when the session ends
        refresh_provider: Refresh implementation; HttpRefreshProvider when None
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        store: SessionStore | None = None,
        transport: Transport | None = None,
        sinks: Iterable[NotificationSink] | None = None,
        on_session_expired: Callable[[NormalizedError], Any] | None = None,
        refresh_provider: RefreshProvider | None = None,
    ):
        self.config = config or get_config()
        self.store = store if store is not None else InMemorySessionStore()

        self._owns_transport = transport is None
        if transport is None:
            transport = AiohttpTransport(
                self.config.base_url,
                timeout_ms=self.config.timeout_ms,
                default_headers=self.config.default_headers,
            )
        self.transport = transport

        self.notifier = Notifier(sinks)
        self.timer = BackoffTimer()
        self.coordinator = RefreshCoordinator(
            self.store,
            refresh_provider
            or HttpRefreshProvider(
                self.transport,
                self.config.refresh_path,
                correlation_header=self.config.correlation_header,
            ),
        )
        self.pipeline = RequestPipeline(
            self.transport,
            [
                CorrelationStage(
                    header_name=self.config.correlation_header,
                    enable_logging=self.config.enable_logging,
                    slow_request_threshold_ms=self.config.slow_request_threshold_ms,
                ),
                ErrorNormalizationStage(self.notifier),
                AuthStage(self.store, self.coordinator, on_session_expired=on_session_expired),
                RetryStage(self.config.to_retry_config(), self.timer),
            ],
            notifier=self.notifier,
            timers=[self.timer],
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def login(
        self,
        access_token: str,
        refresh_token: str,
        *,
        user_id: str | None = None,
        user_type: str | None = None,
    ) -> None:
        """Store credentials obtained from the application's login flow."""
        self.store.set_credentials(
            access_token, refresh_token, user_id=user_id, user_type=user_type
        )

    def logout(self) -> None:
        self.store.clear()

    @property
    def is_authenticated(self) -> bool:
        return self.store.get_credentials() is not None

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        retry_disabled: bool = False,
        timeout_ms: float | None = None,
        cutoff_ms: float | None = None,
        response_model: type[ModelT] | None = None,
    ) -> Response | ModelT:
        """
        Send a request through the pipeline.

        Args:
            method: HTTP method
            path: Path relative to base_url
            body: JSON-serializable payload
            params: Query string parameters
            headers: Extra headers
            retry_disabled: Skip the retry stage for this call
            timeout_ms: Per-attempt timeout override
            cutoff_ms: Deadline for the whole call including retries
            response_model: Pydantic model to validate the JSON body with

        Returns:
            Response, or a response_model instance when one is given

        Raises:
            NormalizedError: Any terminal failure
        """
        request = RequestDescriptor(
            method,
            path,
            headers=dict(headers or {}),
            body=body,
            params=params,
            retry_disabled=retry_disabled,
            timeout_ms=timeout_ms,
        )
        response = await self.pipeline.execute(request, cutoff_ms=cutoff_ms)

        if response_model is None:
            return response
        return self._validate(response, response_model)

    @staticmethod
    def _validate(response: Response, response_model: type[ModelT]) -> ModelT:
        try:
            return response_model.model_validate(response.body)
        except ValidationError as e:
            logger.error(
                f"Response did not match {response_model.__name__}",
                extra={
                    "http_status": response.status,
                    "correlation_id": response.correlation_id,
                    "error_message": str(e)[:500],
                },
            )
            raise NormalizedError(
                ErrorCategory.UNKNOWN,
                UNEXPECTED_MESSAGE,
                technical_message=str(e),
                status=response.status,
                original=e,
                correlation_id=response.correlation_id,
                show_notification=False,
            ) from e

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, body=body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", path, body=body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, body=body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def close(self) -> None:
        """Cancel pending backoff sleeps and refreshes, close an owned transport."""
        await self.pipeline.close()
        await self.coordinator.close()
        if self._owns_transport and hasattr(self.transport, "close"):
            await self.transport.close()


__all__ = ["ApiClient"]
