"""
HTTP transport using aiohttp.

Sends one attempt of a RequestDescriptor and returns a Response for every
status code. Only failures where no response arrived are raised, already
classified into NetworkError / RequestTimeoutError.
"""

import asyncio
import json
import logging
import time
from typing import Any

import aiohttp

from apishield.errors.classifiers import classify_transport_exception
from apishield.transport.models import RequestDescriptor, Response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def build_url(base_url: str, path: str) -> str:
    """Join base URL and path; absolute URLs are returned unchanged."""
    if path.startswith(("http://", "https://")):
        return path
    if not base_url:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def decode_body(raw: bytes, charset: str | None = None) -> Any:
    """Parse a response body as JSON, falling back to text."""
    if not raw:
        return None
    try:
        text = raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        # Unknown charset label from the server
        text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def create_session(
    max_connections: int = 100,
    max_connections_per_host: int = 10,
    enable_ssl: bool = True,
    timeout_total: float | None = None,
    timeout_connect: float = 30,
) -> aiohttp.ClientSession:
    """
    Create aiohttp ClientSession with connection pooling.

    Per-attempt timeouts are applied on each request by AiohttpTransport;
    timeout_total here only bounds requests made directly on the session.

    Args:
        max_connections: Total connection pool size (default: 100)
        max_connections_per_host: Per-host connection limit (default: 10)
        enable_ssl: Enable SSL verification (default: True)
        timeout_total: Total timeout in seconds (default: none)
        timeout_connect: Connection timeout in seconds (default: 30)

    Returns:
        Configured aiohttp.ClientSession

    Note:
        Caller is responsible for session lifecycle management.
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
        ssl=enable_ssl,
        ttl_dns_cache=300,
        enable_cleanup_closed=True,
    )
    timeout = aiohttp.ClientTimeout(total=timeout_total, connect=timeout_connect)
    return aiohttp.ClientSession(connector=connector, timeout=timeout)


class AiohttpTransport:
    """
    Transport that sends requests with an aiohttp ClientSession.

    The session is either borrowed (passed in, caller closes it) or owned
    (created lazily, closed by close()).

    Example:
        async with AiohttpTransport("https://api.example.com") as transport:
            response = await transport.send(RequestDescriptor("GET", "/users"))
    """

    def __init__(
        self,
        base_url: str = "",
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        session: aiohttp.ClientSession | None = None,
        default_headers: dict[str, str] | None = None,
        max_connections: int = 100,
        verify_ssl: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = timeout_ms
        self.default_headers = dict(DEFAULT_HEADERS if default_headers is None else default_headers)
        self.max_connections = max_connections
        self.verify_ssl = verify_ssl
        self._session = session
        self._owns_session = session is None
        self._closed = False

    async def __aenter__(self) -> "AiohttpTransport":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("AiohttpTransport is closed, cannot create new session")
        if self._session is None or self._session.closed:
            if not self._owns_session:
                raise RuntimeError("Borrowed aiohttp session has been closed")
            self._session = create_session(
                max_connections=self.max_connections,
                max_connections_per_host=self.max_connections,
                enable_ssl=self.verify_ssl,
            )
        return self._session

    async def close(self) -> None:
        self._closed = True
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            # Let aiohttp finish closing the connector's transports
            await asyncio.sleep(0)
        self._session = None

    def _build_headers(self, request: RequestDescriptor) -> dict[str, str]:
        headers = dict(self.default_headers)
        lowered = {k.lower() for k in request.headers}
        headers = {k: v for k, v in headers.items() if k.lower() not in lowered}
        headers.update(request.headers)
        return headers

    async def send(self, request: RequestDescriptor) -> Response:
        """
        Send a single attempt.

        Raises:
            NetworkError: The server could not be reached
            RequestTimeoutError: No response within the attempt timeout
        """
        session = await self._ensure_session()

        url = build_url(self.base_url, request.path)
        timeout_ms = request.timeout_ms or self.timeout_ms
        kwargs: dict[str, Any] = {
            "params": request.params,
            "headers": self._build_headers(request),
            "timeout": aiohttp.ClientTimeout(total=timeout_ms / 1000),
        }
        if request.body is not None:
            if isinstance(request.body, (bytes, str)):
                kwargs["data"] = request.body
            else:
                kwargs["json"] = request.body

        start = time.perf_counter()
        try:
            async with session.request(request.method, url, **kwargs) as resp:
                raw = await resp.read()
                elapsed_ms = (time.perf_counter() - start) * 1000
                return Response(
                    status=resp.status,
                    headers=dict(resp.headers),
                    body=decode_body(raw, resp.charset),
                    correlation_id=request.correlation_id,
                    elapsed_ms=round(elapsed_ms, 2),
                )
        except (TimeoutError, aiohttp.ClientError, OSError) as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            error = classify_transport_exception(
                e,
                context={
                    "http_method": request.method,
                    "http_url": url,
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            logger.debug(
                "Transport failure",
                extra={
                    "http_method": request.method,
                    "http_url": url,
                    "error_type": type(e).__name__,
                    "error_category": error.category.value,
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            raise error from e


__all__ = [
    "DEFAULT_HEADERS",
    "DEFAULT_TIMEOUT_MS",
    "AiohttpTransport",
    "build_url",
    "create_session",
    "decode_body",
]
