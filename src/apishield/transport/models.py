"""
Request and response models passed through the pipeline.

RequestDescriptor is mutable: pipeline stages record retry counters, auth
state and correlation data on it as the request moves through. Response is
immutable once the transport has built it.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class RequestDescriptor:
    """
    One logical request, including every replay of it.

    Attributes:
        method: HTTP method (upper-case)
        path: Path relative to the client's base URL, or an absolute URL
        headers: Outgoing headers
        body: JSON-serializable payload
        params: Query string parameters
        retry_count: Retries performed for retryable statuses
        network_retry_count: Retries performed for failures without a response
        retry_disabled: Opt out of the retry stage entirely
        auth_retried: True once the request has been replayed after a refresh
        correlation_id: Correlation-ID assigned on first transmission
        started_at: Monotonic start time (seconds) of the first transmission
        timeout_ms: Per-attempt timeout override; transport default when None
        metadata: Free-form data for custom stages
    """

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    params: dict[str, Any] | None = None
    retry_count: int = 0
    network_retry_count: int = 0
    retry_disabled: bool = False
    auth_retried: bool = False
    correlation_id: str | None = None
    started_at: float | None = None
    timeout_ms: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.method = self.method.upper()

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any existing one regardless of case."""
        self.remove_header(name)
        self.headers[name] = value

    def remove_header(self, name: str) -> None:
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]

    def get_header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class Response:
    """
    HTTP response as seen by the pipeline.

    Attributes:
        status: HTTP status code
        headers: Response headers
        body: Parsed JSON body, raw text when not JSON, None when empty
        correlation_id: Correlation-ID of the request that produced it
        elapsed_ms: Time spent on the attempt that produced it
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    correlation_id: str | None = None
    elapsed_ms: float | None = None

    @property
    def ok(self) -> bool:
        """True for 2xx and 3xx statuses."""
        return 200 <= self.status < 400

    def get_header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


__all__ = ["RequestDescriptor", "Response"]
