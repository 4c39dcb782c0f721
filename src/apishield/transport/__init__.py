"""HTTP transport and the request/response models passed through the pipeline."""

from apishield.transport.models import RequestDescriptor, Response
from apishield.transport.http_client import (
    DEFAULT_HEADERS,
    AiohttpTransport,
    create_session,
)

__all__ = [
    "RequestDescriptor",
    "Response",
    "DEFAULT_HEADERS",
    "AiohttpTransport",
    "create_session",
]
