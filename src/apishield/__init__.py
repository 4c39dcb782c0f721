"""
apishield: client-side resilience layer for JSON APIs.

Modules:
- auth: session stores and single-flight token refresh
- errors: exception hierarchy, status classification, NormalizedError
- logging: structured logging with request context
- pipeline: middleware stages and the request pipeline
- resilience: retry policy and backoff timers
- transport: aiohttp transport and request/response models
- config: YAML/env configuration
- client: ApiClient facade
"""

from apishield.client import ApiClient
from apishield.config import ClientConfig, load_config
from apishield.errors.exceptions import NormalizedError
from apishield.types import ErrorCategory, Severity

__version__ = "0.1.0"

__all__ = [
    "ApiClient",
    "ClientConfig",
    "load_config",
    "NormalizedError",
    "ErrorCategory",
    "Severity",
    "__version__",
]
