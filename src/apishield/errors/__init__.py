"""
Error taxonomy and normalization.

Provides:
- Exception hierarchy (ApiShieldError and subclasses)
- HTTP status and transport exception classification
- Conversion of terminal failures into NormalizedError
"""

from apishield.errors.classifiers import (
    classify_http_status,
    classify_transport_exception,
    get_status_mapping,
    parse_retry_after,
)
from apishield.errors.exceptions import (
    ApiShieldError,
    AuthError,
    ConfigurationError,
    MissingRefreshTokenError,
    NetworkError,
    NormalizedError,
    RequestTimeoutError,
    TokenRefreshError,
    TransportError,
)
from apishield.errors.normalizer import (
    ErrorBody,
    normalize_exception,
    normalize_failure,
    normalize_response,
)

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
    "classify_http_status",
    "classify_transport_exception",
    "get_status_mapping",
    "parse_retry_after",
    "ErrorBody",
    "normalize_exception",
    "normalize_failure",
    "normalize_response",
]
