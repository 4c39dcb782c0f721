"""
Session credentials and access token refresh.

Provides:
- SessionCredentials and the in-memory / file-backed session stores
- RefreshCoordinator: single-flight refresh shared by concurrent requests
- HttpRefreshProvider: refresh via the API's refresh endpoint
"""

from apishield.auth.models import RefreshRequest, RefreshResponse
from apishield.auth.refresh import (
    DEFAULT_REFRESH_PATH,
    HttpRefreshProvider,
    RefreshCoordinator,
    RefreshProvider,
)
from apishield.auth.session import (
    FileSessionStore,
    InMemorySessionStore,
    SessionCredentials,
)

__all__ = [
    "SessionCredentials",
    "InMemorySessionStore",
    "FileSessionStore",
    "RefreshRequest",
    "RefreshResponse",
    "DEFAULT_REFRESH_PATH",
    "RefreshProvider",
    "HttpRefreshProvider",
    "RefreshCoordinator",
]
