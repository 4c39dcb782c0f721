"""
Credential storage for the auth stage and refresh coordinator.

Credentials are all-or-nothing: a session holds both an access token and a
refresh token, or nothing. Partial pairs are rejected.

Two stores are provided:
    InMemorySessionStore: process-lifetime session (default)
    FileSessionStore: JSON file written atomically, survives restarts

Example:
    >>> store = InMemorySessionStore()
    >>> store.set_credentials("access-1", "refresh-1", user_id="42")
    >>> store.get_access_token()
    'access-1'
    >>> store.clear()
    >>> store.get_access_token() is None
    True
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredentials:
    """
    Credential pair with optional identity metadata.

    Attributes:
        access_token: Short-lived bearer token sent on every request
        refresh_token: Long-lived token used to obtain a new access token
        user_id: Identity sent as X-User-ID
        user_type: Role sent as X-User-Type
    """

    access_token: str
    refresh_token: str
    user_id: str | None = None
    user_type: str | None = None


def _validate_pair(access_token: str, refresh_token: str) -> None:
    if not access_token or not refresh_token:
        raise ValueError("Both access_token and refresh_token are required")


class InMemorySessionStore:
    """
    Thread-safe in-memory session store.

    All operations are protected by a threading.Lock so a store can be shared
    between event loops running in different threads.
    """

    def __init__(self, credentials: SessionCredentials | None = None):
        if credentials is not None:
            _validate_pair(credentials.access_token, credentials.refresh_token)
        self._credentials = credentials
        self._lock = threading.Lock()

    def get_credentials(self) -> SessionCredentials | None:
        with self._lock:
            return self._credentials

    def get_access_token(self) -> str | None:
        credentials = self.get_credentials()
        return credentials.access_token if credentials else None

    def get_refresh_token(self) -> str | None:
        credentials = self.get_credentials()
        return credentials.refresh_token if credentials else None

    def set_credentials(
        self,
        access_token: str,
        refresh_token: str,
        *,
        user_id: str | None = None,
        user_type: str | None = None,
    ) -> None:
        """
        Store a full credential pair.

        Identity metadata is carried over from the current session when not
        given, so a token refresh does not drop it.

        Raises:
            ValueError: If either token is missing
        """
        _validate_pair(access_token, refresh_token)
        with self._lock:
            previous = self._credentials
            if previous is not None:
                user_id = user_id if user_id is not None else previous.user_id
                user_type = user_type if user_type is not None else previous.user_type
            self._credentials = SessionCredentials(
                access_token=access_token,
                refresh_token=refresh_token,
                user_id=user_id,
                user_type=user_type,
            )

    def clear(self) -> None:
        with self._lock:
            self._credentials = None

    @property
    def is_authenticated(self) -> bool:
        return self.get_credentials() is not None


class FileSessionStore(InMemorySessionStore):
    """
    Session store persisted to a JSON file.

    The file is loaded once on construction and rewritten atomically
    (temp file + os.replace) on every change. clear() deletes it.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> SessionCredentials | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            credentials = SessionCredentials(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                user_id=data.get("user_id"),
                user_type=data.get("user_type"),
            )
            _validate_pair(credentials.access_token, credentials.refresh_token)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Ignoring unreadable session file {self.path}: {e}",
                extra={"error_type": type(e).__name__},
            )
            return None
        logger.debug(f"Loaded session from {self.path}")
        return credentials

    def _write(self, credentials: SessionCredentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(asdict(credentials), f)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def set_credentials(
        self,
        access_token: str,
        refresh_token: str,
        *,
        user_id: str | None = None,
        user_type: str | None = None,
    ) -> None:
        super().set_credentials(
            access_token, refresh_token, user_id=user_id, user_type=user_type
        )
        with self._lock:
            credentials = self._credentials
            if credentials is not None:
                self._write(credentials)

    def clear(self) -> None:
        with self._lock:
            self._credentials = None
            self.path.unlink(missing_ok=True)


__all__ = [
    "SessionCredentials",
    "InMemorySessionStore",
    "FileSessionStore",
]
