"""
pytest configuration for apishield tests.

Adds src directory to Python path for imports and provides shared fakes for
the transport, timer and notification sink.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from apishield.auth.session import InMemorySessionStore  # noqa: E402
from apishield.logging.context import clear_log_context  # noqa: E402
from apishield.resilience.retry import BackoffTimer  # noqa: E402
from apishield.transport.models import RequestDescriptor, Response  # noqa: E402


class ScriptedTransport:
    """
    Transport that replays a list of outcomes.

    Each outcome is a Response, an exception instance (raised), or a callable
    taking the request and returning either. The last outcome repeats once the
    script runs out.
    """

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests: list[RequestDescriptor] = []
        self.sent_headers: list[dict[str, str]] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def send(self, request: RequestDescriptor) -> Response:
        self.requests.append(request)
        self.sent_headers.append(dict(request.headers))
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if callable(outcome):
            outcome = outcome(request)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingTimer(BackoffTimer):
    """BackoffTimer that records requested delays and does not sleep."""

    def __init__(self) -> None:
        super().__init__()
        self.delays: list[float] = []

    async def sleep(self, delay_ms: float) -> None:
        self.delays.append(delay_ms)


class RecordingSink:
    """Notification sink that keeps every event it receives."""

    def __init__(self) -> None:
        self.events = []

    def notify(self, event) -> None:
        self.events.append(event)


@pytest.fixture(autouse=True)
def clear_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def logged_in_store():
    store = InMemorySessionStore()
    store.set_credentials("access-1", "refresh-1", user_id="42", user_type="agent")
    return store


@pytest.fixture
def timer():
    return RecordingTimer()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def scripted_transport():
    """Factory for ScriptedTransport instances."""
    return ScriptedTransport
