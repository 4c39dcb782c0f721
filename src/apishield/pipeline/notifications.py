"""
User-facing notifications for terminal request errors.

Sinks receive NotificationEvents and may be synchronous or return an
awaitable. Delivery is fire-and-forget: the pipeline never waits for a sink
and a failing sink is logged, never raised to the caller.
"""

import asyncio
import inspect
import itertools
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from apishield.errors.exceptions import NormalizedError
from apishield.types import ErrorCategory, NotificationSink, Severity

logger = logging.getLogger(__name__)

# Strong references to scheduled callback tasks until they finish
_background_tasks: set[asyncio.Future] = set()


@dataclass(frozen=True)
class NotificationEvent:
    """
    A message to show the user.

    Attributes:
        message: Text to display
        duration_ms: Suggested display time, 0 means until dismissed
        severity: Display severity
        category: Error category when the event describes a failed request
        correlation_id: Correlation-ID of the failed request
    """

    message: str
    duration_ms: int = 5000
    severity: Severity = Severity.INFO
    category: ErrorCategory | None = None
    correlation_id: str | None = None

    @classmethod
    def from_error(cls, error: NormalizedError) -> "NotificationEvent":
        return cls(
            message=error.user_message,
            duration_ms=error.notification_duration_ms,
            severity=Severity.ERROR,
            category=error.category,
            correlation_id=error.correlation_id,
        )


def _log_callback_error(description: str, error: BaseException) -> None:
    logger.warning(
        f"Error in {description}: {str(error)[:100]}",
        extra={
            "operation": description,
            "callback_error": str(error)[:100],
            "error_type": type(error).__name__,
        },
    )


def _on_background_done(description: str, task: asyncio.Future) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        _log_callback_error(description, error)


def fire_and_forget(callback: Callable[..., Any], *args: Any, description: str) -> None:
    """
    Invoke a sync-or-async callback without waiting on it.

    Exceptions raised synchronously or by the scheduled awaitable are logged
    and dropped.
    """
    try:
        result = callback(*args)
    except Exception as e:
        _log_callback_error(description, e)
        return

    if not inspect.isawaitable(result):
        return

    try:
        task = asyncio.ensure_future(result)
    except RuntimeError as e:
        # No running loop; close the coroutine so it is not reported as never awaited
        if inspect.iscoroutine(result):
            result.close()
        _log_callback_error(description, e)
        return

    _background_tasks.add(task)
    task.add_done_callback(lambda t: _on_background_done(description, t))


async def drain_background_tasks() -> None:
    """Wait for scheduled callback tasks to finish."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


class Notifier:
    """Fans notification events out to registered sinks."""

    def __init__(self, sinks: Iterable[NotificationSink] | None = None):
        self.sinks: list[NotificationSink] = list(sinks or [])

    def add_sink(self, sink: NotificationSink) -> None:
        self.sinks.append(sink)

    def emit(self, event: NotificationEvent) -> None:
        for sink in self.sinks:
            fire_and_forget(
                sink.notify,
                event,
                description=f"notification sink {type(sink).__name__}",
            )

    def notify_error(self, error: NormalizedError) -> None:
        """Emit one error event unless the error suppresses notification."""
        if not error.show_notification:
            return
        self.emit(NotificationEvent.from_error(error))


class LoggingNotificationSink:
    """Writes notification events to a logger."""

    LEVELS = {
        Severity.ERROR: logging.ERROR,
        Severity.WARNING: logging.WARNING,
        Severity.INFO: logging.INFO,
        Severity.SUCCESS: logging.INFO,
    }

    def __init__(self, sink_logger: logging.Logger | None = None):
        self.logger = sink_logger or logging.getLogger("apishield.notifications")

    def notify(self, event: NotificationEvent) -> None:
        self.logger.log(
            self.LEVELS.get(event.severity, logging.INFO),
            event.message,
            extra={
                "severity": event.severity.value,
                "error_category": event.category.value if event.category else None,
                "correlation_id": event.correlation_id,
                "duration_ms": event.duration_ms,
            },
        )


@dataclass
class BufferedNotification:
    """A notification held by NotificationBuffer."""

    id: int
    event: NotificationEvent
    created_at: float = field(default_factory=time.monotonic)

    def is_expired(self, now: float | None = None) -> bool:
        if self.event.duration_ms <= 0:
            return False
        now = time.monotonic() if now is None else now
        return (now - self.created_at) * 1000 >= self.event.duration_ms


class NotificationBuffer:
    """
    Bounded in-memory notification queue.

    Keeps the most recent max_size events for a UI to poll. Events expire
    after their duration; a duration of 0 keeps them until removed.

    Example:
        >>> buffer = NotificationBuffer()
        >>> notification_id = buffer.add(NotificationEvent("Saved", 3000, Severity.SUCCESS))
        >>> [n.event.message for n in buffer.active()]
        ['Saved']
        >>> buffer.remove(notification_id)
        True
    """

    DEFAULT_MAX_SIZE = 50

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        self._items: deque[BufferedNotification] = deque(maxlen=max_size)
        self._ids = itertools.count()
        self._lock = threading.Lock()

    def notify(self, event: NotificationEvent) -> None:
        self.add(event)

    def add(self, event: NotificationEvent) -> int:
        with self._lock:
            notification = BufferedNotification(id=next(self._ids), event=event)
            self._items.append(notification)
            return notification.id

    def remove(self, notification_id: int) -> bool:
        with self._lock:
            for notification in self._items:
                if notification.id == notification_id:
                    self._items.remove(notification)
                    return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def active(self, now: float | None = None) -> list[BufferedNotification]:
        """Return unexpired notifications, dropping expired ones."""
        with self._lock:
            live = [n for n in self._items if not n.is_expired(now)]
            if len(live) != len(self._items):
                self._items.clear()
                self._items.extend(live)
            return list(live)

    def __len__(self) -> int:
        return len(self._items)


__all__ = [
    "NotificationEvent",
    "Notifier",
    "LoggingNotificationSink",
    "BufferedNotification",
    "NotificationBuffer",
    "fire_and_forget",
    "drain_background_tasks",
]
