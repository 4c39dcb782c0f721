"""Tests for notification sinks, fire-and-forget delivery and the buffer."""

import asyncio
import logging

import pytest

from apishield.errors.exceptions import NormalizedError
from apishield.pipeline.notifications import (
    LoggingNotificationSink,
    NotificationBuffer,
    NotificationEvent,
    Notifier,
    drain_background_tasks,
    fire_and_forget,
)
from apishield.types import ErrorCategory, Severity


class TestNotificationEvent:

    def test_from_error(self):
        error = NormalizedError(
            ErrorCategory.SERVER_ERROR,
            "Server error",
            status=500,
            correlation_id="cid",
            notification_duration_ms=7000,
        )

        event = NotificationEvent.from_error(error)

        assert event.message == "Server error"
        assert event.duration_ms == 7000
        assert event.severity == Severity.ERROR
        assert event.category == ErrorCategory.SERVER_ERROR
        assert event.correlation_id == "cid"


class TestFireAndForget:

    def test_sync_callback_invoked(self):
        calls = []

        fire_and_forget(calls.append, "x", description="test")

        assert calls == ["x"]

    def test_sync_exception_logged(self, caplog):
        def broken(_):
            raise ValueError("sink broke")

        with caplog.at_level(logging.WARNING, logger="apishield.pipeline.notifications"):
            fire_and_forget(broken, "x", description="broken sink")

        record = caplog.records[-1]
        assert "broken sink" in record.getMessage()
        assert record.callback_error == "sink broke"

    @pytest.mark.asyncio
    async def test_async_callback_scheduled(self):
        done = []

        async def callback(value):
            await asyncio.sleep(0)
            done.append(value)

        fire_and_forget(callback, 1, description="async sink")
        assert done == []

        await drain_background_tasks()
        assert done == [1]

    @pytest.mark.asyncio
    async def test_async_exception_logged(self, caplog):
        async def callback(_):
            raise RuntimeError("late failure")

        with caplog.at_level(logging.WARNING, logger="apishield.pipeline.notifications"):
            fire_and_forget(callback, 1, description="async sink")
            await drain_background_tasks()
            await asyncio.sleep(0)

        assert any(getattr(r, "callback_error", None) == "late failure" for r in caplog.records)


class TestNotifier:

    def test_emits_to_every_sink(self, sink):
        other = NotificationBuffer()
        notifier = Notifier([sink])
        notifier.add_sink(other)

        notifier.emit(NotificationEvent("Saved", severity=Severity.SUCCESS))

        assert [e.message for e in sink.events] == ["Saved"]
        assert len(other) == 1

    def test_notify_error_respects_suppression(self, sink):
        notifier = Notifier([sink])

        notifier.notify_error(
            NormalizedError(ErrorCategory.UNAUTHORIZED, "expired", show_notification=False)
        )
        notifier.notify_error(NormalizedError(ErrorCategory.FORBIDDEN, "denied"))

        assert [e.category for e in sink.events] == [ErrorCategory.FORBIDDEN]

    def test_broken_sink_does_not_stop_others(self, sink):
        class BrokenSink:
            def notify(self, event):
                raise RuntimeError("boom")

        notifier = Notifier([BrokenSink(), sink])

        notifier.emit(NotificationEvent("hello"))

        assert len(sink.events) == 1


class TestLoggingNotificationSink:

    def test_logs_at_severity_level(self, caplog):
        sink_logger = logging.getLogger("apishield.tests.toasts")
        sink = LoggingNotificationSink(sink_logger)

        with caplog.at_level(logging.INFO, logger="apishield.tests.toasts"):
            sink.notify(
                NotificationEvent(
                    "Server error", 7000, Severity.ERROR, ErrorCategory.SERVER_ERROR, "cid"
                )
            )

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.error_category == "serverError"
        assert record.severity == "error"


class TestNotificationBuffer:

    def test_add_and_active(self):
        buffer = NotificationBuffer()

        buffer.add(NotificationEvent("one"))
        buffer.notify(NotificationEvent("two"))

        assert [n.event.message for n in buffer.active()] == ["one", "two"]

    def test_ids_are_unique(self):
        buffer = NotificationBuffer()

        first = buffer.add(NotificationEvent("one"))
        second = buffer.add(NotificationEvent("two"))

        assert first != second

    def test_max_size_drops_oldest(self):
        buffer = NotificationBuffer(max_size=2)

        for message in ("a", "b", "c"):
            buffer.add(NotificationEvent(message))

        assert [n.event.message for n in buffer.active()] == ["b", "c"]

    def test_expired_dropped(self):
        buffer = NotificationBuffer()
        buffer.add(NotificationEvent("short", duration_ms=1000))
        buffer.add(NotificationEvent("sticky", duration_ms=0))
        created = buffer.active()[0].created_at

        active = buffer.active(now=created + 5)

        assert [n.event.message for n in active] == ["sticky"]
        assert len(buffer) == 1

    def test_remove(self):
        buffer = NotificationBuffer()
        notification_id = buffer.add(NotificationEvent("one"))

        assert buffer.remove(notification_id) is True
        assert buffer.remove(notification_id) is False
        assert len(buffer) == 0

    def test_clear(self):
        buffer = NotificationBuffer()
        buffer.add(NotificationEvent("one"))

        buffer.clear()

        assert buffer.active() == []
