"""
Request pipeline and its middleware stages.

Provides:
- RequestPipeline: explicit ordered stage chain ending at the transport
- CorrelationStage, ErrorNormalizationStage, AuthStage, RetryStage
- Notifier and built-in notification sinks
"""

from apishield.pipeline.auth_stage import AuthStage
from apishield.pipeline.correlation import CorrelationStage
from apishield.pipeline.normalization import ErrorNormalizationStage
from apishield.pipeline.notifications import (
    LoggingNotificationSink,
    NotificationBuffer,
    NotificationEvent,
    Notifier,
)
from apishield.pipeline.pipeline import RequestPipeline
from apishield.pipeline.retry_stage import RetryStage
from apishield.pipeline.types import CallNext, Stage

__all__ = [
    "RequestPipeline",
    "CallNext",
    "Stage",
    "CorrelationStage",
    "ErrorNormalizationStage",
    "AuthStage",
    "RetryStage",
    "NotificationEvent",
    "Notifier",
    "LoggingNotificationSink",
    "NotificationBuffer",
]
