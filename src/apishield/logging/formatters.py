"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from apishield.logging.context import get_log_context


def json_serializer(obj: Any) -> Any:
    """
    Type-safe JSON serializer for log entries.

    - datetime/date → ISO 8601 string
    - Enums → value
    - Everything else → string (fallback)
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Redacts bearer tokens and sensitive query parameters before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "correlation_id",
        "duration_ms",
        # HTTP
        "http_status",
        "http_method",
        "http_path",
        "http_url",
        # Errors
        "error_category",
        "error_message",
        "error_type",
        "callback_error",
        # Resilience
        "attempt",
        "max_attempts",
        "retry_count",
        "network_retry_count",
        "delay_ms",
        "retry_reason",
        "server_retry_after",
        # Auth
        "auth_retried",
        "refresh_status",
        # Notifications
        "severity",
        "sink",
        # Operation tracking
        "operation",
        "threshold_ms",
    ]

    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_ms": float,
        "server_retry_after": float,
        "threshold_ms": float,
        "http_status": int,
        "attempt": int,
        "max_attempts": int,
        "retry_count": int,
        "network_retry_count": int,
        "refresh_status": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["http_url", "http_path"]

    # Pattern to match sensitive query parameters
    SENSITIVE_PARAMS_PATTERN = re.compile(
        r"([?&])(sig|token|key|secret|password|auth|refresh_token|access_token)=[^&]*",
        re.IGNORECASE,
    )

    BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)

    def _sanitize_url(self, url: str) -> str:
        return self.SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", url)

    def _sanitize_text(self, text: str) -> str:
        return self.BEARER_PATTERN.sub(r"\1[REDACTED]", text)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if key in self.URL_FIELDS:
            value = self._sanitize_url(value)
        return self._sanitize_text(value)

    def _ensure_type(self, field: str, value: Any) -> Any:
        """
        Coerce numeric fields to their declared type.

        Returns None when conversion fails so consumers never see a number
        serialized as a string.
        """
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    def _base_log_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize_text(record.getMessage()),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field in ("correlation_id", "http_method", "http_path"):
            if log_context.get(field):
                log_entry[field] = log_context[field]

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": self._sanitize_text(str(exc_value)) if exc_value else None,
            "stacktrace": self._sanitize_text(self.formatException(record.exc_info)),
        }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a single JSON line."""
        log_entry = self._base_log_entry(record)

        self._inject_context(log_entry, get_log_context())

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Extra fields override context (a record may describe another request)
        self._inject_extra_fields(log_entry, record)

        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _sanitize_text(text: str) -> str:
        return JSONFormatter.BEARER_PATTERN.sub(r"\1[REDACTED]", text)

    @staticmethod
    def _build_prefix(level_name: str, record: logging.LogRecord) -> str:
        return " - ".join(
            [
                datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                level_name,
                record.name,
            ]
        )

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        correlation_id = getattr(record, "correlation_id", None) or log_context.get(
            "correlation_id"
        )
        method = getattr(record, "http_method", None) or log_context.get("http_method")
        path = getattr(record, "http_path", None) or log_context.get("http_path")

        tags = []
        if correlation_id:
            tags.append(f"[{correlation_id[:8]}]")
        if method and path:
            tags.append(f"[{method} {path}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, record)
        tags = self._build_tags(record, log_context)

        message = self._sanitize_text(record.getMessage())
        if tags:
            message = f"{' '.join(tags)} {message}"
        line = f"{prefix} - {message}"

        if record.exc_info:
            line = f"{line}\n{self._sanitize_text(self.formatException(record.exc_info))}"
        return line
