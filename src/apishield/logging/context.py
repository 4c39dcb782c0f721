"""Context variables for structured logging."""

from contextvars import ContextVar

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_http_method: ContextVar[str] = ContextVar("http_method", default="")
_http_path: ContextVar[str] = ContextVar("http_path", default="")


def set_log_context(
    correlation_id: str | None = None,
    http_method: str | None = None,
    http_path: str | None = None,
) -> None:
    if correlation_id is not None:
        _correlation_id.set(correlation_id)
    if http_method is not None:
        _http_method.set(http_method)
    if http_path is not None:
        _http_path.set(http_path)


def get_log_context() -> dict[str, str]:
    return {
        "correlation_id": _correlation_id.get(),
        "http_method": _http_method.get(),
        "http_path": _http_path.get(),
    }


def clear_log_context() -> None:
    _correlation_id.set("")
    _http_method.set("")
    _http_path.set("")
