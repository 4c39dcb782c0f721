"""Stage and continuation types for the request pipeline."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from apishield.transport.models import RequestDescriptor, Response

CallNext = Callable[[RequestDescriptor], Awaitable[Response]]


class Stage(Protocol):
    """
    Protocol for pipeline middleware.

    A stage receives the request and a continuation for the rest of the
    pipeline. Work before `await call_next(request)` runs on the way out,
    work after it runs on the way back. A stage may call the continuation
    more than once (retry, replay) or not at all.
    """

    async def __call__(self, request: RequestDescriptor, call_next: CallNext) -> Response: ...


__all__ = ["CallNext", "Stage"]
