"""Identifiers of the request being served, read by the JSON log formatter."""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class RequestContext:
    request_id: str | None = None
    session_id: str | None = None
    user_id: str | None = None


_EMPTY = RequestContext()
_CONTEXT: ContextVar[RequestContext] = ContextVar("storefront_request_context", default=_EMPTY)


def current_context() -> RequestContext:
    return _CONTEXT.get()


def set_request_context(
    *, request_id: str | None = None, session_id: str | None = None, user_id: str | None = None
) -> None:
    # None mantém o valor atual
    updates = {
        name: value
        for name, value in (("request_id", request_id), ("session_id", session_id), ("user_id", user_id))
        if value is not None
    }
    if updates:
        _CONTEXT.set(replace(_CONTEXT.get(), **updates))


def clear_request_context() -> None:
    _CONTEXT.set(_EMPTY)
