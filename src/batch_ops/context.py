"""Request-scoped actor context."""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class RequestContext:
    """Immutable request-scoped context.

    ``actor`` is recorded as ``performed_by`` on audit entries written while
    this context is active.
    """

    actor: str
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_request_context: ContextVar[RequestContext | None] = ContextVar(
    "request_context",
    default=None,
)


def set_request_context(ctx: RequestContext) -> Token[RequestContext | None]:
    """Set context and return reset token."""
    return _request_context.set(ctx)


def reset_request_context(token: Token[RequestContext | None]) -> None:
    """Reset context using token from set_request_context()."""
    _request_context.reset(token)


def get_request_context_optional() -> RequestContext | None:
    return _request_context.get()


def current_actor(default: str) -> str:
    ctx = _request_context.get()
    if ctx is None:
        return default
    return ctx.actor
