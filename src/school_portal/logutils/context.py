"""Request-scoped logging context.

Correlation ids and the current operation are carried in a ContextVar so
that every log line emitted while a repository call is running can be tied
back to that call, across threads and tasks alike.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LogContext:
    """Contextual fields attached to every log record."""

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    operation: str | None = None
    user_id: str | None = None
    entity: str | None = None
    entity_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"correlation_id": self.correlation_id}
        for name in ("operation", "user_id", "entity", "entity_id"):
            value = getattr(self, name)
            if value:
                result[name] = value
        result.update(self.extra)
        return result


_log_context: ContextVar[LogContext | None] = ContextVar("log_context", default=None)


def get_context() -> LogContext:
    """Return the active context, creating an empty one on first use."""
    ctx = _log_context.get()
    if ctx is None:
        ctx = LogContext()
        _log_context.set(ctx)
    return ctx


def set_context(context: LogContext) -> None:
    _log_context.set(context)


def clear_context() -> None:
    _log_context.set(None)


def get_correlation_id() -> str:
    return get_context().correlation_id


def set_correlation_id(correlation_id: str) -> None:
    get_context().correlation_id = correlation_id


class ContextManager:
    """Scope a LogContext to a ``with`` block.

    Nested scopes inherit the correlation id of the enclosing scope unless a
    new one is passed explicitly, so one request keeps one id.
    """

    def __init__(
        self,
        correlation_id: str | None = None,
        operation: str | None = None,
        user_id: str | None = None,
        entity: str | None = None,
        entity_id: str | None = None,
        **extra: Any,
    ) -> None:
        self._fields = {
            "correlation_id": correlation_id,
            "operation": operation,
            "user_id": user_id,
            "entity": entity,
            "entity_id": entity_id,
        }
        self._extra = extra
        self._token: Token[LogContext | None] | None = None

    def __enter__(self) -> LogContext:
        parent = _log_context.get()
        correlation_id = self._fields["correlation_id"] or (
            parent.correlation_id if parent else str(uuid.uuid4())
        )
        context = LogContext(
            correlation_id=correlation_id,
            operation=self._fields["operation"],
            user_id=self._fields["user_id"] or (parent.user_id if parent else None),
            entity=self._fields["entity"],
            entity_id=self._fields["entity_id"],
            extra=dict(self._extra),
        )
        self._token = _log_context.set(context)
        return context

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def with_context(
    correlation_id: str | None = None,
    operation: str | None = None,
    user_id: str | None = None,
    entity: str | None = None,
    entity_id: str | None = None,
    **extra: Any,
) -> ContextManager:
    """Create a scoped logging context.

    Usage:
        with with_context(operation="student.create", user_id=admin_id):
            logger.info("Creating student")
    """
    return ContextManager(
        correlation_id=correlation_id,
        operation=operation,
        user_id=user_id,
        entity=entity,
        entity_id=entity_id,
        **extra,
    )


def update_context(**kwargs: Any) -> None:
    """Set fields on the active context; unknown names go to ``extra``."""
    ctx = get_context()
    for key, value in kwargs.items():
        if key != "extra" and hasattr(ctx, key):
            setattr(ctx, key, value)
        else:
            ctx.extra[key] = value
