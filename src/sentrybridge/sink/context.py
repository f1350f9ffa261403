# src/sentrybridge/sink/context.py
"""Request-scoped enrichment for outbound events.

User, tags, and named contexts are attached to the ambient request scope
(ContextVars) instead of being threaded through logging calls. The sink
snapshots the scope on the producer thread at ingest (capture_scope) and
merges it into the outbound event on the worker at flush (enrich_event).

Values held in the ContextVars are never mutated in place; every setter
stores a fresh mapping, so concurrent requests cannot observe each other's
tags.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from sentrybridge.contracts.events import OutboundEvent, Scope, User
from sentrybridge.sink.tracing import Span, current_span

_user: ContextVar[User | None] = ContextVar("sentrybridge_user", default=None)
_tags: ContextVar[Mapping[str, str]] = ContextVar("sentrybridge_tags", default={})
_contexts: ContextVar[Mapping[str, Any]] = ContextVar("sentrybridge_contexts", default={})


def set_user(user: User | None) -> None:
    """Attach a user to the current scope (None clears it)."""
    _user.set(user)


def set_tags(tags: Mapping[str, str]) -> None:
    """Merge tags into the current scope; later values win."""
    _tags.set({**_tags.get(), **tags})


def set_context(key: str, data: Any) -> None:
    """Attach a named context object to the current scope."""
    _contexts.set({**_contexts.get(), key: data})


def user_from_context() -> User | None:
    return _user.get()


def tags_from_context() -> dict[str, str]:
    return dict(_tags.get())


def contexts_from_context() -> dict[str, Any]:
    return dict(_contexts.get())


def capture_scope() -> Scope:
    """Snapshot the current scope, including the active span."""
    return Scope(
        user=_user.get(),
        tags=dict(_tags.get()),
        contexts=dict(_contexts.get()),
        span=current_span(),
    )


@contextmanager
def scoped(
    *,
    user: User | None = None,
    tags: Mapping[str, str] | None = None,
    contexts: Mapping[str, Any] | None = None,
) -> Iterator[Scope]:
    """Apply scope values for the duration of the block, then restore.

    Example:
        with scoped(user=User(id="u-1"), tags={"tenant": "acme"}):
            logger.error("Payment failed")
    """
    user_token = _user.set(user) if user is not None else None
    tags_token = _tags.set({**_tags.get(), **tags}) if tags else None
    contexts_token = _contexts.set({**_contexts.get(), **contexts}) if contexts else None
    try:
        yield capture_scope()
    finally:
        if contexts_token is not None:
            _contexts.reset(contexts_token)
        if tags_token is not None:
            _tags.reset(tags_token)
        if user_token is not None:
            _user.reset(user_token)


def _enrich_from_span(event: OutboundEvent, span: Span) -> None:
    if span.name is not None:
        event.transaction = span.name
    event.contexts["trace"] = span.trace_context()
    duration = span.duration
    if duration is not None and duration.total_seconds() > 0:
        event.extras["transaction.duration_ms"] = int(duration.total_seconds() * 1000)


def enrich_event(event: OutboundEvent, scope: Scope) -> OutboundEvent:
    """Merge a captured scope into the event.

    The scope user replaces the event user, scope tags overwrite event tags
    with the same key, and context objects are added by name. A captured
    span contributes the transaction name and trace context.
    """
    if scope.user is not None:
        event.user = scope.user
    if scope.tags:
        event.tags.update(scope.tags)
    if scope.contexts:
        event.contexts.update(scope.contexts)
    if isinstance(scope.span, Span):
        _enrich_from_span(event, scope.span)
    return event
