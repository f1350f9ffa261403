"""Records that cross the log pipeline -> sink -> transport boundary.

LogEvent is produced upstream and is never mutated by the sink. Breadcrumb
and OutboundEvent are produced by the sink; OutboundEvent is mutable because
the worker fills in breadcrumbs, enrichment, and its lifecycle state at
flush time.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sentrybridge.contracts.enums import EventState, LogLevel, SentryLevel


def _iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.isoformat()


@dataclass(frozen=True, slots=True)
class LogEvent:
    """Structured log event as delivered by the logging pipeline.

    Attributes:
        timestamp: When the event was logged
        level: Severity
        message_template: Template with {Name} placeholders
        properties: Named values referenced by the template (and extras)
        exception: Exception attached by the logger call, if any
    """

    timestamp: datetime
    level: LogLevel
    message_template: str
    properties: Mapping[str, Any] = field(default_factory=dict)
    exception: BaseException | None = None


@dataclass(frozen=True, slots=True)
class User:
    """User record attached to an event (from a property or the request scope)."""

    id: str | None = None
    email: str | None = None
    username: str | None = None
    ip_address: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            k: v
            for k, v in (
                ("id", self.id),
                ("email", self.email),
                ("username", self.username),
                ("ip_address", self.ip_address),
            )
            if v is not None
        }
        if self.data:
            payload["data"] = dict(self.data)
        return payload


@dataclass(frozen=True, slots=True)
class Breadcrumb:
    """Low-severity record narrating the path to a later event."""

    category: str
    level: SentryLevel
    message: str
    timestamp: datetime
    data: Mapping[str, Any] = field(default_factory=dict)
    type: str = "default"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "category": self.category,
            "level": self.level.value,
            "message": self.message,
            "timestamp": _iso(self.timestamp),
            "data": dict(self.data),
        }


@dataclass(frozen=True, slots=True)
class StackFrame:
    """One frame of an extracted stack trace (oldest frame first)."""

    filename: str
    function: str
    lineno: int | None
    module: str | None = None
    context_line: str | None = None
    in_app: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "function": self.function,
            "lineno": self.lineno,
            "module": self.module,
            "context_line": self.context_line,
            "in_app": self.in_app,
        }


@dataclass(frozen=True, slots=True)
class ExceptionInfo:
    """Exception attached to an outbound event."""

    type: str
    value: str
    module: str | None
    frames: tuple[StackFrame, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "value": self.value, "module": self.module}
        if self.frames:
            payload["stacktrace"] = {"frames": [f.to_payload() for f in self.frames]}
        return payload


@dataclass(frozen=True, slots=True)
class Scope:
    """Request-scoped enrichment captured on the producer thread at ingest.

    Attributes:
        user: User set on the request scope
        tags: String tags (merged last-write-wins)
        contexts: Named context objects
        span: Active tracing span (sentrybridge.sink.tracing.Span) or None
    """

    user: User | None = None
    tags: Mapping[str, str] = field(default_factory=dict)
    contexts: Mapping[str, Any] = field(default_factory=dict)
    span: Any = None


@dataclass(frozen=True, slots=True)
class EventHint:
    """Side information handed to before-send processors."""

    original_exception: BaseException | None = None
    log_event: LogEvent | None = None


@dataclass(slots=True)
class OutboundEvent:
    """Event produced by the sink and submitted through the transport.

    breadcrumbs is filled at flush time, never at ingest.
    """

    message: str
    level: SentryLevel
    timestamp: datetime
    tags: dict[str, str] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)
    exceptions: list[ExceptionInfo] = field(default_factory=list)
    user: User | None = None
    fingerprint: list[str] = field(default_factory=list)
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    contexts: dict[str, Any] = field(default_factory=dict)
    transaction: str | None = None
    event_id: str | None = None
    state: EventState = EventState.CREATED
    scope: Scope = field(default_factory=Scope)
    hint: EventHint = field(default_factory=EventHint)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the service's event dict shape."""
        payload: dict[str, Any] = {
            "message": self.message,
            "level": self.level.value,
            "timestamp": _iso(self.timestamp),
            "tags": dict(self.tags),
            "extra": dict(self.extras),
            "fingerprint": list(self.fingerprint),
            "breadcrumbs": {"values": [b.to_payload() for b in self.breadcrumbs]},
            "contexts": dict(self.contexts),
        }
        if self.event_id is not None:
            payload["event_id"] = self.event_id
        if self.exceptions:
            payload["exception"] = {"values": [e.to_payload() for e in self.exceptions]}
        if self.user is not None:
            payload["user"] = self.user.to_payload()
        if self.transaction is not None:
            payload["transaction"] = self.transaction
        return payload
