# src/sentrybridge/sink/tracing.py
"""Lightweight performance tracing for error events.

Spans form a tree rooted at a Transaction. The active span is carried in a
ContextVar, so it follows the caller through threads started with
contextvars.copy_context() and through asyncio tasks without being passed
explicitly.

Span Hierarchy:
    transaction:{name} (op=handler)
    ├── http.client
    ├── db.query
    └── cache.{operation}

A finished transaction is handed to its on_finish callback, typically
SentrySink.capture_transaction, which submits transaction.to_payload()
through the transport on the worker thread.

Events captured while a span is active are enriched at flush time with the
transaction name, a "trace" context, and the transaction duration once the
span has finished.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime, timedelta
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sentrybridge.contracts.events import Breadcrumb

P = ParamSpec("P")
T = TypeVar("T")

STATUS_OK = "ok"
STATUS_INTERNAL_ERROR = "internal_error"
STATUS_FAILED_PRECONDITION = "failed_precondition"

_current_span: ContextVar[Span | None] = ContextVar("sentrybridge_current_span", default=None)


class Span:
    """One timed operation inside a trace."""

    __slots__ = (
        "contexts",
        "data",
        "description",
        "end_timestamp",
        "op",
        "parent_span_id",
        "span_id",
        "start_timestamp",
        "status",
        "tags",
        "trace_id",
        "transaction",
    )

    def __init__(self, op: str, description: str | None = None, *, parent: Span | None = None) -> None:
        self.op = op
        self.description = description
        self.trace_id: str = parent.trace_id if parent is not None else uuid.uuid4().hex
        self.span_id: str = uuid.uuid4().hex[:16]
        self.parent_span_id: str | None = parent.span_id if parent is not None else None
        self.transaction: Transaction | None = parent.transaction if parent is not None else None
        self.tags: dict[str, str] = {}
        self.data: dict[str, Any] = {}
        self.contexts: dict[str, Any] = {}
        self.status: str | None = None
        self.start_timestamp = datetime.now(UTC)
        self.end_timestamp: datetime | None = None

    @property
    def name(self) -> str | None:
        """Name of the enclosing transaction, if any."""
        return self.transaction.name if self.transaction is not None else None

    @property
    def finished(self) -> bool:
        return self.end_timestamp is not None

    @property
    def duration(self) -> timedelta | None:
        if self.end_timestamp is None:
            return None
        return self.end_timestamp - self.start_timestamp

    def set_tag(self, key: str, value: str) -> None:
        self.tags[key] = value

    def set_data(self, key: str, value: Any) -> None:
        self.data[key] = value

    def set_status(self, status: str) -> None:
        self.status = status

    def set_context(self, key: str, value: Any) -> None:
        self.contexts[key] = value

    def finish(self) -> None:
        """Stamp the end time and attach the span to its transaction.

        Finishing twice is a no-op.
        """
        if self.end_timestamp is not None:
            return
        self.end_timestamp = datetime.now(UTC)
        if self.transaction is not None and self.transaction is not self:
            self.transaction.add_span(self)

    def trace_context(self) -> dict[str, Any]:
        """The "trace" context attached to events captured inside this span."""
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
        }

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "op": self.op,
            "description": self.description,
            "status": self.status,
            "tags": dict(self.tags),
            "data": dict(self.data),
            "start_timestamp": self.start_timestamp.isoformat(),
        }
        if self.end_timestamp is not None:
            payload["timestamp"] = self.end_timestamp.isoformat()
        return payload


class Transaction(Span):
    """Root span of a trace, named after the unit of work it measures."""

    __slots__ = ("_lock", "on_finish", "spans", "transaction_name")

    def __init__(
        self,
        name: str,
        op: str,
        *,
        on_finish: Callable[[Transaction], None] | None = None,
    ) -> None:
        super().__init__(op, description=name)
        self.transaction_name = name
        self.transaction = self
        self.spans: list[Span] = []
        self.on_finish = on_finish
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.transaction_name

    def add_span(self, span: Span) -> None:
        with self._lock:
            self.spans.append(span)

    def finish(self) -> None:
        if self.end_timestamp is not None:
            return
        super().finish()
        if self.on_finish is not None:
            self.on_finish(self)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the service's transaction event shape."""
        with self._lock:
            spans = [s.to_payload() for s in self.spans]
        trace = self.trace_context()
        trace["op"] = self.op
        trace["status"] = self.status
        payload: dict[str, Any] = {
            "type": "transaction",
            "transaction": self.transaction_name,
            "start_timestamp": self.start_timestamp.isoformat(),
            "contexts": {**self.contexts, "trace": trace},
            "tags": dict(self.tags),
            "extra": dict(self.data),
            "spans": spans,
        }
        if self.end_timestamp is not None:
            payload["timestamp"] = self.end_timestamp.isoformat()
        return payload


def current_span() -> Span | None:
    """Innermost active span in this context."""
    return _current_span.get()


def current_transaction() -> Transaction | None:
    """Transaction enclosing the active span."""
    span = _current_span.get()
    return span.transaction if span is not None else None


@contextmanager
def start_transaction(
    name: str,
    op: str = "handler",
    *,
    on_finish: Callable[[Transaction], None] | None = None,
) -> Iterator[Transaction]:
    """Open a transaction and make it the active span.

    The transaction is finished on exit; an escaping exception marks it
    internal_error unless a status was already set.
    """
    transaction = Transaction(name, op, on_finish=on_finish)
    token = _current_span.set(transaction)
    try:
        yield transaction
    except BaseException:
        if transaction.status is None:
            transaction.set_status(STATUS_INTERNAL_ERROR)
        raise
    finally:
        _current_span.reset(token)
        transaction.finish()


@contextmanager
def start_span(op: str, description: str | None = None) -> Iterator[Span]:
    """Open a child of the active span (or a detached span when none)."""
    span = Span(op, description, parent=_current_span.get())
    token = _current_span.set(span)
    try:
        yield span
    except Exception as e:
        span.set_status(STATUS_INTERNAL_ERROR)
        span.set_data("error", str(e))
        raise
    finally:
        _current_span.reset(token)
        span.finish()


def set_span_status(status: str) -> None:
    span = _current_span.get()
    if span is not None:
        span.set_status(status)


def set_span_tag(key: str, value: str) -> None:
    span = _current_span.get()
    if span is not None:
        span.set_tag(key, value)


def set_span_data(key: str, value: Any) -> None:
    span = _current_span.get()
    if span is not None:
        span.set_data(key, value)


def record_breadcrumb_in_transaction(crumb: Breadcrumb) -> None:
    """Record the latest breadcrumb as a context on the active span."""
    span = _current_span.get()
    if span is not None:
        span.set_context(
            "breadcrumb",
            {"message": crumb.message, "category": crumb.category, "level": crumb.level.value},
        )


def measure_span(op: str, fn: Callable[[], T]) -> T:
    """Run fn inside a span, recording ok or internal_error."""
    with start_span(op) as span:
        result = fn()
        span.set_status(STATUS_OK)
        return result


@contextmanager
def trace_http_request(method: str, url: str) -> Iterator[Span]:
    """Span for an outgoing HTTP request.

    Set "http.status_code" on the yielded span; 4xx and 5xx codes mark the
    span failed_precondition.

    Example:
        with trace_http_request("GET", url) as span:
            response = client.get(url)
            span.set_data("http.status_code", response.status_code)
    """
    with start_span("http.client") as span:
        span.set_data("http.method", method)
        span.set_data("http.url", url)
        yield span
        status_code = span.data.get("http.status_code")
        if isinstance(status_code, int) and status_code >= 400:
            span.set_status(STATUS_FAILED_PRECONDITION)
        else:
            span.set_status(STATUS_OK)


@contextmanager
def trace_database_query(query: str, db_name: str) -> Iterator[Span]:
    """Span for a database query; an escaping exception marks it internal_error."""
    with start_span("db.query") as span:
        span.set_data("db.name", db_name)
        span.set_data("db.statement", query)
        span.set_data("db.system", "sql")
        yield span
        span.set_status(STATUS_OK)


@contextmanager
def trace_cache(operation: str, key: str) -> Iterator[Span]:
    """Span for a cache operation. Set "cache.hit" on the yielded span."""
    with start_span(f"cache.{operation}") as span:
        span.set_data("cache.key", key)
        span.set_data("cache.operation", operation)
        yield span
        hit = bool(span.data.setdefault("cache.hit", False))
        span.set_tag("cache.hit", "true" if hit else "false")
        span.set_status(STATUS_OK)


def batch_span(op: str, item_count: int, fn: Callable[[], T]) -> T:
    """Run a batch operation in a span with size and throughput data."""
    with start_span(op) as span:
        span.set_data("batch.size", item_count)
        start = time.perf_counter()
        try:
            result = fn()
        finally:
            elapsed = time.perf_counter() - start
            span.set_data("batch.duration_ms", int(elapsed * 1000))
            if item_count > 0 and elapsed > 0:
                span.set_data("batch.items_per_second", item_count / elapsed)
        span.set_status(STATUS_OK)
        return result


def transaction_middleware(
    name: str,
    *,
    on_finish: Callable[[Transaction], None] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator running each call of a handler in its own transaction.

    Example:
        @transaction_middleware("checkout", on_finish=sink.capture_transaction)
        def handle(request): ...
    """

    def decorator(handler: Callable[P, T]) -> Callable[P, T]:
        @wraps(handler)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with start_transaction(name, "handler", on_finish=on_finish) as transaction:
                result = handler(*args, **kwargs)
                transaction.set_status(STATUS_OK)
                return result

        return wrapper

    return decorator
