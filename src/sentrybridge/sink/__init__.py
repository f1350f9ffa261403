# src/sentrybridge/sink/__init__.py
"""Sentry sink: batching, sampling, breadcrumbs, retries, enrichment.

Usage:
    from sentrybridge.sink import create_sentry_sink

    sink = create_sentry_sink(settings)
    sink.emit(event)
    sink.close()
"""

from sentrybridge.sink.breadcrumbs import BreadcrumbBuffer
from sentrybridge.sink.cache import StackTraceCache, cache_key, extract_exception
from sentrybridge.sink.context import (
    capture_scope,
    contexts_from_context,
    enrich_event,
    scoped,
    set_context,
    set_tags,
    set_user,
    tags_from_context,
    user_from_context,
)
from sentrybridge.sink.factory import create_sentry_sink, discover_transports
from sentrybridge.sink.filtering import BeforeSend, chain, ignore_errors
from sentrybridge.sink.metrics import MetricsCollector, MetricsReporter, MetricsSnapshot
from sentrybridge.sink.retry import MAX_BACKOFF_SECONDS, RetryController, compute_delay
from sentrybridge.sink.sampling import Sampler
from sentrybridge.sink.sentry_sink import SentrySink
from sentrybridge.sink.tracing import (
    Span,
    Transaction,
    current_span,
    current_transaction,
    start_span,
    start_transaction,
)

__all__ = [
    "MAX_BACKOFF_SECONDS",
    "BeforeSend",
    "BreadcrumbBuffer",
    "MetricsCollector",
    "MetricsReporter",
    "MetricsSnapshot",
    "RetryController",
    "Sampler",
    "SentrySink",
    "Span",
    "StackTraceCache",
    "Transaction",
    "cache_key",
    "capture_scope",
    "chain",
    "compute_delay",
    "contexts_from_context",
    "create_sentry_sink",
    "current_span",
    "current_transaction",
    "discover_transports",
    "enrich_event",
    "extract_exception",
    "ignore_errors",
    "scoped",
    "set_context",
    "set_tags",
    "set_user",
    "start_span",
    "start_transaction",
    "tags_from_context",
    "user_from_context",
]
