"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/sink.
Settings classes are NOT re-exported here - import them from
sentrybridge.core.config.

Import patterns:
    from sentrybridge.contracts import LogEvent, LogLevel, OutboundEvent
    from sentrybridge.core.config import SinkSettings
"""

from sentrybridge.contracts.enums import (
    EventState,
    LogLevel,
    SamplingProfile,
    SamplingStrategy,
    SentryLevel,
    breadcrumb_category,
    to_sentry_level,
)
from sentrybridge.contracts.events import (
    Breadcrumb,
    EventHint,
    ExceptionInfo,
    LogEvent,
    OutboundEvent,
    Scope,
    StackFrame,
    User,
)

__all__ = [
    "Breadcrumb",
    "EventHint",
    "EventState",
    "ExceptionInfo",
    "LogEvent",
    "LogLevel",
    "OutboundEvent",
    "SamplingProfile",
    "SamplingStrategy",
    "Scope",
    "SentryLevel",
    "StackFrame",
    "User",
    "breadcrumb_category",
    "to_sentry_level",
]
