# src/sentrybridge/core/__init__.py
"""Core infrastructure: Configuration, Clock, Logging, Rendering, Fingerprinting."""

from sentrybridge.core.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from sentrybridge.core.config import (
    SamplingSettings,
    SinkSettings,
    adaptive_sampling,
    burst_sampling,
    fixed_sampling,
    group_sampling,
    load_settings,
    priority_sampling,
    resolve_dsn,
    sampling_profile,
)
from sentrybridge.core.fingerprint import (
    Fingerprinter,
    by_error_type,
    by_properties,
    by_property,
    by_template,
    custom,
    default_fingerprint,
)
from sentrybridge.core.logging import configure_logging, get_logger, redact_dsn
from sentrybridge.core.rendering import format_value, render_message

__all__ = [
    "DEFAULT_CLOCK",
    "Clock",
    "Fingerprinter",
    "MockClock",
    "SamplingSettings",
    "SinkSettings",
    "SystemClock",
    "adaptive_sampling",
    "burst_sampling",
    "by_error_type",
    "by_properties",
    "by_property",
    "by_template",
    "configure_logging",
    "custom",
    "default_fingerprint",
    "fixed_sampling",
    "format_value",
    "get_logger",
    "group_sampling",
    "load_settings",
    "priority_sampling",
    "redact_dsn",
    "render_message",
    "resolve_dsn",
    "sampling_profile",
]
