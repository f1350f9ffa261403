"""Levels, strategies, and states used across subsystem boundaries.

LogLevel is the only ordered enum: the sink compares levels against its
minimum and breadcrumb thresholds, so it is an IntEnum. Everything that is
serialized to the remote service (levels, strategies, states) is a StrEnum.
"""

from enum import IntEnum, StrEnum


class LogLevel(IntEnum):
    """Severity of an incoming structured log event.

    Total order: VERBOSE < DEBUG < INFORMATION < WARNING < ERROR < FATAL.
    """

    VERBOSE = 0
    DEBUG = 1
    INFORMATION = 2
    WARNING = 3
    ERROR = 4
    FATAL = 5


class SentryLevel(StrEnum):
    """Severity names understood by the error-tracking service."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class SamplingStrategy(StrEnum):
    """Admission strategy applied by the sampler.

    Values:
        OFF: Admit every event
        FIXED: Admit every floor(1/rate)-th event
        ADAPTIVE: Random admission at a rate steered toward a target EPS
        PRIORITY: Fixed sampling at a rate boosted by event importance
        BURST: Throttle hard once a per-second threshold is crossed
        CUSTOM: Delegate to a user predicate
    """

    OFF = "off"
    FIXED = "fixed"
    ADAPTIVE = "adaptive"
    PRIORITY = "priority"
    BURST = "burst"
    CUSTOM = "custom"


class SamplingProfile(StrEnum):
    """Named sampling presets (see core.config.sampling_profile)."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    HIGH_VOLUME = "high-volume"
    CRITICAL = "critical"


class EventState(StrEnum):
    """Lifecycle of an outbound event inside the sink.

    Created -> Batched -> Submitting -> [Submitted | Retrying -> Submitting]*
    -> [Done | Abandoned]. ABANDONED is reached only by retry exhaustion
    or a shutdown abort.
    """

    CREATED = "created"
    BATCHED = "batched"
    SUBMITTING = "submitting"
    RETRYING = "retrying"
    SUBMITTED = "submitted"
    DONE = "done"
    ABANDONED = "abandoned"


_SENTRY_LEVELS: dict[LogLevel, SentryLevel] = {
    LogLevel.VERBOSE: SentryLevel.DEBUG,
    LogLevel.DEBUG: SentryLevel.DEBUG,
    LogLevel.INFORMATION: SentryLevel.INFO,
    LogLevel.WARNING: SentryLevel.WARNING,
    LogLevel.ERROR: SentryLevel.ERROR,
    LogLevel.FATAL: SentryLevel.FATAL,
}


def to_sentry_level(level: LogLevel) -> SentryLevel:
    """Map a log level to the service's level name."""
    return _SENTRY_LEVELS[level]


def breadcrumb_category(level: LogLevel) -> str:
    """Category name used for breadcrumbs recorded at this level."""
    return _SENTRY_LEVELS[level].value
