"""Fingerprinters for server-side event grouping.

A fingerprint is a list of strings; events with equal fingerprints are
grouped together by the service and share one group-sampling quota.
"""

from collections.abc import Callable, Sequence

from sentrybridge.contracts.events import ExceptionInfo, LogEvent

Fingerprinter = Callable[[LogEvent], list[str]]

# Property names checked for an error value, in priority order
ERROR_PROPERTY_NAMES: tuple[str, ...] = ("Error", "error", "err", "Exception")


def exception_type_name(exc: BaseException) -> str:
    """Type name recorded on exceptions and fingerprints, e.g. 'ValueError'."""
    return type(exc).__qualname__


def default_fingerprint(event: LogEvent, exceptions: Sequence[ExceptionInfo]) -> list[str]:
    """Template, extended with the first exception's type when one exists."""
    fingerprint = [event.message_template]
    if exceptions:
        fingerprint.append(exceptions[0].type)
    return fingerprint


def by_template() -> Fingerprinter:
    """Group by message template only, regardless of values."""

    def fingerprint(event: LogEvent) -> list[str]:
        return [event.message_template]

    return fingerprint


def by_error_type() -> Fingerprinter:
    """Group by template and the type of the first error found on the event."""

    def fingerprint(event: LogEvent) -> list[str]:
        fp = [event.message_template]
        for key in ERROR_PROPERTY_NAMES:
            value = event.properties.get(key)
            if isinstance(value, BaseException):
                fp.append(exception_type_name(value))
                return fp
        if event.exception is not None:
            fp.append(exception_type_name(event.exception))
        return fp

    return fingerprint


def by_property(name: str) -> Fingerprinter:
    """Group by template and one property value (tenant, user id, ...)."""
    return by_properties(name)


def by_properties(*names: str) -> Fingerprinter:
    """Group by template and each listed property value that is present."""

    def fingerprint(event: LogEvent) -> list[str]:
        fp = [event.message_template]
        for name in names:
            if name in event.properties:
                fp.append(str(event.properties[name]))
        return fp

    return fingerprint


def custom(fn: Callable[[LogEvent], str]) -> Fingerprinter:
    """Single-element fingerprint computed by fn."""

    def fingerprint(event: LogEvent) -> list[str]:
        return [fn(event)]

    return fingerprint
