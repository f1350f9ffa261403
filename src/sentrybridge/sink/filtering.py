# src/sentrybridge/sink/filtering.py
"""Pre-send processors.

A before-send processor receives the outbound event and its hint and returns
the (possibly modified) event, or None to drop it. ignore_errors() is sugar
over a before-send processor.
"""

from collections.abc import Callable

from sentrybridge.contracts.events import EventHint, OutboundEvent

BeforeSend = Callable[[OutboundEvent, EventHint], OutboundEvent | None]

IgnoredError = BaseException | type[BaseException] | str


def _matches(exc: BaseException, ignored: IgnoredError) -> bool:
    if isinstance(ignored, type):
        return isinstance(exc, ignored)
    if isinstance(ignored, BaseException):
        return exc is ignored or str(exc) == str(ignored)
    return str(exc) == ignored


def ignore_errors(*errors: IgnoredError, before_send: BeforeSend | None = None) -> BeforeSend:
    """Drop events whose original exception matches one of errors.

    An error matches when it is the same instance, has the same message as a
    given instance or string, or is an instance of a given exception class.
    Events that do not match are passed to before_send when one is given.

    Example:
        processor = ignore_errors(TimeoutError, "connection reset by peer")
    """

    def processor(event: OutboundEvent, hint: EventHint) -> OutboundEvent | None:
        exc = hint.original_exception
        if exc is not None and any(_matches(exc, ignored) for ignored in errors):
            return None
        if before_send is not None:
            return before_send(event, hint)
        return event

    return processor


def chain(*processors: BeforeSend) -> BeforeSend:
    """Compose processors left to right; the first None short-circuits."""

    def processor(event: OutboundEvent, hint: EventHint) -> OutboundEvent | None:
        current: OutboundEvent | None = event
        for step in processors:
            current = step(current, hint)
            if current is None:
                return None
        return current

    return processor
