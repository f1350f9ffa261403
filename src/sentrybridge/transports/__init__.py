# src/sentrybridge/transports/__init__.py
"""Built-in event transports.

Available transports:
- SentrySDKTransport ("sentry"): ship events through sentry-sdk
- ConsoleTransport ("console"): print events for local debugging

Plugin registration:
    Transports are registered via the sentrybridge_get_transports hook.
    BuiltinTransportsPlugin registers the built-in transports.
"""

from sentrybridge.transports.console import ConsoleTransport
from sentrybridge.transports.hookspecs import hookimpl
from sentrybridge.transports.protocols import TransportProtocol
from sentrybridge.transports.sdk import SentrySDKTransport


class BuiltinTransportsPlugin:
    """Plugin that registers built-in transports."""

    @hookimpl
    def sentrybridge_get_transports(self) -> list[type]:
        return [SentrySDKTransport, ConsoleTransport]


__all__ = [
    "BuiltinTransportsPlugin",
    "ConsoleTransport",
    "SentrySDKTransport",
    "TransportProtocol",
]
