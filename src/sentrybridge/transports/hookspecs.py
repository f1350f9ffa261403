# src/sentrybridge/transports/hookspecs.py
"""pluggy hook specifications for event transports.

Transports implement these hooks to register themselves. create_sentry_sink
calls them to discover the available transports.

Usage (implementing a transport plugin):
    from sentrybridge.transports.hookspecs import hookimpl

    class MyTransportPlugin:
        @hookimpl
        def sentrybridge_get_transports(self):
            return [MyTransport]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from sentrybridge.transports.protocols import TransportProtocol

PROJECT_NAME = "sentrybridge"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class SentryBridgeTransportSpec:
    """Hook specifications for transport plugins."""

    @hookspec
    def sentrybridge_get_transports(self) -> list[type["TransportProtocol"]]:  # type: ignore[empty-body]
        """Return transport classes (not instances) implementing TransportProtocol."""
