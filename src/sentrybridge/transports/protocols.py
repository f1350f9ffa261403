# src/sentrybridge/transports/protocols.py
"""Protocol definitions for event transports.

A transport ships outbound events to the error-tracking service. The sink
only ever calls capture() from its worker thread.
"""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sentrybridge.contracts.events import OutboundEvent


@runtime_checkable
class TransportProtocol(Protocol):
    """Protocol for event transports.

    Transports are discovered via pluggy hooks and selected by name in
    SinkSettings.transport.

    Lifecycle:
        1. Discovery: sentrybridge_get_transports hook returns transport classes
        2. Instantiation: create_sentry_sink creates one instance
        3. Configuration: configure() called with client options
        4. Operation: capture() called for each admitted event (must not raise)
        5. Shutdown: flush(timeout) then close() called by SentrySink.close()

    Error handling:
        - configure() MUST raise TransportError on invalid options
        - capture() returns None on failure; the sink retries it
        - close() MUST be idempotent
    """

    @property
    def name(self) -> str:
        """Transport name used in SinkSettings.transport."""
        ...

    def configure(self, options: dict[str, Any]) -> None:
        """Configure the transport.

        Args:
            options: dsn, environment, release, server_name, sample_rate,
                attach_stacktrace, plus SinkSettings.transport_options

        Raises:
            TransportError: If options are invalid or incomplete
        """
        ...

    def capture(self, event: "OutboundEvent") -> str | None:
        """Submit one event.

        Returns:
            The service-assigned event id, or None when the event was not
            accepted (the sink treats None as a failed attempt)
        """
        ...

    def capture_transaction(self, payload: dict[str, Any]) -> str | None:
        """Submit one finished transaction payload."""
        ...

    def flush(self, timeout: float) -> bool:
        """Wait up to timeout seconds for queued submissions.

        Returns:
            True when everything was delivered within the timeout
        """
        ...

    def close(self) -> None:
        """Release resources. Safe to call more than once."""
        ...
