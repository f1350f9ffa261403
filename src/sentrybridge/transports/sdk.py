# src/sentrybridge/transports/sdk.py
"""Transport backed by the official sentry-sdk client.

Events are handed to sentry_sdk.Client.capture_event() as plain event
dicts; the client owns the HTTP transport, its background queue, and rate
limit handling. No global hub or integrations are installed, so the
transport never captures anything on its own.

Client-level sample_rate is applied here rather than inside the client:
the client reports a sampled-out event the same way as a rejected one,
which the sink would retry.
"""

from __future__ import annotations

import random
import time
import uuid
from typing import TYPE_CHECKING, Any

import sentry_sdk
import structlog

from sentrybridge.errors import TransportError

if TYPE_CHECKING:
    from sentrybridge.contracts.events import OutboundEvent

logger = structlog.get_logger(__name__)

# Options consumed by this transport rather than forwarded to the client
_TRANSPORT_KEYS = frozenset({"dsn", "sample_rate"})


class SentrySDKTransport:
    """Ship events through sentry_sdk.Client.

    Configuration options:
        dsn: Project DSN (required)
        environment, release, server_name: Forwarded to the client
        sample_rate: Fraction of events sent, in [0, 1] (default 1.0)
        attach_stacktrace: Forwarded to the client (default True)
        Any other key is forwarded to sentry_sdk.Client unchanged.

    Example configuration:
        transport: sentry
        transport_options:
          shutdown_timeout: 5
    """

    _name = "sentry"

    def __init__(self) -> None:
        self._client: sentry_sdk.Client | None = None
        self._sample_rate = 1.0
        self._rng = random.Random()

    @property
    def name(self) -> str:
        return self._name

    def configure(self, options: dict[str, Any]) -> None:
        """Build the sentry-sdk client.

        Raises:
            TransportError: If the DSN is missing, the sample rate is out of
                range, or the client rejects the options
        """
        dsn = options.get("dsn")
        if not dsn:
            raise TransportError(self._name, "'dsn' is required")

        sample_rate = options.get("sample_rate", 1.0)
        if not isinstance(sample_rate, int | float) or not 0.0 <= sample_rate <= 1.0:
            raise TransportError(self._name, f"'sample_rate' must be in [0, 1], got {sample_rate!r}")
        self._sample_rate = float(sample_rate)

        client_options = {k: v for k, v in options.items() if k not in _TRANSPORT_KEYS and v is not None}
        client_options.setdefault("attach_stacktrace", True)
        client_options["default_integrations"] = False

        try:
            self._client = sentry_sdk.Client(dsn=dsn, sample_rate=1.0, **client_options)
        except Exception as e:
            raise TransportError(self._name, f"Failed to create client: {e}") from e

        logger.debug(
            "Sentry transport configured",
            environment=client_options.get("environment"),
            release=client_options.get("release"),
            sample_rate=self._sample_rate,
        )

    def _require_client(self) -> sentry_sdk.Client:
        if self._client is None:
            raise RuntimeError("SentrySDKTransport used before configure()")
        return self._client

    def capture(self, event: OutboundEvent) -> str | None:
        """Submit one event; returns the client's event id or None."""
        client = self._require_client()
        if self._sample_rate < 1.0 and self._rng.random() >= self._sample_rate:
            # Sampled out by policy; report it as handled so it is not retried
            event_id = event.event_id or uuid.uuid4().hex
            logger.debug("Event sampled out by client sample rate", event_id=event_id)
            return event_id
        return client.capture_event(event.to_payload())

    def capture_transaction(self, payload: dict[str, Any]) -> str | None:
        return self._require_client().capture_event(payload)

    def flush(self, timeout: float) -> bool:
        """Flush the client queue; True if it finished within timeout."""
        if self._client is None:
            return True
        start = time.monotonic()
        self._client.flush(timeout=timeout)
        return time.monotonic() - start < timeout

    def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        client.close()
