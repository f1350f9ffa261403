# tests/fixtures.py
"""Reusable transport doubles for sink testing.

These fixtures provide:
1. InMemoryTransport - captures outbound events for verification
2. FlakyTransport - fails a configurable number of attempts before accepting
"""

from __future__ import annotations

import itertools
import threading
from typing import Any

from sentrybridge.contracts.events import OutboundEvent


class InMemoryTransport:
    """In-memory transport that records every capture.

    Example:
        transport = InMemoryTransport()
        sink = SentrySink(settings, transport)
        sink.emit(event)
        sink.close()
        transport.assert_captured("Payment failed")
    """

    _name = "memory"

    def __init__(self, *, flush_result: bool = True) -> None:
        self.events: list[OutboundEvent] = []
        self.payloads: list[dict[str, Any]] = []
        self.transactions: list[dict[str, Any]] = []
        self.options: dict[str, Any] | None = None
        self.flush_calls: list[float] = []
        self.close_count = 0
        self.flush_result = flush_result
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.captured = threading.Event()

    @property
    def name(self) -> str:
        return self._name

    def configure(self, options: dict[str, Any]) -> None:
        self.options = dict(options)

    def capture(self, event: OutboundEvent) -> str | None:
        with self._lock:
            self.events.append(event)
            self.payloads.append(event.to_payload())
            event_id = f"id-{next(self._ids)}"
        self.captured.set()
        return event_id

    def capture_transaction(self, payload: dict[str, Any]) -> str | None:
        with self._lock:
            self.transactions.append(payload)
        return f"tx-{len(self.transactions)}"

    def flush(self, timeout: float) -> bool:
        self.flush_calls.append(timeout)
        return self.flush_result

    def close(self) -> None:
        self.close_count += 1

    # =========================================================================
    # Assertion Helpers
    # =========================================================================

    @property
    def messages(self) -> list[str]:
        with self._lock:
            return [e.message for e in self.events]

    def assert_captured(self, message: str) -> OutboundEvent:
        with self._lock:
            matches = [e for e in self.events if e.message == message]
        assert matches, f"No event with message {message!r}. Captured: {self.messages}"
        return matches[0]


class FlakyTransport(InMemoryTransport):
    """Returns no id (or raises) for the first `failures` capture attempts."""

    _name = "flaky"

    def __init__(self, failures: int, *, raise_errors: bool = False) -> None:
        super().__init__()
        self.failures = failures
        self.raise_errors = raise_errors
        self.attempts = 0

    def capture(self, event: OutboundEvent) -> str | None:
        self.attempts += 1
        if self.attempts <= self.failures:
            if self.raise_errors:
                raise ConnectionError("connection reset by peer")
            return None
        return super().capture(event)
