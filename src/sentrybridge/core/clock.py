# src/sentrybridge/core/clock.py
"""Clock abstraction for time-windowed logic.

Breadcrumb age eviction, adaptive/burst sampling windows, and per-group
sampling quotas all read time through a Clock, so tests can drive hours of
simulated traffic without sleeping.

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Abstract monotonic clock.

    Implementations:
    - SystemClock: Uses time.monotonic() (production)
    - MockClock: Returns controllable times (testing)
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds (never goes backwards)."""
        ...


class SystemClock:
    """Production clock using time.monotonic()."""

    def monotonic(self) -> float:
        """Return system monotonic time."""
        return time.monotonic()


class MockClock:
    """Controllable clock for deterministic testing.

    Safe to share between producer threads and the sink worker.

    Example:
        clock = MockClock(start=100.0)
        ring = BreadcrumbBuffer(10, max_age=0.1, clock=clock)

        ring.add(crumb)
        clock.advance(0.15)
        assert ring.snapshot() == []
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start
        self._lock = threading.Lock()

    def monotonic(self) -> float:
        """Return current mock time."""
        with self._lock:
            return self._current

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        with self._lock:
            self._current += seconds

    def set(self, value: float) -> None:
        """Set mock time to an absolute value (may move backwards)."""
        with self._lock:
            self._current = value


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
