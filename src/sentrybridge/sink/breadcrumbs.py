# src/sentrybridge/sink/breadcrumbs.py
"""Bounded ring buffer of breadcrumbs.

Breadcrumbs narrate the path to a failure, so the ring keeps them in
insertion order and hands out chronological snapshots. Old entries leave
the ring two ways:
- Capacity: once full, each add overwrites the oldest entry
- Age: snapshot() skips entries added more than max_age seconds ago

Key design decisions:
- Fixed list of slots with head/tail indices: no allocation per add
- Age is measured from ring insertion (added_at), not the crumb timestamp
- snapshot() returns a fresh list; later adds never show through
"""

import threading
from dataclasses import dataclass

from sentrybridge.contracts.events import Breadcrumb
from sentrybridge.core.clock import DEFAULT_CLOCK, Clock

DEFAULT_MAX_AGE = 300.0


@dataclass(frozen=True, slots=True)
class _Entry:
    breadcrumb: Breadcrumb
    added_at: float


class BreadcrumbBuffer:
    """Thread-safe fixed-capacity ring of breadcrumbs.

    Thread Safety:
        All operations take the ring lock. Each is O(1) except snapshot(),
        which is O(max_size).

    Example:
        ring = BreadcrumbBuffer(max_size=3)
        for crumb in crumbs:  # a, b, c, d, e
            ring.add(crumb)
        ring.snapshot()  # [c, d, e]
    """

    def __init__(self, max_size: int, *, max_age: float = DEFAULT_MAX_AGE, clock: Clock = DEFAULT_CLOCK) -> None:
        """Initialize the ring.

        Args:
            max_size: Capacity; values below 1 are clamped to 1.
            max_age: Seconds after insertion an entry stays visible.
            clock: Time source for added_at stamps and age checks.
        """
        self._max_size = max(1, max_size)
        self._items: list[_Entry | None] = [None] * self._max_size
        self._head = 0
        self._tail = 0
        self._size = 0
        self._max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()

    def add(self, breadcrumb: Breadcrumb) -> bool:
        """Add a breadcrumb, overwriting the oldest one when full.

        Returns:
            True if an older breadcrumb was evicted to make room.
        """
        entry = _Entry(breadcrumb, self._clock.monotonic())
        with self._lock:
            if self._size < self._max_size:
                self._items[self._tail] = entry
                self._tail = (self._tail + 1) % self._max_size
                self._size += 1
                return False
            self._items[self._head] = entry
            self._head = (self._head + 1) % self._max_size
            self._tail = (self._tail + 1) % self._max_size
            return True

    def snapshot(self) -> list[Breadcrumb]:
        """Return live breadcrumbs in chronological order.

        Entries older than max_age are skipped (but stay in their slot
        until overwritten).
        """
        with self._lock:
            cutoff = self._clock.monotonic() - self._max_age
            result: list[Breadcrumb] = []
            for i in range(self._size):
                entry = self._items[(self._head + i) % self._max_size]
                if entry is not None and entry.added_at >= cutoff:
                    result.append(entry.breadcrumb)
            return result

    def clear(self) -> None:
        """Drop all breadcrumbs. Slots are reused, not reallocated."""
        with self._lock:
            self._head = 0
            self._tail = 0
            self._size = 0

    def set_max_age(self, max_age: float) -> None:
        """Replace the age threshold used by future snapshots."""
        with self._lock:
            self._max_age = max_age

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def max_age(self) -> float:
        return self._max_age

    def __len__(self) -> int:
        """Number of occupied slots (including entries past max_age)."""
        with self._lock:
            return self._size
