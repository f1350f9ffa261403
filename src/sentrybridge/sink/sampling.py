# src/sentrybridge/sink/sampling.py
"""Admission sampling for error events.

The sampler answers one question per event - admit or drop - using the
configured strategy. Strategies are variants over one shared state object
(not a class hierarchy), dispatched in should_sample():

- OFF: admit everything
- FIXED: admit every floor(1/rate)-th event (deterministic counter)
- ADAPTIVE: every 10s, steer a random admission rate toward target EPS
- PRIORITY: boost the rate for events with exceptions, errors, users
- BURST: drop to 5-10% admission for 10s once a per-second threshold is hit
- CUSTOM: user predicate (falls back to FIXED when none is given)

Group sampling is orthogonal: after the strategy admits and the fingerprint
is known, group_sample() enforces at most group_sample_rate admissions per
fingerprint in any group_window-second sliding window.

Level rates: FATAL events use fatal_rate, ERROR events use error_rate,
everything else uses rate.

Thread Safety:
    The fixed-sampling counter is an itertools.count (next() is atomic).
    Adaptive and burst windows share one small lock. Each fingerprint group
    has its own lock; groups are created with dict.setdefault.
"""

from __future__ import annotations

import itertools
import random
import threading
from collections import deque
from collections.abc import Callable, Sequence
from typing import Any

import structlog

from sentrybridge.contracts.enums import LogLevel, SamplingStrategy
from sentrybridge.contracts.events import LogEvent
from sentrybridge.core.clock import DEFAULT_CLOCK, Clock
from sentrybridge.core.config import SamplingSettings

logger = structlog.get_logger(__name__)

CustomSampler = Callable[[LogEvent], bool]

ADAPTIVE_INTERVAL = 10.0
ADAPTIVE_MIN_RATE = 0.01
ADAPTIVE_RECOVERY = 0.1

BURST_WINDOW = 1.0
BURST_BACKOFF = 10.0
BURST_BACKOFF_RATE = 0.1
BURST_ENTRY_RATE = 0.05
BURST_RATE_FACTOR = 0.1

# Properties that mark an event as carrying user context
USER_PROPERTY_NAMES: tuple[str, ...] = ("UserId", "user", "User")

# Idle groups are pruned once the group map grows past this size
_MAX_GROUPS = 10_000


class _GroupWindow:
    """Sliding window of admission instants for one fingerprint."""

    __slots__ = ("admitted", "lock")

    def __init__(self) -> None:
        self.admitted: deque[float] = deque()
        self.lock = threading.Lock()

    def admit(self, now: float, window: float, limit: int) -> bool:
        with self.lock:
            cutoff = now - window
            while self.admitted and self.admitted[0] <= cutoff:
                self.admitted.popleft()
            if len(self.admitted) >= limit:
                return False
            self.admitted.append(now)
            return True

    def idle(self, now: float, window: float) -> bool:
        with self.lock:
            return not self.admitted or self.admitted[-1] <= now - window


class Sampler:
    """Per-event admission decisions.

    The sampler never raises; an unexpected predicate failure in CUSTOM mode
    is logged and the event is admitted.

    Example:
        sampler = Sampler(fixed_sampling(0.1))
        admitted = sum(sampler.should_sample(event) for _ in range(1000))  # 100
    """

    def __init__(
        self,
        settings: SamplingSettings | None = None,
        *,
        custom_sampler: CustomSampler | None = None,
        clock: Clock = DEFAULT_CLOCK,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize sampler state.

        Args:
            settings: Sampling configuration (default: strategy OFF)
            custom_sampler: Predicate used by the CUSTOM strategy
            clock: Time source for adaptive, burst, and group windows
            rng: Random source for ADAPTIVE (default: a fresh seeded instance)
        """
        self._settings = settings if settings is not None else SamplingSettings()
        self._custom_sampler = custom_sampler
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()

        self._draws = itertools.count(1)
        self._last_draw = 0

        self._lock = threading.Lock()
        now = clock.monotonic()

        # ADAPTIVE
        self._window_count = 0
        self._last_reset = now
        self._adaptive_rate = self._settings.rate

        # BURST
        self._burst_events = 0
        self._burst_window_start = now
        self._in_burst = False
        self._backoff_until = 0.0

        self._groups: dict[tuple[str, ...], _GroupWindow] = {}

    @property
    def settings(self) -> SamplingSettings:
        return self._settings

    @property
    def adaptive_rate(self) -> float:
        with self._lock:
            return self._adaptive_rate

    @property
    def in_burst(self) -> bool:
        with self._lock:
            return self._in_burst

    def should_sample(self, event: LogEvent) -> bool:
        """Decide whether an event passes the configured strategy."""
        strategy = self._settings.strategy
        if strategy == SamplingStrategy.OFF:
            return True

        rate = self._level_rate(event.level)
        match strategy:
            case SamplingStrategy.FIXED:
                return self._fixed(rate)
            case SamplingStrategy.ADAPTIVE:
                return self._adaptive(rate)
            case SamplingStrategy.PRIORITY:
                return self._priority(event, rate)
            case SamplingStrategy.BURST:
                return self._burst(rate)
            case SamplingStrategy.CUSTOM:
                if self._custom_sampler is None:
                    return self._fixed(rate)
                return self._custom(event)
        return self._fixed(rate)

    def group_sample(self, fingerprint: Sequence[str]) -> bool:
        """Apply the per-fingerprint quota. Always True when disabled."""
        if not self._settings.group_sampling:
            return True
        key = tuple(fingerprint)
        now = self._clock.monotonic()
        group = self._groups.get(key)
        if group is None:
            if len(self._groups) >= _MAX_GROUPS:
                self._prune_groups(now)
            group = self._groups.setdefault(key, _GroupWindow())
        return group.admit(now, self._settings.group_window, self._settings.group_sample_rate)

    def reset(self) -> None:
        """Reset every counter, window, and group."""
        now = self._clock.monotonic()
        with self._lock:
            self._draws = itertools.count(1)
            self._last_draw = 0
            self._window_count = 0
            self._last_reset = now
            self._adaptive_rate = self._settings.rate
            self._burst_events = 0
            self._burst_window_start = now
            self._in_burst = False
            self._backoff_until = 0.0
            self._groups = {}

    def stats(self) -> dict[str, Any]:
        """Sampling statistics for diagnostics."""
        with self._lock:
            stats: dict[str, Any] = {
                "strategy": self._settings.strategy.value,
                "event_count": (
                    self._window_count if self._settings.strategy == SamplingStrategy.ADAPTIVE else self._last_draw
                ),
            }
            if self._settings.strategy == SamplingStrategy.ADAPTIVE:
                stats["adaptive_rate"] = self._adaptive_rate
            if self._settings.strategy == SamplingStrategy.BURST:
                stats["in_burst"] = self._in_burst
                stats["burst_events"] = self._burst_events
        stats["active_groups"] = len(self._groups)
        return stats

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _level_rate(self, level: LogLevel) -> float:
        if level == LogLevel.FATAL:
            return self._settings.fatal_rate
        if level == LogLevel.ERROR:
            return self._settings.error_rate
        return self._settings.rate

    def _fixed(self, rate: float) -> bool:
        if rate >= 1.0:
            return True
        if rate <= 0.0:
            return False
        draw = next(self._draws)
        self._last_draw = draw
        return draw % int(1.0 / rate) == 0

    def _adaptive(self, base_rate: float) -> bool:
        target = self._settings.adaptive_target_eps
        with self._lock:
            self._window_count += 1
            now = self._clock.monotonic()
            elapsed = now - self._last_reset
            if elapsed >= ADAPTIVE_INTERVAL:
                current_eps = self._window_count / elapsed
                if current_eps > target:
                    self._adaptive_rate = max(target / current_eps, ADAPTIVE_MIN_RATE)
                else:
                    # Recover gradually toward the base rate
                    self._adaptive_rate += (base_rate - self._adaptive_rate) * ADAPTIVE_RECOVERY
                logger.debug(
                    "Adaptive sampling rate adjusted",
                    current_eps=current_eps,
                    target_eps=target,
                    adaptive_rate=self._adaptive_rate,
                )
                self._last_reset = now
                self._window_count = 0
            rate = self._adaptive_rate
        return self._rng.random() < rate

    def _priority(self, event: LogEvent, rate: float) -> bool:
        if event.level == LogLevel.FATAL:
            return True
        priority = rate
        if event.exception is not None:
            priority = min(priority * 3, 1.0)
        if "Error" in event.properties:
            priority = min(priority * 2, 1.0)
        if any(name in event.properties for name in USER_PROPERTY_NAMES):
            priority = min(priority * 1.5, 1.0)
        return self._fixed(priority)

    def _burst(self, rate: float) -> bool:
        threshold = self._settings.burst_threshold
        with self._lock:
            now = self._clock.monotonic()
            if now < self._backoff_until:
                effective = BURST_BACKOFF_RATE
            else:
                elapsed = now - self._burst_window_start
                if elapsed >= BURST_WINDOW:
                    events_per_sec = self._burst_events / elapsed
                    # The current event opens the new window
                    self._burst_events = 1
                    self._burst_window_start = now
                    if events_per_sec > threshold:
                        self._in_burst = True
                        self._backoff_until = now + BURST_BACKOFF
                        logger.warning(
                            "Burst detected, throttling events",
                            events_per_sec=events_per_sec,
                            threshold=threshold,
                            backoff_seconds=BURST_BACKOFF,
                        )
                        effective = BURST_ENTRY_RATE
                    else:
                        self._in_burst = False
                        effective = rate
                else:
                    self._burst_events += 1
                    effective = rate * BURST_RATE_FACTOR if self._in_burst else rate
        return self._fixed(effective)

    def _custom(self, event: LogEvent) -> bool:
        assert self._custom_sampler is not None
        try:
            return bool(self._custom_sampler(event))
        except Exception as e:
            logger.warning("Custom sampler failed, admitting event", error=str(e))
            return True

    def _prune_groups(self, now: float) -> None:
        window = self._settings.group_window
        for key in [k for k, g in list(self._groups.items()) if g.idle(now, window)]:
            self._groups.pop(key, None)
