# src/sentrybridge/sink/metrics.py
"""Sink health metrics.

MetricsCollector counts outcomes on the event path (sent, dropped, failed,
retried), breadcrumb churn, batch sizes, and flush timing. snapshot()
returns a consistent frozen copy with the derived average batch size.

MetricsReporter optionally pushes snapshots to a callback on a fixed
cadence from a background thread.

Thread Safety:
    Counters are written from producer threads (dropped, breadcrumbs) and
    the worker thread (everything else). A single lock guards them; each
    critical section is one integer update.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

COUNTERS: tuple[str, ...] = (
    "events_sent",
    "events_dropped",
    "events_failed",
    "events_retried",
    "breadcrumbs_added",
    "breadcrumbs_evicted",
    "batches_sent",
    "total_batch_size",
    "retry_count",
    "network_errors",
)


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Point-in-time copy of the sink counters.

    Durations are in seconds.

    events_sent counts every event the transport accepted. That includes
    events the transport then discarded under its own client sample_rate;
    the SDK transport logs each of those at debug level.
    """

    events_sent: int = 0
    events_dropped: int = 0
    events_failed: int = 0
    events_retried: int = 0
    breadcrumbs_added: int = 0
    breadcrumbs_evicted: int = 0
    batches_sent: int = 0
    total_batch_size: int = 0
    average_batch_size: float = 0.0
    last_flush_duration: float = 0.0
    total_flush_time: float = 0.0
    retry_count: int = 0
    network_errors: int = 0


class MetricsCollector:
    """Thread-safe counter set behind MetricsSnapshot.

    Example:
        metrics = MetricsCollector()
        metrics.increment("events_dropped")
        metrics.record_flush(duration=0.012, batch_size=40)
        metrics.snapshot().average_batch_size  # 40.0
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = dict.fromkeys(COUNTERS, 0)
        self._last_flush_duration = 0.0
        self._total_flush_time = 0.0

    def increment(self, counter: str, amount: int = 1) -> None:
        """Add amount to a counter.

        Raises:
            KeyError: If counter is not one of COUNTERS.
        """
        with self._lock:
            self._counts[counter] += amount

    def record_flush(self, duration: float, batch_size: int) -> None:
        """Record one completed batch flush."""
        with self._lock:
            self._last_flush_duration = duration
            self._total_flush_time += duration
            self._counts["batches_sent"] += 1
            self._counts["total_batch_size"] += batch_size

    def snapshot(self) -> MetricsSnapshot:
        """Return a consistent copy of all counters."""
        with self._lock:
            counts = dict(self._counts)
            last_flush = self._last_flush_duration
            total_flush = self._total_flush_time
        return MetricsSnapshot(
            **counts,
            average_batch_size=counts["total_batch_size"] / max(counts["batches_sent"], 1),
            last_flush_duration=last_flush,
            total_flush_time=total_flush,
        )


class MetricsReporter:
    """Background thread delivering metrics snapshots to a callback.

    Callback failures are logged and do not stop the reporter.
    """

    def __init__(
        self,
        collector: MetricsCollector,
        callback: Callable[[MetricsSnapshot], None],
        interval: float,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self._collector = collector
        self._callback = callback
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="sentrybridge-metrics", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self._report()

    def _report(self) -> None:
        try:
            self._callback(self._collector.snapshot())
        except Exception as e:
            logger.warning("Metrics callback failed", error=str(e))

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the reporter and wait for its thread to exit."""
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()
