# src/sentrybridge/sink/sentry_sink.py
"""SentrySink turns log events into error events and ships them in batches.

Event path:
1. emit() runs on the producer thread: level routing, sampling, conversion
   to OutboundEvent, group sampling, then append to the batch buffer
2. A single worker thread drains the buffer when it reaches batch_size or
   every batch_timeout seconds
3. Each drained event gets a fresh breadcrumb snapshot and its request
   scope, passes the before-send processor, and is submitted through the
   transport with bounded retries

Levels below min_level (and at or above breadcrumb_level) become
breadcrumbs instead of events. They are attached to later events at flush
time, never at ingest.

Design principles:
- emit() never raises and never blocks on the network
- Retry sleeps happen on the worker only
- Aggregate logging every 100 drops (no per-event warnings)

Thread Safety:
    emit() is safe to call from any number of threads. The batch buffer,
    breadcrumb ring, and stack-trace cache are each guarded by their own
    lock. Only the worker (or an explicit flush()/close()) submits events;
    _flush_lock serializes those drains.

Shutdown:
    close() stops the worker, drains what is left, and gives the transport
    flush_timeout seconds to deliver. Events still queued inside the
    transport when that elapses are lost; a warning is logged.
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any

import structlog

from sentrybridge.contracts.enums import EventState, breadcrumb_category, to_sentry_level
from sentrybridge.contracts.events import Breadcrumb, EventHint, LogEvent, OutboundEvent, User
from sentrybridge.core.clock import DEFAULT_CLOCK, Clock
from sentrybridge.core.config import SinkSettings
from sentrybridge.core.fingerprint import Fingerprinter, default_fingerprint
from sentrybridge.core.rendering import BuilderPool, render_message
from sentrybridge.errors import ConfigurationError, RetriesExhausted
from sentrybridge.sink.breadcrumbs import BreadcrumbBuffer
from sentrybridge.sink.cache import StackTraceCache, extract_exception
from sentrybridge.sink.context import capture_scope, enrich_event
from sentrybridge.sink.filtering import BeforeSend, IgnoredError, ignore_errors
from sentrybridge.sink.metrics import MetricsCollector, MetricsReporter, MetricsSnapshot
from sentrybridge.sink.retry import RetryController
from sentrybridge.sink.sampling import CustomSampler, Sampler
from sentrybridge.sink.tracing import Transaction, record_breadcrumb_in_transaction
from sentrybridge.transports.protocols import TransportProtocol

logger = structlog.get_logger(__name__)

TEMPLATE_TAG = "message.template"

# Property keys whose values are lifted out of extras
EXCEPTION_PROPERTY_NAMES: frozenset[str] = frozenset({"error", "err", "Error"})
USER_PROPERTY_NAMES: frozenset[str] = frozenset({"user", "User"})

_WORKER_JOIN_TIMEOUT = 5.0


class SentrySink:
    """Batching error-event sink in front of a transport.

    Example:
        settings = SinkSettings(dsn="https://key@o0.ingest.sentry.io/1", batch_size=50)
        with create_sentry_sink(settings) as sink:
            sink.emit(LogEvent(timestamp=now, level=LogLevel.ERROR,
                               message_template="Payment {OrderId} failed",
                               properties={"OrderId": 42, "error": exc}))
    """

    _LOG_INTERVAL = 100

    def __init__(
        self,
        settings: SinkSettings,
        transport: TransportProtocol,
        *,
        fingerprinter: Fingerprinter | None = None,
        before_send: BeforeSend | None = None,
        ignore_errors: Sequence[IgnoredError] = (),
        custom_sampler: CustomSampler | None = None,
        metrics_callback: Callable[[MetricsSnapshot], None] | None = None,
        clock: Clock = DEFAULT_CLOCK,
        rng_seed: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        start: bool = True,
    ) -> None:
        """Initialize the sink.

        Args:
            settings: Validated sink settings
            transport: Configured transport; the sink owns it from here on
            fingerprinter: Grouping function (default: template + exception type)
            before_send: Processor applied to each event before submission
            ignore_errors: Errors (instances, classes, or messages) to drop
            custom_sampler: Predicate for the CUSTOM sampling strategy
            metrics_callback: Receives snapshots every settings.metrics_interval
            clock: Time source for breadcrumb ages and sampling windows
            rng_seed: Seed for sampling and retry jitter randomness
            sleep: Retry backoff sleep (injectable for tests)
            start: Start the worker thread immediately

        Raises:
            ConfigurationError: metrics_callback given without metrics enabled
                and a metrics_interval
        """
        if metrics_callback is not None and (not settings.enable_metrics or settings.metrics_interval is None):
            raise ConfigurationError(
                "metrics_interval",
                "metrics_callback requires enable_metrics=True and a metrics_interval",
            )

        self._settings = settings
        self._transport = transport
        self._fingerprinter = fingerprinter
        self._before_send = (
            _ignore_errors_processor(ignore_errors, before_send) if ignore_errors else before_send
        )

        self._metrics = MetricsCollector() if settings.enable_metrics else None
        self._breadcrumbs = BreadcrumbBuffer(
            settings.max_breadcrumbs,
            max_age=settings.breadcrumb_max_age,
            clock=clock,
        )
        self._cache = StackTraceCache(settings.stack_trace_cache_size)
        self._pool = BuilderPool()
        self._sampler = Sampler(
            settings.sampling,
            custom_sampler=custom_sampler,
            clock=clock,
            rng=random.Random(rng_seed),
        )
        self._retry = RetryController(
            settings.max_retries,
            settings.retry_backoff,
            settings.retry_jitter,
            metrics=self._metrics,
            rng=random.Random(rng_seed),
            sleep=sleep,
        )

        # Batch buffer (producers append, worker swaps)
        self._batch: list[OutboundEvent] = []
        self._transactions: list[Transaction] = []
        self._batch_lock = threading.Lock()
        self._flush_lock = threading.Lock()

        # Aggregate drop logging
        self._dropped_lock = threading.Lock()
        self._dropped_total = 0
        self._last_logged_drop_count = 0

        # Worker coordination
        self._flush_signal = threading.Event()
        self._stop_event = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False
        self._worker = threading.Thread(target=self._run, name="sentrybridge-worker", daemon=False)

        self._reporter: MetricsReporter | None = None
        if metrics_callback is not None and self._metrics is not None and settings.metrics_interval is not None:
            self._reporter = MetricsReporter(self._metrics, metrics_callback, settings.metrics_interval)

        if start:
            self.start()

    def start(self) -> None:
        """Start the worker (and metrics reporter). Called by __init__ unless start=False."""
        self._worker.start()
        if self._reporter is not None:
            self._reporter.start()
        logger.debug(
            "Sentry sink started",
            transport=self._transport.name,
            batch_size=self._settings.batch_size,
            batch_timeout=self._settings.batch_timeout,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> SinkSettings:
        return self._settings

    @property
    def transport(self) -> TransportProtocol:
        return self._transport

    @property
    def sampler(self) -> Sampler:
        return self._sampler

    @property
    def breadcrumbs(self) -> BreadcrumbBuffer:
        return self._breadcrumbs

    @property
    def stack_trace_cache(self) -> StackTraceCache:
        return self._cache

    @property
    def closed(self) -> bool:
        return self._closed

    def metrics(self) -> MetricsSnapshot:
        """Current counters; all zero when metrics are disabled."""
        if self._metrics is None:
            return MetricsSnapshot()
        return self._metrics.snapshot()

    # -------------------------------------------------------------------------
    # Ingest (producer threads)
    # -------------------------------------------------------------------------

    def emit(self, event: LogEvent | None) -> None:
        """Route one log event to the breadcrumb ring or the batch buffer.

        Never raises. The event is not mutated.
        """
        if event is None:
            return
        if self._closed:
            self._drop()
            return
        try:
            self._ingest(event)
        except Exception as e:
            logger.error("Failed to ingest log event", template=event.message_template, error=str(e))

    def _ingest(self, event: LogEvent) -> None:
        if event.level < self._settings.min_level:
            if event.level >= self._settings.breadcrumb_level:
                self._add_breadcrumb(event)
            return

        if not self._sampler.should_sample(event):
            self._drop()
            return

        outbound = self._convert(event)
        if not self._sampler.group_sample(outbound.fingerprint):
            self._drop()
            return

        with self._batch_lock:
            # close() may have started its final drain since emit() checked
            late = self._closed
            if not late:
                outbound.state = EventState.BATCHED
                self._batch.append(outbound)
            size = len(self._batch)
        if late:
            self._drop()
            return
        if size >= self._settings.batch_size:
            self._flush_signal.set()

    def _add_breadcrumb(self, event: LogEvent) -> None:
        crumb = Breadcrumb(
            category=breadcrumb_category(event.level),
            level=to_sentry_level(event.level),
            message=render_message(event.message_template, event.properties, pool=self._pool),
            timestamp=event.timestamp,
            data=dict(event.properties),
        )
        evicted = self._breadcrumbs.add(crumb)
        record_breadcrumb_in_transaction(crumb)
        self._count("breadcrumbs_added")
        if evicted:
            self._count("breadcrumbs_evicted")

    def _convert(self, event: LogEvent) -> OutboundEvent:
        """Build the outbound event on the producer thread."""
        outbound = OutboundEvent(
            message=render_message(event.message_template, event.properties, pool=self._pool),
            level=to_sentry_level(event.level),
            timestamp=event.timestamp,
            tags={TEMPLATE_TAG: event.message_template},
            scope=capture_scope(),
        )

        original_exception: BaseException | None = None
        for key, value in event.properties.items():
            if key in EXCEPTION_PROPERTY_NAMES and isinstance(value, BaseException):
                outbound.exceptions.append(extract_exception(value, self._cache))
                if original_exception is None:
                    original_exception = value
            elif key in USER_PROPERTY_NAMES and isinstance(value, User):
                outbound.user = value
            else:
                outbound.extras[key] = value

        if event.exception is not None and event.exception is not original_exception:
            outbound.exceptions.append(extract_exception(event.exception, self._cache))
            if original_exception is None:
                original_exception = event.exception

        outbound.hint = EventHint(original_exception=original_exception, log_event=event)
        outbound.fingerprint = self._fingerprint(event, outbound)
        return outbound

    def _fingerprint(self, event: LogEvent, outbound: OutboundEvent) -> list[str]:
        if self._fingerprinter is None:
            return default_fingerprint(event, outbound.exceptions)
        try:
            return list(self._fingerprinter(event))
        except Exception as e:
            logger.warning("Fingerprinter failed, using default fingerprint", error=str(e))
            return default_fingerprint(event, outbound.exceptions)

    def _count(self, counter: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(counter)

    def _drop(self) -> None:
        self._count("events_dropped")
        with self._dropped_lock:
            self._dropped_total += 1
            if self._dropped_total - self._last_logged_drop_count >= self._LOG_INTERVAL:
                logger.info(
                    "Events dropped by sampling or filters",
                    dropped_since_last_log=self._dropped_total - self._last_logged_drop_count,
                    dropped_total=self._dropped_total,
                )
                self._last_logged_drop_count = self._dropped_total

    def capture_transaction(self, transaction: Transaction) -> None:
        """Queue a finished transaction for submission on the next flush.

        Suitable as the on_finish callback of start_transaction().
        """
        if self._closed:
            return
        with self._batch_lock:
            if self._closed:
                return
            self._transactions.append(transaction)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        """Worker thread: flush on size signal or every batch_timeout seconds.

        A signaled flush re-bases the idle timer; a timer flush keeps the
        fixed cadence.
        """
        interval = self._settings.batch_timeout
        deadline = time.monotonic() + interval
        while not self._stop_event.is_set():
            signaled = self._flush_signal.wait(timeout=max(deadline - time.monotonic(), 0.0))
            if self._stop_event.is_set():
                break
            if signaled:
                self._flush_signal.clear()
            try:
                self._flush_batch()
            except Exception as e:
                logger.error("Batch flush failed unexpectedly", error=str(e))
            now = time.monotonic()
            if signaled:
                deadline = now + interval
            else:
                deadline += interval
                if deadline <= now:
                    deadline = now + interval

    def _flush_batch(self) -> None:
        with self._flush_lock:
            self._drain()

    def _drain(self) -> None:
        """Swap out the buffer and submit everything in it. Caller holds _flush_lock."""
        with self._batch_lock:
            batch, self._batch = self._batch, []
            transactions, self._transactions = self._transactions, []

        for transaction in transactions:
            self._submit_transaction(transaction)

        if not batch:
            return

        start = time.perf_counter()
        crumbs = self._breadcrumbs.snapshot()
        for event in batch:
            try:
                self._submit(event, crumbs)
            except Exception as e:
                # Failures stay per event; the rest of the batch still goes out
                event.state = EventState.ABANDONED
                self._count("events_failed")
                logger.error("Event submission failed unexpectedly", message=event.message, error=str(e))
        if self._metrics is not None:
            self._metrics.record_flush(time.perf_counter() - start, len(batch))

    def _submit(self, event: OutboundEvent, crumbs: list[Breadcrumb]) -> None:
        event.breadcrumbs = list(crumbs)
        template = event.tags[TEMPLATE_TAG]
        enrich_event(event, event.scope)
        event.tags[TEMPLATE_TAG] = template

        if self._before_send is not None:
            try:
                processed = self._before_send(event, event.hint)
            except Exception as e:
                logger.warning("before_send failed, sending event unmodified", error=str(e))
                processed = event
            if processed is None:
                self._drop()
                return
            event = processed

        def attempt() -> str | None:
            event.state = EventState.SUBMITTING
            return self._transport.capture(event)

        def on_retry(attempt_number: int, delay: float) -> None:
            event.state = EventState.RETRYING

        try:
            event_id = self._retry.submit(attempt, description=event.message, on_retry=on_retry)
        except RetriesExhausted:
            event.state = EventState.ABANDONED
            return

        event.event_id = event_id
        event.state = EventState.SUBMITTED
        event.state = EventState.DONE

    def _submit_transaction(self, transaction: Transaction) -> None:
        try:
            event_id = self._transport.capture_transaction(transaction.to_payload())
        except Exception as e:
            logger.warning("Transaction capture raised", transaction=transaction.name, error=str(e))
            return
        if event_id is None:
            logger.warning("Transaction was not accepted by the transport", transaction=transaction.name)

    # -------------------------------------------------------------------------
    # Flush and shutdown
    # -------------------------------------------------------------------------

    def flush(self, timeout: float | None = None) -> bool:
        """Submit everything buffered now, then flush the transport.

        Args:
            timeout: Transport flush bound in seconds (default settings.flush_timeout)

        Returns:
            True if the transport flush completed within the timeout
        """
        self._flush_batch()
        return self._flush_transport(self._settings.flush_timeout if timeout is None else timeout)

    def _flush_transport(self, timeout: float) -> bool:
        try:
            completed = self._transport.flush(timeout)
        except Exception as e:
            logger.warning("Transport flush failed", transport=self._transport.name, error=str(e))
            return False
        if not completed:
            logger.warning(
                "Transport flush timed out; undelivered events are lost",
                transport=self._transport.name,
                timeout_seconds=timeout,
            )
        return completed

    def close(self) -> None:
        """Stop the worker, drain, flush the transport, and release it.

        Idempotent: later calls return immediately.

        Shutdown sequence:
        1. Mark closed so emit() stops accepting events
        2. Stop and join the worker
        3. Final drain of the batch buffer
        4. Bounded transport flush (warning on timeout)
        5. Stop the metrics reporter, close the transport
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self._stop_event.set()
        self._flush_signal.set()
        if self._worker.is_alive():
            self._worker.join(timeout=_WORKER_JOIN_TIMEOUT)
            if self._worker.is_alive():
                logger.error("Sentry sink worker did not exit cleanly within timeout")

        self._final_drain()
        self._flush_transport(self._settings.flush_timeout)

        if self._reporter is not None:
            self._reporter.stop()

        snapshot = self.metrics()
        logger.info(
            "Sentry sink closing",
            events_sent=snapshot.events_sent,
            events_dropped=snapshot.events_dropped,
            events_failed=snapshot.events_failed,
            batches_sent=snapshot.batches_sent,
        )
        try:
            self._transport.close()
        except Exception as e:
            logger.warning("Transport close failed", transport=self._transport.name, error=str(e))

    def _final_drain(self) -> None:
        if self._flush_lock.acquire(timeout=self._settings.flush_timeout):
            try:
                self._drain()
            finally:
                self._flush_lock.release()
            return

        # Worker is still stuck in a submission; abandon what is left
        with self._batch_lock:
            abandoned, self._batch = self._batch, []
            self._transactions = []
        for event in abandoned:
            event.state = EventState.ABANDONED
            self._count("events_failed")
        if abandoned:
            logger.error("Abandoned buffered events at shutdown", count=len(abandoned))

    def __enter__(self) -> SentrySink:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _ignore_errors_processor(errors: Sequence[IgnoredError], before_send: BeforeSend | None) -> BeforeSend:
    return ignore_errors(*errors, before_send=before_send)
