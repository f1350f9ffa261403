# src/sentrybridge/sink/retry.py
"""RetryController: capture retries with tenacity integration.

A capture that returns no event id is a failed submission. The controller
retries it with exponential backoff and jitter:

    delay(attempt) = base_backoff * 2**attempt * (1 + u),  u ~ U[-jitter, +jitter]

capped at 30 seconds. attempt is 0 for the wait after the first failure.
Retries run sequentially on the worker thread; producers are never blocked
by a backoff sleep.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable

import structlog
from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, stop_after_attempt

from sentrybridge.errors import RetriesExhausted
from sentrybridge.sink.metrics import MetricsCollector

logger = structlog.get_logger(__name__)

MAX_BACKOFF_SECONDS = 30.0

# 2**64 times any usable base is far past the cap
_MAX_EXPONENT = 64


def compute_delay(
    attempt: int,
    base_backoff: float,
    jitter_factor: float,
    rng: random.Random | None = None,
) -> float:
    """Backoff delay in seconds before retry number attempt + 1.

    Args:
        attempt: Zero-based attempt index
        base_backoff: Delay for attempt 0, in seconds
        jitter_factor: Relative jitter in [0, 1]; 0 gives pure exponential backoff
        rng: Random source for jitter (default: module random)

    Returns:
        Delay in seconds, never more than MAX_BACKOFF_SECONDS

    Raises:
        ValueError: If attempt is negative
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    delay = base_backoff * (2.0 ** min(attempt, _MAX_EXPONENT))
    if jitter_factor > 0:
        u = (rng or random).uniform(-jitter_factor, jitter_factor)
        delay *= 1 + u
    return min(delay, MAX_BACKOFF_SECONDS)


class RetryController:
    """Submits one capture operation with bounded retries.

    max_retries counts retries, not attempts: max_retries=2 means
    try, retry, retry (3 total).

    Example:
        controller = RetryController(max_retries=3, base_backoff=0.1, jitter=0.2, metrics=metrics)
        event_id = controller.submit(lambda: transport.capture(event), description=event.message)
    """

    def __init__(
        self,
        max_retries: int,
        base_backoff: float,
        jitter: float = 0.0,
        *,
        metrics: MetricsCollector | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._max_retries = max_retries
        self._base_backoff = base_backoff
        self._jitter = jitter
        self._metrics = metrics
        self._rng = rng if rng is not None else random.Random()
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def compute_delay(self, attempt: int) -> float:
        """Delay before the retry following zero-based attempt."""
        return compute_delay(attempt, self._base_backoff, self._jitter, self._rng)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.compute_delay(retry_state.attempt_number - 1)

    def submit(
        self,
        operation: Callable[[], str | None],
        *,
        description: str = "",
        on_retry: Callable[[int, float], None] | None = None,
    ) -> str:
        """Run operation until it returns an id or attempts run out.

        Args:
            operation: Capture call returning an event id, or None on failure.
                Exceptions are logged and treated as None.
            description: What is being submitted, for log messages
            on_retry: Optional callback (attempt_number, delay) before each sleep

        Returns:
            The event id from the first successful attempt

        Raises:
            RetriesExhausted: If every attempt failed
        """

        def attempt() -> str | None:
            try:
                return operation()
            except Exception as e:
                logger.warning("Capture raised, treating as failed submission", error=str(e), description=description)
                return None

        def before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
            if self._metrics is not None:
                self._metrics.increment("retry_count")
            logger.warning(
                "Retrying event capture",
                attempt=retry_state.attempt_number,
                max_retries=self._max_retries,
                delay_seconds=delay,
                description=description,
            )
            if on_retry is not None:
                on_retry(retry_state.attempt_number, delay)

        retrying = Retrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=self._wait,
            retry=retry_if_result(lambda event_id: event_id is None),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=False,
        )

        try:
            event_id = retrying(attempt)
        except RetryError as e:
            attempts = e.last_attempt.attempt_number
            if self._metrics is not None:
                self._metrics.increment("events_failed")
                self._metrics.increment("network_errors")
            logger.error("Failed to send event after retries", attempts=attempts, description=description)
            raise RetriesExhausted(attempts, description) from e

        if self._metrics is not None:
            self._metrics.increment("events_sent")
            if retrying.statistics.get("attempt_number", 1) > 1:
                self._metrics.increment("events_retried")
        # retry_if_result guarantees a non-None result here
        assert event_id is not None
        return event_id
