"""Tests for sink.retry -- backoff computation and the retry controller."""

import random
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from sentrybridge.errors import RetriesExhausted
from sentrybridge.sink.metrics import MetricsCollector
from sentrybridge.sink.retry import MAX_BACKOFF_SECONDS, RetryController, compute_delay


class TestComputeDelay:
    def test_pure_exponential_without_jitter(self):
        assert [compute_delay(a, 0.1, 0.0) for a in range(4)] == pytest.approx([0.1, 0.2, 0.4, 0.8])

    def test_capped_at_thirty_seconds(self):
        assert compute_delay(10, 0.1, 0.0) == MAX_BACKOFF_SECONDS == 30.0

    def test_huge_attempt_does_not_overflow(self):
        assert compute_delay(5000, 1.0, 0.5) == 30.0

    def test_jitter_band(self):
        rng = random.Random(7)
        for _ in range(200):
            delay = compute_delay(2, 1.0, 0.25, rng)
            assert 3.0 <= delay <= 5.0

    def test_negative_attempt_rejected(self):
        with pytest.raises(ValueError):
            compute_delay(-1, 1.0, 0.0)


class TestRetryController:
    def _controller(self, max_retries, metrics=None):
        sleep = MagicMock()
        controller = RetryController(max_retries, 0.1, 0.0, metrics=metrics, sleep=sleep)
        return controller, sleep

    def test_first_attempt_success(self):
        metrics = MetricsCollector()
        controller, sleep = self._controller(3, metrics)
        assert controller.submit(lambda: "id-1", description="boom") == "id-1"
        sleep.assert_not_called()
        snapshot = metrics.snapshot()
        assert snapshot.events_sent == 1
        assert snapshot.events_retried == 0
        assert snapshot.retry_count == 0

    def test_retries_until_success(self):
        metrics = MetricsCollector()
        controller, sleep = self._controller(3, metrics)
        results = iter([None, None, "id-9"])
        assert controller.submit(lambda: next(results)) == "id-9"
        assert [c.args[0] for c in sleep.call_args_list] == pytest.approx([0.1, 0.2])
        snapshot = metrics.snapshot()
        assert snapshot.events_sent == 1
        assert snapshot.events_retried == 1
        assert snapshot.retry_count == 2

    def test_exhaustion(self):
        metrics = MetricsCollector()
        controller, sleep = self._controller(2, metrics)
        operation = MagicMock(return_value=None)
        with pytest.raises(RetriesExhausted) as exc_info:
            controller.submit(operation, description="Payment failed")
        assert operation.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.description == "Payment failed"
        snapshot = metrics.snapshot()
        assert snapshot.events_failed == 1
        assert snapshot.network_errors == 1
        assert snapshot.events_sent == 0

    def test_no_retries_configured(self):
        metrics = MetricsCollector()
        controller, sleep = self._controller(0, metrics)
        with pytest.raises(RetriesExhausted):
            controller.submit(lambda: None)
        sleep.assert_not_called()
        assert metrics.snapshot().events_failed == 1

    def test_exceptions_count_as_failed_attempts(self):
        controller, _ = self._controller(1)
        calls = []

        def operation():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("reset")
            return "id-2"

        assert controller.submit(operation) == "id-2"

    def test_on_retry_callback(self):
        controller, _ = self._controller(2)
        seen = []
        results = iter([None, "id"])
        controller.submit(lambda: next(results), on_retry=lambda n, d: seen.append((n, d)))
        assert seen == [(1, pytest.approx(0.1))]

    def test_works_without_metrics(self):
        controller, _ = self._controller(0)
        assert controller.submit(lambda: "x") == "x"

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryController(-1, 1.0)

    def test_failure_path_logs_description(self):
        controller, _ = self._controller(1)
        with capture_logs() as logs, pytest.raises(RetriesExhausted):
            controller.submit(MagicMock(side_effect=ConnectionError("reset")), description="Payment failed")

        events = [(entry["event"], entry["log_level"]) for entry in logs]
        assert events == [
            ("Capture raised, treating as failed submission", "warning"),
            ("Retrying event capture", "warning"),
            ("Capture raised, treating as failed submission", "warning"),
            ("Failed to send event after retries", "error"),
        ]
        assert all(entry["description"] == "Payment failed" for entry in logs)
