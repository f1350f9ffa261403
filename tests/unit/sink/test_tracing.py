"""Tests for sink.tracing -- spans, transactions, and helpers."""

from datetime import UTC, datetime

import pytest

from sentrybridge.contracts.enums import SentryLevel
from sentrybridge.contracts.events import Breadcrumb
from sentrybridge.sink.tracing import (
    Transaction,
    batch_span,
    current_span,
    current_transaction,
    measure_span,
    record_breadcrumb_in_transaction,
    set_span_data,
    set_span_status,
    set_span_tag,
    start_span,
    start_transaction,
    trace_cache,
    trace_database_query,
    trace_http_request,
    transaction_middleware,
)


class TestTransactions:
    def test_active_while_open(self):
        assert current_span() is None
        with start_transaction("checkout", "http.server") as tx:
            assert current_span() is tx
            assert current_transaction() is tx
            assert tx.name == "checkout"
            assert tx.op == "http.server"
        assert current_span() is None
        assert tx.finished

    def test_on_finish_called_once(self):
        finished: list[Transaction] = []
        with start_transaction("job", on_finish=finished.append) as tx:
            pass
        tx.finish()
        assert finished == [tx]

    def test_exception_marks_internal_error(self):
        with pytest.raises(ValueError), start_transaction("job") as tx:
            raise ValueError("bad")
        assert tx.status == "internal_error"

    def test_explicit_status_kept_on_error(self):
        with pytest.raises(ValueError), start_transaction("job") as tx:
            tx.set_status("cancelled")
            raise ValueError("bad")
        assert tx.status == "cancelled"

    def test_payload(self):
        with start_transaction("checkout") as tx, start_span("db.query", "SELECT 1") as span:
            span.set_tag("db", "main")
        payload = tx.to_payload()
        assert payload["type"] == "transaction"
        assert payload["transaction"] == "checkout"
        assert payload["contexts"]["trace"]["trace_id"] == tx.trace_id
        assert payload["contexts"]["trace"]["op"] == "handler"
        assert "timestamp" in payload
        assert [s["op"] for s in payload["spans"]] == ["db.query"]
        assert payload["spans"][0]["description"] == "SELECT 1"
        assert payload["spans"][0]["tags"] == {"db": "main"}


class TestSpans:
    def test_child_inherits_trace(self):
        with start_transaction("tx") as tx, start_span("child") as child:
            assert child.trace_id == tx.trace_id
            assert child.parent_span_id == tx.span_id
            assert child.transaction is tx
            assert child.name == "tx"
            assert current_transaction() is tx

    def test_detached_span(self):
        with start_span("orphan") as span:
            assert span.transaction is None
            assert span.name is None
            assert span.parent_span_id is None
            assert current_transaction() is None

    def test_span_error(self):
        with pytest.raises(RuntimeError), start_span("op") as span:
            raise RuntimeError("kaput")
        assert span.status == "internal_error"
        assert span.data["error"] == "kaput"

    def test_current_span_setters(self):
        with start_span("op") as span:
            set_span_status("ok")
            set_span_tag("k", "v")
            set_span_data("n", 3)
        assert span.status == "ok"
        assert span.tags == {"k": "v"}
        assert span.data == {"n": 3}

    def test_setters_without_span_are_noops(self):
        set_span_status("ok")
        set_span_tag("k", "v")
        set_span_data("n", 3)

    def test_duration(self):
        with start_span("op") as span:
            assert span.duration is None
        assert span.duration is not None
        assert span.duration.total_seconds() >= 0

    def test_breadcrumb_recorded_on_span(self):
        crumb = Breadcrumb(category="info", level=SentryLevel.INFO, message="step 1", timestamp=datetime.now(UTC))
        with start_span("op") as span:
            record_breadcrumb_in_transaction(crumb)
        assert span.contexts["breadcrumb"] == {"message": "step 1", "category": "info", "level": "info"}


class TestHelpers:
    def test_measure_span_ok(self):
        with start_transaction("tx") as tx:
            assert measure_span("compute", lambda: 42) == 42
        assert tx.spans[0].status == "ok"

    def test_measure_span_error(self):
        def fail():
            raise KeyError("missing")

        with start_transaction("tx") as tx, pytest.raises(KeyError):
            measure_span("compute", fail)
        assert tx.spans[0].status == "internal_error"

    @pytest.mark.parametrize(("code", "status"), [(200, "ok"), (404, "failed_precondition"), (503, "failed_precondition")])
    def test_trace_http_request(self, code, status):
        with trace_http_request("GET", "https://example.com") as span:
            span.set_data("http.status_code", code)
        assert span.op == "http.client"
        assert span.data["http.method"] == "GET"
        assert span.status == status

    def test_trace_database_query(self):
        with trace_database_query("SELECT 1", "orders") as span:
            pass
        assert span.data == {"db.name": "orders", "db.statement": "SELECT 1", "db.system": "sql"}
        assert span.status == "ok"

    def test_trace_database_query_error(self):
        with pytest.raises(TimeoutError), trace_database_query("SELECT 1", "orders") as span:
            raise TimeoutError("lock wait")
        assert span.status == "internal_error"
        assert span.data["error"] == "lock wait"

    @pytest.mark.parametrize("hit", [True, False])
    def test_trace_cache(self, hit):
        with trace_cache("get", "user:1") as span:
            span.set_data("cache.hit", hit)
        assert span.op == "cache.get"
        assert span.tags["cache.hit"] == ("true" if hit else "false")
        assert span.status == "ok"

    def test_batch_span(self):
        with start_transaction("tx") as tx:
            assert batch_span("import", 10, lambda: "done") == "done"
        span = tx.spans[0]
        assert span.data["batch.size"] == 10
        assert "batch.duration_ms" in span.data
        assert span.status == "ok"

    def test_transaction_middleware(self):
        finished: list[Transaction] = []

        @transaction_middleware("handle-order", on_finish=finished.append)
        def handle(order_id: int) -> str:
            assert current_transaction() is not None
            return f"handled {order_id}"

        assert handle(7) == "handled 7"
        assert finished[0].name == "handle-order"
        assert finished[0].status == "ok"

    def test_transaction_middleware_error(self):
        finished: list[Transaction] = []

        @transaction_middleware("handle-order", on_finish=finished.append)
        def handle() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            handle()
        assert finished[0].status == "internal_error"
