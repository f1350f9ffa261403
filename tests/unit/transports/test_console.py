"""Tests for ConsoleTransport."""

import io
import json
from datetime import UTC, datetime

import pytest

from sentrybridge.contracts.enums import SentryLevel
from sentrybridge.contracts.events import OutboundEvent
from sentrybridge.errors import TransportError
from sentrybridge.transports.console import ConsoleTransport


def outbound(message: str = "Boom") -> OutboundEvent:
    return OutboundEvent(
        message=message,
        level=SentryLevel.ERROR,
        timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC),
        tags={"message.template": message},
    )


def printed(text: str) -> str:
    """Last line written, skipping any diagnostic log lines."""
    return text.strip().splitlines()[-1]


class BrokenStream(io.StringIO):
    def write(self, s):
        raise OSError("stream closed")

    def flush(self):
        raise OSError("stream closed")


class TestConfigure:
    def test_defaults(self, capsys):
        transport = ConsoleTransport()
        transport.configure({"dsn": "ignored"})
        transport.capture(outbound())
        json.loads(printed(capsys.readouterr().out))

    @pytest.mark.parametrize(("options", "match"), [
        ({"format": "xml"}, "Invalid format"),
        ({"format": 1}, "must be a string"),
        ({"output": "file"}, "Invalid output"),
    ])
    def test_invalid_options(self, options, match):
        with pytest.raises(TransportError, match=match):
            ConsoleTransport().configure(options)

    def test_stderr(self, capsys):
        transport = ConsoleTransport()
        transport.configure({"output": "stderr"})
        transport.capture(outbound())
        assert "Boom" in printed(capsys.readouterr().err)


class TestCapture:
    def test_json_line(self, capsys):
        transport = ConsoleTransport()
        transport.configure({})
        event_id = transport.capture(outbound("Disk full"))
        payload = json.loads(printed(capsys.readouterr().out))
        assert payload["event_id"] == event_id
        assert payload["message"] == "Disk full"
        assert payload["level"] == "error"

    def test_existing_event_id_kept(self, capsys):
        transport = ConsoleTransport()
        transport.configure({})
        event = outbound()
        event.event_id = "abc123"
        assert transport.capture(event) == "abc123"

    def test_pretty_line(self, capsys):
        transport = ConsoleTransport()
        transport.configure({"format": "pretty"})
        transport.capture(outbound("Disk full"))
        line = printed(capsys.readouterr().out)
        assert line == "[2024-01-02T03:04:05+00:00] ERROR: Disk full (message.template=Disk full)"

    def test_write_failure_returns_none(self):
        transport = ConsoleTransport()
        transport.configure({})
        transport._stream = BrokenStream()
        assert transport.capture(outbound()) is None
        assert transport.flush(1.0) is False

    def test_transaction(self, capsys):
        transport = ConsoleTransport()
        transport.configure({"format": "pretty"})
        assert transport.capture_transaction({"transaction": "checkout", "start_timestamp": "t0"})
        assert printed(capsys.readouterr().out) == "[t0] TRANSACTION: checkout"

    def test_flush_and_close(self):
        transport = ConsoleTransport()
        transport.configure({})
        assert transport.flush(0.1) is True
        transport.close()
