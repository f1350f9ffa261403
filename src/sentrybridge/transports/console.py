# src/sentrybridge/transports/console.py
"""Console transport for outbound events.

Writes events to stdout or stderr in JSON or human-readable format.
Used for local debugging and in environments without a DSN.
"""

from __future__ import annotations

import json
import sys
import uuid
from typing import TYPE_CHECKING, Any, Literal, TextIO, TypeGuard

import structlog

from sentrybridge.errors import TransportError

if TYPE_CHECKING:
    from sentrybridge.contracts.events import OutboundEvent

logger = structlog.get_logger(__name__)


def _is_valid_format(v: str) -> TypeGuard[Literal["json", "pretty"]]:
    return v in {"json", "pretty"}


def _is_valid_output(v: str) -> TypeGuard[Literal["stdout", "stderr"]]:
    return v in {"stdout", "stderr"}


class ConsoleTransport:
    """Print events instead of sending them.

    Supports two output formats:
    - json: One event payload per line
    - pretty: [TIMESTAMP] LEVEL: message (tags)

    Configuration options:
        format: "json" (default) or "pretty"
        output: "stdout" (default) or "stderr"

    Every other option (dsn, environment, ...) is accepted and ignored.
    """

    _name = "console"

    _VALID_FORMATS: frozenset[str] = frozenset({"json", "pretty"})
    _VALID_OUTPUTS: frozenset[str] = frozenset({"stdout", "stderr"})

    def __init__(self) -> None:
        self._format: Literal["json", "pretty"] = "json"
        self._output: Literal["stdout", "stderr"] = "stdout"
        self._stream: TextIO = sys.stdout

    @property
    def name(self) -> str:
        return self._name

    def configure(self, options: dict[str, Any]) -> None:
        """Configure output format and stream.

        Raises:
            TransportError: If format or output is invalid
        """
        format_value = options.get("format", "json")
        if not isinstance(format_value, str):
            raise TransportError(self._name, f"'format' must be a string, got {type(format_value).__name__}")
        if _is_valid_format(format_value):
            self._format = format_value
        else:
            raise TransportError(
                self._name,
                f"Invalid format '{format_value}'. Must be one of: {', '.join(sorted(self._VALID_FORMATS))}",
            )

        output_value = options.get("output", "stdout")
        if not isinstance(output_value, str):
            raise TransportError(self._name, f"'output' must be a string, got {type(output_value).__name__}")
        if _is_valid_output(output_value):
            self._output = output_value
        else:
            raise TransportError(
                self._name,
                f"Invalid output '{output_value}'. Must be one of: {', '.join(sorted(self._VALID_OUTPUTS))}",
            )
        self._stream = sys.stdout if self._output == "stdout" else sys.stderr

        logger.debug("Console transport configured", format=self._format, output=self._output)

    def capture(self, event: OutboundEvent) -> str | None:
        """Print one event; returns a fresh id, or None if writing failed."""
        event_id = event.event_id or uuid.uuid4().hex
        payload = event.to_payload()
        payload["event_id"] = event_id
        if self._format == "json":
            line = json.dumps(payload, default=str)
        else:
            line = self._format_pretty(payload)
        return event_id if self._write(line) else None

    def capture_transaction(self, payload: dict[str, Any]) -> str | None:
        event_id = uuid.uuid4().hex
        if self._format == "json":
            line = json.dumps({**payload, "event_id": event_id}, default=str)
        else:
            line = f"[{payload.get('start_timestamp')}] TRANSACTION: {payload.get('transaction')}"
        return event_id if self._write(line) else None

    def _format_pretty(self, payload: dict[str, Any]) -> str:
        line = f"[{payload['timestamp']}] {payload['level'].upper()}: {payload['message']}"
        tags = payload.get("tags") or {}
        if tags:
            details = ", ".join(f"{k}={v}" for k, v in sorted(tags.items()))
            line = f"{line} ({details})"
        return line

    def _write(self, line: str) -> bool:
        try:
            print(line, file=self._stream)
        except Exception as e:
            logger.warning("Failed to write event to console", transport=self._name, error=str(e))
            return False
        return True

    def flush(self, timeout: float) -> bool:
        try:
            self._stream.flush()
        except Exception as e:
            logger.warning("Failed to flush console stream", transport=self._name, error=str(e))
            return False
        return True

    def close(self) -> None:
        """No-op; the console transport does not own its stream."""
