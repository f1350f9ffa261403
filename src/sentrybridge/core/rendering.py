# src/sentrybridge/core/rendering.py
"""Message template rendering.

Interpolates {Name} placeholders from event properties in a single pass:

- {Name:format}  -> format suffix is recognized and ignored (value written as-is)
- {@Name}/{$Name} -> capture hint stripped before lookup
- unresolved placeholders are written verbatim
- a '{' with no closing '}' is written literally

Rendering runs on every admitted event and every breadcrumb, so string
builders are pooled rather than allocated per call.
"""

from __future__ import annotations

import io
from collections import deque
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

# Estimated characters contributed by each property value
_PER_PROPERTY_ESTIMATE = 20

# Builders for estimates above this size are not returned to the pool
_MAX_POOLED_ESTIMATE = 16 * 1024

_POOL_LIMIT = 64


class BuilderPool:
    """Pool of reusable io.StringIO builders.

    deque.append/pop are atomic, so producers on any thread can share the
    pool without a lock. A pooled builder is always empty.
    """

    def __init__(self, limit: int = _POOL_LIMIT) -> None:
        self._free: deque[io.StringIO] = deque()
        self._limit = limit

    def acquire(self) -> io.StringIO:
        try:
            return self._free.pop()
        except IndexError:
            return io.StringIO()

    def release(self, builder: io.StringIO, estimate: int) -> None:
        builder.seek(0)
        builder.truncate(0)
        if estimate <= _MAX_POOLED_ESTIMATE and len(self._free) < self._limit:
            self._free.append(builder)

    def __len__(self) -> int:
        return len(self._free)


_builder_pool = BuilderPool()


def format_value(value: Any) -> str:
    """String form of a property value as written into a rendered message."""
    if value is None:
        return "<nil>"
    if isinstance(value, BaseException):
        return str(value)
    if isinstance(value, datetime):
        return _rfc3339(value)
    return str(value)


def _rfc3339(value: datetime) -> str:
    # Naive timestamps are UTC, as in event payloads
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    text = value.isoformat(timespec="seconds")
    if value.utcoffset() == timedelta(0):
        # RFC 3339 spells the UTC offset as Z
        text = text.removesuffix("+00:00") + "Z"
    return text


def property_name(placeholder: str) -> str:
    """Resolve the property name inside a {...} placeholder.

    Example:
        >>> property_name("@Price:F2")
        'Price'
    """
    name, _, _ = placeholder.partition(":")
    return name.removeprefix("@").removeprefix("$")


def render_message(
    template: str,
    properties: Mapping[str, Any],
    *,
    pool: BuilderPool | None = None,
) -> str:
    """Render a message template with property values.

    Args:
        template: Message template, e.g. "User {UserId} did {Action}"
        properties: Values referenced by the template
        pool: Builder pool (defaults to the module pool)

    Returns:
        Rendered message. Templates whose placeholders all miss are returned
        unchanged.
    """
    if "{" not in template:
        return template

    builders = pool if pool is not None else _builder_pool
    estimate = len(template) + len(properties) * _PER_PROPERTY_ESTIMATE
    builder = builders.acquire()
    try:
        i = 0
        end = len(template)
        while i < end:
            open_at = template.find("{", i)
            if open_at == -1:
                builder.write(template[i:])
                break
            builder.write(template[i:open_at])
            close_at = template.find("}", open_at + 1)
            if close_at == -1:
                builder.write(template[open_at:])
                break
            name = property_name(template[open_at + 1 : close_at])
            if name in properties:
                builder.write(format_value(properties[name]))
            else:
                builder.write(template[open_at : close_at + 1])
            i = close_at + 1
        return builder.getvalue()
    finally:
        builders.release(builder, estimate)
