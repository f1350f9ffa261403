# src/sentrybridge/sink/cache.py
"""Bounded cache of extracted stack traces.

Walking a traceback and reading source lines is the most expensive part of
converting an error event, and production traffic is dominated by a few
recurring errors. Errors with the same type identity and message share one
cache entry.

Eviction is FIFO on insertion: reads never reorder entries and updating an
existing key keeps its position. A capacity of 0 disables the cache.
"""

import linecache
import threading
import traceback
from collections import OrderedDict

from sentrybridge.contracts.events import ExceptionInfo, StackFrame
from sentrybridge.core.fingerprint import exception_type_name

Trace = tuple[StackFrame, ...]


def cache_key(exc: BaseException) -> str:
    """Cache identity of an error: '<module.qualname>:<message>'."""
    cls = type(exc)
    return f"{cls.__module__}.{cls.__qualname__}:{exc}"


class StackTraceCache:
    """Thread-safe bounded mapping from cache key to extracted trace.

    Example:
        cache = StackTraceCache(max_size=3)
        for i in range(5):
            cache.set(f"k{i}", trace)
        cache.get("k0")  # None - evicted
        cache.get("k4")  # trace
    """

    def __init__(self, max_size: int) -> None:
        """Initialize the cache.

        Args:
            max_size: Capacity. 0 (or negative) disables caching.
        """
        self._max_size = max(0, max_size)
        self._entries: OrderedDict[str, Trace] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._max_size > 0

    def get(self, key: str) -> Trace | None:
        """Return the cached trace, or None when absent or disabled."""
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, trace: Trace) -> None:
        """Insert or update a trace, evicting the oldest insertion at capacity."""
        if self._max_size == 0:
            return
        with self._lock:
            if key in self._entries:
                # OrderedDict keeps the original position on reassignment
                self._entries[key] = trace
                return
            if len(self._entries) >= self._max_size:
                self._entries.popitem(last=False)
            self._entries[key] = trace

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def extract_trace(exc: BaseException) -> Trace:
    """Frames of the exception's traceback, oldest first.

    Returns an empty tuple for exceptions that were never raised.
    """
    frames: list[StackFrame] = []
    for frame, lineno in traceback.walk_tb(exc.__traceback__):
        filename = frame.f_code.co_filename
        line = linecache.getline(filename, lineno).strip() if lineno is not None else ""
        frames.append(
            StackFrame(
                filename=filename,
                function=frame.f_code.co_name,
                lineno=lineno,
                module=frame.f_globals.get("__name__"),
                context_line=line or None,
                in_app="site-packages" not in filename,
            )
        )
    return tuple(frames)


def extract_exception(exc: BaseException, cache: StackTraceCache | None = None) -> ExceptionInfo:
    """Build the outbound exception record, consulting the trace cache.

    Args:
        exc: Error attached to the log event
        cache: Trace cache, or None to always extract

    Returns:
        ExceptionInfo with type, message, module, and frames
    """
    key = cache_key(exc)
    frames = cache.get(key) if cache is not None else None
    if frames is None:
        frames = extract_trace(exc)
        # Only non-empty traces are worth remembering
        if cache is not None and frames:
            cache.set(key, frames)
    return ExceptionInfo(
        type=exception_type_name(exc),
        value=str(exc),
        module=type(exc).__module__,
        frames=frames,
    )
