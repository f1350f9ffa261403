# tests/conftest.py
"""Shared test fixtures and hypothesis configuration.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator
from datetime import UTC, datetime

import pytest
from hypothesis import Phase, Verbosity, settings

from sentrybridge.contracts.enums import LogLevel
from sentrybridge.contracts.events import LogEvent
from sentrybridge.core.clock import MockClock
from sentrybridge.sink.context import _contexts, _tags, _user
from tests.fixtures import InMemoryTransport

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def clock() -> MockClock:
    return MockClock(start=1000.0)


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def make_event():
    """Factory for LogEvents with sensible defaults."""

    def _make(
        template: str = "Something failed",
        level: LogLevel = LogLevel.ERROR,
        exception: BaseException | None = None,
        **properties,
    ) -> LogEvent:
        return LogEvent(
            timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC),
            level=level,
            message_template=template,
            properties=properties,
            exception=exception,
        )

    return _make


@pytest.fixture(autouse=True)
def _isolate_scope() -> Iterator[None]:
    """Reset request-scope ContextVars between tests."""
    tokens = (_user.set(None), _tags.set({}), _contexts.set({}))
    yield
    _contexts.reset(tokens[2])
    _tags.reset(tokens[1])
    _user.reset(tokens[0])
