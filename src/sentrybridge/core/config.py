# src/sentrybridge/core/config.py
"""
Configuration schema and loading for the Sentry sink.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction. Callables (fingerprinter,
before-send processors, custom sampler, metrics callback) are not settings;
they are passed to SentrySink / create_sentry_sink directly.
"""

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from sentrybridge.contracts.enums import LogLevel, SamplingProfile, SamplingStrategy
from sentrybridge.errors import ConfigurationError

DSN_ENV_VAR = "SENTRY_DSN"


class SamplingSettings(BaseModel):
    """Sampling engine configuration.

    The admission predicate of the CUSTOM strategy is not a setting; pass it
    to the sink as custom_sampler. Without one, CUSTOM behaves as FIXED.
    """

    model_config = {"frozen": True}

    strategy: SamplingStrategy = Field(default=SamplingStrategy.OFF, description="Admission strategy")
    rate: float = Field(default=1.0, ge=0.0, le=1.0, description="Base admission probability")
    error_rate: float = Field(default=1.0, ge=0.0, le=1.0, description="Admission probability for Error events")
    fatal_rate: float = Field(default=1.0, ge=0.0, le=1.0, description="Admission probability for Fatal events")
    adaptive_target_eps: int = Field(default=100, gt=0, description="Target events/sec for ADAPTIVE")
    burst_threshold: int = Field(default=1000, gt=0, description="Events/sec that triggers burst mode")
    group_sampling: bool = Field(default=False, description="Enable per-fingerprint quotas")
    group_sample_rate: int = Field(default=10, ge=0, description="Admissions per fingerprint per window")
    group_window: float = Field(default=60.0, gt=0, description="Fingerprint window in seconds")


def fixed_sampling(rate: float) -> SamplingSettings:
    """Fixed-rate sampling; errors and fatals are always admitted."""
    return SamplingSettings(strategy=SamplingStrategy.FIXED, rate=rate)


def adaptive_sampling(target_eps: int) -> SamplingSettings:
    """Adaptive sampling starting at full rate, steering toward target_eps."""
    return SamplingSettings(strategy=SamplingStrategy.ADAPTIVE, rate=1.0, adaptive_target_eps=target_eps)


def priority_sampling(base_rate: float) -> SamplingSettings:
    """Priority sampling boosting events with errors or user context."""
    return SamplingSettings(strategy=SamplingStrategy.PRIORITY, rate=base_rate)


def burst_sampling(threshold: int) -> SamplingSettings:
    """Burst-aware sampling entering backoff above threshold events/sec."""
    return SamplingSettings(strategy=SamplingStrategy.BURST, rate=1.0, burst_threshold=threshold)


def group_sampling(
    events_per_group: int,
    window: float,
    base: SamplingSettings | None = None,
) -> SamplingSettings:
    """Enable per-fingerprint quotas on top of base (default: strategy OFF)."""
    base = base if base is not None else SamplingSettings()
    return base.model_copy(
        update={"group_sampling": True, "group_sample_rate": events_per_group, "group_window": window},
    )


def sampling_profile(profile: SamplingProfile) -> SamplingSettings:
    """Preset sampling configuration for a deployment profile."""
    match profile:
        case SamplingProfile.DEVELOPMENT:
            return SamplingSettings(strategy=SamplingStrategy.OFF)
        case SamplingProfile.PRODUCTION:
            return SamplingSettings(
                strategy=SamplingStrategy.ADAPTIVE,
                rate=0.1,
                adaptive_target_eps=100,
                group_sampling=True,
                group_sample_rate=10,
                group_window=60.0,
            )
        case SamplingProfile.HIGH_VOLUME:
            return SamplingSettings(
                strategy=SamplingStrategy.BURST,
                rate=0.01,
                error_rate=0.1,
                burst_threshold=1000,
                group_sampling=True,
                group_sample_rate=5,
                group_window=60.0,
            )
        case SamplingProfile.CRITICAL:
            return SamplingSettings(strategy=SamplingStrategy.PRIORITY, rate=0.001, error_rate=0.01)
    return SamplingSettings()


class SinkSettings(BaseModel):
    """Sentry sink configuration.

    Levels accept LogLevel members, their integer values, or their names
    ("error", "Warning", ...).
    """

    model_config = {"frozen": True}

    dsn: str | None = Field(default=None, description=f"Service DSN; falls back to ${DSN_ENV_VAR}")
    min_level: LogLevel = Field(default=LogLevel.ERROR, description="Lowest level sent as an event")
    breadcrumb_level: LogLevel = Field(default=LogLevel.DEBUG, description="Lowest level kept as a breadcrumb")
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0, description="Client-level sample rate")
    environment: str | None = Field(default=None, description="Environment tag (production, staging, ...)")
    release: str | None = Field(default=None, description="Release version")
    server_name: str | None = Field(default=None, description="Server name")
    attach_stacktrace: bool = Field(default=True, description="Ask the client to attach stack traces")

    max_breadcrumbs: int = Field(default=100, ge=1, description="Breadcrumb ring capacity")
    breadcrumb_max_age: float = Field(default=300.0, gt=0, description="Breadcrumb max age in seconds")

    batch_size: int = Field(default=100, ge=1, description="Events per size-triggered flush")
    batch_timeout: float = Field(default=5.0, gt=0, description="Idle flush interval in seconds")

    max_retries: int = Field(default=0, ge=0, description="Retries after the first failed attempt")
    retry_backoff: float = Field(default=1.0, ge=0.0, description="Base retry backoff in seconds")
    retry_jitter: float = Field(default=0.0, ge=0.0, le=1.0, description="Jitter factor applied to backoff")

    stack_trace_cache_size: int = Field(default=1000, ge=0, description="Stack-trace cache capacity (0 disables)")
    sampling: SamplingSettings | None = Field(default=None, description="Sampling engine configuration")

    enable_metrics: bool = Field(default=True, description="Collect sink metrics")
    metrics_interval: float | None = Field(default=None, gt=0, description="Metrics callback cadence in seconds")
    flush_timeout: float = Field(default=2.0, gt=0, description="Bounded transport flush on close, in seconds")

    transport: str = Field(default="sentry", description="Transport name (see sentrybridge_get_transports)")
    transport_options: dict[str, Any] = Field(default_factory=dict, description="Extra transport options")

    @field_validator("min_level", "breadcrumb_level", mode="before")
    @classmethod
    def parse_level_name(cls, v: Any) -> Any:
        """Accept level names case-insensitively."""
        if isinstance(v, str) and not v.isdigit():
            try:
                return LogLevel[v.strip().upper()]
            except KeyError:
                valid = ", ".join(level.name.lower() for level in LogLevel)
                raise ValueError(f"Unknown level '{v}'. Must be one of: {valid}") from None
        return v


def resolve_dsn(dsn: str | None) -> str:
    """Return dsn, or the SENTRY_DSN environment variable when dsn is empty.

    Raises:
        ConfigurationError: If neither is set.
    """
    if dsn:
        return dsn
    env_dsn = os.environ.get(DSN_ENV_VAR, "")
    if env_dsn:
        return env_dsn
    raise ConfigurationError("dsn", f"DSN not provided and {DSN_ENV_VAR} environment variable not set")


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        default = match.group(2)
        if default is not None:
            return default
        # No env var and no default - keep original
        return match.group(0)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_VAR_PATTERN.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def load_settings(config_path: Path) -> SinkSettings:
    """Load settings from a YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (SENTRYBRIDGE_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: SENTRYBRIDGE_SAMPLING__RATE for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="SENTRYBRIDGE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; filter out its internal settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lower_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    return SinkSettings(**raw_config)
