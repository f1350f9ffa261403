"""Tests for core.config -- settings validation, DSN resolution, loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from sentrybridge.contracts.enums import LogLevel, SamplingProfile, SamplingStrategy
from sentrybridge.core.config import (
    DSN_ENV_VAR,
    SamplingSettings,
    SinkSettings,
    adaptive_sampling,
    burst_sampling,
    fixed_sampling,
    group_sampling,
    load_settings,
    priority_sampling,
    resolve_dsn,
    sampling_profile,
)
from sentrybridge.errors import ConfigurationError


class TestSinkSettingsDefaults:
    def test_defaults(self):
        settings = SinkSettings()
        assert settings.min_level == LogLevel.ERROR
        assert settings.breadcrumb_level == LogLevel.DEBUG
        assert settings.max_breadcrumbs == 100
        assert settings.batch_size == 100
        assert settings.batch_timeout == 5.0
        assert settings.max_retries == 0
        assert settings.stack_trace_cache_size == 1000
        assert settings.flush_timeout == 2.0
        assert settings.transport == "sentry"
        assert settings.sampling is None

    def test_frozen(self):
        settings = SinkSettings()
        with pytest.raises(ValidationError):
            settings.batch_size = 5  # type: ignore[misc]


class TestSinkSettingsValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"sample_rate": 1.5},
            {"sample_rate": -0.1},
            {"retry_backoff": -1.0},
            {"retry_jitter": 2.0},
            {"batch_size": 0},
            {"batch_timeout": 0},
            {"max_retries": -1},
            {"stack_trace_cache_size": -1},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            SinkSettings(**overrides)

    def test_level_names_case_insensitive(self):
        settings = SinkSettings(min_level="warning", breadcrumb_level="Information")
        assert settings.min_level == LogLevel.WARNING
        assert settings.breadcrumb_level == LogLevel.INFORMATION

    def test_level_integer_accepted(self):
        assert SinkSettings(min_level=5).min_level == LogLevel.FATAL

    def test_unknown_level_name(self):
        with pytest.raises(ValidationError, match="Unknown level"):
            SinkSettings(min_level="loud")

    def test_cache_size_zero_allowed(self):
        assert SinkSettings(stack_trace_cache_size=0).stack_trace_cache_size == 0


class TestSamplingHelpers:
    def test_fixed(self):
        s = fixed_sampling(0.25)
        assert s.strategy == SamplingStrategy.FIXED
        assert s.rate == 0.25
        assert s.error_rate == 1.0
        assert s.fatal_rate == 1.0

    def test_adaptive(self):
        s = adaptive_sampling(50)
        assert s.strategy == SamplingStrategy.ADAPTIVE
        assert s.adaptive_target_eps == 50

    def test_priority(self):
        assert priority_sampling(0.2).strategy == SamplingStrategy.PRIORITY

    def test_burst(self):
        s = burst_sampling(300)
        assert s.strategy == SamplingStrategy.BURST
        assert s.burst_threshold == 300

    def test_group_on_top_of_base(self):
        s = group_sampling(5, 60.0, base=fixed_sampling(0.5))
        assert s.strategy == SamplingStrategy.FIXED
        assert s.group_sampling is True
        assert s.group_sample_rate == 5
        assert s.group_window == 60.0

    def test_rate_out_of_range(self):
        with pytest.raises(ValidationError):
            SamplingSettings(rate=1.2)

    @pytest.mark.parametrize("profile", list(SamplingProfile))
    def test_every_profile_has_preset(self, profile):
        assert isinstance(sampling_profile(profile), SamplingSettings)

    def test_development_profile_samples_nothing_out(self):
        assert sampling_profile(SamplingProfile.DEVELOPMENT).strategy == SamplingStrategy.OFF


class TestResolveDsn:
    def test_argument_wins(self, monkeypatch):
        monkeypatch.setenv(DSN_ENV_VAR, "https://env@example/1")
        assert resolve_dsn("https://arg@example/1") == "https://arg@example/1"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv(DSN_ENV_VAR, "https://env@example/1")
        assert resolve_dsn("") == "https://env@example/1"
        assert resolve_dsn(None) == "https://env@example/1"

    def test_missing_raises(self, monkeypatch):
        monkeypatch.delenv(DSN_ENV_VAR, raising=False)
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_dsn(None)
        assert exc_info.value.setting == "dsn"


class TestLoadSettings:
    def _write(self, tmp_path: Path, text: str) -> Path:
        path = tmp_path / "sentrybridge.yaml"
        path.write_text(text)
        return path

    def test_loads_yaml(self, tmp_path):
        path = self._write(
            tmp_path,
            "min_level: warning\nbatch_size: 25\nsampling:\n  strategy: fixed\n  rate: 0.5\n",
        )
        settings = load_settings(path)
        assert settings.min_level == LogLevel.WARNING
        assert settings.batch_size == 25
        assert settings.sampling is not None
        assert settings.sampling.strategy == SamplingStrategy.FIXED
        assert settings.sampling.rate == 0.5

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APP_RELEASE", "1.2.3")
        path = self._write(tmp_path, 'release: "${APP_RELEASE}"\nenvironment: "${APP_ENV:-staging}"\n')
        settings = load_settings(path)
        assert settings.release == "1.2.3"
        assert settings.environment == "staging"

    def test_environment_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTRYBRIDGE_BATCH_SIZE", "7")
        settings = load_settings(self._write(tmp_path, "batch_size: 25\n"))
        assert settings.batch_size == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_invalid_values_raise_validation_error(self, tmp_path):
        with pytest.raises(ValidationError):
            load_settings(self._write(tmp_path, "sample_rate: 3\n"))
