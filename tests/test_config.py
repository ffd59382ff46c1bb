"""Tests for layered settings and configuration resolution."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from vmic.config import (
    Configuration,
    OutputFormat,
    Settings,
    load_config_file,
    load_settings,
    normalize_since,
    resolve_configuration,
)
from vmic.errors import ConfigurationError
from vmic.registry import build_registry

KNOWN = build_registry().keys()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No VMIC_* variables and no stray .env file."""
    for name in list(os.environ):
        if name.startswith("VMIC_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "vmic.yaml"
    path.write_text(text)
    return path


# ── Settings layering ────────────────────────────────────────────────────────


class TestLoadSettings:
    def test_defaults(self) -> None:
        s = load_settings()
        assert s.format == "markdown"
        assert s.collector_timeout == 10.0
        assert s.max_workers == 8
        assert s.docker_socket == "/var/run/docker.sock"

    def test_env_overrides_default(self, monkeypatch) -> None:
        monkeypatch.setenv("VMIC_DISK_WARNING", "85")
        monkeypatch.setenv("VMIC_MAX_WORKERS", "2")
        s = load_settings()
        assert float(s.disk_warning) == 85
        assert s.max_workers == 2

    def test_explicit_overrides_env(self, monkeypatch) -> None:
        monkeypatch.setenv("VMIC_FORMAT", "json")
        assert load_settings(format="markdown").format == "markdown"

    def test_none_overrides_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("VMIC_FORMAT", "json")
        assert load_settings(format=None).format == "json"

    def test_file_below_env(self, monkeypatch, tmp_path) -> None:
        path = write_yaml(tmp_path, "format: json\nmax_workers: 3\n")
        monkeypatch.setenv("VMIC_MAX_WORKERS", "5")
        s = load_settings(path)
        assert s.format == "json"
        assert s.max_workers == 5

    def test_file_below_explicit(self, tmp_path) -> None:
        path = write_yaml(tmp_path, "format: json\n")
        assert load_settings(path, format="markdown").format == "markdown"

    def test_nested_thresholds_block(self, tmp_path) -> None:
        path = write_yaml(tmp_path, "thresholds:\n  disk_warning: 70\n  disk_critical: '80%'\n")
        s = load_settings(path)
        assert float(s.disk_warning) == 70
        assert s.disk_critical == "80%"

    def test_list_values_for_selection(self, tmp_path) -> None:
        path = write_yaml(tmp_path, "disable:\n  - sar\n  - journal\n")
        assert load_settings(path).disable == "sar,journal"

    def test_invalid_type_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            load_settings(max_workers="many")


class TestConfigFile:
    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config_file(tmp_path / "nope.yaml")

    def test_unknown_key(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="colour"):
            load_config_file(write_yaml(tmp_path, "colour: blue\n"))

    def test_not_a_mapping(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            load_config_file(write_yaml(tmp_path, "- a\n- b\n"))

    def test_bad_yaml(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            load_config_file(write_yaml(tmp_path, "format: [unclosed\n"))

    def test_empty_file(self, tmp_path) -> None:
        assert load_config_file(write_yaml(tmp_path, "")) == {}


# ── Resolution ───────────────────────────────────────────────────────────────


class TestResolveConfiguration:
    def test_defaults_resolve(self) -> None:
        config = resolve_configuration(Settings(), KNOWN)
        assert config.output_format is OutputFormat.MARKDOWN
        assert config.output is None
        assert config.thresholds.disk.warning_ratio == pytest.approx(0.90)
        assert config.journal_enabled is True
        assert config.log_level == "WARNING"

    def test_configuration_is_frozen(self) -> None:
        config = resolve_configuration(Settings(), KNOWN)
        with pytest.raises(AttributeError):
            config.max_workers = 1

    def test_only_and_disable_exclusive(self) -> None:
        with pytest.raises(ConfigurationError, match="mutually exclusive"):
            resolve_configuration(Settings(only="os", disable="sar"), KNOWN)

    def test_unknown_collector(self) -> None:
        with pytest.raises(ConfigurationError, match="bogus"):
            resolve_configuration(Settings(only="os,bogus"), KNOWN)

    def test_only_selection(self) -> None:
        config = resolve_configuration(Settings(only="os, proc"), KNOWN)
        assert config.collector_enabled("os")
        assert not config.collector_enabled("storage")

    def test_disable_selection(self) -> None:
        config = resolve_configuration(Settings(disable="sar"), KNOWN)
        assert not config.collector_enabled("sar")
        assert config.collector_enabled("os")

    def test_threshold_out_of_range(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_configuration(Settings(disk_critical=120), KNOWN)

    def test_threshold_wrong_order(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_configuration(Settings(disk_warning=96, disk_critical=95), KNOWN)

    def test_memory_order_is_inverted(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_configuration(Settings(memory_warning=5, memory_critical=10), KNOWN)

    @pytest.mark.parametrize("field", ["collector_timeout", "global_timeout"])
    def test_non_positive_timeouts(self, field) -> None:
        with pytest.raises(ConfigurationError, match=field):
            resolve_configuration(Settings(**{field: 0}), KNOWN)

    def test_bad_format(self) -> None:
        with pytest.raises(ConfigurationError, match="format"):
            resolve_configuration(Settings(format="html"), KNOWN)

    def test_bad_log_level(self) -> None:
        with pytest.raises(ConfigurationError, match="log level"):
            resolve_configuration(Settings(log_level="LOUD"), KNOWN)

    def test_output_path(self, tmp_path) -> None:
        config = resolve_configuration(Settings(output=str(tmp_path / "r.md")), KNOWN)
        assert config.output == tmp_path / "r.md"

    def test_output_directory_rejected(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            resolve_configuration(Settings(output=str(tmp_path)), KNOWN)


class TestSince:
    @pytest.mark.parametrize("value, expected", [
        ("30m", "-30m"),
        ("2h", "-2h"),
        ("7d", "-7d"),
        ("today", "today"),
        ("yesterday", "yesterday"),
        ("2024-05-01", "2024-05-01"),
        ("2024-05-01 10:00", "2024-05-01 10:00"),
        ("2024-05-01 10:00:30", "2024-05-01 10:00:30"),
        (None, None),
        ("  ", None),
    ])
    def test_accepted(self, value, expected) -> None:
        assert normalize_since(value) == expected

    @pytest.mark.parametrize("value", ["0h", "last week", "2024/05/01", "5 parsecs"])
    def test_rejected(self, value) -> None:
        with pytest.raises(ConfigurationError):
            normalize_since(value)


def test_default_configuration_matches_settings_defaults() -> None:
    resolved = resolve_configuration(Settings(), KNOWN)
    assert resolved == Configuration(output_format=OutputFormat.MARKDOWN)
