"""Configuration — layered settings resolved into one immutable value.

Precedence: explicit (command line) > environment (VMIC_*, .env) >
YAML config file > built-in defaults. ``resolve_configuration`` validates
everything and raises ConfigurationError before any collector runs.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from vmic.errors import ConfigurationError
from vmic.health.thresholds import DigestThresholds, resolve_thresholds

logger = logging.getLogger(__name__)


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


class Settings(BaseSettings):
    """Raw settings loaded from environment / .env file / explicit values."""

    model_config = SettingsConfigDict(
        env_prefix="VMIC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Output
    format: str = "markdown"
    output: str = "-"  # "-" = stdout

    # Time-range filter for log collectors
    since: str | None = None

    # Digest thresholds: percentage (0-100), ratio (0-1) or "NN%"
    disk_warning: float | str = 90
    disk_critical: float | str = 95
    memory_warning: float | str = 10
    memory_critical: float | str = 5
    inode_warning: float | str = 80
    inode_critical: float | str = 90

    # Collector selection (comma-separated keys)
    only: str = ""
    disable: str = ""
    journal: bool = True  # feature flag for the journal collector

    # Orchestration
    collector_timeout: float = 10.0  # seconds
    global_timeout: float = 60.0  # seconds
    max_workers: int = 8

    docker_socket: str = "/var/run/docker.sock"

    # Logging
    log_level: str = "WARNING"

    @field_validator("only", "disable", mode="before")
    @classmethod
    def _join_keys(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set)):
            return ",".join(str(v) for v in value)
        return value


@dataclass(frozen=True)
class Configuration:
    """Resolved, validated, immutable configuration for one run."""

    output_format: OutputFormat = OutputFormat.MARKDOWN
    output: Path | None = None  # None = stdout
    since: str | None = None
    thresholds: DigestThresholds = DigestThresholds()
    only: frozenset[str] = frozenset()
    disabled: frozenset[str] = frozenset()
    journal_enabled: bool = True
    collector_timeout: float = 10.0
    global_timeout: float = 60.0
    max_workers: int = 8
    docker_socket: str = "/var/run/docker.sock"
    log_level: str = "WARNING"

    def collector_enabled(self, key: str) -> bool:
        if self.only:
            return key in self.only
        return key not in self.disabled


# ── Loading ──────────────────────────────────────────────────────────────────


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Parse a YAML config file into a flat settings mapping."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    # A nested "thresholds:" block is flattened
    values = {k: v for k, v in raw.items() if k != "thresholds"}
    thresholds = raw.get("thresholds") or {}
    if not isinstance(thresholds, dict):
        raise ConfigurationError(f"{path}: 'thresholds' must be a mapping")
    values.update(thresholds)

    unknown = sorted(set(values) - set(Settings.model_fields))
    if unknown:
        raise ConfigurationError(f"{path}: unknown settings: {', '.join(unknown)}")
    return values


def load_settings(config_file: str | Path | None = None, **overrides: Any) -> Settings:
    """Build Settings honouring explicit > env > file > default."""
    explicit = {k: v for k, v in overrides.items() if v is not None}
    try:
        file_values: dict[str, Any] = {}
        if config_file:
            file_values = load_config_file(config_file)
            from_env = Settings().model_fields_set
            file_values = {k: v for k, v in file_values.items() if k not in from_env}
        return Settings(**{**file_values, **explicit})
    except (ValidationError, SettingsError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


# ── Resolution ───────────────────────────────────────────────────────────────


_RELATIVE_SINCE = re.compile(r"^-?(\d+)\s*(s|sec|m|min|h|d|w)$")
_ABSOLUTE_SINCE = re.compile(r"^\d{4}-\d{2}-\d{2}( \d{2}:\d{2}(:\d{2})?)?$")
_SINCE_KEYWORDS = {"today", "yesterday", "now"}


def normalize_since(value: str | None) -> str | None:
    """Validate a time-range filter and return it in journalctl syntax."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    match = _RELATIVE_SINCE.match(text)
    if match:
        amount, unit = match.groups()
        if int(amount) == 0:
            raise ConfigurationError(f"since: empty time range: {value!r}")
        return f"-{amount}{unit}"
    if text in _SINCE_KEYWORDS or _ABSOLUTE_SINCE.match(text):
        return text
    raise ConfigurationError(
        f"since: unsupported time filter {value!r} "
        "(use e.g. 30m, 2h, 7d, today, yesterday or YYYY-MM-DD [HH:MM[:SS]])"
    )


def _split_keys(raw: str) -> frozenset[str]:
    return frozenset(k.strip() for k in raw.split(",") if k.strip())


def resolve_configuration(settings: Settings, known_collectors: Iterable[str]) -> Configuration:
    """Validate settings and freeze them into a Configuration."""
    try:
        output_format = OutputFormat(settings.format.lower())
    except ValueError:
        raise ConfigurationError(
            f"format must be one of {', '.join(f.value for f in OutputFormat)}, got {settings.format!r}"
        ) from None

    only = _split_keys(settings.only)
    disabled = _split_keys(settings.disable)
    if only and disabled:
        raise ConfigurationError("'only' and 'disable' are mutually exclusive")

    known = set(known_collectors)
    unknown = sorted((only | disabled) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown collector(s): {', '.join(unknown)} (known: {', '.join(sorted(known))})"
        )

    for name in ("collector_timeout", "global_timeout"):
        if getattr(settings, name) <= 0:
            raise ConfigurationError(f"{name} must be positive")
    if settings.max_workers < 1:
        raise ConfigurationError("max_workers must be at least 1")

    level = settings.log_level.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"Unknown log level: {settings.log_level!r}")

    thresholds = resolve_thresholds(
        settings.disk_warning,
        settings.disk_critical,
        settings.memory_warning,
        settings.memory_critical,
        settings.inode_warning,
        settings.inode_critical,
    )

    output = None if settings.output in ("", "-") else Path(settings.output)
    if output is not None and output.is_dir():
        raise ConfigurationError(f"Output path is a directory: {output}")

    config = Configuration(
        output_format=output_format,
        output=output,
        since=normalize_since(settings.since),
        thresholds=thresholds,
        only=only,
        disabled=disabled,
        journal_enabled=settings.journal,
        collector_timeout=settings.collector_timeout,
        global_timeout=settings.global_timeout,
        max_workers=settings.max_workers,
        docker_socket=settings.docker_socket,
        log_level=level,
    )
    logger.debug("Resolved configuration: %s", config)
    return config
