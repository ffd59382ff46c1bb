"""Digest thresholds — warning/critical ratio pairs, normalized and validated.

Values are accepted as a ratio (0–1], a percentage (1–100] or a string with
a ``%`` suffix. Anything else is a ConfigurationError; nothing is clamped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from vmic.errors import ConfigurationError
from vmic.report import Severity


class Direction(str, Enum):
    HIGHER_IS_WORSE = "higher_is_worse"
    LOWER_IS_WORSE = "lower_is_worse"


@dataclass(frozen=True)
class Threshold:
    name: str
    warning_ratio: float
    critical_ratio: float
    direction: Direction = Direction.HIGHER_IS_WORSE

    def __post_init__(self) -> None:
        for label, value in (("warning", self.warning_ratio), ("critical", self.critical_ratio)):
            if not 0.0 < value <= 1.0:
                raise ConfigurationError(
                    f"{self.name}_{label} must be within (0, 1] as a ratio, got {value!r}"
                )
        if self.direction is Direction.HIGHER_IS_WORSE and self.warning_ratio > self.critical_ratio:
            raise ConfigurationError(
                f"{self.name}_warning ({self.warning_ratio:.2%}) must be <= "
                f"{self.name}_critical ({self.critical_ratio:.2%})"
            )
        if self.direction is Direction.LOWER_IS_WORSE and self.warning_ratio < self.critical_ratio:
            raise ConfigurationError(
                f"{self.name}_warning ({self.warning_ratio:.2%}) must be >= "
                f"{self.name}_critical ({self.critical_ratio:.2%})"
            )

    def classify(self, ratio: float) -> Severity | None:
        """Severity for a measured ratio, or None when below warning."""
        if self.direction is Direction.HIGHER_IS_WORSE:
            if ratio >= self.critical_ratio:
                return Severity.CRITICAL
            if ratio >= self.warning_ratio:
                return Severity.WARNING
            return None
        if ratio <= self.critical_ratio:
            return Severity.CRITICAL
        if ratio <= self.warning_ratio:
            return Severity.WARNING
        return None


@dataclass(frozen=True)
class DigestThresholds:
    disk: Threshold = Threshold("disk", 0.90, 0.95)
    memory: Threshold = Threshold("memory", 0.10, 0.05, Direction.LOWER_IS_WORSE)
    inode: Threshold = Threshold("inode", 0.80, 0.90)

    def get(self, name: str) -> Threshold:
        try:
            return getattr(self, name)
        except AttributeError:
            raise KeyError(name) from None


def normalize_ratio(name: str, value: float | int | str) -> float:
    """Turn a percentage or ratio into a ratio in (0, 1]."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{name}: expected a number, got {value!r}")

    explicit_percent = False
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("%"):
            explicit_percent = True
            text = text[:-1].strip()
        try:
            number = float(text)
        except ValueError:
            raise ConfigurationError(f"{name}: not a number: {value!r}") from None
    else:
        number = float(value)

    if number != number:  # NaN
        raise ConfigurationError(f"{name}: not a number: {value!r}")

    if explicit_percent or number > 1.0:
        if not 0.0 < number <= 100.0:
            raise ConfigurationError(f"{name}: percentage must be within (0, 100], got {value!r}")
        return number / 100.0
    if number <= 0.0:
        raise ConfigurationError(f"{name}: must be greater than 0, got {value!r}")
    return number


def resolve_thresholds(
    disk_warning: float | str,
    disk_critical: float | str,
    memory_warning: float | str,
    memory_critical: float | str,
    inode_warning: float | str = 80,
    inode_critical: float | str = 90,
) -> DigestThresholds:
    return DigestThresholds(
        disk=Threshold(
            "disk",
            normalize_ratio("disk_warning", disk_warning),
            normalize_ratio("disk_critical", disk_critical),
        ),
        memory=Threshold(
            "memory",
            normalize_ratio("memory_warning", memory_warning),
            normalize_ratio("memory_critical", memory_critical),
            Direction.LOWER_IS_WORSE,
        ),
        inode=Threshold(
            "inode",
            normalize_ratio("inode_warning", inode_warning),
            normalize_ratio("inode_critical", inode_critical),
        ),
    )
