"""Health digest engine — declarative rules over finished sections.

Each rule reads section body fields by dotted path. Ratio rules compare a
derived ratio against one configurable Threshold; byte-floor rules compare
remaining bytes against fixed floors. Independently of the numeric rules,
Error and Degraded sections are promoted to Critical and Warning findings.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from vmic.health.thresholds import DigestThresholds, Direction, Threshold
from vmic.report import Finding, HealthDigest, Section, SectionStatus, Severity

logger = logging.getLogger(__name__)


# ── Body access ──────────────────────────────────────────────────────────────


_MISSING = object()


def get_path(body: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path (``memory.host.total_bytes``) from a body tree."""
    node = body
    for part in path.split("."):
        if isinstance(node, dict):
            node = node.get(part, _MISSING)
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return default
        if node is _MISSING:
            return default
    return node


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def safe_ratio(numerator: Any, denominator: Any) -> float | None:
    num, den = _number(numerator), _number(denominator)
    if num is None or den is None or den <= 0:
        return None
    return num / den


# ── Rules ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Measurement:
    subject: str
    ratio: float


@dataclass(frozen=True)
class RatioRule:
    """Compare one derived ratio per subject against a named threshold."""

    name: str
    section_id: str
    threshold: str
    measure: Callable[[Any], Iterable[Measurement]]
    metric: str

    def evaluate(self, section: Section, thresholds: DigestThresholds) -> list[Finding]:
        threshold = thresholds.get(self.threshold)
        findings = []
        for m in self.measure(section.body):
            severity = threshold.classify(m.ratio)
            if severity is None:
                continue
            findings.append(Finding(
                severity=severity,
                source_id=section.id,
                source_title=section.title,
                message=self._message(m, severity, threshold),
            ))
        return findings

    def _message(self, m: Measurement, severity: Severity, threshold: Threshold) -> str:
        limit = threshold.critical_ratio if severity is Severity.CRITICAL else threshold.warning_ratio
        cmp = "<=" if threshold.direction is Direction.LOWER_IS_WORSE else ">="
        return (
            f"{m.subject}: {self.metric} at {m.ratio:.1%} "
            f"({severity.value} threshold {cmp} {limit:.0%})"
        )


GIB = 1024 ** 3


@dataclass(frozen=True)
class ByteFloorRule:
    """Flag subjects whose remaining bytes fall to a fixed floor (inclusive)."""

    name: str
    section_id: str
    measure: Callable[[Any], Iterable[tuple[str, float]]]
    warning_bytes: float
    critical_bytes: float
    metric: str

    def classify(self, remaining: float) -> Severity | None:
        if remaining <= self.critical_bytes:
            return Severity.CRITICAL
        if remaining <= self.warning_bytes:
            return Severity.WARNING
        return None

    def evaluate(self, section: Section, thresholds: DigestThresholds) -> list[Finding]:
        findings = []
        for subject, remaining in self.measure(section.body):
            severity = self.classify(remaining)
            if severity is None:
                continue
            limit = self.critical_bytes if severity is Severity.CRITICAL else self.warning_bytes
            findings.append(Finding(
                severity=severity,
                source_id=section.id,
                source_title=section.title,
                message=(
                    f"{subject}: {self.metric} {remaining / GIB:.2f} GiB "
                    f"({severity.value} threshold <= {limit / GIB:g} GiB)"
                ),
            ))
        return findings


def _mounts(body: Any) -> list[dict[str, Any]]:
    mounts = get_path(body, "mounts", [])
    if not isinstance(mounts, list):
        return []
    return [m for m in mounts if isinstance(m, dict) and not m.get("read_only")]


def measure_disk_usage(body: Any) -> list[Measurement]:
    out = []
    for mount in _mounts(body):
        if not _number(mount.get("total_bytes")):
            continue
        ratio = _number(mount.get("usage_ratio"))
        if ratio is not None:
            out.append(Measurement(f"Mount {mount.get('mount_point', '?')}", ratio))
    return out


def measure_inode_usage(body: Any) -> list[Measurement]:
    out = []
    for mount in _mounts(body):
        ratio = _number(mount.get("inodes_usage_ratio"))
        if ratio is not None:
            out.append(Measurement(f"Mount {mount.get('mount_point', '?')}", ratio))
    return out


def measure_memory_available(body: Any) -> list[Measurement]:
    ratio = safe_ratio(
        get_path(body, "memory.host.available_bytes"),
        get_path(body, "memory.host.total_bytes"),
    )
    return [] if ratio is None else [Measurement("Host memory", ratio)]


def measure_cgroup_headroom(body: Any) -> list[Measurement]:
    limit = _number(get_path(body, "memory.cgroup.limit_bytes"))
    usage = _number(get_path(body, "memory.cgroup.usage_bytes"))
    if limit is None or usage is None or limit <= 0:
        return []
    return [Measurement("cgroup memory", max(limit - usage, 0.0) / limit)]


BOOT_MOUNTS = frozenset({"/boot", "/boot/efi"})


def measure_free_space(body: Any, only: frozenset[str] | None = None) -> list[tuple[str, float]]:
    out = []
    for mount in _mounts(body):
        point = mount.get("mount_point", "?")
        if only is not None and point not in only:
            continue
        if not _number(mount.get("total_bytes")):
            continue
        available = _number(mount.get("available_bytes"))
        if available is not None:
            out.append((f"Mount {point}", available))
    return out


def measure_boot_free_space(body: Any) -> list[tuple[str, float]]:
    return measure_free_space(body, BOOT_MOUNTS)


BUILTIN_RULES: tuple[RatioRule | ByteFloorRule, ...] = (
    RatioRule("disk_usage", "storage", "disk", measure_disk_usage, "disk usage"),
    ByteFloorRule("free_space", "storage", measure_free_space, 5 * GIB, 2 * GIB, "free space"),
    RatioRule("inode_usage", "storage", "inode", measure_inode_usage, "inode usage"),
    ByteFloorRule("boot_volume", "storage", measure_boot_free_space, 0.5 * GIB, 0.25 * GIB,
                  "boot volume free space"),
    RatioRule("memory_available", "proc", "memory", measure_memory_available, "available memory"),
    RatioRule("cgroup_memory_headroom", "proc", "memory", measure_cgroup_headroom, "memory headroom"),
)


# ── Engine ───────────────────────────────────────────────────────────────────


_ADVISORY_SEVERITIES = {
    "info": Severity.INFO,
    "warning": Severity.WARNING,
    "critical": Severity.CRITICAL,
}


def promote_status(section: Section) -> Finding | None:
    if section.status is SectionStatus.ERROR:
        severity, default = Severity.CRITICAL, "Collector failed"
    elif section.status is SectionStatus.DEGRADED:
        severity, default = Severity.WARNING, "Section is incomplete"
    else:
        return None
    return Finding(
        severity=severity,
        source_id=section.id,
        source_title=section.title,
        message=section.summary or default,
    )


def lift_advisories(section: Section) -> list[Finding]:
    advisories = get_path(section.body, "advisories", [])
    if not isinstance(advisories, list):
        return []
    findings = []
    for advisory in advisories:
        if not isinstance(advisory, dict):
            continue
        severity = _ADVISORY_SEVERITIES.get(str(advisory.get("severity", "")).lower())
        message = advisory.get("message")
        if severity is None or not message:
            logger.debug("Skipping malformed advisory in %s: %r", section.id, advisory)
            continue
        findings.append(Finding(
            severity=severity,
            source_id=section.id,
            source_title=section.title,
            message=str(message),
        ))
    return findings


def overall_severity(sections: Iterable[Section], findings: Iterable[Finding]) -> Severity:
    statuses = {s.status for s in sections}
    severities = {f.severity for f in findings}
    if SectionStatus.ERROR in statuses or Severity.CRITICAL in severities:
        return Severity.CRITICAL
    if SectionStatus.DEGRADED in statuses or Severity.WARNING in severities:
        return Severity.WARNING
    return Severity.OK


class DigestEngine:
    """Turns finished sections into one HealthDigest."""

    def __init__(
        self,
        thresholds: DigestThresholds | None = None,
        rules: Iterable[RatioRule | ByteFloorRule] = BUILTIN_RULES,
    ) -> None:
        self.thresholds = thresholds or DigestThresholds()
        self.rules = tuple(rules)

    def evaluate_section(self, section: Section) -> list[Finding]:
        findings: list[Finding] = []
        promoted = promote_status(section)
        if promoted is not None:
            findings.append(promoted)
        if section.status is not SectionStatus.ERROR:
            for rule in self.rules:
                if rule.section_id == section.id:
                    findings.extend(rule.evaluate(section, self.thresholds))
        findings.extend(lift_advisories(section))
        return findings

    def digest(self, sections: list[Section]) -> HealthDigest:
        findings = [f for s in sections for f in self.evaluate_section(s)]
        overall = overall_severity(sections, findings)
        logger.info(
            "Digest: %s (%d critical, %d warning, %d info)",
            overall.value,
            sum(f.severity is Severity.CRITICAL for f in findings),
            sum(f.severity is Severity.WARNING for f in findings),
            sum(f.severity is Severity.INFO for f in findings),
        )
        return HealthDigest(overall=overall, findings=tuple(findings))
