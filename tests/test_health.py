"""Tests for digest thresholds and the digest engine."""

from __future__ import annotations

import pytest

from vmic.errors import ConfigurationError
from vmic.health import (
    DigestEngine,
    DigestThresholds,
    Direction,
    Threshold,
    normalize_ratio,
    overall_severity,
    resolve_thresholds,
)
from vmic.health.engine import GIB, get_path
from vmic.report import Finding, Section, SectionStatus, Severity


def storage_section(*mounts: dict) -> Section:
    return Section.ok("storage", "Storage Overview", {"mounts": list(mounts)})


def mount(point: str, usage: float, inodes: float | None = 0.1, **extra) -> dict:
    return {
        "mount_point": point,
        "total_bytes": 1000,
        "usage_ratio": usage,
        "inodes_usage_ratio": inodes,
        "read_only": False,
        **extra,
    }


def proc_section(available: int, total: int = 100, cgroup: dict | None = None) -> Section:
    return Section.ok("proc", "Processes & Resources", {
        "memory": {
            "host": {"total_bytes": total, "available_bytes": available},
            "cgroup": cgroup,
        },
    })


# ── normalize_ratio ──────────────────────────────────────────────────────────


class TestNormalizeRatio:
    @pytest.mark.parametrize("value, expected", [
        (90, 0.90),
        (0.9, 0.9),
        ("95%", 0.95),
        ("0.5%", 0.005),
        ("80", 0.80),
        (1, 1.0),
        (100, 1.0),
    ])
    def test_accepted(self, value, expected) -> None:
        assert normalize_ratio("disk_warning", value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [0, -5, 150, "101%", "abc", "", True, float("nan"), "0%"])
    def test_rejected(self, value) -> None:
        with pytest.raises(ConfigurationError):
            normalize_ratio("disk_warning", value)


# ── Threshold ────────────────────────────────────────────────────────────────


class TestThreshold:
    def test_warning_above_critical_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="disk_warning"):
            Threshold("disk", 0.96, 0.95)

    def test_inverted_order_for_lower_is_worse(self) -> None:
        Threshold("memory", 0.10, 0.05, Direction.LOWER_IS_WORSE)
        with pytest.raises(ConfigurationError):
            Threshold("memory", 0.05, 0.10, Direction.LOWER_IS_WORSE)

    def test_equal_bounds_allowed(self) -> None:
        t = Threshold("disk", 0.9, 0.9)
        assert t.classify(0.9) == Severity.CRITICAL

    def test_classification_boundaries(self) -> None:
        t = Threshold("disk", 0.90, 0.95)
        assert t.classify(0.95) == Severity.CRITICAL
        assert t.classify(0.99) == Severity.CRITICAL
        assert t.classify(0.90) == Severity.WARNING
        assert t.classify(0.9499) == Severity.WARNING
        assert t.classify(0.8999) is None

    def test_inverted_classification(self) -> None:
        t = Threshold("memory", 0.10, 0.05, Direction.LOWER_IS_WORSE)
        assert t.classify(0.03) == Severity.CRITICAL
        assert t.classify(0.05) == Severity.CRITICAL
        assert t.classify(0.08) == Severity.WARNING
        assert t.classify(0.5) is None

    def test_classification_consistent_with_ratio(self) -> None:
        t = Threshold("disk", 0.7, 0.85)
        for i in range(0, 101):
            r = i / 100
            sev = t.classify(r)
            if r >= t.critical_ratio:
                assert sev == Severity.CRITICAL
            elif r >= t.warning_ratio:
                assert sev == Severity.WARNING
            else:
                assert sev is None

    def test_resolve_thresholds_from_percentages(self) -> None:
        t = resolve_thresholds(80, "90%", 15, 0.05)
        assert t.disk.warning_ratio == pytest.approx(0.8)
        assert t.disk.critical_ratio == pytest.approx(0.9)
        assert t.memory.warning_ratio == pytest.approx(0.15)
        assert t.memory.direction is Direction.LOWER_IS_WORSE

    def test_defaults(self) -> None:
        t = DigestThresholds()
        assert (t.disk.warning_ratio, t.disk.critical_ratio) == (0.90, 0.95)
        assert (t.memory.warning_ratio, t.memory.critical_ratio) == (0.10, 0.05)
        assert (t.inode.warning_ratio, t.inode.critical_ratio) == (0.80, 0.90)
        with pytest.raises(KeyError):
            t.get("cpu")


# ── Engine ───────────────────────────────────────────────────────────────────


class TestDigestEngine:
    def test_scenario_disk_critical(self) -> None:
        engine = DigestEngine(resolve_thresholds(90, 95, 10, 5))
        digest = engine.digest([storage_section(mount("/data", 0.96))])
        assert digest.overall == Severity.CRITICAL
        [finding] = digest.findings
        assert finding.severity == Severity.CRITICAL
        assert "/data" in finding.message
        assert finding.source_title == "Storage Overview"

    def test_scenario_memory_critical(self) -> None:
        engine = DigestEngine(resolve_thresholds(90, 95, 10, 5))
        digest = engine.digest([
            storage_section(mount("/data", 0.96)),
            proc_section(available=3),
        ])
        critical = [f for f in digest.findings if f.severity == Severity.CRITICAL]
        assert len(critical) == 2
        assert critical[1].source_id == "proc"
        assert "Host memory" in critical[1].message
        assert digest.overall == Severity.CRITICAL

    def test_scenario_error_section_promoted(self) -> None:
        docker = Section.error("docker", "Docker Engine", "Docker daemon unreachable",
                               notes=["daemon unreachable"])
        os_section = Section.ok("os", "Operating System", {})
        digest = DigestEngine().digest([os_section, docker])
        [finding] = digest.findings
        assert finding.severity == Severity.CRITICAL
        assert finding.source_title == "Docker Engine"
        assert finding.message == "Docker daemon unreachable"
        assert digest.overall == Severity.CRITICAL

    def test_degraded_promoted_to_warning(self) -> None:
        s = Section.degraded("users", "Local Users", {"users": []})
        digest = DigestEngine().digest([s])
        assert digest.findings[0].severity == Severity.WARNING
        assert digest.findings[0].message  # default message
        assert digest.overall == Severity.WARNING

    def test_disk_warning_band(self) -> None:
        digest = DigestEngine().digest([storage_section(mount("/", 0.92))])
        assert [f.severity for f in digest.findings] == [Severity.WARNING]
        assert digest.overall == Severity.WARNING

    def test_below_warning_no_finding(self) -> None:
        digest = DigestEngine().digest([storage_section(mount("/", 0.5))])
        assert digest.findings == ()
        assert digest.overall == Severity.OK

    def test_read_only_and_zero_size_mounts_skipped(self) -> None:
        digest = DigestEngine().digest([storage_section(
            mount("/snap/core", 1.0, read_only=True),
            mount("/empty", 1.0, total_bytes=0),
        )])
        assert all("disk usage" not in f.message for f in digest.findings)

    @pytest.mark.parametrize("available, expected", [
        (2 * GIB, [Severity.CRITICAL]),
        (2 * GIB + 1, [Severity.WARNING]),
        (5 * GIB, [Severity.WARNING]),
        (5 * GIB + 1, []),
        (0, [Severity.CRITICAL]),
    ])
    def test_free_space_bands(self, available, expected) -> None:
        digest = DigestEngine().digest([storage_section(mount("/srv", 0.5, available_bytes=available))])
        assert [f.severity for f in digest.findings] == expected
        assert all("free space" in f.message for f in digest.findings)

    def test_free_space_message(self) -> None:
        digest = DigestEngine().digest([storage_section(mount("/srv", 0.5, available_bytes=GIB))])
        [finding] = digest.findings
        assert finding.message == "Mount /srv: free space 1.00 GiB (critical threshold <= 2 GiB)"

    def test_free_space_skips_read_only_zero_size_and_unknown(self) -> None:
        digest = DigestEngine().digest([storage_section(
            mount("/snap/core", 0.5, read_only=True, available_bytes=0),
            mount("/empty", 0.5, total_bytes=0, available_bytes=0),
            mount("/unknown", 0.5),
        )])
        assert digest.findings == ()

    @pytest.mark.parametrize("point", ["/boot", "/boot/efi"])
    @pytest.mark.parametrize("available, expected", [
        (GIB // 4, Severity.CRITICAL),
        (GIB // 4 + 1, Severity.WARNING),
        (GIB // 2, Severity.WARNING),
        (GIB // 2 + 1, None),
    ])
    def test_boot_volume_bands(self, point, available, expected) -> None:
        digest = DigestEngine().digest([storage_section(mount(point, 0.5, available_bytes=available))])
        boot = [f.severity for f in digest.findings if "boot volume" in f.message]
        assert boot == ([] if expected is None else [expected])
        assert digest.overall == Severity.CRITICAL  # free_space floor applies as well

    def test_boot_volume_only_for_boot_mounts(self) -> None:
        digest = DigestEngine().digest([storage_section(
            mount("/bootstrap", 0.5, available_bytes=GIB // 8),
        )])
        assert all("boot volume" not in f.message for f in digest.findings)

    def test_inode_rule(self) -> None:
        digest = DigestEngine().digest([storage_section(mount("/var", 0.1, inodes=0.85))])
        [finding] = digest.findings
        assert finding.severity == Severity.WARNING
        assert "inode usage" in finding.message

    def test_cgroup_headroom(self) -> None:
        s = proc_section(available=50, cgroup={"limit_bytes": 1000, "usage_bytes": 980})
        digest = DigestEngine().digest([s])
        [finding] = digest.findings
        assert finding.severity == Severity.CRITICAL
        assert "cgroup memory" in finding.message

    def test_unlimited_cgroup_ignored(self) -> None:
        s = proc_section(available=50, cgroup={"limit_bytes": None, "usage_bytes": 980})
        assert DigestEngine().digest([s]).findings == ()

    def test_error_section_skips_numeric_rules(self) -> None:
        s = Section(id="storage", title="Storage Overview", status=SectionStatus.ERROR,
                    summary="gone", body={"mounts": [mount("/", 0.99)]})
        digest = DigestEngine().digest([s])
        assert len(digest.findings) == 1

    def test_advisories_lifted(self) -> None:
        s = Section.ok("security", "Security Posture", {"advisories": [
            {"severity": "critical", "message": "PermitRootLogin allows direct root access"},
            {"severity": "bogus", "message": "ignored"},
            {"severity": "info", "message": "fine"},
        ]})
        digest = DigestEngine().digest([s])
        assert [f.severity for f in digest.findings] == [Severity.CRITICAL, Severity.INFO]
        assert digest.overall == Severity.CRITICAL

    def test_info_findings_do_not_raise_overall(self) -> None:
        s = Section.ok("network", "Network Overview", {"advisories": [
            {"severity": "info", "message": "Listener bound to all interfaces"},
        ]})
        assert DigestEngine().digest([s]).overall == Severity.OK

    def test_findings_follow_section_then_rule_order(self) -> None:
        digest = DigestEngine().digest([
            storage_section(mount("/a", 0.99, inodes=0.95), mount("/b", 0.91)),
            proc_section(available=8),
        ])
        assert [f.message.split(":")[0] for f in digest.findings] == [
            "Mount /a", "Mount /b", "Mount /a", "Host memory",
        ]


class TestOverallSeverity:
    @pytest.mark.parametrize("statuses, severities, expected", [
        ([], [], Severity.OK),
        ([SectionStatus.OK], [Severity.INFO], Severity.OK),
        ([SectionStatus.DEGRADED], [], Severity.WARNING),
        ([SectionStatus.OK], [Severity.WARNING], Severity.WARNING),
        ([SectionStatus.ERROR], [], Severity.CRITICAL),
        ([SectionStatus.DEGRADED], [Severity.CRITICAL], Severity.CRITICAL),
    ])
    def test_monotonic_rule(self, statuses, severities, expected) -> None:
        sections = [
            Section(id=f"s{i}", title=f"S{i}", status=st) for i, st in enumerate(statuses)
        ]
        findings = [
            Finding(severity=sev, source_title="x", message="m") for sev in severities
        ]
        assert overall_severity(sections, findings) == expected


class TestGetPath:
    def test_nested(self) -> None:
        body = {"memory": {"host": {"total_bytes": 5}}, "items": [{"a": 1}]}
        assert get_path(body, "memory.host.total_bytes") == 5
        assert get_path(body, "items.0.a") == 1
        assert get_path(body, "memory.cgroup.limit_bytes", "d") == "d"
        assert get_path(None, "a") is None
