"""Security posture — sshd hardening, sudoers, cgroup hierarchy."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.errors import AdapterError, NotFound, PermissionDenied
from vmic.report import Section
from vmic.sources.base import DataSource

SSHD_CONFIG = "/etc/ssh/sshd_config"
SUDOERS = "/etc/sudoers"
CGROUP_CONTROLLERS = "/sys/fs/cgroup/cgroup.controllers"


def _advisory(severity: str, message: str) -> dict[str, str]:
    return {"severity": severity, "message": message}


def analyze_sshd_config(text: str) -> dict[str, Any]:
    settings: dict[str, str] = {}
    hardening = False
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        key = parts[0].lower()
        value = parts[1].strip().lower() if len(parts) > 1 else ""
        if key == "match":
            break  # conditional blocks don't change the global defaults
        if key in ("kexalgorithms", "ciphers", "macs"):
            hardening = True
        # First occurrence wins in sshd_config
        settings.setdefault(key, value)

    findings = []
    if settings.get("passwordauthentication") == "yes":
        findings.append(_advisory("warning", "PasswordAuthentication is enabled"))
    if settings.get("permitrootlogin") in ("yes", "without-password"):
        findings.append(_advisory("critical", "PermitRootLogin allows direct root access"))
    if settings.get("challengeresponseauthentication") == "yes":
        findings.append(_advisory("warning", "ChallengeResponseAuthentication is enabled"))
    if "1" in settings.get("protocol", ""):
        findings.append(_advisory("critical", "SSH protocol version 1 is allowed"))
    return {"present": True, "hardening_present": hardening, "findings": findings}


def analyze_sudoers(text: str) -> dict[str, Any]:
    lines = text.splitlines()
    findings = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if "NOPASSWD:" in line and "ALL" in line:
            findings.append(_advisory("warning", f"Potential password-less sudo entry: {line}"))
        if "ALL=(ALL) ALL" in line and line.split()[0] == "ALL":
            findings.append(_advisory("critical", "Wildcard sudo entry grants full access"))
    includes_dir = any(
        line.strip().startswith(("#includedir", "@includedir")) for line in lines
    )
    return {"present": True, "analysed": True, "includes_dir": includes_dir, "findings": findings}


class SecurityCollector(Collector):
    key = "security"
    title = "Security Posture"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()

        sshd: dict[str, Any] = {"present": False, "hardening_present": False, "findings": []}
        raw = b.optional_read(source, SSHD_CONFIG, "sshd_config")
        if raw is not None:
            sshd = analyze_sshd_config(raw)

        sudoers: dict[str, Any] = {
            "present": False, "analysed": False, "includes_dir": False, "findings": [],
        }
        try:
            sudoers = analyze_sudoers(source.read_text(SUDOERS))
        except NotFound:
            pass
        except PermissionDenied:
            # Mode 0440 on most distributions; unprivileged runs cannot read it
            sudoers["present"] = True
            b.note("sudoers: not analysed, /etc/sudoers is readable by root only")
        except AdapterError as e:
            b.optional_failure(e, "sudoers")

        cgroups: dict[str, Any] = {"unified_hierarchy": False, "controllers": [], "findings": []}
        raw = b.optional_read(source, CGROUP_CONTROLLERS, "cgroup controllers")
        if raw is not None:
            cgroups["unified_hierarchy"] = True
            cgroups["controllers"] = sorted(raw.split())
        elif not source.exists(CGROUP_CONTROLLERS):
            cgroups["findings"].append(
                _advisory("warning", "Host is not running with cgroup v2 unified hierarchy")
            )

        advisories = sshd["findings"] + sudoers["findings"] + cgroups["findings"]
        body = {
            "sshd": sshd,
            "sudoers": sudoers,
            "cgroups": cgroups,
            "advisories": advisories,
        }
        if advisories:
            summary = f"{len(advisories)} potential security issue(s)"
        else:
            summary = "No high-risk findings detected"
        return b.build(body, summary)
