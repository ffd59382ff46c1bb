"""Operating system identity — /etc/os-release, uname, uptime."""

from __future__ import annotations

import shlex
from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.report import Section
from vmic.sources.base import DataSource


def parse_os_release(text: str) -> dict[str, str]:
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


def parse_uptime(text: str) -> float | None:
    try:
        return float(text.split()[0])
    except (IndexError, ValueError):
        return None


class OsCollector(Collector):
    key = "os"
    title = "Operating System"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        release = parse_os_release(source.read_text("/etc/os-release"))
        identity = source.identity()

        os_release: dict[str, Any] = {
            "pretty_name": release.get("PRETTY_NAME") or release.get("NAME", "Linux"),
            "name": release.get("NAME", "Linux"),
            "id": release.get("ID"),
            "version": release.get("VERSION"),
            "version_id": release.get("VERSION_ID"),
            "id_like": sorted(release.get("ID_LIKE", "").split()),
        }

        uptime_seconds = None
        raw_uptime = b.optional_read(source, "/proc/uptime", "uptime")
        if raw_uptime is not None:
            uptime_seconds = parse_uptime(raw_uptime)
            if uptime_seconds is None:
                b.degraded = True
                b.note("uptime: /proc/uptime is malformed")

        body = {
            "hostname": identity.hostname,
            "os_release": os_release,
            "kernel": {
                "release": identity.kernel_release,
                "version": identity.kernel_version,
                "machine": identity.machine,
            },
            "uptime_seconds": uptime_seconds,
        }
        summary = f"{os_release['pretty_name']} (kernel {identity.kernel_release})"
        return b.build(body, summary)
