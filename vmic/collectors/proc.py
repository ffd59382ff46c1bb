"""Processes & resources — load average, memory, cgroup limits, swap."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector, SectionBuilder
from vmic.config import Configuration
from vmic.correlate.correlator import parse_cgroup_path
from vmic.errors import AdapterError, CollectorError, Malformed, NotFound
from vmic.report import Section
from vmic.sources.base import DataSource

CGROUP_ROOT = "/sys/fs/cgroup"


def parse_meminfo(text: str) -> dict[str, int]:
    """Meminfo fields in bytes."""
    values = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        parts = rest.split()
        if not parts:
            continue
        try:
            number = int(parts[0])
        except ValueError:
            continue
        if len(parts) > 1 and parts[1].lower() == "kb":
            number *= 1024
        values[key.strip()] = number
    return values


def parse_loadavg(text: str) -> dict[str, Any]:
    parts = text.split()
    if len(parts) < 3:
        raise ValueError("expected at least three fields")
    body: dict[str, Any] = {
        "one": float(parts[0]),
        "five": float(parts[1]),
        "fifteen": float(parts[2]),
    }
    if len(parts) > 3 and "/" in parts[3]:
        running, total = parts[3].split("/", 1)
        body["running"] = int(running)
        body["total"] = int(total)
    return body


def parse_swaps(text: str) -> list[dict[str, Any]]:
    devices = []
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 4:
            continue
        devices.append({
            "device": parts[0],
            "type": parts[1],
            "size_bytes": int(parts[2]) * 1024,
            "used_bytes": int(parts[3]) * 1024,
        })
    return sorted(devices, key=lambda d: d["device"])


class ProcCollector(Collector):
    key = "proc"
    title = "Processes & Resources"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        failures: list[AdapterError] = []

        meminfo = None
        try:
            meminfo = parse_meminfo(source.read_text("/proc/meminfo"))
        except AdapterError as e:
            failures.append(e)
        if meminfo is not None and "MemTotal" not in meminfo:
            failures.append(Malformed("/proc/meminfo", "no MemTotal"))
            meminfo = None

        loadavg = None
        try:
            loadavg = parse_loadavg(source.read_text("/proc/loadavg"))
        except AdapterError as e:
            failures.append(e)
        except ValueError as e:
            failures.append(Malformed("/proc/loadavg", str(e)))

        if meminfo is None and loadavg is None:
            raise CollectorError("Neither memory nor load information is readable", failures)
        for e in failures:
            b.optional_failure(e)

        body = {
            "loadavg": loadavg,
            "memory": {
                "host": self._host_memory(meminfo),
                "cgroup": self._cgroup_memory(source, b),
            },
            "swap": self._swap(source, meminfo, b),
            "process_count": self._process_count(source, b),
        }

        if loadavg is not None:
            summary = f"load {loadavg['one']:.2f} / {loadavg['five']:.2f} / {loadavg['fifteen']:.2f}"
        else:
            summary = "load average unavailable"
        host = body["memory"]["host"]
        if host and host["total_bytes"]:
            summary += f", {host['available_bytes'] / host['total_bytes']:.0%} memory available"
        return b.build(body, summary)

    @staticmethod
    def _host_memory(meminfo: dict[str, int] | None) -> dict[str, Any] | None:
        if not meminfo or "MemTotal" not in meminfo:
            return None
        available = meminfo.get("MemAvailable")
        if available is None:
            # Pre-3.14 kernels
            available = meminfo.get("MemFree", 0) + meminfo.get("Buffers", 0) + meminfo.get("Cached", 0)
        return {
            "total_bytes": meminfo["MemTotal"],
            "available_bytes": available,
            "free_bytes": meminfo.get("MemFree"),
            "buffers_bytes": meminfo.get("Buffers"),
            "cached_bytes": meminfo.get("Cached"),
        }

    @staticmethod
    def _cgroup_memory(source: DataSource, b: SectionBuilder) -> dict[str, Any] | None:
        raw = b.optional_read(source, "/proc/self/cgroup", "cgroup")
        if raw is None:
            return None
        path = parse_cgroup_path(raw) or "/"
        base = CGROUP_ROOT + ("" if path == "/" else path)
        try:
            limit_raw = source.read_text(f"{base}/memory.max").strip()
            usage_raw = source.read_text(f"{base}/memory.current").strip()
        except NotFound:
            return None  # cgroup v1 or controller not delegated
        except AdapterError as e:
            b.optional_failure(e, "cgroup memory")
            return None
        try:
            limit = None if limit_raw == "max" else int(limit_raw)
            usage = int(usage_raw)
        except ValueError:
            b.optional_failure(Malformed(f"{base}/memory.max", limit_raw), "cgroup memory")
            return None
        return {"path": path, "limit_bytes": limit, "usage_bytes": usage}

    @staticmethod
    def _swap(source: DataSource, meminfo: dict[str, int] | None, b: SectionBuilder) -> dict[str, Any]:
        swap: dict[str, Any] = {
            "total_bytes": meminfo.get("SwapTotal") if meminfo else None,
            "free_bytes": meminfo.get("SwapFree") if meminfo else None,
            "devices": [],
        }
        raw = b.optional_read(source, "/proc/swaps", "swap devices")
        if raw is not None:
            try:
                swap["devices"] = parse_swaps(raw)
            except ValueError:
                b.optional_failure(Malformed("/proc/swaps"), "swap devices")
        return swap

    @staticmethod
    def _process_count(source: DataSource, b: SectionBuilder) -> int | None:
        try:
            return sum(1 for name in source.list_dir("/proc") if name.isdigit())
        except AdapterError as e:
            b.optional_failure(e, "process count")
            return None
