"""Mounted filesystems with byte and inode usage."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.correlate.runtimes import storage_runtime
from vmic.errors import AdapterError, CollectorError
from vmic.report import Section
from vmic.sources.base import DataSource

PSEUDO_FS_TYPES = frozenset({
    "autofs", "binfmt_misc", "bpf", "cgroup", "cgroup2", "configfs", "debugfs",
    "devpts", "devtmpfs", "efivarfs", "fusectl", "hugetlbfs", "mqueue", "nsfs",
    "proc", "pstore", "rpc_pipefs", "securityfs", "sysfs", "tracefs",
})
PSEUDO_PREFIXES = ("/proc", "/sys", "/dev", "/run")

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


@dataclass(frozen=True)
class MountEntry:
    device: str
    mount_point: str
    fs_type: str
    options: tuple[str, ...]

    @property
    def read_only(self) -> bool:
        return "ro" in self.options


def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def _is_pseudo(mount_point: str, fs_type: str) -> bool:
    if fs_type in PSEUDO_FS_TYPES:
        return True
    return any(mount_point == p or mount_point.startswith(p + "/") for p in PSEUDO_PREFIXES)


def parse_mounts(text: str) -> list[MountEntry]:
    """Real filesystems from /proc/mounts; the last mount on a path wins."""
    by_path: dict[str, MountEntry] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 4:
            continue
        device, mount_point, fs_type = _unescape(parts[0]), _unescape(parts[1]), parts[2]
        if _is_pseudo(mount_point, fs_type):
            continue
        by_path[mount_point] = MountEntry(device, mount_point, fs_type, tuple(parts[3].split(",")))
    return [by_path[k] for k in sorted(by_path)]


def _ratio(used: int, total: int) -> float | None:
    if total <= 0:
        return None
    return round(used / total, 4)


class StorageCollector(Collector):
    key = "storage"
    title = "Storage Overview"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        entries = parse_mounts(source.read_text("/proc/mounts"))

        mounts: list[dict[str, Any]] = []
        failures: list[AdapterError] = []
        for entry in entries:
            try:
                st = source.stat_fs(entry.mount_point)
            except AdapterError as e:
                failures.append(e)
                continue
            used = max(st.total_bytes - st.free_bytes, 0)
            inodes_used = max(st.files - st.files_free, 0)
            mounts.append({
                "mount_point": entry.mount_point,
                "fs_type": entry.fs_type,
                "device": entry.device,
                "total_bytes": st.total_bytes,
                "used_bytes": used,
                "available_bytes": st.available_bytes,
                "usage_ratio": _ratio(used, st.total_bytes) or 0.0,
                "inodes_total": st.files,
                "inodes_used": inodes_used,
                "inodes_usage_ratio": _ratio(inodes_used, st.files),
                "read_only": entry.read_only or st.read_only,
                "runtime": storage_runtime(entry.mount_point),
            })

        if not mounts:
            raise CollectorError("No filesystem usage information available", failures)
        for e in failures:
            b.optional_failure(e, "statvfs")

        totals = {
            "total_bytes": sum(m["total_bytes"] for m in mounts),
            "used_bytes": sum(m["used_bytes"] for m in mounts),
            "available_bytes": sum(m["available_bytes"] for m in mounts),
        }
        runtimes: dict[str, int] = {}
        for m in mounts:
            runtimes[m["runtime"]] = runtimes.get(m["runtime"], 0) + 1

        average = sum(m["usage_ratio"] for m in mounts) / len(mounts)
        body = {
            "mounts": mounts,
            "totals": totals,
            "runtimes": dict(sorted(runtimes.items())),
        }
        return b.build(body, f"{len(mounts)} mounts, {average:.1%} average usage")
