"""Listener correlation — sockets → processes → cgroups → containers.

Three maps are built once per run:

    socket inode  → owning pid        (from /proc/<pid>/fd links)
    pid           → cgroup path       (from /proc/<pid>/cgroup)
    cgroup path   → container         (per-runtime matchers)

When several processes hold the same socket inode (e.g. a listener shared
across a fork) the lowest pid wins. A broken link in the chain is reported
as ``"unknown"``; nothing is dropped.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from vmic.correlate.runtimes import ContainerRef, match_container
from vmic.correlate.sockets import SOCKET_TABLES, SocketEntry, address_scope, is_wildcard, parse_socket_table
from vmic.errors import AdapterError, NotFound
from vmic.sources.base import DataSource

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
HOST = "host"

_SOCKET_LINK = re.compile(r"^socket:\[(\d+)\]$")

SERVICE_TABLE: dict[tuple[str, int], str] = {
    ("tcp", 21): "ftp",
    ("tcp", 22): "ssh",
    ("tcp", 23): "telnet",
    ("tcp", 25): "smtp",
    ("tcp", 53): "dns",
    ("udp", 53): "dns",
    ("tcp", 80): "http",
    ("tcp", 110): "pop3",
    ("tcp", 143): "imap",
    ("tcp", 389): "ldap",
    ("tcp", 443): "https",
    ("tcp", 445): "smb",
    ("tcp", 465): "smtps",
    ("tcp", 587): "submission",
    ("tcp", 993): "imaps",
    ("tcp", 995): "pop3s",
    ("tcp", 1433): "mssql",
    ("tcp", 1521): "oracle",
    ("tcp", 2049): "nfs",
    ("udp", 2049): "nfs",
    ("tcp", 2375): "docker",
    ("tcp", 3306): "mysql",
    ("tcp", 3389): "rdp",
    ("tcp", 5432): "postgresql",
    ("tcp", 5900): "vnc",
    ("tcp", 6379): "redis",
    ("tcp", 8080): "http-alt",
    ("tcp", 8443): "https-alt",
}

LEGACY_SERVICES = frozenset({
    "telnet", "ftp", "pop3", "imap", "smtp", "mysql", "redis", "rdp", "vnc",
})


def classify_service(protocol: str, port: int) -> str | None:
    return SERVICE_TABLE.get((protocol.rstrip("6"), port))


def classify_listener(address: str, service: str | None) -> str:
    if service in LEGACY_SERVICES:
        kind = "legacy service"
    elif service:
        kind = "known service"
    else:
        kind = "unclassified port"
    return f"{address_scope(address)} {kind}"


# ── Map builders ─────────────────────────────────────────────────────────────


@dataclass
class CorrelationMaps:
    socket_owner: dict[int, int] = field(default_factory=dict)
    process_name: dict[int, str] = field(default_factory=dict)
    process_cgroup: dict[int, str | None] = field(default_factory=dict)
    cgroup_container: dict[str, ContainerRef | None] = field(default_factory=dict)
    unreadable_processes: int = 0


def list_pids(source: DataSource) -> list[int]:
    return sorted(int(name) for name in source.list_dir("/proc") if name.isdigit())


def build_socket_owner_map(source: DataSource, pids: list[int]) -> tuple[dict[int, int], int]:
    """Map socket inode → lowest owning pid. Returns (map, unreadable count)."""
    candidates: dict[int, set[int]] = defaultdict(set)
    unreadable = 0
    for pid in pids:
        fd_dir = f"/proc/{pid}/fd"
        try:
            fds = source.list_dir(fd_dir)
        except NotFound:
            continue  # exited
        except AdapterError:
            unreadable += 1
            continue
        for fd in fds:
            try:
                target = source.read_link(f"{fd_dir}/{fd}")
            except AdapterError:
                continue
            m = _SOCKET_LINK.match(target)
            if m:
                candidates[int(m.group(1))].add(pid)
    return {inode: min(pids_) for inode, pids_ in candidates.items()}, unreadable


def parse_cgroup_path(text: str) -> str | None:
    """Unified-hierarchy path if present, else the first non-root path."""
    fallback = None
    for line in text.splitlines():
        parts = line.strip().split(":", 2)
        if len(parts) != 3:
            continue
        hierarchy, controllers, path = parts
        if hierarchy == "0" and controllers == "":
            return path
        if fallback is None and path not in ("", "/"):
            fallback = path
    return fallback


def build_process_cgroup_map(source: DataSource, pids: set[int]) -> dict[int, str | None]:
    result: dict[int, str | None] = {}
    for pid in sorted(pids):
        try:
            result[pid] = parse_cgroup_path(source.read_text(f"/proc/{pid}/cgroup"))
        except AdapterError:
            result[pid] = None
    return result


def build_cgroup_container_map(paths: set[str]) -> dict[str, ContainerRef | None]:
    return {path: match_container(path) for path in sorted(paths)}


def read_process_names(source: DataSource, pids: set[int]) -> dict[int, str]:
    names = {}
    for pid in sorted(pids):
        try:
            names[pid] = source.read_text(f"/proc/{pid}/comm").strip() or UNKNOWN
        except AdapterError:
            names[pid] = UNKNOWN
    return names


def fetch_container_names(source: DataSource, docker_socket: str) -> dict[str, str]:
    """Container id → name from the Docker daemon. Raises AdapterError."""
    containers = source.daemon_get(docker_socket, "/containers/json?all=1")
    names = {}
    for c in containers if isinstance(containers, list) else []:
        cid = c.get("Id") if isinstance(c, dict) else None
        raw_names = (c.get("Names") or []) if isinstance(c, dict) else []
        if cid and raw_names:
            names[cid] = str(raw_names[0]).lstrip("/")
    return names


# ── Correlator ───────────────────────────────────────────────────────────────


@dataclass
class CorrelationResult:
    listeners: list[dict[str, Any]] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    groups: list[dict[str, Any]] = field(default_factory=list)
    insights: list[dict[str, Any]] = field(default_factory=list)
    table_errors: dict[str, AdapterError] = field(default_factory=dict)
    optional_errors: list[tuple[str, AdapterError]] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def all_tables_failed(self) -> bool:
        return len(self.table_errors) == len(SOCKET_TABLES)


class Correlator:
    """Joins listening sockets with owning process and container."""

    def __init__(self, source: DataSource, docker_socket: str | None = None) -> None:
        self.source = source
        self.docker_socket = docker_socket

    def read_listeners(self, result: CorrelationResult) -> list[SocketEntry]:
        entries: list[SocketEntry] = []
        for protocol, path in SOCKET_TABLES:
            try:
                table = parse_socket_table(protocol, self.source.read_text(path), path)
            except AdapterError as e:
                result.table_errors[protocol] = e
                continue
            listening = [e for e in table if e.listening]
            result.counts[protocol] = len(listening)
            entries.extend(listening)
        return entries

    def build_maps(self, inodes: set[int], result: CorrelationResult) -> CorrelationMaps:
        maps = CorrelationMaps()
        if not inodes:
            return maps
        try:
            pids = list_pids(self.source)
        except AdapterError as e:
            result.optional_errors.append(("process table", e))
            return maps

        owners, maps.unreadable_processes = build_socket_owner_map(self.source, pids)
        maps.socket_owner = {i: p for i, p in owners.items() if i in inodes}
        owning = set(maps.socket_owner.values())
        maps.process_name = read_process_names(self.source, owning)
        maps.process_cgroup = build_process_cgroup_map(self.source, owning)
        maps.cgroup_container = build_cgroup_container_map(
            {p for p in maps.process_cgroup.values() if p}
        )
        return maps

    def container_names(self, maps: CorrelationMaps, result: CorrelationResult) -> dict[str, str]:
        if not self.docker_socket or not self.source.exists(self.docker_socket):
            return {}
        if not any(ref and ref.runtime == "docker" for ref in maps.cgroup_container.values()):
            return {}
        try:
            return fetch_container_names(self.source, self.docker_socket)
        except AdapterError as e:
            result.optional_errors.append(("container names", e))
            return {}

    def _container_for(
        self, pid: int | None, maps: CorrelationMaps, names: dict[str, str],
    ) -> tuple[str, str | None]:
        if pid is None:
            return UNKNOWN, None
        cgroup = maps.process_cgroup.get(pid)
        if cgroup is None:
            return UNKNOWN, None
        ref = maps.cgroup_container.get(cgroup)
        if ref is None:
            return HOST, None
        return names.get(ref.id, ref.short_id), ref.runtime

    def correlate(self) -> CorrelationResult:
        result = CorrelationResult()
        entries = self.read_listeners(result)
        maps = self.build_maps({e.inode for e in entries if e.inode}, result)
        names = self.container_names(maps, result)

        rows = []
        for entry in entries:
            pid = maps.socket_owner.get(entry.inode)
            container, runtime = self._container_for(pid, maps, names)
            service = classify_service(entry.protocol, entry.port)
            rows.append({
                "protocol": entry.protocol,
                "address": entry.address,
                "port": entry.port,
                "local_address": entry.local_address,
                "inode": entry.inode,
                "uid": entry.uid,
                "pid": pid,
                "process": maps.process_name.get(pid, UNKNOWN) if pid is not None else UNKNOWN,
                "container": container,
                "runtime": runtime,
                "service": service,
                "classification": classify_listener(entry.address, service),
            })
        rows.sort(key=lambda r: (r["protocol"], r["port"], r["address"], r["inode"]))

        result.listeners = rows
        result.groups = build_listener_groups(rows)
        result.insights = derive_listener_insights(rows)
        if maps.unreadable_processes:
            result.notes.append(
                f"{maps.unreadable_processes} process(es) with unreadable fd tables; "
                "their sockets are reported as unknown"
            )
        logger.debug(
            "Correlated %d listeners (%d owned)",
            len(rows), sum(1 for r in rows if r["pid"] is not None),
        )
        return result


# ── Derived views ────────────────────────────────────────────────────────────


def build_listener_groups(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Listeners grouped by container, then by process."""
    by_container: dict[str, dict[tuple[int, str], list[dict[str, Any]]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for row in rows:
        pid = row["pid"] if row["pid"] is not None else -1
        by_container[row["container"]][(pid, row["process"])].append(row)

    groups = []
    for container, processes in by_container.items():
        process_groups = []
        for (pid, name), sockets in processes.items():
            process_groups.append({
                "pid": pid if pid >= 0 else None,
                "process": name,
                "socket_count": len(sockets),
                "protocols": sorted({s["protocol"] for s in sockets}),
                "local_addresses": sorted({s["local_address"] for s in sockets}),
            })
        process_groups.sort(key=lambda g: (-g["socket_count"], g["pid"] if g["pid"] is not None else -1))
        groups.append({
            "container": container,
            "socket_count": sum(g["socket_count"] for g in process_groups),
            "process_count": len(process_groups),
            "processes": process_groups,
        })
    groups.sort(key=lambda g: (-g["socket_count"], g["container"]))
    return groups


def derive_listener_insights(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    rules: dict[str, dict[str, Any]] = {}

    def bucket(rule: str, severity: str, message: str) -> list[dict[str, Any]]:
        entry = rules.setdefault(rule, {
            "rule": rule, "severity": severity, "message": message, "sockets": [],
        })
        return entry["sockets"]

    for row in rows:
        ref = {
            "protocol": row["protocol"],
            "local_address": row["local_address"],
            "service": row["service"],
            "container": row["container"],
            "pid": row["pid"],
        }
        if is_wildcard(row["address"]):
            bucket("wildcard_listener", "info", "Listener bound to all interfaces").append(ref)
        if row["service"] in LEGACY_SERVICES:
            bucket("legacy_protocol", "warning", "Legacy or insecure protocol exposed").append(ref)

    return [rules[k] for k in sorted(rules)]
