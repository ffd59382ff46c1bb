"""Container runtime matchers.

One function per runtime maps a cgroup path to a container id. The
matchers live in an ordered table keyed by runtime name; the first match
wins. Supporting another runtime means adding one function and one entry.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

_HEX64 = r"[0-9a-f]{64}"


@dataclass(frozen=True)
class ContainerRef:
    runtime: str
    id: str

    @property
    def short_id(self) -> str:
        if re.fullmatch(_HEX64, self.id):
            return self.id[:12]
        return self.id


_DOCKER = re.compile(rf"(?:/docker/|/docker-)({_HEX64})(?:\.scope)?(?:/|$)")
_PODMAN = re.compile(rf"(?:/libpod-|/libpod/)({_HEX64})(?:\.scope)?(?:/|$)")
_CONTAINERD = re.compile(
    rf"(?:cri-containerd-({_HEX64})\.scope|/kubepods[^\s]*/pod[0-9a-f_-]+/({_HEX64}))(?:/|$)"
)
_CRIO = re.compile(rf"/crio-({_HEX64})(?:\.scope)?(?:/|$)")
_LXC = re.compile(r"/lxc(?:\.payload)?[./]([A-Za-z0-9_.-]+?)(?:/|$)")


def match_docker(cgroup_path: str) -> str | None:
    m = _DOCKER.search(cgroup_path)
    return m.group(1) if m else None


def match_podman(cgroup_path: str) -> str | None:
    m = _PODMAN.search(cgroup_path)
    return m.group(1) if m else None


def match_containerd(cgroup_path: str) -> str | None:
    m = _CONTAINERD.search(cgroup_path)
    if not m:
        return None
    return m.group(1) or m.group(2)


def match_crio(cgroup_path: str) -> str | None:
    m = _CRIO.search(cgroup_path)
    return m.group(1) if m else None


def match_lxc(cgroup_path: str) -> str | None:
    m = _LXC.search(cgroup_path)
    return m.group(1) if m else None


RUNTIME_MATCHERS: dict[str, Callable[[str], str | None]] = {
    "docker": match_docker,
    "podman": match_podman,
    "containerd": match_containerd,
    "crio": match_crio,
    "lxc": match_lxc,
}


def match_container(
    cgroup_path: str,
    matchers: dict[str, Callable[[str], str | None]] = RUNTIME_MATCHERS,
) -> ContainerRef | None:
    for runtime, matcher in matchers.items():
        container_id = matcher(cgroup_path)
        if container_id:
            return ContainerRef(runtime, container_id)
    return None


# ── Storage roots ────────────────────────────────────────────────────────────


STORAGE_ROOTS: dict[str, tuple[str, ...]] = {
    "docker": ("/var/lib/docker",),
    "podman": ("/var/lib/containers",),
    "containerd": ("/var/lib/containerd", "/run/containerd"),
    "kubelet": ("/var/lib/kubelet",),
}


def storage_runtime(mount_point: str) -> str:
    """Runtime whose storage root holds ``mount_point``, else "host"."""
    for runtime, roots in STORAGE_ROOTS.items():
        for root in roots:
            if mount_point == root or mount_point.startswith(root + "/"):
                return runtime
    return "host"
