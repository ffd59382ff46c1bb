"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from vmic.config import Configuration
from vmic.report import Section
from vmic.sources.base import FsStat
from vmic.sources.static import StaticDataSource

TCP_HEADER = (
    "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt"
    "   uid  timeout inode\n"
)
NET_DEV = (
    "Inter-|   Receive                                                |  Transmit\n"
    " face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets"
    " errs drop fifo colls carrier compressed\n"
    "    lo:    1000      10    0    0    0     0          0         0     1000      10"
    "    0    0    0     0       0          0\n"
    "  eth0: 5000000    4000    0    0    0     0          0         0  2000000    3000"
    "    0    0    0     0       0          0\n"
)

DOCKER_ID = "a" * 64


def socket_row(local: str, state: str, inode: int, uid: int = 0, sl: int = 0) -> str:
    """One /proc/net/{tcp,udp} row."""
    remote = "0" * len(local.split(":")[0]) + ":0000"
    return (
        f"  {sl:>2}: {local} {remote} {state} 00000000:00000000 00:00000000 00000000"
        f" {uid:>5}        0 {inode} 1 0000000000000000 100 0 0 10 0\n"
    )


def host_files() -> dict[str, Any]:
    """Files of a small, healthy host."""
    return {
        "/etc/os-release": (
            'NAME="Debian GNU/Linux"\nID=debian\nVERSION_ID="12"\n'
            'VERSION="12 (bookworm)"\nPRETTY_NAME="Debian GNU/Linux 12 (bookworm)"\n'
        ),
        "/proc/uptime": "12345.67 54321.00\n",
        "/proc/meminfo": (
            "MemTotal:        8000000 kB\nMemFree:         1000000 kB\n"
            "MemAvailable:    4000000 kB\nBuffers:          200000 kB\n"
            "Cached:          2000000 kB\nSwapTotal:       1000000 kB\n"
            "SwapFree:         900000 kB\n"
        ),
        "/proc/loadavg": "0.50 0.40 0.30 2/345 6789\n",
        "/proc/swaps": (
            "Filename\t\t\t\tType\t\tSize\t\tUsed\t\tPriority\n"
            "/swapfile                               file\t\t1000000\t\t100000\t\t-2\n"
        ),
        "/proc/self/cgroup": "0::/user.slice/user-1000.slice/session-1.scope\n",
        "/sys/fs/cgroup/user.slice/user-1000.slice/session-1.scope/memory.max": "max\n",
        "/sys/fs/cgroup/user.slice/user-1000.slice/session-1.scope/memory.current": "1048576\n",
        "/sys/fs/cgroup/cgroup.controllers": "cpuset cpu io memory pids\n",
        "/proc/mounts": (
            "/dev/sda1 / ext4 rw,relatime 0 0\n"
            "proc /proc proc rw,nosuid 0 0\n"
            "tmpfs /run tmpfs rw 0 0\n"
            "/dev/sdb1 /var/lib/docker ext4 rw 0 0\n"
        ),
        "/proc/net/dev": NET_DEV,
        "/proc/net/tcp": TCP_HEADER + socket_row("00000000:0016", "0A", 1001),
        "/proc/net/tcp6": TCP_HEADER,
        "/proc/net/udp": TCP_HEADER,
        "/proc/net/udp6": TCP_HEADER,
        "/proc/1/comm": "sshd\n",
        "/proc/1/cgroup": "0::/system.slice/ssh.service\n",
        "/etc/passwd": (
            "root:x:0:0:root:/root:/bin/bash\n"
            "daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin\n"
            "alice:x:1000:1000:Alice:/home/alice:/bin/bash\n"
        ),
        "/etc/group": "root:x:0:\nsudo:x:27:alice\nalice:x:1000:\n",
        "/etc/crontab": (
            "SHELL=/bin/sh\n# m h dom mon dow user command\n"
            "17 * * * * root cd / && run-parts --report /etc/cron.hourly\n"
        ),
        "/etc/ssh/sshd_config": "PermitRootLogin no\nPasswordAuthentication no\n",
        "/etc/sudoers": "root ALL=(ALL:ALL) ALL\n@includedir /etc/sudoers.d\n",
    }


def host_dirs() -> dict[str, Any]:
    return {
        "/proc": ["1", "net", "self"],
        "/proc/1/fd": ["0", "1", "3"],
        "/etc/cron.d": [],
    }


def host_links() -> dict[str, Any]:
    return {
        "/proc/1/fd/0": "/dev/null",
        "/proc/1/fd/1": "/dev/null",
        "/proc/1/fd/3": "socket:[1001]",
    }


def host_fs_stats() -> dict[str, Any]:
    return {
        "/": FsStat(block_size=4096, blocks=25_000_000, blocks_free=12_500_000,
                    blocks_available=11_250_000, files=1000, files_free=900),
        "/var/lib/docker": FsStat(block_size=4096, blocks=50_000_000, blocks_free=37_500_000,
                                  blocks_available=35_000_000, files=1000, files_free=950),
    }


def make_host(
    files: dict[str, Any] | None = None,
    dirs: dict[str, Any] | None = None,
    links: dict[str, Any] | None = None,
    fs_stats: dict[str, Any] | None = None,
    **kwargs: Any,
) -> StaticDataSource:
    """A healthy host with selected entries overridden (None values removed)."""

    def merge(base: dict[str, Any], extra: dict[str, Any] | None) -> dict[str, Any]:
        merged = {**base, **(extra or {})}
        return {k: v for k, v in merged.items() if v is not None}

    return StaticDataSource(
        files=merge(host_files(), files),
        dirs=merge(host_dirs(), dirs),
        links=merge(host_links(), links),
        fs_stats=merge(host_fs_stats(), fs_stats),
        **kwargs,
    )


@pytest.fixture
def host() -> StaticDataSource:
    return make_host()


@pytest.fixture
def config() -> Configuration:
    return Configuration()


@pytest.fixture
def ok_section() -> Section:
    return Section.ok("os", "Operating System", {"hostname": "testhost"}, summary="Debian")
