"""Local accounts from /etc/passwd, privileged membership from /etc/group."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.report import Section
from vmic.sources.base import DataSource

PRIVILEGED_GROUPS = frozenset({"sudo", "wheel", "admin"})
SYSTEM_UID_MAX = 999

INTERACTIVE_SHELLS = frozenset({
    "/bin/sh", "/bin/bash", "/usr/bin/bash", "/bin/zsh", "/usr/bin/zsh",
    "/bin/fish", "/usr/bin/fish", "/usr/bin/tmux", "/bin/tcsh", "/bin/csh",
    "/bin/dash", "/usr/bin/sh",
})


def parse_passwd(text: str) -> list[dict[str, Any]]:
    users = []
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        parts = line.split(":")
        if len(parts) < 7:
            continue
        try:
            uid, gid = int(parts[2]), int(parts[3])
        except ValueError:
            continue
        users.append({
            "name": parts[0],
            "uid": uid,
            "gid": gid,
            "home": parts[5],
            "shell": parts[6],
            "system": uid <= SYSTEM_UID_MAX,
            "interactive": parts[6] in INTERACTIVE_SHELLS,
            "sudo": False,
        })
    return users


def parse_group(text: str) -> list[tuple[str, int, list[str]]]:
    groups = []
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        parts = line.split(":")
        if len(parts) < 4:
            continue
        try:
            gid = int(parts[2])
        except ValueError:
            continue
        groups.append((parts[0], gid, [m for m in parts[3].split(",") if m]))
    return groups


class UsersCollector(Collector):
    key = "users"
    title = "Local Users"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        users = parse_passwd(source.read_text("/etc/passwd"))

        raw_group = b.optional_read(source, "/etc/group", "groups")
        if raw_group is not None:
            members: set[str] = set()
            gids: set[int] = set()
            for name, gid, group_members in parse_group(raw_group):
                if name in PRIVILEGED_GROUPS:
                    gids.add(gid)
                    members.update(group_members)
            for user in users:
                user["sudo"] = user["name"] in members or user["gid"] in gids

        users.sort(key=lambda u: (u["uid"], u["name"]))
        system = sum(u["system"] for u in users)
        interactive = sum(u["interactive"] for u in users)
        sudo = sum(u["sudo"] for u in users)
        summary = f"{len(users)} users ({system} system, {interactive} interactive, {sudo} sudo)"
        return b.build({"users": users}, summary)
