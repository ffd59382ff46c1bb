"""StaticDataSource — a substitute adapter serving canned content.

Used for deterministic runs: every answer comes from the mappings given at
construction. A value may be an AdapterError instance (raised), a callable
(called, its result used) or plain content. Anything missing is NotFound.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from vmic.errors import AdapterError, NotFound
from vmic.sources.base import DEFAULT_COMMAND_TIMEOUT, DataSource, FsStat, HostIdentity


def _resolve(value: Any) -> Any:
    if isinstance(value, AdapterError):
        raise value
    if callable(value):
        return _resolve(value())
    return value


class StaticDataSource(DataSource):
    def __init__(
        self,
        files: dict[str, Any] | None = None,
        dirs: dict[str, Any] | None = None,
        links: dict[str, Any] | None = None,
        fs_stats: dict[str, Any] | None = None,
        commands: dict[tuple[str, ...], Any] | None = None,
        binaries: dict[str, str] | None = None,
        daemon: dict[str, Any] | None = None,
        host: HostIdentity | None = None,
    ) -> None:
        self.files = dict(files or {})
        self.dirs = dict(dirs or {})
        self.links = dict(links or {})
        self.fs_stats = dict(fs_stats or {})
        self.commands = dict(commands or {})
        self.binaries = dict(binaries or {})
        self.daemon = dict(daemon or {})
        self.host = host or HostIdentity(
            hostname="testhost",
            kernel_release="6.1.0-test",
            kernel_version="#1 SMP PREEMPT_DYNAMIC",
            machine="x86_64",
        )
        self.calls: list[str] = []

    def _lookup(self, table: dict[Any, Any], key: Any, resource: str) -> Any:
        self.calls.append(resource)
        if key not in table:
            raise NotFound(resource)
        return _resolve(table[key])

    def read_text(self, path: str) -> str:
        return self._lookup(self.files, path, path)

    def list_dir(self, path: str) -> list[str]:
        return sorted(self._lookup(self.dirs, path, path))

    def read_link(self, path: str) -> str:
        return self._lookup(self.links, path, path)

    def stat_fs(self, path: str) -> FsStat:
        return self._lookup(self.fs_stats, path, path)

    def exists(self, path: str) -> bool:
        return path in self.files or path in self.dirs or path in self.daemon_sockets

    @property
    def daemon_sockets(self) -> set[str]:
        return {key.split("|", 1)[0] for key in self.daemon}

    def which(self, binary: str) -> str | None:
        return self.binaries.get(binary)

    def run(self, argv: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> str:
        return self._lookup(self.commands, tuple(argv), " ".join(argv))

    def daemon_get(self, socket_path: str, endpoint: str, timeout: float = 5.0) -> Any:
        key = f"{socket_path}|{endpoint}"
        return self._lookup(self.daemon, key, f"{socket_path}{endpoint}")

    def identity(self) -> HostIdentity:
        return self.host

