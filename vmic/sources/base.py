"""DataSource boundary — the only way collectors reach the host.

Every operation returns raw content or raises one AdapterError subclass.
No retries happen here or above.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

DEFAULT_COMMAND_TIMEOUT = 10.0


@dataclass(frozen=True)
class FsStat:
    """Filesystem statistics for one mount point (statvfs)."""

    block_size: int
    blocks: int
    blocks_free: int
    blocks_available: int
    files: int = 0
    files_free: int = 0
    read_only: bool = False

    @property
    def total_bytes(self) -> int:
        return self.blocks * self.block_size

    @property
    def free_bytes(self) -> int:
        return self.blocks_free * self.block_size

    @property
    def available_bytes(self) -> int:
        return self.blocks_available * self.block_size


@dataclass(frozen=True)
class HostIdentity:
    hostname: str
    kernel_release: str
    kernel_version: str
    machine: str


class DataSource(ABC):
    """Abstract adapter over raw OS, command and daemon queries."""

    @abstractmethod
    def read_text(self, path: str) -> str: ...

    @abstractmethod
    def list_dir(self, path: str) -> list[str]:
        """Directory entries, sorted."""

    @abstractmethod
    def read_link(self, path: str) -> str: ...

    @abstractmethod
    def stat_fs(self, path: str) -> FsStat: ...

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def which(self, binary: str) -> str | None: ...

    @abstractmethod
    def run(self, argv: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> str:
        """Run a command and return its stdout."""

    @abstractmethod
    def daemon_get(self, socket_path: str, endpoint: str, timeout: float = 5.0) -> Any:
        """GET a daemon API endpoint over a Unix socket, return decoded JSON."""

    @abstractmethod
    def identity(self) -> HostIdentity: ...
