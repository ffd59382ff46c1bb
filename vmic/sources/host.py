"""HostDataSource — the real Linux host behind the DataSource boundary."""

from __future__ import annotations

import json
import logging
import os
import shutil
import socket
import subprocess
from collections.abc import Sequence
from typing import Any

import httpx

from vmic.errors import (
    AdapterError,
    Malformed,
    NotFound,
    PermissionDenied,
    SourceTimeout,
    Unavailable,
)
from vmic.sources.base import DEFAULT_COMMAND_TIMEOUT, DataSource, FsStat, HostIdentity

logger = logging.getLogger(__name__)

_PERMISSION_MARKERS = ("permission denied", "insufficient permissions", "not permitted")


def _map_os_error(resource: str, exc: OSError) -> AdapterError:
    if isinstance(exc, FileNotFoundError):
        return NotFound(resource)
    if isinstance(exc, PermissionError):
        return PermissionDenied(resource)
    if isinstance(exc, TimeoutError):
        return SourceTimeout(resource, str(exc))
    return Unavailable(resource, exc.strerror or str(exc))


class HostDataSource(DataSource):
    """Reads files, runs commands and calls daemons on the local host."""

    def read_text(self, path: str) -> str:
        try:
            with open(path, encoding="utf-8", errors="replace") as fh:
                return fh.read()
        except OSError as e:
            raise _map_os_error(path, e) from e

    def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(os.listdir(path))
        except OSError as e:
            raise _map_os_error(path, e) from e

    def read_link(self, path: str) -> str:
        try:
            return os.readlink(path)
        except OSError as e:
            raise _map_os_error(path, e) from e

    def stat_fs(self, path: str) -> FsStat:
        try:
            vfs = os.statvfs(path)
        except OSError as e:
            raise _map_os_error(path, e) from e
        return FsStat(
            block_size=vfs.f_frsize or vfs.f_bsize,
            blocks=vfs.f_blocks,
            blocks_free=vfs.f_bfree,
            blocks_available=vfs.f_bavail,
            files=vfs.f_files,
            files_free=vfs.f_ffree,
            read_only=bool(vfs.f_flag & os.ST_RDONLY),
        )

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)

    def run(self, argv: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> str:
        resource = " ".join(argv)
        env = {**os.environ, "LC_ALL": "C"}
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise NotFound(resource, "command not found") from e
        except PermissionError as e:
            raise PermissionDenied(resource) from e
        except subprocess.TimeoutExpired as e:
            raise SourceTimeout(resource, f"no result after {timeout:g}s") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if any(marker in stderr.lower() for marker in _PERMISSION_MARKERS):
                raise PermissionDenied(resource, stderr.splitlines()[0])
            first_line = stderr.splitlines()[0] if stderr else ""
            raise Unavailable(resource, f"exit {result.returncode}: {first_line}".strip(": "))
        return result.stdout

    def daemon_get(self, socket_path: str, endpoint: str, timeout: float = 5.0) -> Any:
        resource = f"{socket_path}{endpoint}"
        transport = httpx.HTTPTransport(uds=socket_path)
        try:
            with httpx.Client(transport=transport, timeout=timeout) as client:
                resp = client.get(f"http://localhost{endpoint}")
        except httpx.TimeoutException as e:
            raise SourceTimeout(resource, "daemon did not answer") from e
        except httpx.ConnectError as e:
            if "permission denied" in str(e).lower():
                raise PermissionDenied(resource, "daemon socket") from e
            raise Unavailable(resource, "daemon unreachable") from e
        except httpx.HTTPError as e:
            raise Unavailable(resource, f"{type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise Unavailable(resource, f"HTTP {resp.status_code}")
        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise Malformed(resource, "invalid JSON") from e

    def identity(self) -> HostIdentity:
        uname = os.uname()
        return HostIdentity(
            hostname=socket.gethostname(),
            kernel_release=uname.release,
            kernel_version=uname.version,
            machine=uname.machine,
        )
