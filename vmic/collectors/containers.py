"""Alternative container runtimes: podman, nerdctl and containerd (ctr)."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.errors import AdapterError
from vmic.report import Section
from vmic.sources.base import DataSource

RUNTIME_PROBES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("podman", ("--version",)),
    ("nerdctl", ("--version",)),
    ("ctr", ("version",)),
)


def first_line(output: str) -> str | None:
    for line in output.splitlines():
        if line.strip():
            return line.strip()
    return None


class ContainersCollector(Collector):
    key = "containers"
    title = "Alternative Containers"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        runtimes: list[dict[str, Any]] = []
        for name, args in RUNTIME_PROBES:
            path = source.which(name)
            if path is None:
                continue
            version = None
            try:
                version = first_line(source.run([name, *args], timeout=config.collector_timeout))
            except AdapterError as e:
                b.optional_failure(e, name)
            runtimes.append({"name": name, "path": path, "version": version})

        if runtimes:
            summary = f"{len(runtimes)} runtime(s) detected"
        else:
            summary = "No alternative container runtimes detected"
        return b.build({"runtimes": runtimes}, summary)
