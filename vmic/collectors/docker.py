"""Docker Engine — daemon version and container inventory over its socket."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.errors import AdapterError, CollectorError
from vmic.report import Section
from vmic.sources.base import DataSource

DAEMON_UNREACHABLE = "daemon unreachable"


def summarize_container(raw: dict[str, Any]) -> dict[str, Any]:
    names = raw.get("Names") or []
    cid = str(raw.get("Id", ""))
    return {
        "id": cid[:12],
        "name": str(names[0]).lstrip("/") if names else cid[:12],
        "image": raw.get("Image"),
        "state": raw.get("State"),
        "status": raw.get("Status"),
    }


class DockerCollector(Collector):
    key = "docker"
    title = "Docker Engine"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        sock = config.docker_socket
        try:
            version = source.daemon_get(sock, "/version", timeout=config.collector_timeout)
        except AdapterError as e:
            raise CollectorError(
                f"Docker daemon at {sock} is not reachable",
                errors=[e],
                notes=[DAEMON_UNREACHABLE],
            ) from e
        if not isinstance(version, dict):
            version = {}

        containers: list[dict[str, Any]] = []
        try:
            raw = source.daemon_get(sock, "/containers/json?all=1", timeout=config.collector_timeout)
        except AdapterError as e:
            b.optional_failure(e, "containers")
        else:
            if isinstance(raw, list):
                containers = [summarize_container(c) for c in raw if isinstance(c, dict)]
            else:
                b.degraded = True
                b.note(f"containers: unexpected response shape ({type(raw).__name__})")
        containers.sort(key=lambda c: (c["name"], c["id"]))

        running = sum(1 for c in containers if c["state"] == "running")
        body = {
            "engine": {
                "version": version.get("Version"),
                "api_version": version.get("ApiVersion"),
                "os": version.get("Os"),
                "arch": version.get("Arch"),
                "kernel_version": version.get("KernelVersion"),
            },
            "containers": containers,
            "counts": {"total": len(containers), "running": running},
        }
        summary = f"Docker {version.get('Version', '?')}: {running} running / {len(containers)} containers"
        return b.build(body, summary)
