"""Running and failed systemd service units."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.errors import AdapterError
from vmic.report import Section
from vmic.sources.base import DataSource


def list_units_argv(state: str) -> list[str]:
    return [
        "systemctl", "list-units", "--type=service", f"--state={state}",
        "--no-legend", "--no-pager", "--plain",
    ]


def parse_units(output: str) -> list[dict[str, str]]:
    units = []
    for line in output.splitlines():
        parts = line.strip().lstrip("●*").split(None, 4)
        if len(parts) < 4:
            continue
        units.append({
            "unit": parts[0],
            "load": parts[1],
            "active": parts[2],
            "sub": parts[3],
            "description": parts[4] if len(parts) > 4 else "",
        })
    return sorted(units, key=lambda u: u["unit"])


class ServicesCollector(Collector):
    key = "services"
    title = "System Services"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        running = parse_units(source.run(list_units_argv("running")))

        failed: list[dict[str, Any]] = []
        try:
            failed = parse_units(source.run(list_units_argv("failed")))
        except AdapterError as e:
            b.optional_failure(e, "failed units")

        body = {"running": running, "failed": failed}
        return b.build(body, f"{len(running)} running, {len(failed)} failed services")
