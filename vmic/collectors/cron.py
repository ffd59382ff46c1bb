"""Scheduled jobs from /etc/crontab and /etc/cron.d."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.errors import AdapterError, CollectorError, NotFound
from vmic.report import Section
from vmic.sources.base import DataSource

CRONTAB = "/etc/crontab"
CRON_D = "/etc/cron.d"


def parse_cron_line(line: str) -> dict[str, str] | None:
    text = line.strip()
    if not text or text.startswith("#"):
        return None
    parts = text.split()
    # Environment assignment (SHELL=/bin/sh, MAILTO=...)
    if "=" in parts[0] and not parts[0].startswith("@"):
        return None
    if parts[0].startswith("@"):
        if len(parts) < 3:
            return None
        return {"schedule": parts[0], "user": parts[1], "command": " ".join(parts[2:])}
    if len(parts) < 7:
        return None
    return {
        "schedule": " ".join(parts[:5]),
        "user": parts[5],
        "command": " ".join(parts[6:]),
    }


def parse_crontab(text: str) -> list[dict[str, str]]:
    return [e for e in (parse_cron_line(line) for line in text.splitlines()) if e]


class CronCollector(Collector):
    key = "cron"
    title = "Scheduled Jobs"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        failures: list[AdapterError] = []

        system_entries: list[dict[str, str]] = []
        try:
            system_entries = parse_crontab(source.read_text(CRONTAB))
        except NotFound:
            pass
        except AdapterError as e:
            failures.append(e)

        names: list[str] = []
        try:
            names = [n for n in source.list_dir(CRON_D) if not n.startswith(".")]
        except NotFound:
            pass
        except AdapterError as e:
            failures.append(e)

        if len(failures) == 2:
            raise CollectorError("Cron configuration is unreadable", failures)
        for e in failures:
            b.optional_failure(e)

        cron_d: list[dict[str, Any]] = []
        for name in names:
            path = f"{CRON_D}/{name}"
            try:
                entries = parse_crontab(source.read_text(path))
            except AdapterError as e:
                b.optional_failure(e)
                continue
            cron_d.append({"path": path, "entries": entries})

        total = len(system_entries) + sum(len(f["entries"]) for f in cron_d)
        body = {"system_crontab": system_entries, "cron_d": cron_d}
        return b.build(body, f"{total} cron entries")
