"""systemd journal — recent warning-or-worse entries via journalctl."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.report import Section
from vmic.sources.base import DataSource

MAX_ENTRIES = 200
PRIORITY_NAMES = ("emerg", "alert", "crit", "err", "warning", "notice", "info", "debug")


def journal_argv(since: str | None) -> list[str]:
    argv = [
        "journalctl", "--output=json", "--no-pager", "--quiet",
        "--priority=0..4", f"--lines={MAX_ENTRIES}",
    ]
    if since:
        argv.append(f"--since={since}")
    return argv


def _message(value: Any) -> str:
    # Non-UTF-8 messages are exported as a byte array
    if isinstance(value, list):
        return bytes(v for v in value if isinstance(v, int) and 0 <= v < 256).decode("utf-8", "replace")
    return "" if value is None else str(value)


def _timestamp(value: Any) -> str | None:
    try:
        micros = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(micros / 1_000_000, tz=timezone.utc).isoformat()


def parse_entry(record: dict[str, Any]) -> dict[str, Any]:
    try:
        priority = int(record.get("PRIORITY", 6))
    except (TypeError, ValueError):
        priority = 6
    return {
        "timestamp": _timestamp(record.get("__REALTIME_TIMESTAMP")),
        "unit": record.get("_SYSTEMD_UNIT") or record.get("SYSLOG_IDENTIFIER"),
        "priority": PRIORITY_NAMES[priority] if 0 <= priority < len(PRIORITY_NAMES) else str(priority),
        "message": _message(record.get("MESSAGE")),
    }


class JournalCollector(Collector):
    key = "journal"
    title = "systemd Journal"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()
        argv = journal_argv(config.since)
        output = source.run(argv, timeout=config.collector_timeout)

        entries = []
        malformed = 0
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                malformed += 1
                continue
            if isinstance(record, dict):
                entries.append(parse_entry(record))
            else:
                malformed += 1

        if malformed:
            b.degraded = True
            b.note(f"{malformed} malformed journal line(s) skipped")

        counts: dict[str, int] = {}
        for entry in entries:
            counts[entry["priority"]] = counts.get(entry["priority"], 0) + 1

        body = {
            "source": " ".join(argv),
            "since": config.since,
            "counts": dict(sorted(counts.items())),
            "entries": entries,
        }
        window = f" since {config.since}" if config.since else ""
        return b.build(body, f"{len(entries)} warning-or-worse entries{window}")
