"""Network interfaces plus correlated listening sockets."""

from __future__ import annotations

from typing import Any

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.correlate.correlator import Correlator
from vmic.errors import AdapterError, CollectorError
from vmic.report import Section
from vmic.sources.base import DataSource

NET_DEV = "/proc/net/dev"
ADVISORY_SOCKET_LIMIT = 5


def parse_net_dev(text: str) -> list[dict[str, Any]]:
    interfaces = []
    for line in text.splitlines()[2:]:
        name, sep, rest = line.partition(":")
        fields = rest.split()
        if not sep or len(fields) < 10:
            continue
        try:
            interfaces.append({
                "name": name.strip(),
                "rx_bytes": int(fields[0]),
                "rx_packets": int(fields[1]),
                "tx_bytes": int(fields[8]),
                "tx_packets": int(fields[9]),
            })
        except ValueError:
            continue
    return sorted(interfaces, key=lambda i: i["name"])


def insight_advisories(insights: list[dict[str, Any]]) -> list[dict[str, str]]:
    advisories = []
    for insight in insights:
        addresses = [s["local_address"] for s in insight["sockets"]]
        shown = ", ".join(addresses[:ADVISORY_SOCKET_LIMIT])
        if len(addresses) > ADVISORY_SOCKET_LIMIT:
            shown += f", +{len(addresses) - ADVISORY_SOCKET_LIMIT} more"
        advisories.append({
            "severity": "info",
            "message": f"{insight['message']}: {shown}",
        })
    return advisories


class NetworkCollector(Collector):
    key = "network"
    title = "Network Overview"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        b = self.builder()

        interfaces: list[dict[str, Any]] = []
        dev_error: AdapterError | None = None
        try:
            interfaces = parse_net_dev(source.read_text(NET_DEV))
        except AdapterError as e:
            dev_error = e

        result = Correlator(source, config.docker_socket).correlate()

        if dev_error is not None and result.all_tables_failed:
            raise CollectorError(
                "Neither interfaces nor socket tables are readable",
                [dev_error, *result.table_errors.values()],
            )
        if dev_error is not None:
            b.optional_failure(dev_error, "interfaces")
        for protocol, e in result.table_errors.items():
            b.optional_failure(e, f"{protocol} sockets")
        for what, e in result.optional_errors:
            b.optional_failure(e, what)
        for note in result.notes:
            b.note(note)

        body = {
            "interfaces": interfaces,
            "listeners": {
                "counts": result.counts,
                "sockets": result.listeners,
                "groups": result.groups,
                "insights": result.insights,
            },
            "advisories": insight_advisories(result.insights),
        }
        owned = sum(1 for r in result.listeners if r["pid"] is not None)
        summary = (
            f"{len(interfaces)} interfaces, {len(result.listeners)} listening sockets "
            f"({owned} attributed)"
        )
        return b.build(body, summary)
