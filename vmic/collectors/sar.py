"""One-second CPU averages from ``sar -u 1 1``."""

from __future__ import annotations

from vmic.collectors.base import Collector
from vmic.config import Configuration
from vmic.errors import CollectorError, Malformed
from vmic.report import Section
from vmic.sources.base import DataSource

SAR_ARGV = ("sar", "-u", "1", "1")
CPU_FIELDS = ("user", "nice", "system", "iowait", "steal", "idle")


def parse_sar_cpu(output: str) -> dict[str, float] | None:
    for line in output.splitlines():
        if not line.lstrip().startswith("Average:"):
            continue
        parts = line.split()[2:]
        if len(parts) < len(CPU_FIELDS):
            return None
        try:
            return {
                name: float(value.replace(",", "."))
                for name, value in zip(CPU_FIELDS, parts)
            }
        except ValueError:
            return None
    return None


class SarCollector(Collector):
    key = "sar"
    title = "Sysstat Metrics"

    def collect(self, source: DataSource, config: Configuration) -> Section:
        output = source.run(list(SAR_ARGV), timeout=config.collector_timeout)
        cpu = parse_sar_cpu(output)
        if cpu is None:
            raise CollectorError(
                "sar output has no Average line",
                [Malformed(" ".join(SAR_ARGV), "no parsable Average line")],
            )
        summary = (
            f"CPU avg: user {cpu['user']:.1f}%, system {cpu['system']:.1f}%, "
            f"idle {cpu['idle']:.1f}%"
        )
        return self.builder().build({"cpu": cpu}, summary)
