"""Collector registry — the fixed, ordered table of collector descriptors.

Built once at startup by ``build_registry()`` and passed by reference to
the orchestrator. Nothing mutates it afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from vmic.collectors import (
    Collector,
    ContainersCollector,
    CronCollector,
    DockerCollector,
    JournalCollector,
    NetworkCollector,
    OsCollector,
    ProcCollector,
    SarCollector,
    SecurityCollector,
    ServicesCollector,
    StorageCollector,
    UsersCollector,
)
from vmic.sources.base import DataSource

if TYPE_CHECKING:
    from vmic.config import Configuration

logger = logging.getLogger(__name__)

Probe = Callable[[DataSource, "Configuration"], bool]


# ── Probes ───────────────────────────────────────────────────────────────────


def always(source: DataSource, config: Configuration) -> bool:
    return True


def binary_probe(binary: str) -> Probe:
    def probe(source: DataSource, config: Configuration) -> bool:
        return source.which(binary) is not None
    probe.__name__ = f"which_{binary}"
    return probe


def journal_probe(source: DataSource, config: Configuration) -> bool:
    return config.journal_enabled and source.which("journalctl") is not None


def docker_socket_probe(source: DataSource, config: Configuration) -> bool:
    return source.exists(config.docker_socket)


# ── Descriptors ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CollectorDescriptor:
    key: str
    title: str
    priority: int
    factory: Callable[[], Collector]
    probe: Probe = always

    def is_enabled(self, source: DataSource, config: Configuration) -> bool:
        """Configuration flag AND runtime probe."""
        if not config.collector_enabled(self.key):
            return False
        try:
            return self.probe(source, config)
        except Exception:
            logger.warning("Probe for %s failed; treating as disabled", self.key, exc_info=True)
            return False


class Registry:
    """Immutable, priority-ordered collection of descriptors."""

    def __init__(self, descriptors: list[CollectorDescriptor] | tuple[CollectorDescriptor, ...]) -> None:
        keys = [d.key for d in descriptors]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"Duplicate collector keys: {', '.join(duplicates)}")
        self._descriptors = tuple(sorted(descriptors, key=lambda d: (d.priority, d.key)))

    def __iter__(self) -> Iterator[CollectorDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def keys(self) -> list[str]:
        return [d.key for d in self._descriptors]

    def get(self, key: str) -> CollectorDescriptor | None:
        return next((d for d in self._descriptors if d.key == key), None)

    def enabled(self, source: DataSource, config: Configuration) -> list[CollectorDescriptor]:
        """Enabled descriptors, in registry order. Probes run once per call."""
        selected = [d for d in self._descriptors if d.is_enabled(source, config)]
        skipped = [d.key for d in self._descriptors if d not in selected]
        if skipped:
            logger.debug("Collectors not enabled: %s", ", ".join(skipped))
        return selected


def _descriptor(cls: type[Collector], priority: int, probe: Probe = always) -> CollectorDescriptor:
    return CollectorDescriptor(cls.key, cls.title, priority, cls, probe)


def build_registry() -> Registry:
    """Host identity first, then resources, then subsystem collectors."""
    return Registry((
        _descriptor(OsCollector, 10),
        _descriptor(ProcCollector, 20),
        _descriptor(StorageCollector, 30),
        _descriptor(NetworkCollector, 40),
        _descriptor(ServicesCollector, 50, binary_probe("systemctl")),
        _descriptor(UsersCollector, 60),
        _descriptor(CronCollector, 70),
        _descriptor(JournalCollector, 80, journal_probe),
        _descriptor(DockerCollector, 90, docker_socket_probe),
        _descriptor(ContainersCollector, 100),
        _descriptor(SarCollector, 110, binary_probe("sar")),
        _descriptor(SecurityCollector, 120),
    ))
