"""Orchestrator — runs enabled collectors and assembles the Report.

Each enabled collector gets one unit of work on a bounded pool of daemon
worker threads and one pre-assigned slot indexed by registry position, so
completion order never affects section order. A unit that outlives its
per-collector timeout (counted from when it started) or the global deadline
is abandoned and its slot filled with an Error section. Workers are daemon
threads, so an abandoned unit stuck in a blocking call never holds up
interpreter exit.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, wait
from datetime import datetime

from vmic.config import Configuration
from vmic.errors import AdapterError
from vmic.health.engine import DigestEngine
from vmic.registry import CollectorDescriptor, Registry
from vmic.report import Report, Section, SectionStatus
from vmic.sources.base import DataSource, HostIdentity

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05  # seconds, while units are still queued


class OrchestratorError(Exception):
    """The orchestrator could not be constructed."""


class Orchestrator:
    def __init__(
        self,
        registry: Registry,
        source: DataSource,
        config: Configuration,
        engine: DigestEngine | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not isinstance(config, Configuration):
            raise OrchestratorError("A resolved Configuration is required")
        if len(registry) == 0:
            raise OrchestratorError("Collector registry is empty")
        try:
            self.identity: HostIdentity = source.identity()
        except AdapterError as e:
            raise OrchestratorError(f"Cannot resolve host identity: {e}") from e

        self.registry = registry
        self.source = source
        self.config = config
        self.engine = engine or DigestEngine(config.thresholds)
        self._clock = clock

    # ── Units ────────────────────────────────────────────────────────────────

    def _run_unit(
        self, index: int, descriptor: CollectorDescriptor, started: dict[int, float],
    ) -> Section:
        t0 = self._clock()
        started[index] = t0
        logger.debug("Collector %s started", descriptor.key)
        section = descriptor.factory().run(self.source, self.config)
        elapsed_ms = int((self._clock() - t0) * 1000)
        logger.debug("Collector %s finished in %dms (%s)", descriptor.key, elapsed_ms, section.status.value)
        return section.with_duration(elapsed_ms)

    def _worker(self, jobs: queue.SimpleQueue, started: dict[int, float]) -> None:
        while True:
            try:
                index, descriptor, future = jobs.get_nowait()
            except queue.Empty:
                return
            if not future.set_running_or_notify_cancel():
                continue  # abandoned before it started
            try:
                future.set_result(self._run_unit(index, descriptor, started))
            except Exception as e:
                future.set_exception(e)

    def _start_workers(
        self, descriptors: list[CollectorDescriptor], started: dict[int, float],
    ) -> list[Future[Section]]:
        jobs: queue.SimpleQueue = queue.SimpleQueue()
        futures: list[Future[Section]] = []
        for index, descriptor in enumerate(descriptors):
            future: Future[Section] = Future()
            futures.append(future)
            jobs.put((index, descriptor, future))
        for n in range(min(self.config.max_workers, len(descriptors))):
            threading.Thread(
                target=self._worker,
                args=(jobs, started),
                name=f"vmic-collector-{n}",
                daemon=True,
            ).start()
        return futures

    def _settle(self, descriptor: CollectorDescriptor, future: Future[Section]) -> Section:
        try:
            section = future.result()
        except Exception as e:
            logger.exception("Collector %s raised unexpectedly", descriptor.key)
            section = Section.error(
                descriptor.key, descriptor.title,
                f"Collector crashed: {type(e).__name__}",
                notes=[f"{type(e).__name__}: {e}"],
            )
        if section.status is not SectionStatus.OK:
            logger.warning("Section %s is %s: %s", descriptor.key, section.status.value, section.summary)
        return section

    # ── Collection ───────────────────────────────────────────────────────────

    def collect(self) -> list[Section]:
        """Run every enabled collector; one section per collector, in order."""
        descriptors = self.registry.enabled(self.source, self.config)
        if not descriptors:
            return []

        slots: list[Section | None] = [None] * len(descriptors)
        started: dict[int, float] = {}
        per_unit = self.config.collector_timeout
        deadline = self._clock() + self.config.global_timeout

        futures = {
            f: i for i, f in enumerate(self._start_workers(descriptors, started))
        }
        pending = set(futures)
        try:
            while pending:
                now = self._clock()
                for future in list(pending):
                    index = futures[future]
                    t0 = started.get(index)
                    unit_expired = t0 is not None and now - t0 >= per_unit
                    if not future.done() and (unit_expired or now >= deadline):
                        pending.discard(future)
                        future.cancel()
                        limit = per_unit if unit_expired else self.config.global_timeout
                        d = descriptors[index]
                        logger.warning("Collector %s abandoned after %.1fs", d.key, limit)
                        slots[index] = Section.timed_out(d.key, d.title, limit).with_duration(
                            int((now - (t0 if t0 is not None else now)) * 1000)
                        )
                if not pending:
                    break

                expiries = [deadline] + [
                    started[futures[f]] + per_unit for f in pending if futures[f] in started
                ]
                timeout = max(min(expiries) - now, 0.0)
                if any(futures[f] not in started for f in pending):
                    timeout = min(timeout, _POLL_INTERVAL)

                done, _ = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
                for future in done:
                    pending.discard(future)
                    index = futures[future]
                    slots[index] = self._settle(descriptors[index], future)
        finally:
            # Queued units never start; running ones finish on their own thread
            for future in pending:
                future.cancel()

        return [s for s in slots if s is not None]

    def run(self, generated_at: datetime | None = None) -> Report:
        sections = self.collect()
        digest = self.engine.digest(sections)
        report = Report.assemble(sections, digest, generated_at=generated_at)
        logger.info(
            "Report for %s: %d sections, overall %s",
            self.identity.hostname, len(sections), digest.overall.value,
        )
        return report
