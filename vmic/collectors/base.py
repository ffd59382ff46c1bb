"""Collector contract — one DataSource + Configuration in, one Section out.

A collector implements ``collect()``. Primary-source failures may simply
propagate (AdapterError or CollectorError); ``run()`` turns them into an
Error section. Optional failures go through ``SectionBuilder.optional_failure``
and leave a Degraded section.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from vmic.errors import AdapterError, CollectorError, NotFound
from vmic.report import Section, SectionStatus
from vmic.sources.base import DataSource

if TYPE_CHECKING:
    from vmic.config import Configuration

logger = logging.getLogger(__name__)


class SectionBuilder:
    """Accumulates notes and the degraded flag while a collector works."""

    def __init__(self, id: str, title: str) -> None:
        self.id = id
        self.title = title
        self.notes: list[str] = []
        self.degraded = False

    def note(self, text: str) -> None:
        self.notes.append(text)

    def optional_failure(self, error: AdapterError, what: str = "") -> None:
        """Record a failed optional sub-query; the section becomes Degraded."""
        self.degraded = True
        prefix = f"{what}: " if what else ""
        self.notes.append(f"{prefix}{error.describe()}")

    def optional_read(self, source: DataSource, path: str, what: str = "") -> str | None:
        """Read an optional file. A missing file is not a failure."""
        try:
            return source.read_text(path)
        except NotFound:
            return None
        except AdapterError as e:
            self.optional_failure(e, what)
            return None

    def build(self, body: Any, summary: str | None = None) -> Section:
        status = SectionStatus.DEGRADED if self.degraded else SectionStatus.OK
        return Section(
            id=self.id,
            title=self.title,
            status=status,
            summary=summary,
            body=body,
            notes=tuple(self.notes),
        )


class Collector(ABC):
    """Base class for every domain collector."""

    key: ClassVar[str]
    title: ClassVar[str]

    def builder(self) -> SectionBuilder:
        return SectionBuilder(self.key, self.title)

    @abstractmethod
    def collect(self, source: DataSource, config: Configuration) -> Section: ...

    def run(self, source: DataSource, config: Configuration) -> Section:
        """Collect, converting any data-source failure into an Error section."""
        try:
            return self.collect(source, config)
        except CollectorError as e:
            logger.warning("Collector %s failed: %s", self.key, e.message)
            return Section.error(self.key, self.title, e.message, notes=e.all_notes())
        except AdapterError as e:
            logger.warning("Collector %s lost its primary source: %s", self.key, e)
            return Section.error(
                self.key, self.title,
                f"Primary data source inaccessible: {e.kind.value}",
                notes=[e.describe()],
            )
