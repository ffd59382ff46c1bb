"""Report data model — sections, findings, digest, metadata.

All models are frozen: a Section is created once by its collector and the
Report is assembled once by the orchestrator. The JSON shape produced by
``model_dump(mode="json")`` is the report schema consumed by renderers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class SectionStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    ERROR = "error"


class Severity(str, Enum):
    OK = "ok"
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()


_SEVERITY_RANK = {
    Severity.OK: 0,
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.CRITICAL: 3,
}


# ── Models ───────────────────────────────────────────────────────────────────


class Section(BaseModel):
    """One collector's structured output plus its status.

    Notes are a tuple. The body is a plain JSON value tree that the collector
    hands over when the section is built and never touches again. Readers
    must treat it as read-only.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    status: SectionStatus
    summary: str | None = None
    body: Any = Field(default_factory=dict)
    notes: tuple[str, ...] = ()
    duration_ms: int | None = None

    @classmethod
    def ok(
        cls, id: str, title: str, body: Any, summary: str | None = None,
        notes: list[str] | None = None,
    ) -> Section:
        return cls(id=id, title=title, status=SectionStatus.OK,
                   summary=summary, body=body, notes=tuple(notes or ()))

    @classmethod
    def degraded(
        cls, id: str, title: str, body: Any, summary: str | None = None,
        notes: list[str] | None = None,
    ) -> Section:
        return cls(id=id, title=title, status=SectionStatus.DEGRADED,
                   summary=summary, body=body, notes=tuple(notes or ()))

    @classmethod
    def error(
        cls, id: str, title: str, message: str, notes: list[str] | None = None,
    ) -> Section:
        return cls(id=id, title=title, status=SectionStatus.ERROR,
                   summary=message, body={"error": message}, notes=tuple(notes or ()))

    @classmethod
    def timed_out(cls, id: str, title: str, timeout_s: float) -> Section:
        return cls.error(
            id, title,
            f"Collector did not finish within {timeout_s:g}s",
            notes=[f"timeout: result abandoned after {timeout_s:g}s"],
        )

    def with_duration(self, duration_ms: int) -> Section:
        return self.model_copy(update={"duration_ms": duration_ms})


class Finding(BaseModel):
    """One digest entry."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    source_id: str = ""
    source_title: str
    message: str


class HealthDigest(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall: Severity = Severity.OK
    findings: tuple[Finding, ...] = ()

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)


class ReportMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sections: int = 0


class Report(BaseModel):
    """Complete ordered set of sections for one run."""

    model_config = ConfigDict(frozen=True)

    metadata: ReportMetadata
    health_digest: HealthDigest = Field(default_factory=HealthDigest)
    sections: list[Section] = Field(default_factory=list)

    @classmethod
    def assemble(
        cls,
        sections: list[Section],
        digest: HealthDigest,
        generated_at: datetime | None = None,
    ) -> Report:
        metadata = ReportMetadata(
            generated_at=generated_at or datetime.now(timezone.utc),
            sections=len(sections),
        )
        return cls(metadata=metadata, health_digest=digest, sections=list(sections))

    def section(self, section_id: str) -> Section | None:
        return next((s for s in self.sections if s.id == section_id), None)
