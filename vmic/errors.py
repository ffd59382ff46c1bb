"""Failure taxonomy.

AdapterError   — raised at the DataSource boundary, one subclass per kind.
CollectorError — raised inside a collector when its primary data is gone;
                 aggregates the adapter failures that caused it.
ConfigurationError — fatal, raised before any collector runs.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    NOT_FOUND = "not found"
    PERMISSION_DENIED = "permission denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"


class AdapterError(Exception):
    """A raw data source could not deliver its content."""

    kind: FailureKind = FailureKind.UNAVAILABLE

    def __init__(self, resource: str, detail: str = "") -> None:
        self.resource = resource
        self.detail = detail
        super().__init__(self.describe())

    def describe(self) -> str:
        if self.detail:
            return f"{self.resource}: {self.kind.value} ({self.detail})"
        return f"{self.resource}: {self.kind.value}"


class NotFound(AdapterError):
    kind = FailureKind.NOT_FOUND


class PermissionDenied(AdapterError):
    kind = FailureKind.PERMISSION_DENIED


class SourceTimeout(AdapterError):
    kind = FailureKind.TIMEOUT


class Unavailable(AdapterError):
    kind = FailureKind.UNAVAILABLE


class Malformed(AdapterError):
    kind = FailureKind.MALFORMED


class CollectorError(Exception):
    """The primary source of a collector is inaccessible.

    Carries zero or more AdapterErrors; ``notes`` are added to the
    resulting Error section verbatim.
    """

    def __init__(
        self,
        message: str,
        errors: list[AdapterError] | None = None,
        notes: list[str] | None = None,
    ) -> None:
        self.message = message
        self.errors = list(errors or [])
        self.notes = list(notes or [])
        super().__init__(message)

    def all_notes(self) -> list[str]:
        return self.notes + [e.describe() for e in self.errors]


class ConfigurationError(Exception):
    """Invalid configuration. Aborts the run before orchestration."""
