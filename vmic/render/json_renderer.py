"""JSON rendering of the report schema."""

from __future__ import annotations

from pydantic import ValidationError

from vmic.report import Report


def render_json(report: Report, indent: int = 2) -> str:
    """Render the report as a JSON string."""
    return report.model_dump_json(indent=indent)


def parse_report(text: str | bytes) -> Report:
    """Rebuild a Report from its JSON form. Raises ValueError on bad input."""
    try:
        return Report.model_validate_json(text)
    except ValidationError as e:
        raise ValueError(f"Not a valid report: {e}") from e
