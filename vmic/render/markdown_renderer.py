"""Markdown renderer — digest table followed by one section per collector."""

from __future__ import annotations

import json
from typing import Any

from vmic.report import Report, Section, SectionStatus, Severity

_STATUS_BADGE = {
    SectionStatus.OK: "OK",
    SectionStatus.DEGRADED: "DEGRADED",
    SectionStatus.ERROR: "ERROR",
}

_MAX_TABLE_ROWS = 50


def render_markdown(report: Report) -> str:
    """Render the full report as Markdown."""
    digest = report.health_digest
    lines = [
        "# Host Diagnostic Report",
        "",
        f"- Generated: {report.metadata.generated_at.isoformat()}",
        f"- Sections: {report.metadata.sections}",
        f"- Overall health: **{digest.overall.label}**",
        "",
        "## Health Digest",
        "",
    ]
    if digest.findings:
        lines += ["| Severity | Source | Message |", "|---|---|---|"]
        for f in digest.findings:
            lines.append(f"| {f.severity.label} | {_cell(f.source_title)} | {_cell(f.message)} |")
    else:
        lines.append("No findings.")
    lines.append("")

    for section in report.sections:
        lines += _render_section(section)
    return "\n".join(lines).rstrip() + "\n"


def _render_section(section: Section) -> list[str]:
    lines = [f"## {section.title}", "", f"Status: **{_STATUS_BADGE[section.status]}**"]
    if section.summary:
        lines += ["", section.summary]
    if section.notes:
        lines += ["", "Notes:"]
        lines += [f"- {note}" for note in section.notes]
    if section.status is not SectionStatus.ERROR:
        lines += [""] + render_body(section.body)
    lines.append("")
    return lines


# ── Generic body rendering ───────────────────────────────────────────────────


def _cell(value: Any) -> str:
    if value is None:
        text = "—"
    elif isinstance(value, bool):
        text = "yes" if value else "no"
    elif isinstance(value, float):
        text = f"{value:.4g}"
    elif isinstance(value, (dict, list)):
        text = json.dumps(value, sort_keys=True, default=str)
    else:
        text = str(value)
    return text.replace("|", "\\|").replace("\n", " ")


def _is_table(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, dict) for v in value)


def flatten(value: dict[str, Any], prefix: str = "") -> tuple[dict[str, Any], dict[str, list[dict[str, Any]]]]:
    """Split a body into dotted scalar keys and lists of objects."""
    scalars: dict[str, Any] = {}
    tables: dict[str, list[dict[str, Any]]] = {}
    for key, item in value.items():
        path = f"{prefix}{key}"
        if isinstance(item, dict) and item:
            sub_scalars, sub_tables = flatten(item, f"{path}.")
            scalars.update(sub_scalars)
            tables.update(sub_tables)
        elif _is_table(item):
            tables[path] = item
        elif isinstance(item, list):
            scalars[path] = ", ".join(_cell(v) for v in item) if item else "—"
        else:
            scalars[path] = item
    return scalars, tables


def render_table(rows: list[dict[str, Any]]) -> list[str]:
    columns: list[str] = []
    for row in rows:
        columns += [k for k in row if k not in columns]
    lines = [
        "| " + " | ".join(columns) + " |",
        "|" + "---|" * len(columns),
    ]
    for row in rows[:_MAX_TABLE_ROWS]:
        lines.append("| " + " | ".join(_cell(row.get(c)) for c in columns) + " |")
    if len(rows) > _MAX_TABLE_ROWS:
        lines.append(f"\n_{len(rows) - _MAX_TABLE_ROWS} more rows omitted; see JSON output._")
    return lines


def render_body(body: Any) -> list[str]:
    if _is_table(body):
        return render_table(body)
    if not isinstance(body, dict):
        return [_cell(body)] if body not in (None, [], "") else []

    scalars, tables = flatten(body)
    lines: list[str] = []
    if scalars:
        lines += ["| Key | Value |", "|---|---|"]
        lines += [f"| {key} | {_cell(value)} |" for key, value in scalars.items()]
    for name, rows in tables.items():
        if lines:
            lines.append("")
        lines += [f"**{name}**", ""] + render_table(rows)
    return lines


def severity_counts(report: Report) -> dict[Severity, int]:
    return {s: report.health_digest.count(s) for s in (Severity.CRITICAL, Severity.WARNING, Severity.INFO)}
