"""Entry point for the vmic host diagnostic report."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from vmic import __version__
from vmic.config import Configuration, OutputFormat, load_settings, resolve_configuration
from vmic.errors import ConfigurationError
from vmic.orchestrator import Orchestrator, OrchestratorError
from vmic.registry import Registry, build_registry
from vmic.render import render_json, render_markdown
from vmic.render.markdown_renderer import severity_counts
from vmic.report import Report, Severity
from vmic.sources import DataSource, HostDataSource

console = Console(stderr=True)
logger = logging.getLogger("vmic")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

_OVERALL_STYLE = {
    Severity.OK: "bold green",
    Severity.INFO: "bold blue",
    Severity.WARNING: "bold yellow",
    Severity.CRITICAL: "bold red",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vmic",
        description="Single-shot, severity-ranked diagnostic report of a Linux host",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--format", choices=[f.value for f in OutputFormat], help="Output format")
    parser.add_argument("--output", help="Write the report to PATH ('-' for stdout)")
    parser.add_argument("--since", help="Time-range filter for logs (30m, 2h, 7d, today, YYYY-MM-DD)")
    parser.add_argument("--config", dest="config_file", help="YAML config file")

    thresholds = parser.add_argument_group("digest thresholds (percent, ratio or NN%)")
    for name in ("disk-warning", "disk-critical", "memory-warning", "memory-critical",
                 "inode-warning", "inode-critical"):
        thresholds.add_argument(f"--{name}", metavar="V")

    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--only", metavar="KEYS", help="Comma-separated collectors to run")
    selection.add_argument("--disable", metavar="KEYS", help="Comma-separated collectors to skip")
    parser.add_argument("--no-journal", dest="journal", action="store_const", const=False,
                        help="Skip the journal collector")

    parser.add_argument("--collector-timeout", type=float, metavar="S")
    parser.add_argument("--global-timeout", type=float, metavar="S")
    parser.add_argument("--max-workers", type=int, metavar="N")
    parser.add_argument("--list-collectors", action="store_true", help="List collectors and exit")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser


def resolve(args: argparse.Namespace, registry: Registry) -> Configuration:
    explicit = {
        key: getattr(args, key)
        for key in (
            "format", "output", "since", "disk_warning", "disk_critical",
            "memory_warning", "memory_critical", "inode_warning", "inode_critical",
            "only", "disable", "journal", "collector_timeout", "global_timeout",
            "max_workers", "log_level",
        )
    }
    settings = load_settings(args.config_file, **explicit)
    return resolve_configuration(settings, registry.keys())


def list_collectors(registry: Registry) -> None:
    table = Table(title="Collectors")
    table.add_column("Key", style="cyan")
    table.add_column("Title")
    table.add_column("Priority", justify="right")
    for d in registry:
        table.add_row(d.key, d.title, str(d.priority))
    Console().print(table)


def write_report(report: Report, config: Configuration) -> None:
    if config.output_format is OutputFormat.JSON:
        text = render_json(report) + "\n"
    else:
        text = render_markdown(report)

    if config.output is None:
        sys.stdout.write(text)
        sys.stdout.flush()
    else:
        config.output.write_text(text, encoding="utf-8")
        logger.info("Report written to %s", config.output)


def print_digest(report: Report) -> None:
    digest = report.health_digest
    counts = severity_counts(report)
    lines = [
        f"Overall: {digest.overall.label}",
        f"{counts[Severity.CRITICAL]} critical, {counts[Severity.WARNING]} warning, "
        f"{counts[Severity.INFO]} info",
    ]
    for f in digest.findings:
        if f.severity in (Severity.CRITICAL, Severity.WARNING):
            lines.append(f"[{f.severity.label}] {f.source_title}: {f.message}")
    console.print(Panel(Text("\n".join(lines)), title="Health Digest", style=_OVERALL_STYLE[digest.overall]))


def main(argv: Sequence[str] | None = None, source: DataSource | None = None) -> int:
    args = build_parser().parse_args(argv)
    registry = build_registry()

    if args.list_collectors:
        list_collectors(registry)
        return EXIT_OK

    try:
        config = resolve(args, registry)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        return EXIT_CONFIG

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        orchestrator = Orchestrator(registry, source or HostDataSource(), config)
    except OrchestratorError as e:
        console.print(f"[bold red]Cannot start:[/bold red] {escape(str(e))}")
        return EXIT_FAILURE

    report = orchestrator.run()
    try:
        write_report(report, config)
    except OSError as e:
        console.print(f"[bold red]Cannot write report:[/bold red] {escape(str(e))}")
        return EXIT_FAILURE
    print_digest(report)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
