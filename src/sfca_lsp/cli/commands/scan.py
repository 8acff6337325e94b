"""
Scan Command - Run Code Analyzer on files and report the diagnostics.

Uses the same scan pipeline as the language server, so what the CLI prints is
exactly what the editor would show.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Tuple

import click
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ...config import load_settings
from ...core.types import SeverityBucket
from ...diagnostics import AnalyzerDiagnostic, DiagnosticFactory, ThresholdSeverityPolicy
from ...manager import DiagnosticManager
from ...scanner import CodeAnalyzerCliScanner, ScanAction
from ..utils_telemetry import get_telemetry_service

logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    SeverityBucket.ERROR: "red",
    SeverityBucket.WARNING: "yellow",
    SeverityBucket.INFO: "cyan",
}


# --- API Models ---
class DiagnosticRecord(BaseModel):
    """One row of `scan --json` output. Lines and columns are 1-based."""
    file: str
    line: int
    column: int
    severity: str
    engine: str
    rule: str
    message: str

    @classmethod
    def from_diagnostic(cls, diagnostic: AnalyzerDiagnostic) -> "DiagnosticRecord":
        return cls(
            file=diagnostic.file,
            line=diagnostic.range.start.line + 1,
            column=diagnostic.range.start.character + 1,
            severity=diagnostic.severity_bucket.value,
            engine=diagnostic.engine,
            rule=diagnostic.rule,
            message=diagnostic.violation.message.strip(),
        )


class ConsoleDisplay:
    """Display over a rich console. Remembers whether an error was shown."""

    def __init__(self, console: Console):
        self.console = console
        self.errors: List[str] = []

    def display_info(self, message: str) -> None:
        self.console.print(escape(message))

    def display_warning(self, message: str) -> None:
        self.console.print(f"[yellow]{escape(message)}[/yellow]")

    def display_error(self, message: str) -> None:
        self.errors.append(message)
        self.console.print(f"[bold red]{escape(message)}[/bold red]")


def run_scan(targets: List[Path], root: Path, display: ConsoleDisplay) -> Tuple[AnalyzerDiagnostic, ...]:
    settings = load_settings(root)
    action = ScanAction(
        CodeAnalyzerCliScanner(settings.scanner, cwd=root),
        DiagnosticFactory(ThresholdSeverityPolicy(settings.severity.error_max, settings.severity.warning_max)),
        DiagnosticManager(),
        display,
        get_telemetry_service(),
    )
    return tuple(asyncio.run(action.run(targets)))


def render_table(console: Console, diagnostics: Tuple[AnalyzerDiagnostic, ...], root: Path) -> None:
    table = Table(title="Code Analyzer Violations")
    table.add_column("Location", style="dim")
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Message")

    for d in diagnostics:
        path = Path(d.file)
        shown = path.relative_to(root) if path.is_relative_to(root) else path
        style = SEVERITY_STYLES[d.severity_bucket]
        table.add_row(
            f"{shown}:{d.range.start.line + 1}:{d.range.start.character + 1}",
            f"[{style}]Sev{d.violation.severity}[/{style}]",
            f"{d.engine}:{d.rule}",
            escape(d.violation.message.strip()),
        )
    console.print(table)


@click.command()
@click.argument("targets", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--root", type=click.Path(exists=True, file_okay=False), default=".", help="Workspace root (default: .)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def scan(targets: Tuple[str, ...], root: str, as_json: bool):
    """
    Scan files with Code Analyzer and list the violations.

    Exits with code 1 when the scan itself fails.
    """
    root_path = Path(root).resolve()
    # JSON mode keeps stdout clean for the payload.
    console = Console(stderr=as_json)
    display = ConsoleDisplay(console)

    diagnostics = run_scan([Path(t).resolve() for t in targets], root_path, display)

    if as_json:
        records = [DiagnosticRecord.from_diagnostic(d).model_dump() for d in diagnostics]
        click.echo(json.dumps(records, indent=2))
    elif diagnostics:
        render_table(console, diagnostics, root_path)

    if display.errors:
        sys.exit(1)
