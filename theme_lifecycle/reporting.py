"""Result formatting: JSON output and Rich terminal rendering."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from theme_lifecycle.backup.models import BackupListItem
from theme_lifecycle.models import (
    DependencyCheckResult,
    RiskLevel,
    SecurityScanResult,
    Severity,
    ValidationResult,
)
from theme_lifecycle.updater.models import UpdateResult, UpdateState

_SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
}

_RISK_STYLES = {
    RiskLevel.LOW: "bold green",
    RiskLevel.MEDIUM: "bold yellow",
    RiskLevel.HIGH: "bold red",
    RiskLevel.CRITICAL: "bold red",
}

_STATE_STYLES = {
    UpdateState.SUCCEEDED: ("bold green", "SUCCEEDED"),
    UpdateState.IDLE: ("bold", "UP TO DATE"),
    UpdateState.DRY_RUN_COMPLETED: ("bold cyan", "DRY RUN"),
    UpdateState.REJECTED: ("bold yellow", "REJECTED"),
    UpdateState.ROLLED_BACK: ("bold yellow", "ROLLED BACK"),
    UpdateState.FAILED_NO_ROLLBACK: ("bold red", "FAILED - NO ROLLBACK"),
}


def validation_to_json(result: ValidationResult) -> str:
    return result.model_dump_json(indent=2)


def scan_to_json(result: SecurityScanResult) -> str:
    return result.model_dump_json(indent=2)


def dependencies_to_json(result: DependencyCheckResult) -> str:
    return result.model_dump_json(indent=2)


def update_result_to_json(result: UpdateResult) -> str:
    return result.model_dump_json(indent=2)


def backups_to_json(items: list[BackupListItem]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items], indent=2)


def render_validation(result: ValidationResult, console: Console | None = None) -> None:
    """Render a validation result with its errors and warnings."""
    if console is None:
        console = Console()

    style, label = ("bold green", "VALID") if result.valid else ("bold red", "INVALID")
    header = f"[{style}]{label}[/{style}]\n\n"
    header += f"Errors: {len(result.errors)}  Warnings: {len(result.warnings)}"
    if result.metadata:
        meta = result.metadata
        header += (
            f"\nFiles: {meta.files_scanned}  Size: {meta.total_size / 1024:.1f}KB  "
            f"Sections: {meta.sections_found}  Blocks: {meta.blocks_found}"
        )
    console.print(Panel(header, title="Package Validation", border_style=style))

    issues = [("error", i) for i in result.errors] + [("warning", i) for i in result.warnings]
    if issues:
        table = Table(title="Issues")
        table.add_column("Level", style="bold")
        table.add_column("Kind")
        table.add_column("File")
        table.add_column("Message")
        for level, issue in issues:
            level_str = "[red]ERROR[/red]" if level == "error" else "[yellow]WARNING[/yellow]"
            location = issue.file or ""
            if issue.file and issue.line:
                location = f"{issue.file}:{issue.line}"
            table.add_row(level_str, issue.kind.value, location, issue.message)
        console.print(table)


def render_scan(result: SecurityScanResult, console: Console | None = None) -> None:
    """Render a security scan: score panel, threats and warnings."""
    if console is None:
        console = Console()

    style = _RISK_STYLES.get(result.risk_level, "bold")
    verdict = "SAFE" if result.safe else "UNSAFE"
    header = (
        f"[{style}]{verdict}[/{style}]\n\n"
        f"Score: {result.score}/100\n"
        f"Risk level: {result.risk_level.value}\n"
        f"Files scanned: {result.files_scanned}"
    )
    console.print(Panel(header, title="Security Scan", border_style=style))

    if result.threats:
        table = Table(title="Threats")
        table.add_column("Severity", style="bold")
        table.add_column("Type")
        table.add_column("Location")
        table.add_column("Message")
        table.add_column("Code")
        for threat in result.threats:
            sev_style = _SEVERITY_STYLES.get(threat.severity, "")
            location = f"{threat.file}:{threat.line}" if threat.line else (threat.file or "")
            table.add_row(
                f"[{sev_style}]{threat.severity.value.upper()}[/{sev_style}]",
                threat.type,
                location,
                threat.message,
                threat.code,
            )
        console.print(table)

    if result.warnings:
        table = Table(title="Warnings")
        table.add_column("Type", style="bold")
        table.add_column("File")
        table.add_column("Message")
        table.add_column("Recommendation")
        for warning in result.warnings:
            table.add_row(warning.type, warning.file or "", warning.message, warning.recommendation)
        console.print(table)


def render_dependencies(result: DependencyCheckResult, console: Console | None = None) -> None:
    if console is None:
        console = Console()

    style, label = ("bold green", "SATISFIED") if result.satisfied else ("bold red", "UNSATISFIED")
    console.print(Panel(
        f"[{style}]{label}[/{style}]\n\n"
        f"Missing: {len(result.missing)}  Incompatible: {len(result.incompatible)}",
        title="Dependencies",
        border_style=style,
    ))

    rows = [("missing", d) for d in result.missing] + [("incompatible", d) for d in result.incompatible]
    if rows:
        table = Table(title="Problems")
        table.add_column("Status", style="bold")
        table.add_column("Dependency")
        for status, issue in rows:
            table.add_row(status, str(issue))
        console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def render_backups(items: list[BackupListItem], console: Console | None = None) -> None:
    if console is None:
        console = Console()

    table = Table(title="Backups")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    table.add_column("Description")
    for item in items:
        table.add_row(
            item.id,
            item.name,
            item.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            f"{item.size / 1024:.1f}KB",
            item.description or "",
        )
    console.print(table)


def render_update_result(result: UpdateResult, console: Console | None = None) -> None:
    """Render the terminal outcome of an update session."""
    if console is None:
        console = Console()

    style, label = _STATE_STYLES.get(result.state, ("bold", result.state.value.upper()))
    header = f"[{style}]{label}[/{style}]\n\nPackage: {result.package_id}\n"
    if result.target_version:
        header += f"Version: {result.previous_version} -> {result.target_version}\n"
    else:
        header += f"Version: {result.version}\n"
    if result.backup_id:
        header += f"Backup: {result.backup_id}\n"
    header += f"\n{result.message}"
    console.print(Panel(header, title="Theme Update", border_style=style))

    if result.errors or result.warnings:
        table = Table(title="Session Log")
        table.add_column("Level", style="bold")
        table.add_column("Message")
        for error in result.errors:
            table.add_row("[red]ERROR[/red]", error)
        for warning in result.warnings:
            table.add_row("[yellow]WARNING[/yellow]", warning)
        console.print(table)
