"""Rich console output for the deliverygate CLI."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from deliverygate.domain.models import (
    EmergencyStopStatus,
    GateReport,
    IncidentReport,
    PhaseDefinition,
    PhaseResult,
    SafeModeStatus,
    ValidationReport,
    WorkflowStatus,
)

# Shared console instances
console = Console()
error_console = Console(stderr=True)


def print_header(title: str, subtitle: str | None = None) -> None:
    """Print a styled header panel."""
    content = Text(title, style="bold blue")
    if subtitle:
        content.append(f"\n{subtitle}", style="dim")
    console.print(Panel(content, expand=False))


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))


def print_success(message: str) -> None:
    console.print(Panel(message, title="Success", border_style="green"))


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_status(
    status: WorkflowStatus,
    autonomy_level: str,
    safe_mode: SafeModeStatus,
    emergency: EmergencyStopStatus,
) -> None:
    """Print the workflow, policy and safety status table."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Project type", status.project_type.value)
    table.add_row("Current phase", status.current_phase or "-")
    table.add_row("Progress", f"{status.progress}%")
    table.add_row("Completed", ", ".join(status.completed_phases) or "-")
    table.add_row("Next", ", ".join(status.valid_transitions) or "-")
    table.add_row("Autonomy level", autonomy_level)
    table.add_row("Safe mode", "ACTIVE" if safe_mode.active else "inactive")
    if status.pending_checkpoint:
        table.add_row("Checkpoint", f"[yellow]pending for {status.pending_checkpoint}[/yellow]")
    if status.halted:
        table.add_row("Halted", f"[red]{status.halt_reason}[/red]")
    if emergency.stopped:
        table.add_row("Emergency stop", f"[bold red]STOPPED[/bold red] ({emergency.reason})")

    console.print(table)


def print_phases(
    order: Sequence[str],
    phases: Mapping[str, PhaseDefinition],
    current: str | None,
    completed: Sequence[str],
) -> None:
    """Print the phase order with step counts and markers."""
    table = Table(title="Phases")
    table.add_column("#", style="dim", width=3)
    table.add_column("Phase", style="cyan")
    table.add_column("Steps", justify="right")
    table.add_column("Checkpoint", style="yellow")
    table.add_column("State")

    for index, phase_id in enumerate(order, 1):
        phase = phases.get(phase_id)
        steps = str(len(phase.steps())) if phase else "?"
        checkpoint = phase.human_checkpoint.level.value if phase and phase.human_checkpoint else ""
        if phase_id in completed:
            state = "[green]complete[/green]"
        elif phase_id == current:
            state = "[bold]current[/bold]"
        else:
            state = ""
        table.add_row(str(index), phase_id, steps, checkpoint, state)

    console.print(table)


def print_validation(name: str, report: ValidationReport) -> None:
    style = "green" if report.valid else "red"
    console.print(f"[{style}]{name}: {'valid' if report.valid else 'invalid'}[/{style}]")
    for error in report.errors:
        console.print(f"  [red]✗ {error}[/red]")
    for warning in report.warnings:
        console.print(f"  [yellow]⚠ {warning}[/yellow]")


def print_gate_report(report: GateReport) -> None:
    table = Table(show_header=True, box=None)
    table.add_column("Gate", style="cyan", width=4)
    table.add_column("Name")
    table.add_column("Result")

    for result in report.results:
        outcome = "[green]passed[/green]" if result.passed else f"[red]{result.reason}[/red]"
        table.add_row(str(result.gate), result.name, outcome)
    console.print(table)


def print_phase_result(result: PhaseResult) -> None:
    """Print one phase outcome, its non-blocking failures and gate reports."""
    console.print(f"[bold]{result.phase_id}[/bold]: {result.status.value}")
    if result.transitioned_to:
        console.print(f"  → {result.transitioned_to}")
    if result.checkpoint:
        console.print(f"  [yellow]Checkpoint: {result.checkpoint.purpose}[/yellow]")
        for question in result.checkpoint.questions:
            console.print(f"    • {question}")
    for failure in result.failures:
        console.print(f"  [yellow]⚠ {failure.step_id}: {failure.error}[/yellow]")
    for warning in result.warnings:
        console.print(f"  [yellow]⚠ {warning}[/yellow]")
    for report in result.gate_reports:
        print_gate_report(report)


def print_incident(report: IncidentReport, location: str | None = None) -> None:
    """Print an emergency stop report."""
    content = Text(f"{report.title}\n", style="bold red")
    content.append(f"Reason: {report.reason}\n")
    content.append(f"Time: {report.timestamp}\n")
    content.append(f"Phase: {report.snapshot.current_phase or 'None'}\n")
    if location:
        content.append(f"Report: {location}\n", style="dim")
    content.append("\nRecommendations:\n", style="bold")
    for recommendation in report.recommendations:
        content.append(f"  • {recommendation}\n")
    console.print(Panel(content, title="EMERGENCY STOP", border_style="red"))
