"""deliverygate command line interface."""

from __future__ import annotations

import json
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import click
import yaml

from deliverygate.bootstrap import ControlPlane, build_control_plane
from deliverygate.cli.console import (
    console,
    print_error,
    print_header,
    print_incident,
    print_phase_result,
    print_phases,
    print_status,
    print_success,
    print_validation,
    print_warning,
)
from deliverygate.cli.logging_setup import setup_logging
from deliverygate.domain.exceptions import (
    ConfigurationError,
    ControlPlaneError,
    EmergencyStopActive,
    GateFailed,
    WorkflowHalted,
)
from deliverygate.domain.models import ProjectType
from deliverygate.interactive import RichCheckpointResolver, RichConfirmer

HINTS: dict[type[ControlPlaneError], str] = {
    EmergencyStopActive: "Run 'deliverygate resume --approved-by NAME' once it is safe",
    WorkflowHalted: "Run 'deliverygate resume --approved-by NAME' to clear the halt",
    ConfigurationError: "Run 'deliverygate config validate' to check the configuration",
}


def handle_errors[F: Callable[..., Any]](func: F) -> F:
    """Render control-plane errors as an error panel and exit non-zero."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except GateFailed as e:
            print_error(str(e), "Inspect the failure analysis written by the reflection step")
            raise SystemExit(1) from None
        except ControlPlaneError as e:
            print_error(str(e), HINTS.get(type(e)))
            raise SystemExit(1) from None

    return wrapper  # type: ignore[return-value]


def parse_value(raw: str) -> Any:
    """Interpret a command line value as YAML (``true``, ``3``, ``[a, b]``)."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def parse_override(text: str) -> tuple[str, Any]:
    key, sep, raw = text.partition("=")
    if not sep or not key.strip():
        raise click.BadParameter(f"expected key=value, got {text!r}", param_hint="--override")
    return key.strip(), parse_value(raw)


def _plane(ctx: click.Context, **kwargs: Any) -> ControlPlane:
    return build_control_plane(ctx.obj["root"], **kwargs)


@click.group()
@click.option(
    "--root",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project root holding configuration, state and outputs (default: .)",
)
@click.option("--log-file", default=None, type=click.Path(), help="Path to log file")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose (DEBUG) logging to console")
@click.version_option(package_name="deliverygate")
@click.pass_context
def cli(ctx: click.Context, root: Path, log_file: str | None, verbose: bool) -> None:
    """Multi-phase software delivery control plane."""
    setup_logging(log_file=log_file, verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["root"] = root


# ----------------------------------------------------------------------
# Workflow
# ----------------------------------------------------------------------


@cli.command()
@click.pass_context
@handle_errors
def status(ctx: click.Context) -> None:
    """Show workflow, autonomy and safety status."""
    plane = _plane(ctx)
    print_status(
        plane.state_machine.status(),
        plane.policy.autonomy_level,
        plane.safe_mode.status(),
        plane.emergency_stop.status(),
    )


@cli.command()
@click.option("--catalog", default=None, type=click.Path(exists=True), help="Phase catalog file")
@click.pass_context
@handle_errors
def phases(ctx: click.Context, catalog: str | None) -> None:
    """List the phases of the workflow in order."""
    plane = _plane(ctx, catalog=catalog)
    machine = plane.state_machine
    print_phases(
        machine.order,
        plane.phases,
        machine.current_phase,
        machine.status().completed_phases,
    )


@cli.command()
@click.option("--phase", "phase_id", default=None, help="Execute only this phase")
@click.option(
    "--project-type",
    default=None,
    type=click.Choice([t.value for t in ProjectType]),
    help="Project type of a fresh workflow",
)
@click.option(
    "--override",
    "overrides",
    multiple=True,
    help="Session override key=value (repeatable), e.g. autonomy-settings.goal_mode.enabled=false",
)
@click.option("--catalog", default=None, type=click.Path(exists=True), help="Phase catalog file")
@click.option("--max-phases", default=None, type=int, help="Stop after this many phases")
@click.option("--dry-run", is_flag=True, help="Use placeholder capabilities where none is installed")
@click.option("--safe-mode", "safe", is_flag=True, help="Run with safe mode active")
@click.option("--fail-fast", is_flag=True, help="Stop the gate pipeline at the first failure")
@click.option(
    "--interactive/--no-interactive",
    default=True,
    help="Prompt for checkpoints and confirmations (default: on)",
)
@click.pass_context
@handle_errors
def run(
    ctx: click.Context,
    phase_id: str | None,
    project_type: str | None,
    overrides: tuple[str, ...],
    catalog: str | None,
    max_phases: int | None,
    dry_run: bool,
    safe: bool,
    fail_fast: bool,
    interactive: bool,
) -> None:
    """Run the workflow from the current phase."""
    parsed = [parse_override(text) for text in overrides]
    plane = _plane(
        ctx,
        project_type=ProjectType(project_type) if project_type else None,
        catalog=catalog,
        dry_run=dry_run,
        fail_fast=fail_fast,
        checkpoint_resolver=RichCheckpointResolver(console=console) if interactive else None,
        confirmer=RichConfirmer(console=console) if interactive else None,
    )
    plane.capabilities.require(plane.required_capabilities())
    for key, value in parsed:
        plane.policy.set_override(key, value)
    if safe:
        plane.safe_mode.activate()

    machine = plane.state_machine
    print_header(
        f"deliverygate: {machine.project_type.value}",
        f"autonomy: {plane.policy.autonomy_level} | phase: {machine.current_phase}",
    )

    if phase_id:
        results = [plane.engine.execute_phase(phase_id)]
    else:
        results = plane.engine.run(max_phases=max_phases)

    for result in results:
        print_phase_result(result)

    final = machine.status()
    if machine.finished:
        print_success("Workflow complete")
    elif final.pending_checkpoint:
        print_warning(
            f"Checkpoint pending for {final.pending_checkpoint}; "
            "run 'deliverygate checkpoint --resolved-by NAME'"
        )
    else:
        console.print(f"Current phase: [bold]{final.current_phase}[/bold] ({final.progress}%)")


@cli.command()
@click.option("--resolved-by", required=True, help="Who is resolving the checkpoint")
@click.option("--reject", is_flag=True, help="Reject instead of approving")
@click.option("--notes", default="", help="Notes recorded with the decision")
@click.pass_context
@handle_errors
def checkpoint(ctx: click.Context, resolved_by: str, reject: bool, notes: str) -> None:
    """Resolve the pending human checkpoint."""
    plane = _plane(ctx)
    phase_id = plane.state_machine.pending_checkpoint
    next_phase = plane.engine.resolve_checkpoint(resolved_by, approved=not reject, notes=notes)
    if reject:
        print_warning(f"Checkpoint for {phase_id} rejected by {resolved_by}")
    elif next_phase:
        print_success(f"Checkpoint for {phase_id} approved; now at {next_phase}")
    else:
        print_success(f"Checkpoint for {phase_id} approved")


@cli.command()
@click.pass_context
@handle_errors
def advance(ctx: click.Context) -> None:
    """Move past a completed phase when auto-transition is disabled."""
    plane = _plane(ctx)
    print_success(f"Advanced to {plane.engine.advance()}")


@cli.command()
@click.confirmation_option(prompt="Discard workflow progress and start over?")
@click.pass_context
@handle_errors
def reset(ctx: click.Context) -> None:
    """Reset the workflow to its first phase."""
    plane = _plane(ctx)
    plane.engine.reset()
    print_success(f"Workflow reset to {plane.state_machine.current_phase}")


@cli.command()
@click.pass_context
@handle_errors
def report(ctx: click.Context) -> None:
    """Print the workflow report as JSON."""
    plane = _plane(ctx)
    click.echo(json.dumps(plane.engine.report(), indent=2))


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------


@cli.group()
def config() -> None:
    """Inspect and change autonomy configuration."""
    pass


@config.command("get")
@click.argument("key")
@click.pass_context
@handle_errors
def config_get(ctx: click.Context, key: str) -> None:
    """Print the effective value of a dotted KEY."""
    plane = _plane(ctx)
    value = plane.policy.resolve(key)
    if value is None:
        print_warning(f"{key} is not set")
        raise SystemExit(1)
    if isinstance(value, (dict, list)):
        click.echo(yaml.safe_dump(value, sort_keys=False, default_flow_style=False).strip())
    else:
        click.echo(json.dumps(value))


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
@handle_errors
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Persist VALUE (parsed as YAML) at a dotted KEY."""
    plane = _plane(ctx)
    plane.policy.set(key, parse_value(value))
    print_success(f"{key} = {plane.policy.resolve(key)!r}")


@config.command("profile")
@click.argument("name")
@click.pass_context
@handle_errors
def config_profile(ctx: click.Context, name: str) -> None:
    """Apply the autonomy profile NAME."""
    plane = _plane(ctx)
    plane.policy.set_profile(name)
    print_success(f"Autonomy level set to {name}")
    report = plane.policy.validate()
    for warning in report.warnings:
        print_warning(warning)


@config.command("validate")
@click.pass_context
@handle_errors
def config_validate(ctx: click.Context) -> None:
    """Validate every configuration document."""
    plane = _plane(ctx)
    reports = plane.policy.validate_all()
    for name, report in reports.items():
        print_validation(name, report)
    if not all(report.valid for report in reports.values()):
        raise SystemExit(1)


@config.command("export")
@click.option("--format", "fmt", default="yaml", type=click.Choice(["yaml", "json"]))
@click.pass_context
@handle_errors
def config_export(ctx: click.Context, fmt: str) -> None:
    """Print every configuration document."""
    plane = _plane(ctx)
    click.echo(plane.policy.export_config(fmt))


@config.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
@handle_errors
def config_import(ctx: click.Context, path: Path) -> None:
    """Replace configuration documents from an export file."""
    plane = _plane(ctx)
    fmt = "json" if path.suffix == ".json" else "yaml"
    names = plane.policy.import_config(path.read_text(encoding="utf-8"), fmt)
    print_success(f"Imported: {', '.join(names)}")


@config.command("reset")
@click.argument("name", required=False)
@click.pass_context
@handle_errors
def config_reset(ctx: click.Context, name: str | None) -> None:
    """Restore built-in defaults (one document, or all)."""
    plane = _plane(ctx)
    plane.policy.reset(name)
    print_success(f"Reset {name or 'all configuration'} to defaults")


# ----------------------------------------------------------------------
# Safety
# ----------------------------------------------------------------------


@cli.group("safe-mode")
def safe_mode() -> None:
    """Inspect safe mode restrictions."""
    pass


@safe_mode.command("check")
@click.argument("actions", nargs=-1, required=True)
@click.pass_context
@handle_errors
def safe_mode_check(ctx: click.Context, actions: tuple[str, ...]) -> None:
    """Show how ACTIONS fare while safe mode is active."""
    plane = _plane(ctx, in_memory=True)
    plane.safe_mode.activate()
    try:
        for action in actions:
            if plane.interlocks.is_allowed(action):
                console.print(f"[green]✓ {action}: allowed[/green]")
            elif plane.interlocks.requires_confirmation(action):
                console.print(f"[yellow]? {action}: requires confirmation[/yellow]")
            else:
                console.print(f"[red]✗ {action}: blocked[/red]")
    finally:
        plane.safe_mode.deactivate()


@cli.command("emergency-stop")
@click.argument("reason", default="User initiated")
@click.pass_context
@handle_errors
def emergency_stop(ctx: click.Context, reason: str) -> None:
    """Halt all activity and write an incident report."""
    plane = _plane(ctx)
    incident = plane.emergency_stop.execute(reason)
    print_incident(incident)
    console.print("Resume with: deliverygate resume --approved-by NAME")


@cli.command()
@click.option("--approved-by", required=True, help="Who approved resuming operations")
@click.pass_context
@handle_errors
def resume(ctx: click.Context, approved_by: str) -> None:
    """Resume after an emergency stop or a workflow halt."""
    plane = _plane(ctx)
    resumed = False
    if plane.emergency_stop.is_stopped:
        record = plane.emergency_stop.resume(approved_by)
        print_success(
            f"Operations resumed by {approved_by} after {record.duration:.0f}s "
            f"(stopped: {record.stop_reason})"
        )
        resumed = True
    if plane.state_machine.halted:
        plane.state_machine.clear_halt(approved_by)
        print_success(f"Workflow halt cleared by {approved_by}")
        resumed = True
    if not resumed:
        print_warning("Nothing to resume: no emergency stop or workflow halt is active")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
