"""
CLI: ``stepwise setup|advance|run|status|reset`` — drive the install wizard
from a terminal.

Every command rebuilds the wizard from settings, so a run started by one
invocation is resumed by the next one from the durable status store.
"""

from __future__ import annotations

import typer

from stepwise.cli.utils import console, fail, make_wizard, parse_instructions, print_outcome, print_statuses
from stepwise.core.errors import StepwiseError
from stepwise.orchestration.runner import AllComplete, StepFailed

DataDirOption = typer.Option(None, "--data-dir", "-d", help="Data directory (default: STEPWISE_DATA_DIR)")
BackendOption = typer.Option(None, "--backend", "-b", help="Status store: sqlite or file")
TargetOption = typer.Option(None, "--target-version", "-t", help="Version to install")
DatabaseUrlOption = typer.Option(
    None, "--database-url", help="Application database URL (default: STEPWISE_DATABASE_URL)"
)
InstructionsOption = typer.Option(
    None, "--instructions", "-i", help="Instructions as a JSON object or a JSON file path"
)


def setup(
    data_dir: str | None = DataDirOption,
    backend: str | None = BackendOption,
    target_version: str | None = TargetOption,
    database_url: str | None = DatabaseUrlOption,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Start an install run and list its steps."""
    wizard = make_wizard(data_dir, backend, target_version, database_url)
    try:
        result = wizard.setup()
    except StepwiseError as e:
        fail(e)

    if json_out:
        console.print_json(
            data={
                "installId": result.run_id,
                "installType": result.install_type,
                "steps": [s.name for s in result.steps],
            }
        )
        return
    console.print(f"[bold]Install run[/bold] {result.run_id} ({result.install_type})")
    for i, step in enumerate(result.steps, 1):
        marker = " [yellow](needs instruction)[/yellow]" if step.requires_instruction else ""
        console.print(f"  {i}. [cyan]{step.name}[/cyan] {step.description}{marker}")


def advance(
    run_id: str = typer.Argument(..., help="Install run id"),
    instructions: str | None = InstructionsOption,
    data_dir: str | None = DataDirOption,
    backend: str | None = BackendOption,
    target_version: str | None = TargetOption,
    database_url: str | None = DatabaseUrlOption,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Execute the next step of an install run."""
    wizard = make_wizard(data_dir, backend, target_version, database_url)
    payload = parse_instructions(instructions)
    try:
        outcome = wizard.perform(run_id, payload)
    except StepwiseError as e:
        fail(e)
    print_outcome(outcome, as_json=json_out)


def run(
    instructions: str | None = InstructionsOption,
    data_dir: str | None = DataDirOption,
    backend: str | None = BackendOption,
    target_version: str | None = TargetOption,
    database_url: str | None = DatabaseUrlOption,
) -> None:
    """Start a run and advance it until it completes or a step blocks."""
    wizard = make_wizard(data_dir, backend, target_version, database_url)
    payload = parse_instructions(instructions)
    try:
        result = wizard.setup()
        console.print(f"[bold]Install run[/bold] {result.run_id} ({result.install_type})")
        while True:
            outcome = wizard.perform(result.run_id, payload)
            print_outcome(outcome)
            if isinstance(outcome, AllComplete | StepFailed):
                break
    except StepwiseError as e:
        fail(e)


def status(
    run_id: str = typer.Argument(..., help="Install run id"),
    data_dir: str | None = DataDirOption,
    backend: str | None = BackendOption,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show step-by-step progress of an install run."""
    wizard = make_wizard(data_dir, backend)
    try:
        statuses = wizard.status(run_id)
    except StepwiseError as e:
        fail(e)
    print_statuses(statuses, title=f"Install run {run_id}", as_json=json_out)


def reset(
    run_id: str = typer.Argument(..., help="Install run id"),
    data_dir: str | None = DataDirOption,
    backend: str | None = BackendOption,
) -> None:
    """Discard an install run's progress."""
    wizard = make_wizard(data_dir, backend)
    try:
        wizard.reset(run_id)
    except StepwiseError as e:
        fail(e)
    console.print(f"[green]Reset[/green] {run_id}")
