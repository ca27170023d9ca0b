"""
CLI utility helpers — wizard construction, instruction parsing and output.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from stepwise.core.errors import StepwiseError
from stepwise.core.settings import StepwiseSettings
from stepwise.install.wizard import InstallWizard
from stepwise.orchestration.runner import AllComplete, RunOutcome, StepCompleted, StepFailed
from stepwise.orchestration.store import RunStatus

console = Console()
err_console = Console(stderr=True)


# ── Wizard helper ────────────────────────────────────────────────────────


def make_settings(
    data_dir: str | None = None,
    backend: str | None = None,
    target_version: str | None = None,
    database_url: str | None = None,
) -> StepwiseSettings:
    """Settings from the environment, with CLI options taking precedence."""
    overrides: dict[str, Any] = {
        "data_dir": data_dir,
        "status_backend": backend,
        "target_version": target_version,
        "database_url": database_url,
    }
    return StepwiseSettings(**{k: v for k, v in overrides.items() if v is not None})


def make_wizard(
    data_dir: str | None = None,
    backend: str | None = None,
    target_version: str | None = None,
    database_url: str | None = None,
) -> InstallWizard:
    return InstallWizard(make_settings(data_dir, backend, target_version, database_url))


def parse_instructions(value: str | None) -> dict[str, Any]:
    """Instructions from a JSON string or the path of a JSON file."""
    if not value:
        return {}
    text = value
    path = Path(value)
    if not value.lstrip().startswith("{") and path.is_file():
        text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except ValueError as e:
        err_console.print(f"[bold red]Error[/bold red] (VALIDATION): instructions are not valid JSON: {e}")
        raise typer.Exit(code=1) from e
    if not isinstance(data, dict):
        err_console.print("[bold red]Error[/bold red] (VALIDATION): instructions must be a JSON object")
        raise typer.Exit(code=1)
    return data


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: StepwiseError) -> None:
    """Print ``error`` and exit with code 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


def print_outcome(outcome: RunOutcome, *, as_json: bool = False) -> None:
    """Render one ``advance`` outcome; a failed step exits with code 1."""
    if as_json:
        console.print_json(json.dumps(outcome.to_dict(), default=str))
    elif isinstance(outcome, StepCompleted):
        console.print(f"[green]✓[/green] {outcome.step_name}")
    elif isinstance(outcome, AllComplete):
        console.print("[bold green]Install complete[/bold green]")

    if isinstance(outcome, StepFailed):
        if not as_json:
            err_console.print(
                f"[bold red]Step failed[/bold red] ({outcome.step_name}, view={outcome.view}): {outcome.message}"
            )
        raise typer.Exit(code=1)


def print_statuses(statuses: list[RunStatus], *, title: str = "", as_json: bool = False) -> None:
    if as_json:
        console.print_json(json.dumps([s.to_dict() for s in statuses], default=str))
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    table.add_column("step")
    table.add_column("complete")
    table.add_column("saved data", overflow="fold")
    for s in statuses:
        table.add_row(
            s.name,
            "[green]yes[/green]" if s.is_complete else "[dim]no[/dim]",
            json.dumps(s.saved_data, default=str) if s.saved_data is not None else "",
        )
    console.print(table)
