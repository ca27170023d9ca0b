"""
Root Typer application for the stepwise CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from stepwise.core.logging import configure_logging

app = Typer(
    name="stepwise",
    help="stepwise — resumable install wizard.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from stepwise import __version__

        try:
            v = pkg_version("stepwise")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"stepwise {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for wizard events."),
) -> None:
    """stepwise CLI — start, advance and inspect install runs."""
    configure_logging(level=log_level, json_format=False, service="stepwise-cli")


# ── Command registration ─────────────────────────────────────────────────

from stepwise.cli import install  # noqa: E402
from stepwise.cli.serve import serve  # noqa: E402

app.command("setup")(install.setup)
app.command("advance")(install.advance)
app.command("run")(install.run)
app.command("status")(install.status)
app.command("reset")(install.reset)
app.command("serve")(serve)
