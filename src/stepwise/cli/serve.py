"""
CLI: ``stepwise serve`` — start the API server.
"""

from __future__ import annotations

import typer
import uvicorn

from stepwise.cli.utils import console


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default: STEPWISE_HOST)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default: STEPWISE_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the stepwise REST API server."""
    from stepwise.core.settings import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    console.print(f"[bold green]Starting stepwise API[/bold green] on {host}:{port}")
    uvicorn.run(
        "stepwise.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
