"""``airlock serve`` — run the update server under uvicorn."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from airlock.config import AirlockSettings
from airlock.core.errors import SigningError
from airlock.core.production_guard import ProductionConfigError

console = Console()


def configure_logging(level: str) -> None:
    """Route the root logger through rich at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def serve_cmd(
    host: Optional[str] = typer.Option(None, help="Bind address (default from AIRLOCK_HOST)."),
    port: Optional[int] = typer.Option(None, help="Bind port (default from AIRLOCK_PORT)."),
    storage: Optional[str] = typer.Option(
        None, "--storage", "-s", help="Storage backend: memory or sqlite."
    ),
    database: Optional[Path] = typer.Option(
        None, "--database", help="SQLite database path (sqlite backend)."
    ),
) -> None:
    """Start the Airlock HTTP server.

    Every option falls back to its AIRLOCK_* environment variable.
    """
    import uvicorn

    from airlock.server.app import create_app

    overrides = {
        name: value
        for name, value in {
            "host": host,
            "port": port,
            "storage_backend": storage,
            "database_path": database,
        }.items()
        if value is not None
    }
    settings = AirlockSettings(**overrides)
    configure_logging(settings.log_level)

    try:
        app = create_app(settings)
    except (ProductionConfigError, SigningError) as exc:
        console.print(f"[bold red]Refusing to start:[/bold red]\n{exc}")
        raise typer.Exit(code=1)

    if not settings.admin_token:
        console.print(
            "[yellow]No AIRLOCK_ADMIN_TOKEN set — admin routes are open.[/yellow]"
        )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
