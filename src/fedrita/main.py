from __future__ import annotations

from typing import Optional

import typer
import uvicorn

from fedrita.auth.guards import ROUTES, Guard
from fedrita.config import settings

cli = typer.Typer(help="Fedrita CLI (salon dashboard backend)")


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"Fedrita {settings.app.version}")


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload for local development"),
) -> None:
    """Run the Fedrita API server."""
    uvicorn.run(
        "fedrita.api.main:app",
        host=host,
        port=port,
        reload=reload,
        app_dir="src",
    )


@cli.command()
def routes(
    guard: Optional[Guard] = typer.Option(None, help="Only list routes behind this guard"),
) -> None:
    """Print the page routes and the guard protecting each."""
    for route in ROUTES:
        if guard is not None and route.guard != guard:
            continue
        label = route.guard.value if route.guard else "public"
        typer.echo(f"{route.path:<22} {label:<18} {route.page}")


if __name__ == "__main__":
    cli()
