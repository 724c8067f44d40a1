"""
CLI: ``engine-bridge serve`` -- start the API server.
"""

from __future__ import annotations

import typer
import uvicorn

from enginebridge.cli.utils import console

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default: BRIDGE_HOST)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default: BRIDGE_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the engine-bridge REST API server.

    One worker process only: the engine session, execution gate and job
    registry all live in-process.
    """
    from enginebridge.api.deps import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    console.print(
        f"[bold green]Starting engine-bridge API[/bold green] on {host}:{port} "
        f"(engine: {settings.engine})"
    )
    uvicorn.run(
        "enginebridge.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
        log_level=log_level,
    )
