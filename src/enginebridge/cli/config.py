"""
CLI: ``engine-bridge config`` -- configuration inspection.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError as SettingsValidationError

from enginebridge.cli.utils import console, err_console, print_mapping

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show the effective settings (defaults, ``.env`` and ``BRIDGE_*`` merged)."""
    from enginebridge.api.settings import BridgeAPISettings

    settings = BridgeAPISettings()

    if format == "json":
        console.print_json(settings.model_dump_json())
        return

    if format == "env":
        for key, value in sorted(settings.model_dump().items()):
            console.print(
                f"BRIDGE_{key.upper()}={'' if value is None else value}", markup=False, soft_wrap=True
            )
        return

    print_mapping(settings.model_dump(), title="engine-bridge settings")
    console.print(f"[bold]Jobs root:[/bold] {settings.jobs_root}")
    console.print(f"[bold]Exports root:[/bold] {settings.exports_root}")


@app.command("validate")
def validate_config() -> None:
    """Load settings and report configuration errors."""
    from enginebridge.api.settings import BridgeAPISettings

    try:
        settings = BridgeAPISettings()
    except SettingsValidationError as e:
        err_console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    if settings.engine == "batch" and not settings.batch_command:
        err_console.print("[yellow]Warning:[/yellow] engine=batch with an empty batch_command")
    console.print("[green]Configuration OK[/green]")
