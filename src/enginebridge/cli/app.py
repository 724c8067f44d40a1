"""
Root Typer application for the engine-bridge CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from enginebridge import __version__

app = Typer(
    name="engine-bridge",
    help="engine-bridge -- HTTP bridge in front of a single-session execution engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"engine-bridge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """engine-bridge CLI -- run the bridge and inspect its configuration."""


# ── Sub-command registration ─────────────────────────────────────────────

from enginebridge.cli.config import app as config_app  # noqa: E402
from enginebridge.cli.serve import app as serve_app  # noqa: E402

app.add_typer(serve_app, name="serve", help="Start the API server.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
