"""recordimport CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from recordimport.cli.positions import positions_cmd, reset_cmd
from recordimport.cli.run import run_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("recordimport")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"recordimport {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="recordimport",
    help=(
        "recordimport: workflow-engine records → monitoring store.\n\n"
        "  recordimport run        Import continuously until interrupted.\n"
        "  recordimport positions  Show where every stream will resume."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """recordimport: workflow-engine records → monitoring store."""


app.command("run")(run_cmd)
app.command("positions")(positions_cmd)
app.command("reset")(reset_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed recordimport version."""
    typer.echo(f"recordimport {_installed_version()}")


if __name__ == "__main__":
    app()
