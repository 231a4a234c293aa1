"""Envoy CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from envoy.cli.ask import ask_cmd
from envoy.cli.init import init_cmd
from envoy.cli.sources import (
    add_file_cmd,
    add_url_cmd,
    groups_cmd,
    list_cmd,
    remove_cmd,
    rename_cmd,
)


def _installed_version() -> str:
    try:
        return importlib.metadata.version("envoy-library")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"envoy {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="envoy",
    help=(
        "Envoy: persistent knowledge library for grounded chat.\n\n"
        "  envoy add-file / add-url  Build the library.\n"
        "  envoy ask                 Ask a question grounded on the active group."
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
    """Envoy: persistent knowledge library for grounded chat."""


app.command("init")(init_cmd)
app.command("add-url")(add_url_cmd)
app.command("add-file")(add_file_cmd)
app.command("remove")(remove_cmd)
app.command("rename")(rename_cmd)
app.command("list")(list_cmd)
app.command("groups")(groups_cmd)
app.command("ask")(ask_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Envoy version."""
    typer.echo(f"envoy {_installed_version()}")


if __name__ == "__main__":
    app()
