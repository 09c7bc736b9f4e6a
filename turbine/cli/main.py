"""Turbine CLI — Entry point.

Usage:
    turbine install [--packages packages.yaml] [--config config.yaml]
    turbine update  [--packages packages.yaml]
    turbine sync    [--packages packages.yaml]
    turbine clean   [--packages packages.yaml]
    turbine status  [--json]

Without ``--packages`` the specs registered by a previous run (persisted
in the cache) are used.
"""

from __future__ import annotations

import typer

from turbine import __version__
from turbine.cli.commands import packages

app = typer.Typer(
    name="turbine",
    help="Turbine — asynchronous package manager with lazy activation.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

app.registered_commands.extend(packages.app.registered_commands)


@app.command("version")
def version() -> None:
    """Print the Turbine version."""
    typer.echo(__version__)


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
