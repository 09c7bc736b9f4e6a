"""CLI — Package management commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from turbine.config import Settings
from turbine.exceptions import TurbineError
from turbine.jobs.runner import SubprocessRunner
from turbine.logging import configure_logging
from turbine.manager import Turbine, configure

app = typer.Typer(help="Install, update, clean and inspect packages.")
console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
]
PackagesOption = Annotated[
    Path | None,
    typer.Option("--packages", "-p", help="YAML mapping of package name to spec."),
]


def _load_packages(path: Path) -> dict[str, Any]:
    import yaml

    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        _fail(f"Cannot read {path}: {exc}")
    if not isinstance(data, dict):
        _fail(f"{path} must contain a mapping of package specs")
    return data


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {escape(message)}[/red]", soft_wrap=True)
    raise typer.Exit(2)


def _build(config: Path | None, packages: Path | None) -> Turbine:
    try:
        settings = Settings.load(config_file=config)
        configure_logging(settings.logging)
        turbine = configure(settings, runner=SubprocessRunner())
        if packages is not None:
            turbine.register(_load_packages(packages))
    except TurbineError as exc:
        _fail(exc.message)
    return turbine


def _require_registered(turbine: Turbine, packages: Path | None) -> None:
    """Refuse to delete anything when the registry is empty.

    An empty registry usually means the persisted spec table expired or was
    never written, and cleaning against it would remove every package.
    """
    if packages is None and len(turbine.registry) == 0:
        _fail(
            "no packages registered; the persisted package table is missing or expired. "
            "Pass --packages to declare the packages to keep."
        )


def _print_results(title: str, results: dict[str, dict[str, Any]]) -> None:
    if not results:
        console.print("[yellow]No packages registered.[/yellow]")
        return

    table = Table(title=title)
    table.add_column("Package", style="cyan")
    table.add_column("Result")
    table.add_column("Message")
    for name in sorted(results):
        outcome = results[name]
        table.add_row(
            name,
            "[green]ok[/green]" if outcome["succeeded"] else "[red]failed[/red]",
            outcome["message"],
        )
    console.print(table)

    done = sum(1 for r in results.values() if r["succeeded"])
    console.print(f"{done}/{len(results)} succeeded")


def _exit_for(results: dict[str, dict[str, Any]]) -> None:
    if any(not r["succeeded"] for r in results.values()):
        raise typer.Exit(1)


@app.command("install")
def install(config: ConfigOption = None, packages: PackagesOption = None) -> None:
    """Clone every registered package that is not installed yet."""
    turbine = _build(config, packages)
    results = asyncio.run(turbine.install_all())
    _print_results("Install", results)
    _exit_for(results)


@app.command("update")
def update(config: ConfigOption = None, packages: PackagesOption = None) -> None:
    """Fast-forward every registered package (installing missing ones)."""
    turbine = _build(config, packages)
    results = asyncio.run(turbine.update_all())
    _print_results("Update", results)
    _exit_for(results)


@app.command("sync")
def sync(config: ConfigOption = None, packages: PackagesOption = None) -> None:
    """Update every package, then remove directories that are no longer registered."""
    turbine = _build(config, packages)
    _require_registered(turbine, packages)

    async def _sync() -> tuple[dict[str, dict[str, Any]], list[str]]:
        results = await turbine.update_all()
        removed = await turbine.remove_untracked()
        return results, removed

    try:
        results, removed = asyncio.run(_sync())
    except TurbineError as exc:
        _fail(exc.message)
    _print_results("Sync", results)
    for name in removed:
        console.print(f"Removed [cyan]{name}[/cyan]")
    _exit_for(results)


@app.command("clean")
def clean(config: ConfigOption = None, packages: PackagesOption = None) -> None:
    """Delete installed packages that are no longer registered."""
    turbine = _build(config, packages)
    _require_registered(turbine, packages)
    try:
        removed = asyncio.run(turbine.remove_untracked())
    except TurbineError as exc:
        _fail(exc.message)
    if not removed:
        console.print("No packages to clean.")
        return
    for name in removed:
        console.print(f"Removed [cyan]{name}[/cyan]")


@app.command("status")
def status(
    config: ConfigOption = None,
    packages: PackagesOption = None,
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
) -> None:
    """Show installed / activated / lazy state of every package."""
    turbine = _build(config, packages)
    report = turbine.status()

    if json_output:
        typer.echo(json.dumps(report, indent=2, sort_keys=True))
        return

    if not report:
        console.print("[yellow]No packages registered.[/yellow]")
        return

    table = Table(title="Turbine Status")
    table.add_column("Package", style="cyan")
    table.add_column("Installed")
    table.add_column("Activated")
    table.add_column("Lazy")
    table.add_column("Revision")
    table.add_column("URL")
    for name in sorted(report):
        info = report[name]
        table.add_row(
            name,
            "[green]✓[/green]" if info["installed"] else "[red]✗[/red]",
            "yes" if info["activated"] else "no",
            "yes" if info["lazy"] else "no",
            (info["resolved_revision"] or "-")[:12],
            info["source_url"] or "-",
        )
    console.print(table)
