"""Typer-based CLI for RouteGraph route impact analysis."""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .cli_watch import watch
from .config import CACHE_BACKENDS
from .config_manager import load_config
from .engine import EngineState
from .errors import BuildCancelled
from .report import format_impact_tree, impact_to_dict

console = Console()

app = typer.Typer(
    help="🧭 RouteGraph: find the routes a front-end change can affect.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("watch")(watch)

OUTPUT_FORMATS = ("text", "markdown", "json")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"RouteGraph v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log build and cache activity."),
):
    """RouteGraph: static route impact analysis for React, Next.js, Vue, SvelteKit and Angular apps."""
    _configure_logging(verbose)


def _open_engine(root: Path, workers: Optional[int] = None, cache_backend: Optional[str] = None) -> EngineState:
    resolved = root.resolve()
    if not resolved.is_dir():
        raise typer.BadParameter(f"Project root '{root}' is not a directory.")
    if cache_backend is not None and cache_backend not in CACHE_BACKENDS:
        raise typer.BadParameter(f"Unknown cache backend '{cache_backend}'. Use one of: {', '.join(CACHE_BACKENDS)}.")
    return EngineState(resolved, load_config(resolved, workers=workers, cache_backend=cache_backend))


def _changed_since(root: Path, ref: str) -> List[str]:
    """Files changed between *ref* and the working tree, relative to *root*."""
    try:
        proc = subprocess.run(
            ["git", "diff", "--name-only", "--relative", ref],
            cwd=str(root),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise typer.BadParameter(f"Could not run git: {exc}")
    if proc.returncode != 0:
        raise typer.BadParameter(f"git diff against '{ref}' failed: {proc.stderr.strip()}")
    return [line.strip() for line in proc.stdout.splitlines() if line.strip()]


ROOT_OPTION = typer.Option(Path("."), "--root", "-r", help="Project root.")


@app.command("scan")
def scan(
    root: Path = typer.Argument(Path("."), help="Project root to scan."),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore the snapshot and rebuild."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Parser threads."),
    cache_backend: Optional[str] = typer.Option(None, "--cache-backend", help="Snapshot store: disk or sqlite."),
):
    """Build (or refresh) the import graph and save a snapshot."""
    engine = _open_engine(root, workers, cache_backend)
    try:
        graph = engine.initialize(force_rebuild=force)
    except BuildCancelled as exc:
        console.print(f"[yellow]Scan cancelled:[/yellow] {escape(str(exc))}")
        raise typer.Exit(1)

    source = "snapshot" if engine.loaded_from_snapshot else "source"
    console.print(f"[green]✓[/green] Scanned [cyan]{escape(str(engine.root))}[/cyan] from {source}")
    console.print(
        f"  Framework: {engine.framework} | Files: {len(graph)} | "
        f"Routes: {len(graph.routes())} | Edges: {len(graph.edges())}"
    )
    stats = engine.builder.last_stats
    if not engine.loaded_from_snapshot:
        console.print(f"  Parsed: {len(stats.parsed)} | Reused: {stats.reused} | Skipped: {stats.skipped}")


@app.command("impact")
def impact(
    files: Optional[List[str]] = typer.Argument(None, help="Changed files (project-relative or absolute)."),
    root: Path = ROOT_OPTION,
    since: Optional[str] = typer.Option(None, "--since", "-s", help="Use files changed since this git ref."),
    output: str = typer.Option("text", "--format", "-o", help="Output format: text, markdown or json."),
):
    """Show the routes affected by a set of changed files."""
    if output not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"Unknown format '{output}'. Choose from: {', '.join(OUTPUT_FORMATS)}.")
    changed = list(files or [])
    if since:
        changed.extend(f for f in _changed_since(root.resolve(), since) if f not in changed)
    if not changed:
        raise typer.BadParameter("Pass at least one changed file or --since <ref>.")

    engine = _open_engine(root)
    result = engine.impact_of(changed)

    if output == "json":
        typer.echo(json.dumps(impact_to_dict(result), indent=2, sort_keys=True))
        return
    if output == "markdown":
        typer.echo(format_impact_tree(result))
        return

    table = Table(title="Route impact")
    table.add_column("Changed file", style="cyan")
    table.add_column("Routes")
    table.add_column("Notes", style="dim")
    for path, impact_ in result.files.items():
        notes = []
        if impact_.deleted:
            notes.append("deleted")
        if path in result.shared_components:
            notes.append("shared")
        if impact_.route_file_type:
            notes.append(impact_.route_file_type)
        notes.extend(impact_.partial)
        routes = ", ".join(result.routes.get(path, [])) or "-"
        table.add_row(escape(path), escape(routes), escape("; ".join(notes)))
    console.print(table)
    console.print(f"{len(result.files)} file(s) changed -> {len(result.all_routes)} route(s) affected")


@app.command("routes")
def routes(root: Path = ROOT_OPTION):
    """List every route declared in the project."""
    engine = _open_engine(root)
    found = engine.all_routes()
    if not found:
        console.print("No routes found.")
        return
    table = Table(title=f"Routes ({engine.framework})")
    table.add_column("Route", style="cyan")
    table.add_column("Component")
    table.add_column("Defined in")
    table.add_column("Style", style="dim")
    for route in found:
        table.add_row(
            escape(route.route_path),
            escape(route.component.display()),
            escape(f"{route.defining_file}:{route.line}"),
            route.routing_style,
        )
    console.print(table)


@app.command("serving")
def serving(
    file: str = typer.Argument(..., help="Component file to look up."),
    root: Path = ROOT_OPTION,
):
    """List the routes whose declaration renders the component in FILE."""
    engine = _open_engine(root)
    found = engine.find_routes_serving_component(file)
    if not found:
        console.print(f"No routes render {escape(file)} directly.")
        return
    for route in found:
        console.print(f"[cyan]{escape(route.route_path)}[/cyan]  ({escape(route.defining_file)}:{route.line})")


@app.command("metrics")
def metrics(root: Path = ROOT_OPTION):
    """Show graph and cache statistics."""
    engine = _open_engine(root)
    data = engine.metrics()
    caches = data.pop("caches")
    for key, value in data.items():
        console.print(f"{key.replace('_', ' ').capitalize()}: {escape(str(value))}")
    table = Table(title="Caches")
    for column in ("Cache", "Size", "Hits", "Misses"):
        table.add_column(column)
    for name, stats in caches.items():
        table.add_row(name, str(stats["size"]), str(stats["hits"]), str(stats["misses"]))
    console.print(table)


@app.command("clear-cache")
def clear_cache(root: Path = ROOT_OPTION):
    """Delete the persisted snapshot so the next run rebuilds from source."""
    engine = _open_engine(root)
    if engine.clear_cache():
        console.print(f"[green]✓[/green] Cleared cache for {escape(str(engine.root))}")
    else:
        console.print("[yellow]Cache could not be deleted; it will be ignored.[/yellow]")
