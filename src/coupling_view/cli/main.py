"""Coupling View CLI — co-change views over git commits."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from coupling_view import __version__
from coupling_view.config.settings import (
    DEFAULT_DATA_DIR,
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_NEO4J_URI,
    DEFAULT_VIEW_NAME,
    StoreSettings,
    ViewOptions,
)
from coupling_view.core.errors import CouplingViewError

console = Console()

app = typer.Typer(
    name="coupling-view",
    help="Coupling View — materialized co-change views that surface tightly coupled files.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    """Print the version and exit."""
    if value:
        console.print(f"Coupling View v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(  # noqa: N803
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    backend: str = typer.Option(
        "kuzu",
        "--backend",
        "-b",
        help="View store: kuzu, neo4j or memory (dry run; views are discarded on exit).",
    ),
    db_path: Path = typer.Option(
        Path(DEFAULT_DATA_DIR) / "kuzu", "--db-path", help="Kuzu database path."
    ),
    neo4j_url: str = typer.Option(DEFAULT_NEO4J_URI, "--neo4j-url", help="Neo4j connection URI."),
    neo4j_user: str = typer.Option("neo4j", "--neo4j-user", help="Neo4j username."),
    neo4j_pass: str = typer.Option("password", "--neo4j-pass", help="Neo4j password."),
    verbose: bool = typer.Option(False, "--verbose", help="Log every view update."),
) -> None:
    """Coupling View — materialized co-change views that surface tightly coupled files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    try:
        ctx.obj = StoreSettings(
            backend=backend,
            path=db_path,
            uri=neo4j_url,
            user=neo4j_user,
            password=neo4j_pass,
        )
    except CouplingViewError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _open_service(
    settings: StoreSettings,
    *,
    read_only: bool = False,
    view_name: str = DEFAULT_VIEW_NAME,
    threshold: int = DEFAULT_MATCH_THRESHOLD,
) -> "CouplingViewService":  # noqa: F821
    """Open a service for *settings*, exiting with an error message on failure."""
    from coupling_view.service import CouplingViewService

    if read_only and settings.backend == "memory":
        console.print(
            "[red]Error:[/red] The memory backend keeps no views between commands. "
            "Use --backend kuzu or --backend neo4j."
        )
        raise typer.Exit(code=1)

    if read_only and settings.backend == "kuzu" and not settings.path.exists():
        console.print(
            f"[red]Error:[/red] No view store found at {settings.path}. "
            "Run 'coupling-view process' or 'coupling-view replay' first."
        )
        raise typer.Exit(code=1)

    try:
        options = ViewOptions(view_name=view_name, match_threshold=threshold)
        return CouplingViewService(settings, options).open(read_only=read_only)
    except CouplingViewError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _warn_if_dry_run(settings: StoreSettings) -> None:
    if settings.backend == "memory":
        console.print("[yellow]Dry run:[/yellow] the memory backend discarded these views.")


@app.command()
def process(
    ctx: typer.Context,
    payload: str = typer.Argument(..., help="Commit payload JSON file, or '-' for stdin."),
    view_name: str = typer.Option(DEFAULT_VIEW_NAME, "--view-name", help="View kind tag."),
    threshold: int = typer.Option(DEFAULT_MATCH_THRESHOLD, "--threshold", help="Matches per capture."),
) -> None:
    """Apply one commit payload to the view store."""
    try:
        if payload == "-":
            data = json.loads(sys.stdin.read())
        else:
            data = json.loads(Path(payload).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Error:[/red] Cannot read payload: {exc}")
        raise typer.Exit(code=1) from exc

    service = _open_service(ctx.obj, view_name=view_name, threshold=threshold)
    try:
        result = service.process_payload(data)
    except CouplingViewError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    console.print(f"[bold green]Processed[/bold green] commit for project {result.project_id}")
    console.print(f"  Files:          {result.files}")
    console.print(f"  File groups:    {result.groups}")
    console.print(f"  Created:        {result.created}")
    console.print(f"  Matched:        {result.matched}")
    console.print(f"  Captured:       {result.captured}")
    _warn_if_dry_run(ctx.obj)


@app.command()
def replay(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Path to the git repository to replay."),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project id (defaults to the directory name)."),
    since_months: Optional[int] = typer.Option(None, "--since-months", help="Only replay this many months of history."),
    view_name: str = typer.Option(DEFAULT_VIEW_NAME, "--view-name", help="View kind tag."),
    threshold: int = typer.Option(DEFAULT_MATCH_THRESHOLD, "--threshold", help="Matches per capture."),
) -> None:
    """Replay a repository's git history into the view store."""
    from coupling_view.core.ingestion.git_log import commits_to_events, parse_git_log

    repo_path = path.resolve()
    if not repo_path.is_dir():
        console.print(f"[red]Error:[/red] {repo_path} is not a directory.")
        raise typer.Exit(code=1)

    project_id = project or repo_path.name
    events = commits_to_events(parse_git_log(repo_path, since_months), project_id)
    if not events:
        console.print(f"[red]Error:[/red] No commits with changed files found in {repo_path}.")
        raise typer.Exit(code=1)

    console.print(f"[bold]Replaying[/bold] {len(events)} commits of {repo_path} as project {project_id}")

    totals = {"groups": 0, "created": 0, "matched": 0, "captured": 0}
    service = _open_service(ctx.obj, view_name=view_name, threshold=threshold)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=len(events))
            for i, event in enumerate(events, start=1):
                result = service.processor.process_sync(event)
                for name in totals:
                    totals[name] += getattr(result, name)
                progress.update(task, advance=1, description=f"Commit {i}/{len(events)}")
    except CouplingViewError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    console.print()
    console.print("[bold green]Replay complete.[/bold green]")
    console.print(f"  Commits:        {len(events)}")
    console.print(f"  File groups:    {totals['groups']}")
    console.print(f"  Created:        {totals['created']}")
    console.print(f"  Matched:        {totals['matched']}")
    console.print(f"  Captured:       {totals['captured']}")
    _warn_if_dry_run(ctx.obj)


@app.command()
def show(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="View key to display."),
) -> None:
    """Show a single view as JSON."""
    service = _open_service(ctx.obj, read_only=True)
    try:
        view = service.store.get_view(key)
    except CouplingViewError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    if view is None:
        console.print(f"[red]Error:[/red] No view found for key {key}.")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(view.to_dict()))


@app.command()
def views(
    ctx: typer.Context,
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of views."),
) -> None:
    """List a project's views, most captures first."""
    service = _open_service(ctx.obj, read_only=True)
    try:
        found = service.store.list_views(project, limit=limit)
    except CouplingViewError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    if not found:
        console.print(f"No views found for project {project}.")
        return

    table = Table(title=f"Views for {project}")
    table.add_column("Key", overflow="fold")
    table.add_column("Captures", justify="right")
    table.add_column("Matches", justify="right")
    table.add_column("Updated")
    for view in found:
        table.add_row(
            view.id,
            str(view.model.captures),
            str(view.model.matches),
            view.updated_at.isoformat(timespec="seconds"),
        )
    console.print(table)
