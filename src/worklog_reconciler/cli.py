"""Command-line interface for the worklog reconciler."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .config import ReconcileSettings, ServiceSettings
from .errors import ExternalServiceError, ReconcilerError
from .paths import get_db_path
from .server_runner import run_server

app = typer.Typer(help="Reconcile tracked activity with committed work-log entries.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _resolve_date(date: Optional[str]) -> str:
    if not date:
        return datetime.now().strftime("%Y-%m-%d")
    try:
        return datetime.strptime(date, "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError as exc:
        raise typer.BadParameter("Date must be YYYY-MM-DD") from exc


def _tempo_client(settings: ServiceSettings):
    from .clients import TempoClient

    try:
        return TempoClient.from_settings(settings)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the history SQLite database."
    ),
    threshold: int = typer.Option(
        80,
        "--logged-threshold",
        min=1,
        max=100,
        help="Coverage percentage at which an activity counts as logged.",
    ),
) -> None:
    """Start the local reconciliation API."""
    run_server(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=ReconcileSettings.from_values(logged_threshold_percent=threshold),
    )


@app.command()
def worklogs(
    date: Optional[str] = typer.Option(
        None, "--date", help="Date (YYYY-MM-DD) to list. Defaults to today."
    ),
) -> None:
    """List the committed entries of a day with their time ranges."""
    from .conflicts import worklogs_with_ranges
    from .reporting import ReconciliationPrinter

    target = _resolve_date(date)
    client = _tempo_client(ServiceSettings.from_env())
    try:
        entries = client.fetch_entries(target)
    except ExternalServiceError as exc:
        typer.echo(f"Could not fetch work-log entries: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    ReconciliationPrinter().print_entries(target, worklogs_with_ranges(entries))


@app.command()
def check(
    start: str = typer.Option(..., "--start", help="Start time HH:MM."),
    end: str = typer.Option(..., "--end", help="End time HH:MM."),
    date: Optional[str] = typer.Option(None, "--date", help="Date (YYYY-MM-DD)."),
    exclude: Optional[str] = typer.Option(
        None, "--exclude", help="Entry id being edited; ignored in the check."
    ),
) -> None:
    """Warn about committed entries overlapping a proposed time range."""
    from .conflicts import check_conflict
    from .reporting import ReconciliationPrinter

    target = _resolve_date(date)
    client = _tempo_client(ServiceSettings.from_env())
    try:
        result = check_conflict(client, target, start, end, exclude)
    except ExternalServiceError as exc:
        typer.echo(f"Could not fetch work-log entries: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except ReconcilerError as exc:
        raise typer.BadParameter(str(exc)) from exc
    ReconciliationPrinter().print_conflicts(result)
    if result.has_overlap:
        raise typer.Exit(code=3)


@app.command()
def report(
    date: Optional[str] = typer.Option(
        None, "--date", help="Date (YYYY-MM-DD) to reconcile. Defaults to today."
    ),
) -> None:
    """Classify the day's tracked activity against the work log."""
    from .clients import ActivityWatchClient
    from .reporting import ReconciliationPrinter

    target = _resolve_date(date)
    services = ServiceSettings.from_env()
    tempo = _tempo_client(services)
    activity = ActivityWatchClient.from_settings(services)
    try:
        blocks = activity.fetch_blocks(target)
        entries = tempo.fetch_entries(target)
    except ExternalServiceError as exc:
        typer.echo(f"Could not fetch data: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    ReconciliationPrinter().print_day(target, blocks, entries)


@app.command()
def suggest(
    title: str = typer.Argument(..., help="Activity title to find tickets for."),
    app_name: Optional[str] = typer.Option(None, "--app", help="Application name."),
    project: Optional[str] = typer.Option(None, "--project", help="Project name."),
    limit: int = typer.Option(5, "--limit", min=1, help="Maximum suggestions."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the history SQLite database."
    ),
) -> None:
    """Print ranked ticket suggestions from the local history."""
    from .db import database_connection
    from .history import suggest_for_activity

    with database_connection(db_path or get_db_path()) as conn:
        ranked = suggest_for_activity(
            conn, title, app=app_name, project=project, limit=limit
        )
    if not ranked:
        typer.echo("No suggestions.")
        return
    for item in ranked:
        typer.echo(
            f"{item.ticket_key:<12} {item.confidence:>4.0%}  {item.source.value:<17} {item.reason}"
        )


@app.command("map-project")
def map_project(
    project: str = typer.Argument(..., help="Project name."),
    ticket: str = typer.Argument(..., help="Ticket key to pin the project to."),
    name: Optional[str] = typer.Option(None, "--name", help="Ticket name for display."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the history SQLite database."
    ),
) -> None:
    """Pin a project to a ticket with full confidence."""
    from .db import database_connection
    from .history import set_project_mapping

    with database_connection(db_path or get_db_path()) as conn:
        set_project_mapping(conn, project, ticket, name or ticket)
    typer.echo(f"{project} -> {ticket}")
