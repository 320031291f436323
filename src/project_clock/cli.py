"""Command-line interface for the project clock."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import typer

from .logcodec import DATE_FMT

app = typer.Typer(help="Project time allocation tracker.")

ANALYSE_USAGE = "Usage: project-clock analyse LOGFILE [FROM TO]"


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _parse_day(value: str) -> datetime:
    return datetime.strptime(value, DATE_FMT)


@app.command()
def analyse(
    log_file: Path = typer.Argument(..., help="Activity log to analyse."),
    dates: Optional[List[str]] = typer.Argument(
        None,
        metavar="[FROM TO]",
        help="Start (inclusive) and stop (exclusive) dates in dd/MM/yyyy format.",
    ),
) -> None:
    """Print the hours spent on each top-level project."""
    from .analyser import analyse_log
    from .reporting import render_project_hours

    dates = dates or []
    if len(dates) not in (0, 2):
        typer.echo(ANALYSE_USAGE, err=True)
        raise typer.Exit(code=1)
    start = end = None
    if dates:
        try:
            start, end = _parse_day(dates[0]), _parse_day(dates[1])
        except ValueError:
            typer.echo("Dates should be specified in the following format: dd/MM/yyyy", err=True)
            raise typer.Exit(code=1)

    try:
        sums = analyse_log(log_file, start, end)
    except OSError as exc:
        typer.echo(f"Could not read log file {log_file}: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(render_project_hours(sums), nl=False)


@app.command()
def review(
    from_date: Optional[str] = typer.Option(
        None, "--from", help="Start date (dd/MM/yyyy, inclusive). Defaults to a week ago."
    ),
    to_date: Optional[str] = typer.Option(
        None, "--to", help="Stop date (dd/MM/yyyy, exclusive). Defaults to today."
    ),
    submit: bool = typer.Option(False, "--submit", help="Submit the percentages to the hub."),
    team: Optional[str] = typer.Option(None, "--team", help="Team to submit for."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", path_type=Path, help="Location of the configuration file."
    ),
) -> None:
    """Show hours and percentages per top-level project, optionally submitting them."""
    from .analyser import ReviewSheet
    from .config import load_settings
    from .hub import Hub, HubError, week_id_for
    from .projects import ProjectHierarchy

    settings = load_settings(config_path)
    today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        end = _parse_day(to_date) if to_date else today
        start = _parse_day(from_date) if from_date else end - timedelta(days=7)
    except ValueError:
        typer.echo("Dates should be specified in the following format: dd/MM/yyyy", err=True)
        raise typer.Exit(code=1)

    hierarchy = ProjectHierarchy.load_or_create(settings.resolve_projects_path())
    try:
        sheet = ReviewSheet.from_log(
            settings.resolve_log_path(), start, end, hierarchy.top_level_projects()
        )
    except OSError as exc:
        typer.echo(f"Could not read the activity log: {exc}", err=True)
        raise typer.Exit(code=1)

    percentages = sheet.percentages() or {}
    for row in sheet.rows:
        percent = percentages.get(row.project)
        label = f"({percent:.2f}%)" if percent is not None else "(N/A)"
        typer.echo(f"{row.project}: {row.hours:.2f} {label}")
    typer.echo(f"TOTAL: {sheet.total:.2f}")

    if not submit:
        return
    if settings.hub is None:
        typer.echo("No hub is configured; set 'hub' in the configuration.", err=True)
        raise typer.Exit(code=1)
    if start.weekday() != 0 or end - start != timedelta(days=7):
        typer.echo("Submissions must cover exactly one week, Monday to Monday.", err=True)
        raise typer.Exit(code=1)
    try:
        path = Hub(settings.hub).submit(
            team or settings.team, week_id_for(start.date()), settings.username_on_hub, sheet
        )
    except (HubError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Data successfully saved to the hub ({path.name}).")


@app.command()
def aggregate(
    hub: Path = typer.Argument(..., path_type=Path, help="Root directory of the hub."),
    tolerance: float = typer.Option(
        0.005,
        "--tolerance",
        min=0.0,
        help="Allowed distance from 100% before a user is flagged.",
    ),
) -> None:
    """Reconcile every team's weekly submissions into reports."""
    from .aggregator import aggregate_hub
    from .hub import HubError
    from .reporting import render_aggregation

    try:
        aggregation = aggregate_hub(hub, tolerance=tolerance)
    except HubError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(render_aggregation(aggregation), nl=False)


@app.command("hub-setup")
def hub_setup(
    hub: Path = typer.Argument(..., path_type=Path, help="Root directory of the hub."),
    from_year: int = typer.Option(..., "--from-year", help="First year to provision."),
    to_year: int = typer.Option(..., "--to-year", help="Last year to provision (inclusive)."),
    weeks: int = typer.Option(52, "--weeks", min=1, max=53, help="Weeks per year."),
) -> None:
    """Create the weekly drop-box directories for every team."""
    from .hub import Hub, HubError

    try:
        created = Hub(hub).provision(range(from_year, to_year + 1), weeks=weeks)
    except HubError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Done. {len(created)} drop boxes ready.")


@app.command()
def projects(
    config_path: Optional[Path] = typer.Option(
        None, "--config", path_type=Path, help="Location of the configuration file."
    ),
) -> None:
    """Print the project hierarchy."""
    from .config import load_settings
    from .projects import ProjectHierarchy

    settings = load_settings(config_path)
    hierarchy = ProjectHierarchy.load_or_create(settings.resolve_projects_path())
    for path in hierarchy.paths():
        node = hierarchy.find(path)
        description = f"  ({node.description})" if node and node.description else ""
        typer.echo("  " * (len(path) - 1) + path[-1] + description)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", path_type=Path, help="Location of the configuration file."
    ),
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-open-browser",
        help="Automatically launch the dashboard in your default browser.",
    ),
) -> None:
    """Start the local dashboard that drives the recorder."""
    from .server_runner import run_dashboard

    run_dashboard(host=host, port=port, config_path=config_path, open_browser=open_browser)
