"""Race control commands: manage races and record finishes."""

from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from race_control.cli import helpers
from race_control.timer import format_clock, format_race_time

app = typer.Typer(help="Create, control and inspect races")

_STATUS_LABELS = {
    "pending": "Not Started",
    "active": "In Progress",
    "completed": "Completed",
}


@app.command("create")
def create(
    name: str = typer.Argument(..., help="Race name"),
    race_date: Optional[str] = typer.Option(None, "--date", "-d", help="Race date (YYYY-MM-DD, default today)"),
) -> None:
    """Create a new race on the server."""
    session = helpers.get_session()
    race = session.create_race(name, race_date)
    helpers.exit_on_error(session)
    if race and "id" in race:
        helpers.console.print(f"Race id: [bold]{race['id']}[/bold]")


@app.command("list")
def list_races() -> None:
    """List races known to the server."""
    session = helpers.get_session()
    races = session.list_races()
    helpers.exit_on_error(session)

    if not races:
        helpers.console.print("No races found")
        return

    table = Table(title="Races", show_header=True, header_style="bold", expand=False)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name")
    table.add_column("Date")
    table.add_column("Status")
    for race in races:
        table.add_row(
            str(race.get("id", "")),
            str(race.get("name", "")),
            str(race.get("date", "")),
            _STATUS_LABELS.get(str(race.get("status")), str(race.get("status", ""))),
        )
    helpers.console.print(table)


@app.command("control")
def control(race_id: int = typer.Argument(..., help="Race id to take control of")) -> None:
    """Take control of a race on this device.

    Unsynced results of a previously controlled race are discarded.
    """
    session = helpers.get_session()
    race = session.load_race(race_id)
    helpers.exit_on_error(session)

    status = str((race or {}).get("status", "pending"))
    helpers.console.print(
        f"Controlling [bold]{(race or {}).get('name', race_id)}[/bold] "
        f"({_STATUS_LABELS.get(status, status)})"
    )
    rows = session.pending_results()
    if rows:
        helpers.console.print(helpers.render_results(rows, title="Pending Results"))


@app.command("start")
def start() -> None:
    """Start the race timer."""
    session = helpers.get_session()
    session.start_race()
    helpers.exit_on_error(session)


@app.command("end")
def end() -> None:
    """Stop the race timer and end the race."""
    session = helpers.get_session()
    session.end_race()
    helpers.exit_on_error(session)
    pending = session.pending_results()
    if pending and session.connectivity.is_online():
        helpers.console.print(f"{len(pending)} result(s) pending. Run 'race-control sync now' to upload.")


@app.command("delete")
def delete(
    race_id: int = typer.Argument(..., help="Race id to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a race. This cannot be undone."""
    if not yes and not typer.confirm("Are you sure you want to delete this race?"):
        raise typer.Exit(0)
    session = helpers.get_session()
    session.delete_race(race_id)
    helpers.exit_on_error(session)


@app.command("results")
def results(race_id: int = typer.Argument(..., help="Race id")) -> None:
    """Show server-side results ordered by race time."""
    session = helpers.get_session()
    rows = session.race_results(race_id)
    helpers.exit_on_error(session)
    if not rows:
        helpers.console.print("No results available for this race")
        return
    helpers.console.print(helpers.render_results(rows, title=f"Race {race_id} Results"))


@app.command("timer")
def timer() -> None:
    """Show the race timer."""
    session = helpers.get_session()
    if session.active_race is None:
        helpers.console.print("No race selected")
        raise typer.Exit(1)
    helpers.console.print(
        f"[bold]{format_clock(session.timer.elapsed())}[/bold] ({session.timer.state.value})"
    )


def finish(runner_number: str = typer.Argument(..., help="Runner number crossing the line")) -> None:
    """Record a runner finish for the race under control."""
    session = helpers.get_session()
    row = session.record_finish(runner_number)
    helpers.exit_on_error(session)
    if row is not None:
        helpers.console.print(f"#{row.position} Runner {row.runner_number}  {format_race_time(row.race_time)}")
