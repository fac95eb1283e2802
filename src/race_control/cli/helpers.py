"""Shared CLI helpers: console, session factory and result rendering."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from race_control.notify import Notifier
from race_control.session import RaceSession, ResultRow
from race_control.sync.config import RaceControlConfig
from race_control.timer import format_race_time

console = Console()


def get_session(config: Optional[RaceControlConfig] = None) -> RaceSession:
    """Build the session for one CLI invocation."""
    return RaceSession.from_config(config=config, notifier=Notifier(console=console))


def exit_on_error(session: RaceSession) -> None:
    """Exit with status 1 when the last session action failed.

    The notification has already been printed by the session.
    """
    if session.last_error is not None:
        raise typer.Exit(1)


def render_results(rows: list[ResultRow], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold", expand=False)
    table.add_column("Position", justify="right")
    table.add_column("Runner", justify="right", style="cyan")
    table.add_column("Race Time", justify="right")
    table.add_column("Finish Time (epoch ms)", justify="right", style="dim")
    for row in rows:
        table.add_row(
            str(row.position),
            str(row.runner_number),
            format_race_time(row.race_time),
            str(row.finish_time),
        )
    return table
