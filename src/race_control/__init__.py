"""
Race Control CLI - offline-first race timing.

Usage:
    race-control race control 12
    race-control race start
    race-control finish 42
    race-control sync now
"""

import logging

import typer
from rich.logging import RichHandler

from race_control.cli import helpers
from race_control.cli.commands import race, sync

__version__ = "0.1.0"

app = typer.Typer(
    name="race-control",
    help="Time races and capture finishes, even without a network connection",
    add_completion=False,
    no_args_is_help=True,
)

app.add_typer(race.app, name="race")
app.add_typer(sync.app, name="sync")
app.command("finish")(race.finish)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=helpers.console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Race control: start the clock, record finishes, sync when online."""
    _configure_logging(verbose)


def main():
    app()


if __name__ == "__main__":
    main()
