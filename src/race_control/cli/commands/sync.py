"""Sync commands - upload buffered finishes and inspect offline state."""

from __future__ import annotations

import time

import typer
from rich.panel import Panel

from race_control.cli import helpers
from race_control.sync.config import RaceControlConfig
from race_control.sync.connectivity import ConnectivityWatcher, http_probe
from race_control.sync.coordinator import SyncOutcome
from race_control.timer import format_clock

app = typer.Typer(help="Synchronize buffered results with the server")


@app.command("now")
def now() -> None:
    """Submit buffered results to the server."""
    session = helpers.get_session()
    outcome = session.sync()
    if not outcome.ok:
        raise typer.Exit(1)


@app.command("status")
def status() -> None:
    """Show connectivity, device identity and pending results."""
    session = helpers.get_session()
    info = session.status()

    lines: list[str] = []
    online = "[green]Online[/green]" if info["online"] else "[red]Offline[/red]"
    lines.append(f"[bold]Connection:[/bold] {online}")
    lines.append(f"[bold]Device:[/bold]     {info['device_id']}")
    if info["race_id"] is not None:
        label = info["race_name"] or info["race_id"]
        lines.append(f"[bold]Race:[/bold]       {label} (id {info['race_id']})")
        lines.append(f"[bold]Timer:[/bold]      {format_clock(info['elapsed_ms'])} ({info['timer_state']})")
    else:
        lines.append("[bold]Race:[/bold]       none selected")
    lines.append(f"[bold]Pending:[/bold]    {info['pending']} result(s)")
    if info["pending"] and info["buffer_race_id"] != info["race_id"]:
        lines.append(f"[yellow]Pending results belong to race {info['buffer_race_id']}[/yellow]")

    helpers.console.print(Panel("\n".join(lines), title="Sync Status", border_style="cyan", expand=False))

    rows = session.pending_results()
    if rows:
        helpers.console.print(helpers.render_results(rows, title="Pending Results"))


@app.command("clear")
def clear(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")) -> None:
    """Discard all buffered (unsynced) results."""
    if not yes and not typer.confirm("Are you sure you want to clear all recorded results?"):
        raise typer.Exit(0)
    session = helpers.get_session()
    session.clear_results()


@app.command("device")
def device() -> None:
    """Print this installation's device id."""
    session = helpers.get_session()
    helpers.console.print(session.identity.get_or_create())


@app.command("server")
def server(url: str = typer.Argument(..., help="Base URL of the race server")) -> None:
    """Set the race server URL."""
    RaceControlConfig().set_server_url(url)
    helpers.console.print(f"✅ Server URL set to: {url.rstrip('/')}")


@app.command("watch")
def watch(
    interval: float = typer.Option(5.0, "--interval", "-i", help="Seconds between connectivity checks"),
) -> None:
    """Watch connectivity and sync automatically when the connection returns."""
    config = RaceControlConfig()
    session = helpers.get_session(config)

    def _report(outcome: SyncOutcome) -> None:
        helpers.console.print(f"[dim]auto-sync:[/dim] {outcome.message}")

    session.coordinator.on_outcome = _report
    if config.get_auto_sync():
        session.coordinator.enable_auto_sync()
    session.connectivity.subscribe(
        lambda online: session.notifier.notify("You are back online" if online else "You are offline")
    )

    watcher = ConnectivityWatcher(
        monitor=session.connectivity,
        probe=http_probe(config.get_server_url()),
        interval_seconds=interval,
    )
    watcher.start()
    helpers.console.print("Watching connectivity (Ctrl+C to stop)...")
    if session.connectivity.is_online() and session.buffer.has_pending():
        session.sync()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()
        session.coordinator.disable_auto_sync()
