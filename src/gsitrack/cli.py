"""
gsitrack CLI - Command Line Interface for the live match tracker

Provides commands for:
- Tracking a live match (listener + terminal dashboard)
- Serving the web dashboard only
- Simulating matches without a game client
- Browsing recorded sessions
"""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from gsitrack import __version__
from gsitrack.api import create_app
from gsitrack.core.config import GsiTrackConfig, configure_logging, generate_default_config, load_config
from gsitrack.dashboard import render_dashboard, run_dashboard
from gsitrack.models import SessionStatus
from gsitrack.monitor import ConnectionMonitor
from gsitrack.server import FeedServer, serve_forever
from gsitrack.sessions import SessionStore
from gsitrack.simulator import FeedSimulator
from gsitrack.tracker import TrackerEngine

app = typer.Typer(
    name="gsitrack",
    help="Live CS:GO match tracker fed by game state integration",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

_state: dict[str, bool] = {"verbose": False}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]gsitrack[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output"),
) -> None:
    """gsitrack - Live CS:GO Match Tracker"""
    _state["verbose"] = verbose
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load(config_file: Optional[Path]) -> GsiTrackConfig:
    try:
        config = load_config(config_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/red] cannot load config: {escape(str(e))}")
        raise typer.Exit(1)
    configure_logging(config.logging, verbose=_state["verbose"])
    return config


def _store(config: GsiTrackConfig, sessions_dir: Optional[Path]) -> SessionStore:
    return SessionStore(sessions_dir or Path(config.tracker.sessions_dir))


ConfigOption = typer.Option(None, "--config", "-c", help="Config file (YAML, TOML or JSON)", dir_okay=False)
SessionsDirOption = typer.Option(None, "--sessions-dir", "-d", help="Directory holding session files")


@app.command()
def run(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to listen on"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port the game client posts to"),
    no_dashboard: bool = typer.Option(False, "--no-dashboard", help="Do not draw the terminal dashboard"),
    config_file: Optional[Path] = ConfigOption,
    sessions_dir: Optional[Path] = SessionsDirOption,
) -> None:
    """
    Track a live match.

    Starts the feed listener, the connection watchdog and the terminal
    dashboard. Point the game's gamestate_integration config at
    http://HOST:PORT/.
    """
    config = _load(config_file)
    host = host or config.server.host
    port = port or config.server.port

    store = _store(config, sessions_dir)
    tracker = TrackerEngine(store)
    server = FeedServer(create_app(tracker, store, config), host=host, port=port)
    monitor = ConnectionMonitor(
        tracker,
        timeout_seconds=config.tracker.connection_timeout_seconds,
        poll_interval=config.tracker.monitor_poll_interval,
    )

    server.start()
    if not server.is_running:
        console.print(f"[red]Error:[/red] could not listen on {host}:{port}")
        raise typer.Exit(1)
    monitor.start()

    console.print(f"\n[bold blue]gsitrack[/bold blue] - Listening on http://{host}:{port}")
    console.print("Press [bold]Ctrl+C[/bold] to stop...\n")

    try:
        if no_dashboard:
            while server.is_running:
                time.sleep(1)
        else:
            run_dashboard(
                tracker,
                config.dashboard.refresh_interval,
                monitor,
                console,
                store=store,
                show_events=config.dashboard.show_events,
            )
    except KeyboardInterrupt:
        pass
    finally:
        console.print("\n[yellow]Stopping tracker...[/yellow]")
        monitor.stop()
        server.stop()
        tracker.close_session(SessionStatus.ABANDONED)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to listen on"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port the game client posts to"),
    config_file: Optional[Path] = ConfigOption,
    sessions_dir: Optional[Path] = SessionsDirOption,
) -> None:
    """Run the feed listener and web dashboard in the foreground."""
    config = _load(config_file)
    store = _store(config, sessions_dir)
    tracker = TrackerEngine(store)
    monitor = ConnectionMonitor(
        tracker,
        timeout_seconds=config.tracker.connection_timeout_seconds,
        poll_interval=config.tracker.monitor_poll_interval,
    )
    monitor.start()
    try:
        serve_forever(create_app(tracker, store, config), host or config.server.host, port or config.server.port)
    finally:
        monitor.stop()
        tracker.close_session(SessionStatus.ABANDONED)


@app.command()
def simulate(
    rounds: int = typer.Option(5, "--rounds", "-r", min=1, help="Rounds to simulate"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for a reproducible run"),
    persist: bool = typer.Option(False, "--persist/--no-persist", help="Record the simulated session"),
    config_file: Optional[Path] = ConfigOption,
    sessions_dir: Optional[Path] = SessionsDirOption,
) -> None:
    """Drive the tracker with simulated rounds and show the result."""
    config = _load(config_file)
    store = _store(config, sessions_dir) if persist else None
    tracker = TrackerEngine(store)
    simulator = FeedSimulator(tracker, seed=seed)

    for _ in range(rounds):
        winner = simulator.play_round()
        logger.debug(f"Simulated round won by {winner}")

    if store is not None:
        tracker.close_session(SessionStatus.COMPLETED)
        console.print(f"[green]Session recorded in[/green] {store.sessions_dir}")

    console.print(render_dashboard(tracker.get_current_stats()))


@app.command()
def sessions(
    steam_id: Optional[str] = typer.Option(None, "--steam-id", "-s", help="Only sessions of this player"),
    map_name: Optional[str] = typer.Option(None, "--map", "-m", help="Only sessions on this map"),
    config_file: Optional[Path] = ConfigOption,
    sessions_dir: Optional[Path] = SessionsDirOption,
) -> None:
    """List recorded sessions, newest first."""
    config = _load(config_file)
    store = _store(config, sessions_dir)

    found = store.get_sessions_by_steam_id(steam_id) if steam_id else store.get_all_sessions()
    if map_name:
        found = [s for s in found if s.map_name.casefold() == map_name.casefold()]

    if not found:
        console.print("[yellow]No sessions found[/yellow]")
        return

    table = Table(title="Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Map", no_wrap=True)
    table.add_column("Team")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Rounds", justify="right")
    table.add_column("W-L", justify="right")

    for session in found:
        table.add_row(
            session.session_id,
            session.map_name,
            session.player_team,
            session.start_time.strftime("%Y-%m-%d %H:%M"),
            session.status.value,
            str(len(session.rounds)),
            f"{session.player_stats.rounds_won}-{session.player_stats.rounds_lost}",
        )

    console.print(table)


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session id as listed by 'sessions'"),
    config_file: Optional[Path] = ConfigOption,
    sessions_dir: Optional[Path] = SessionsDirOption,
) -> None:
    """Show the rounds and events of one session."""
    config = _load(config_file)
    session = _store(config, sessions_dir).get_session(session_id)
    if session is None:
        console.print(f"[red]Error:[/red] session not found: {session_id}")
        raise typer.Exit(1)

    stats = session.player_stats
    console.print(
        Panel(
            f"[cyan]Map:[/cyan] {session.map_name}\n"
            f"[cyan]Player:[/cyan] {session.player_name or session.player_steam_id} ({session.player_team})\n"
            f"[cyan]Status:[/cyan] {session.status.value}\n"
            f"[cyan]Duration:[/cyan] {session.duration_seconds:.0f}s\n"
            f"[cyan]K/D/A:[/cyan] {stats.kills}/{stats.deaths}/{stats.assists} "
            f"(K/D {stats.kd_ratio:.2f})\n"
            f"[cyan]Rounds:[/cyan] {stats.rounds_won} won, {stats.rounds_lost} lost",
            title=f"[bold blue]{session.session_id}[/bold blue]",
            expand=False,
        )
    )

    rounds = Table(title="Rounds")
    rounds.add_column("#", justify="right")
    rounds.add_column("Winner")
    rounds.add_column("Condition")
    rounds.add_column("Score (T - CT)", justify="center")
    for r in session.rounds:
        rounds.add_row(str(r.round_number), r.winner or "-", r.win_condition.value, f"{r.score_t} - {r.score_ct}")
    console.print(rounds)

    events = Table(title="Events")
    events.add_column("Time")
    events.add_column("Round", justify="right")
    events.add_column("Event", style="cyan")
    events.add_column("Description")
    for e in session.events:
        events.add_row(e.timestamp.strftime("%H:%M:%S"), str(e.round_number), e.event_type, e.description)
    console.print(events)


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("gsitrack.yaml"), help="Where to write the config (.yaml or .json)"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a default configuration file."""
    if path.exists() and not force:
        console.print(f"[red]Error:[/red] {path} already exists (use --force to overwrite)")
        raise typer.Exit(1)
    try:
        generate_default_config(path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Wrote default config to[/green] {path}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
