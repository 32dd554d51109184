"""
Terminal Dashboard

Renders tracker snapshots with rich. The dashboard only reads snapshots; it
never touches the tracker's internals, so any number of them can run.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from gsitrack.models import BombState, GameEvent, RoundPhase, RoundResult, StateSnapshot
from gsitrack.monitor import ConnectionMonitor
from gsitrack.sessions import SessionStore
from gsitrack.tracker import TrackerEngine

logger = logging.getLogger(__name__)

RECENT_EVENTS = 8

_PHASE_STYLES = {
    RoundPhase.LIVE: "bold green",
    RoundPhase.FREEZETIME: "cyan",
    RoundPhase.OVER: "yellow",
    RoundPhase.WARMUP: "magenta",
}

_BOMB_STYLES = {
    BombState.PLANTED: "bold red",
    BombState.DEFUSED: "bold blue",
    BombState.EXPLODED: "bold red",
}


def _kv_table(title: str) -> Table:
    table = Table(title=title, show_header=False, expand=True, title_style="bold blue")
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    return table


def _events_table(events: list[GameEvent]) -> Table:
    table = Table(title="Recent events", expand=True, title_style="bold blue")
    table.add_column("Time", no_wrap=True)
    table.add_column("Round", justify="right")
    table.add_column("Event", style="cyan", no_wrap=True)
    table.add_column("Description")
    for event in events[-RECENT_EVENTS:]:
        table.add_row(
            event.timestamp.strftime("%H:%M:%S"),
            str(event.round_number),
            event.event_type,
            escape(event.description),
        )
    return table


def _recent_events(store: SessionStore | None) -> list[GameEvent]:
    session = store.get_current_session() if store is not None else None
    return session.events[-RECENT_EVENTS:] if session is not None else []


def render_dashboard(
    snapshot: StateSnapshot,
    now: datetime | None = None,
    events: list[GameEvent] | None = None,
) -> RenderableType:
    """
    Build the dashboard for one snapshot.

    Args:
        snapshot: Copy returned by TrackerEngine.get_current_stats()
        now: Reference time for "last message" ages
        events: Recent session events, newest last; no events panel when None

    Returns:
        A rich renderable
    """
    match = _kv_table("Match")
    match.add_row("Map", snapshot.map_name or "-")
    match.add_row("Mode", snapshot.game_mode or "-")
    match.add_row("Score (T - CT)", snapshot.score_display())
    match.add_row("Round", str(snapshot.round_number))
    phase_style = _PHASE_STYLES.get(snapshot.round_phase, "white")
    match.add_row("Phase", f"[{phase_style}]{snapshot.round_phase.value}[/{phase_style}]")
    match.add_row("Round time", snapshot.round_time_display())

    player = _kv_table("Player")
    player.add_row("Name", snapshot.player_name or "-")
    player.add_row("Team", snapshot.player_team or "-")
    status_style = "green" if snapshot.is_alive else "red"
    player.add_row("Status", f"[{status_style}]{snapshot.player_status()}[/{status_style}]")
    player.add_row("Money", f"${snapshot.money}")
    player.add_row("K / D / A", f"{snapshot.kills} / {snapshot.deaths} / {snapshot.assists}")
    player.add_row("K/D", f"{snapshot.kd_ratio:.2f}")
    player.add_row("MVPs", str(snapshot.mvps))
    player.add_row("Weapon", snapshot.active_weapon or "-")

    bomb = _kv_table("Bomb")
    bomb_style = _BOMB_STYLES.get(snapshot.bomb_state, "white")
    bomb.add_row("State", f"[{bomb_style}]{snapshot.bomb_state.value}[/{bomb_style}]")
    if snapshot.bomb_planted_time:
        bomb.add_row("Planted at", snapshot.bomb_planted_time.strftime("%H:%M:%S"))

    session = _kv_table("Session")
    session.add_row("Duration", snapshot.session_duration_display())
    session.add_row("Rounds", str(snapshot.total_rounds))
    session.add_row("Won / Lost", f"[green]{snapshot.rounds_won}[/green] / [red]{snapshot.rounds_lost}[/red]")
    session.add_row("Win rate", f"{snapshot.win_rate:.1f}%")
    if snapshot.round_result != RoundResult.UNKNOWN:
        session.add_row("Last round", f"{snapshot.round_result.value} ({snapshot.last_round_winner})")

    connection = _kv_table("Connection")
    conn_style = "green" if snapshot.is_connected else "red"
    connection.add_row("Status", f"[{conn_style}]{snapshot.connection_status}[/{conn_style}]")
    connection.add_row("Last message", snapshot.last_message_display(now))
    connection.add_row("Messages", str(snapshot.messages_received))

    grid = Table.grid(expand=True)
    grid.add_column(ratio=1)
    grid.add_column(ratio=1)
    grid.add_row(match, player)
    grid.add_row(Group(bomb, session), connection)

    body: RenderableType = grid
    if events is not None:
        body = Group(grid, _events_table(events))

    title = f"[bold blue]gsitrack[/bold blue] - {snapshot.session_id or 'no session'}"
    return Panel(body, title=title, border_style="blue")


def run_dashboard(
    tracker: TrackerEngine,
    refresh_interval: float = 0.5,
    monitor: ConnectionMonitor | None = None,
    console: Console | None = None,
    store: SessionStore | None = None,
    show_events: bool = True,
) -> None:
    """
    Refresh the dashboard until interrupted with Ctrl+C.

    Args:
        tracker: Engine to read snapshots from
        refresh_interval: Seconds between redraws
        monitor: Checked on every redraw when given and not running its own thread
        console: Console to draw on
        store: Source of the recent events panel
        show_events: Draw the recent events panel
    """
    console = console or Console()

    def draw() -> RenderableType:
        events = _recent_events(store) if show_events else None
        return render_dashboard(tracker.get_current_stats(), events=events)

    with Live(
        draw(),
        console=console,
        refresh_per_second=max(1, int(1 / max(refresh_interval, 0.05))),
        screen=False,
    ) as live:
        try:
            while True:
                if monitor is not None and not monitor.is_running:
                    monitor.check_once()
                live.update(draw())
                time.sleep(refresh_interval)
        except KeyboardInterrupt:
            logger.debug("Dashboard interrupted")
