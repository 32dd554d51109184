"""
Live Match Tracker

The TrackerEngine is the single point of truth for the current match state.
One producer (the feed listener) calls update_state(); any number of
renderers call get_current_stats() at their own cadence.

Concurrency model:
- every snapshot mutation happens under one lock, critical sections are
  field copies and list appends only
- session store calls decided inside the lock are queued and executed after
  it is released, in order, so disk writes never block readers
- get_current_stats() returns a deep copy taken under the lock
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import partial
from typing import Any

from gsitrack.diff import (
    Transition,
    derive_transitions,
    determine_winner,
    infer_win_condition,
)
from gsitrack.feed import FeedUpdate, MapNode, PlayerNode, RoundNode, decode_payload
from gsitrack.models import (
    UNKNOWN_WINNER,
    BombState,
    EventType,
    GameEvent,
    RoundPhase,
    RoundRecord,
    RoundResult,
    SessionStatus,
    StateSnapshot,
)
from gsitrack.sessions import SessionStore

logger = logging.getLogger(__name__)

STATUS_RECEIVING = "Connected - Receiving data"
STATUS_WAITING = "Connected - Waiting for game data..."
STATUS_LOST = "Connection lost - Waiting for reconnection..."

GAMEOVER_PHASE = "gameover"
TEAMS = ("T", "CT")

_BOMB_EVENTS = {
    Transition.BOMB_PLANTED: (EventType.BOMB_PLANTED, "bomb_planted_time", "Bomb planted"),
    Transition.BOMB_DEFUSED: (EventType.BOMB_DEFUSED, "bomb_defused_time", "Bomb defused"),
    Transition.BOMB_EXPLODED: (EventType.BOMB_EXPLODED, "bomb_exploded_time", "Bomb exploded"),
}


def _clamp(value: int, low: int = 0, high: int | None = None) -> int:
    value = max(low, value)
    return min(high, value) if high is not None else value


def _normalize_team(team: str | None) -> str:
    if not team:
        return ""
    team = team.strip().upper()
    if team in ("TERRORIST", "TERRORISTS"):
        return "T"
    if team in ("COUNTER-TERRORIST", "COUNTER-TERRORISTS", "COUNTERTERRORIST"):
        return "CT"
    return team


class TrackerEngine:
    """
    Aggregates feed updates into a consistent match snapshot.

    Example usage:
        store = SessionStore("data/sessions")
        tracker = TrackerEngine(store)

        tracker.update_state(payload)       # from the feed callback
        stats = tracker.get_current_stats()  # from any renderer thread
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the engine.

        Args:
            store: Session history store; None keeps everything in memory
            clock: Time source, overridable for tests
        """
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._pending: list[Callable[[], Any]] = []

        self._snapshot = StateSnapshot(session_start_time=clock())
        self._rounds: list[RoundRecord] = []
        self._bound_player_id: str | None = None
        self._session_open = False
        self._sessions_started = 0
        self._last_player_stats: tuple | None = None

    # ------------------------------------------------------------------
    # Feed input
    # ------------------------------------------------------------------

    def update_state(self, raw: dict[str, Any] | FeedUpdate) -> None:
        """
        Apply one feed update.

        Sections absent from the update leave the previous values in place.
        Updates naming a different player than the bound one are discarded.
        Never raises.
        """
        try:
            update = raw if isinstance(raw, FeedUpdate) else decode_payload(raw)
            if update.is_empty:
                reason = update.errors or "empty payload"
                logger.warning(f"Feed update carried no usable sections: {reason}")
            else:
                logger.debug(f"Feed update with {', '.join(sorted(update.sections))}")
            with self._lock:
                self._apply_update(update)
        except Exception:
            logger.exception("Unexpected error while processing feed update")
        self._flush()

    def _apply_update(self, update: FeedUpdate) -> None:
        incoming_id = update.player_id
        if incoming_id:
            if self._bound_player_id is None:
                self._bound_player_id = incoming_id
                logger.info(f"Tracking player {incoming_id}")
            elif incoming_id != self._bound_player_id:
                logger.debug(f"Ignoring update for player {incoming_id}")
                return

        now = self._clock()
        snap = self._snapshot
        prev_phase = snap.round_phase
        prev_bomb = snap.bomb_state
        prev_t, prev_ct = snap.score_t, snap.score_ct
        prev_map = snap.map_name
        prev_map_phase = snap.map_phase

        resumed = not snap.is_connected and snap.last_message_time is not None
        snap.messages_received += 1
        snap.last_message_time = now
        snap.is_connected = True
        snap.connection_status = STATUS_RECEIVING
        if resumed:
            logger.info("Feed connection restored")
            self._record_event(EventType.CONNECTION_ESTABLISHED, now, "Feed connection restored")

        reported_winner = None
        if update.map is not None:
            self._apply_map(update.map)
        if update.round is not None:
            reported_winner = self._apply_round(update.round)
        if update.player is not None:
            self._apply_player(update.player)
        self._apply_bomb(update, prev_phase)

        if snap.map_name and prev_map and snap.map_name != prev_map and self._session_open:
            logger.info(f"Map changed from {prev_map} to {snap.map_name}, closing session")
            self._end_session(SessionStatus.COMPLETED)
        self._maybe_start_session(now)

        for transition in derive_transitions(prev_phase, snap.round_phase, prev_bomb, snap.bomb_state):
            if transition == Transition.ROUND_BEGIN:
                self._handle_round_begin(now)
            elif transition == Transition.ROUND_END:
                winner = determine_winner(prev_t, prev_ct, snap.score_t, snap.score_ct)
                if winner is None and reported_winner in TEAMS:
                    winner = reported_winner
                self._handle_round_end(now, winner)
            else:
                self._handle_bomb(transition, now)

        self._forward_player_stats()

        entered_gameover = (
            snap.map_phase.lower() == GAMEOVER_PHASE and prev_map_phase.lower() != GAMEOVER_PHASE
        )
        if entered_gameover and self._session_open:
            logger.info("Match over, closing session")
            self._end_session(SessionStatus.COMPLETED)

    def _apply_map(self, node: MapNode) -> None:
        snap = self._snapshot
        if node.name:
            snap.map_name = node.name
        if node.mode is not None:
            snap.game_mode = node.mode
        if node.phase is not None:
            snap.map_phase = node.phase
        if node.round is not None:
            snap.reported_round = node.round
        if node.team_t is not None and node.team_t.score is not None:
            snap.score_t = _clamp(node.team_t.score)
        if node.team_ct is not None and node.team_ct.score is not None:
            snap.score_ct = _clamp(node.team_ct.score)

    def _apply_round(self, node: RoundNode) -> str | None:
        if node.phase is not None:
            self._snapshot.round_phase = RoundPhase.parse(node.phase)
        return _normalize_team(node.win_team) or None

    def _apply_player(self, node: PlayerNode) -> None:
        snap = self._snapshot
        if node.id:
            snap.player_id = node.id
        if node.name is not None:
            snap.player_name = node.name
        if node.team:
            snap.player_team = _normalize_team(node.team)

        state = node.state
        if state is not None:
            if state.health is not None:
                snap.health = _clamp(state.health, 0, 100)
            if state.armor is not None:
                snap.armor = _clamp(state.armor, 0, 100)
            if state.money is not None:
                snap.money = _clamp(state.money)

        stats = node.match_stats
        if stats is not None:
            for attr in ("kills", "deaths", "assists", "mvps", "score"):
                value = getattr(stats, attr)
                if value is not None:
                    setattr(snap, attr, _clamp(value))

        weapon = node.current_weapon
        if weapon is not None and weapon.name:
            snap.active_weapon = weapon.name

    def _apply_bomb(self, update: FeedUpdate, prev_phase: RoundPhase) -> None:
        """Bomb section first, round.bomb as fallback for in-game players."""
        snap = self._snapshot
        raw_state = None
        if update.bomb is not None and update.bomb.state is not None:
            raw_state = update.bomb.state
        elif update.round is not None and update.round.bomb is not None:
            raw_state = update.round.bomb

        if raw_state is not None:
            snap.bomb_state = BombState.parse(raw_state)
        elif snap.round_phase == RoundPhase.FREEZETIME and prev_phase != RoundPhase.FREEZETIME:
            # new round without any bomb info: last round's bomb is gone
            snap.bomb_state = BombState.UNKNOWN

    # ------------------------------------------------------------------
    # Derived event handlers
    # ------------------------------------------------------------------

    def on_round_begin(self) -> None:
        with self._lock:
            self._handle_round_begin(self._clock())
        self._flush()

    def on_round_end(self, winner: str | None = None) -> None:
        """
        Close the open round.

        Args:
            winner: "T" or "CT"; when omitted, the score change since the
                round began decides, else the winner stays Unknown
        """
        with self._lock:
            winner = _normalize_team(winner) or None
            if winner is None:
                open_round = self._open_round()
                if open_round is not None:
                    winner = determine_winner(
                        open_round.score_t,
                        open_round.score_ct,
                        self._snapshot.score_t,
                        self._snapshot.score_ct,
                    )
            self._handle_round_end(self._clock(), winner)
        self._flush()

    def on_bomb_planted(self) -> None:
        self._on_bomb(Transition.BOMB_PLANTED, BombState.PLANTED)

    def on_bomb_defused(self) -> None:
        self._on_bomb(Transition.BOMB_DEFUSED, BombState.DEFUSED)

    def on_bomb_exploded(self) -> None:
        self._on_bomb(Transition.BOMB_EXPLODED, BombState.EXPLODED)

    def _on_bomb(self, transition: Transition, state: BombState) -> None:
        with self._lock:
            self._snapshot.bomb_state = state
            self._handle_bomb(transition, self._clock())
        self._flush()

    def _handle_round_begin(self, now: datetime) -> None:
        snap = self._snapshot
        stale = self._open_round()
        if stale is not None:
            logger.info(f"Round {stale.round_number} never ended, closing it as undetermined")
            stale.end_time = now
            stale.winner = UNKNOWN_WINNER
            self._defer(self._store and self._store.add_round_data, copy.deepcopy(stale))

        snap.total_rounds += 1
        snap.round_number = snap.total_rounds
        snap.round_start_time = now
        snap.round_time = 0
        snap.round_result = RoundResult.UNKNOWN

        self._rounds.append(
            RoundRecord(
                round_number=snap.round_number,
                phase=RoundPhase.LIVE.value,
                start_time=now,
                score_t=snap.score_t,
                score_ct=snap.score_ct,
            )
        )
        self._record_event(
            EventType.ROUND_BEGIN,
            now,
            f"Round {snap.round_number} started",
            {"score_t": snap.score_t, "score_ct": snap.score_ct},
        )

    def _handle_round_end(self, now: datetime, winner: str | None) -> None:
        snap = self._snapshot
        open_round = self._open_round()
        if open_round is None:
            logger.debug("Round end without an open round, ignoring")
            return

        winner = winner or UNKNOWN_WINNER
        open_round.end_time = now
        open_round.phase = RoundPhase.OVER.value
        open_round.winner = winner
        open_round.win_condition = infer_win_condition(snap.bomb_state)
        open_round.score_t = snap.score_t
        open_round.score_ct = snap.score_ct
        snap.last_round_winner = winner

        team = snap.player_team
        if winner in TEAMS and team in TEAMS:
            if winner == team:
                snap.rounds_won += 1
                snap.round_result = RoundResult.WON
            else:
                snap.rounds_lost += 1
                snap.round_result = RoundResult.LOST
        else:
            snap.round_result = RoundResult.UNKNOWN
            if winner == UNKNOWN_WINNER:
                logger.info(f"Round {open_round.round_number} ended with no score change, winner unknown")

        self._defer(self._store and self._store.add_round_data, copy.deepcopy(open_round))
        self._record_event(
            EventType.ROUND_END,
            now,
            f"Round {open_round.round_number} won by {winner}",
            {
                "winner": winner,
                "win_condition": open_round.win_condition.value,
                "score_t": snap.score_t,
                "score_ct": snap.score_ct,
            },
        )

    def _handle_bomb(self, transition: Transition, now: datetime) -> None:
        event_type, time_field, description = _BOMB_EVENTS[transition]
        setattr(self._snapshot, time_field, now)
        self._record_event(event_type, now, description)

    # ------------------------------------------------------------------
    # Connection status (driven by an external watchdog)
    # ------------------------------------------------------------------

    def on_connection_lost(self) -> None:
        with self._lock:
            snap = self._snapshot
            changed = snap.is_connected
            snap.is_connected = False
            snap.connection_status = STATUS_LOST
            if changed:
                logger.warning("Feed connection lost")
                self._record_event(EventType.CONNECTION_LOST, self._clock(), "Feed connection lost")
        self._flush()

    def on_connection_established(self) -> None:
        with self._lock:
            snap = self._snapshot
            changed = not snap.is_connected
            snap.is_connected = True
            snap.connection_status = STATUS_WAITING
            if changed:
                self._record_event(
                    EventType.CONNECTION_ESTABLISHED, self._clock(), "Feed connection established"
                )
        self._flush()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def reset_session(self) -> None:
        """
        Start over with a clean snapshot.

        The active session is closed as abandoned and, when the tracked
        player and map are known, a fresh session is opened for them.
        Persisted history is left untouched.
        """
        with self._lock:
            now = self._clock()
            old = self._snapshot
            if self._session_open:
                self._end_session(SessionStatus.ABANDONED)

            self._snapshot = StateSnapshot(
                session_start_time=now,
                is_connected=True,
                connection_status=STATUS_WAITING,
            )
            self._rounds = []
            self._last_player_stats = None

            if self._bound_player_id and old.map_name:
                self._start_session(
                    now,
                    map_name=old.map_name,
                    team=old.player_team,
                    player_name=old.player_name,
                    game_mode=old.game_mode,
                )
            self._record_event(EventType.SESSION_RESET, now, "Session reset")
            logger.info("Session reset")
        self._flush()

    def close_session(self, status: SessionStatus = SessionStatus.ABANDONED) -> None:
        """
        Close the active session, e.g. when the tracker shuts down mid-match.

        No-op when no session is open. A later feed update opens a new one.
        """
        with self._lock:
            if not self._session_open:
                return
            logger.info(f"Closing session as {status.value}")
            self._end_session(status)
        self._flush()

    def _maybe_start_session(self, now: datetime) -> None:
        snap = self._snapshot
        if self._session_open or not self._bound_player_id or not snap.map_name:
            return
        if snap.map_phase.lower() == GAMEOVER_PHASE:
            return
        if self._sessions_started > 0:
            self._reset_match_aggregates(now)
        self._start_session(
            now,
            map_name=snap.map_name,
            team=snap.player_team,
            player_name=snap.player_name,
            game_mode=snap.game_mode,
        )

    def _start_session(
        self, now: datetime, map_name: str, team: str, player_name: str, game_mode: str
    ) -> None:
        self._session_open = True
        self._sessions_started += 1
        self._snapshot.session_start_time = now
        self._snapshot.session_id = None
        self._last_player_stats = None
        self._defer(
            self._open_store_session,
            map_name=map_name,
            team=team,
            player_id=self._bound_player_id,
            player_name=player_name,
            game_mode=game_mode,
        )
        self._record_event(
            EventType.SESSION_START,
            now,
            f"Tracking {player_name or self._bound_player_id} on {map_name}",
            {"map_name": map_name, "team": team},
        )

    def _open_store_session(self, **kwargs: Any) -> None:
        session_id = self._store.start_new_session(**kwargs)
        with self._lock:
            self._snapshot.session_id = session_id

    def _end_session(self, status: SessionStatus) -> None:
        self._session_open = False
        self._defer(self._store and self._store.end_session, status)

    def _reset_match_aggregates(self, now: datetime) -> None:
        snap = self._snapshot
        snap.total_rounds = 0
        snap.rounds_won = 0
        snap.rounds_lost = 0
        snap.round_number = 0
        snap.round_result = RoundResult.UNKNOWN
        snap.last_round_winner = ""
        snap.session_start_time = now
        self._rounds = []

    # ------------------------------------------------------------------
    # Store forwarding
    # ------------------------------------------------------------------

    def _record_event(
        self,
        event_type: EventType,
        now: datetime,
        description: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        snap = self._snapshot
        event = GameEvent(
            event_type=event_type.value,
            timestamp=now,
            round_number=snap.round_number,
            player_id=snap.player_id or (self._bound_player_id or ""),
            player_name=snap.player_name,
            description=description,
            payload=payload or {},
        )
        self._defer(self._store and self._store.add_game_event, event)

    def _forward_player_stats(self) -> None:
        snap = self._snapshot
        if not self._bound_player_id or not self._session_open:
            return
        current = (
            snap.player_team,
            snap.kills,
            snap.deaths,
            snap.assists,
            snap.money,
            snap.score,
            snap.mvps,
        )
        if current == self._last_player_stats:
            return
        self._last_player_stats = current
        self._defer(
            self._store and self._store.update_player_stats,
            self._bound_player_id,
            team=snap.player_team,
            kills=snap.kills,
            deaths=snap.deaths,
            assists=snap.assists,
            money=snap.money,
            score=snap.score,
            mvps=snap.mvps,
        )

    def _defer(self, func: Callable[..., Any] | None, *args: Any, **kwargs: Any) -> None:
        """Queue a store call to run once the snapshot lock is released."""
        if self._store is None or func is None:
            return
        self._pending.append(partial(func, *args, **kwargs))

    def _flush(self) -> None:
        with self._flush_lock:
            with self._lock:
                pending, self._pending = self._pending, []
            for action in pending:
                try:
                    action()
                except Exception:
                    logger.exception("Session store call failed")

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get_current_stats(self) -> StateSnapshot:
        """Deep, independent copy of the current snapshot."""
        with self._lock:
            snapshot = copy.deepcopy(self._snapshot)
            now = self._clock()
        if snapshot.session_start_time is not None:
            snapshot.session_duration = max(now - snapshot.session_start_time, timedelta())
        if snapshot.round_phase == RoundPhase.LIVE and snapshot.round_start_time is not None:
            snapshot.round_time = max(int((now - snapshot.round_start_time).total_seconds()), 0)
        return snapshot

    def get_round_history(self) -> list[RoundRecord]:
        with self._lock:
            return copy.deepcopy(self._rounds)

    @property
    def bound_player_id(self) -> str | None:
        with self._lock:
            return self._bound_player_id

    def _open_round(self) -> RoundRecord | None:
        if self._rounds and self._rounds[-1].is_open:
            return self._rounds[-1]
        return None
