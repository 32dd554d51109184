"""
Session History Store

Keeps one mutable "current" session and a directory of JSON documents, one
per session, named after the session id. Every mutation is persisted before
the call returns; persistence failures are logged and never raised so a slow
or failing disk cannot break the tracking path.

All public methods are thread-safe and return copies, never live references.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from gsitrack.models import (
    GameEvent,
    PlayerSessionStats,
    RoundRecord,
    SessionRecord,
    SessionStatus,
)

logger = logging.getLogger(__name__)

MAP_PREFIXES = ("de_", "cs_", "as_")
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def generate_session_id(map_name: str, player_id: str, team: str, when: datetime) -> str:
    """
    Build a human traceable id: <map>_<yyyymmdd_HHMMSS>_<player id tail>_<team>.

    Example: dust2_20261018_153000_00000001_CT
    """
    short_map = map_name or "unknown"
    for prefix in MAP_PREFIXES:
        short_map = short_map.replace(prefix, "")
    short_player = player_id[-8:] if len(player_id) > 8 else player_id
    raw = f"{short_map}_{when.strftime('%Y%m%d_%H%M%S')}_{short_player or 'anon'}_{team or 'NA'}"
    return _UNSAFE_ID_CHARS.sub("-", raw)


class SessionStore:
    """
    Durable store of tracked sessions.

    At most one session is Active at a time. Starting a new session while one
    is active closes the previous one as Abandoned first.
    """

    def __init__(self, sessions_dir: Path | str, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the store.

        Args:
            sessions_dir: Directory holding one <session_id>.json per session
            clock: Time source, overridable for tests
        """
        self.sessions_dir = Path(sessions_dir)
        self._clock = clock
        self._lock = threading.RLock()
        self._current: SessionRecord | None = None
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create sessions directory {self.sessions_dir}: {e}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def start_new_session(
        self,
        map_name: str,
        team: str,
        player_id: str,
        player_name: str = "",
        game_mode: str = "",
    ) -> str:
        """
        Open a new current session and persist it.

        Returns:
            The new session id
        """
        with self._lock:
            if self._current is not None:
                logger.warning(
                    f"Session {self._current.session_id} still active, closing it as abandoned"
                )
                self._close_current(SessionStatus.ABANDONED)

            now = self._clock()
            session_id = self._unique_id(generate_session_id(map_name, player_id, team, now))
            self._current = SessionRecord(
                session_id=session_id,
                map_name=map_name,
                game_mode=game_mode,
                player_team=team,
                player_steam_id=player_id,
                player_name=player_name,
                start_time=now,
                player_stats=PlayerSessionStats(steam_id=player_id, team=team),
            )
            self._save(self._current)
            logger.info(f"New game session started: {session_id}")
            return session_id

    def add_round_data(self, round_record: RoundRecord) -> None:
        """Append a finished round and update the won/lost tally once."""
        with self._lock:
            if self._current is None:
                logger.debug(f"No active session, dropping round {round_record.round_number}")
                return
            self._current.rounds.append(copy.deepcopy(round_record))
            stats = self._current.player_stats
            tracked_team = stats.team or self._current.player_team
            if round_record.winner in ("T", "CT") and tracked_team in ("T", "CT"):
                if round_record.winner == tracked_team:
                    stats.rounds_won += 1
                else:
                    stats.rounds_lost += 1
            self._save(self._current)

    def add_game_event(self, event: GameEvent) -> None:
        with self._lock:
            if self._current is None:
                logger.debug(f"No active session, dropping event {event.event_type}")
                return
            self._current.events.append(event)
            self._save(self._current)

    def update_player_stats(
        self,
        steam_id: str,
        team: str = "",
        kills: int = 0,
        deaths: int = 0,
        assists: int = 0,
        money: int = 0,
        score: int = 0,
        mvps: int = 0,
    ) -> None:
        """Copy the latest cumulative stats into the current session."""
        with self._lock:
            if self._current is None or self._current.player_steam_id != steam_id:
                return
            stats = self._current.player_stats
            if team:
                stats.team = team
            stats.kills = kills
            stats.deaths = deaths
            stats.assists = assists
            stats.money = money
            stats.score = score
            stats.mvps = mvps
            self._save(self._current)

    def end_session(self, result: SessionStatus | str = SessionStatus.COMPLETED) -> None:
        """Close the current session. No-op when none is active."""
        if isinstance(result, str):
            result = SessionStatus(result)
        with self._lock:
            if self._current is None:
                return
            self._close_current(result)

    def delete_session(self, session_id: str) -> bool:
        """Delete a persisted session file. Returns True if a file was removed."""
        path = self._path_for(session_id)
        if path is None or not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Error deleting session {session_id}: {e}")
            return False
        logger.info(f"Session deleted: {session_id}")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_session(self) -> SessionRecord | None:
        with self._lock:
            return copy.deepcopy(self._current)

    @property
    def current_session_id(self) -> str | None:
        with self._lock:
            return self._current.session_id if self._current else None

    def get_all_sessions(self) -> list[SessionRecord]:
        """All persisted sessions, newest first. Unreadable files are skipped."""
        sessions = []
        try:
            files = sorted(self.sessions_dir.glob("*.json"))
        except OSError as e:
            logger.error(f"Cannot list sessions directory {self.sessions_dir}: {e}")
            return []

        for path in files:
            session = self._load(path)
            if session is not None:
                sessions.append(session)

        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions

    def get_session(self, session_id: str) -> SessionRecord | None:
        path = self._path_for(session_id)
        if path is None or not path.exists():
            return None
        return self._load(path)

    def get_sessions_by_steam_id(self, steam_id: str) -> list[SessionRecord]:
        return [s for s in self.get_all_sessions() if s.player_steam_id == steam_id]

    def get_sessions_by_map(self, map_name: str) -> list[SessionRecord]:
        wanted = map_name.casefold()
        return [s for s in self.get_all_sessions() if s.map_name.casefold() == wanted]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _close_current(self, status: SessionStatus) -> None:
        session = self._current
        session.end_time = self._clock()
        session.status = status
        session.duration_seconds = max(
            (session.end_time - session.start_time).total_seconds(), 0.0
        )
        self._save(session)
        logger.info(f"Game session ended: {session.session_id} - {status.value}")
        self._current = None

    def _unique_id(self, base_id: str) -> str:
        session_id = base_id
        suffix = 2
        while (self.sessions_dir / f"{session_id}.json").exists():
            session_id = f"{base_id}_{suffix}"
            suffix += 1
        return session_id

    def _path_for(self, session_id: str) -> Path | None:
        if not session_id or _UNSAFE_ID_CHARS.search(session_id):
            return None
        return self.sessions_dir / f"{session_id}.json"

    def _save(self, session: SessionRecord) -> None:
        """Write the session document atomically (temp file + rename)."""
        path = self.sessions_dir / f"{session.session_id}.json"
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{session.session_id}.", suffix=".tmp", dir=self.sessions_dir
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(session.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except Exception as e:
            logger.error(f"Error saving session {session.session_id}: {e}")

    def _load(self, path: Path) -> SessionRecord | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return SessionRecord.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Error loading session from {path.name}: {e}")
            return None
