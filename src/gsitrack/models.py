"""
Match State and Session Models

Value types shared by the tracker, the session store and the renderers:

- StateSnapshot: the consolidated "game right now" view handed to renderers
- RoundRecord / GameEvent / PlayerSessionStats: per-session history entries
- SessionRecord: one tracked match, persisted as a JSON document
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

# ============================================================================
# Enums
# ============================================================================


class RoundPhase(Enum):
    """Coarse lifecycle stage of a single round."""

    UNKNOWN = "Unknown"
    WARMUP = "Warmup"
    FREEZETIME = "Freezetime"
    LIVE = "Live"
    OVER = "Over"

    @classmethod
    def parse(cls, value: str | None) -> RoundPhase:
        """Map a feed phase string (any case) to a phase, UNKNOWN if unrecognised."""
        if not value:
            return cls.UNKNOWN
        return _PHASE_LOOKUP.get(str(value).strip().lower(), cls.UNKNOWN)


class BombState(Enum):
    """Bomb lifecycle as seen by the feed."""

    UNKNOWN = "Unknown"
    CARRIED = "Carried"
    DROPPED = "Dropped"
    PLANTED = "Planted"
    DEFUSED = "Defused"
    EXPLODED = "Exploded"

    @classmethod
    def parse(cls, value: str | None) -> BombState:
        """Map a feed bomb string (any case) to a state, UNKNOWN if unrecognised."""
        if not value:
            return cls.UNKNOWN
        return _BOMB_LOOKUP.get(str(value).strip().lower(), cls.UNKNOWN)


class SessionStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    ABANDONED = "Abandoned"


class WinCondition(Enum):
    ELIMINATION = "Elimination"
    BOMB = "Bomb"
    TIME = "Time"
    UNKNOWN = "Unknown"


class RoundResult(Enum):
    """Display state of the tracked player's last finished round."""

    UNKNOWN = "Unknown"
    WON = "Won"
    LOST = "Lost"


class EventType(str, Enum):
    """Tags used in the session event log."""

    SESSION_START = "SessionStart"
    SESSION_RESET = "SessionReset"
    ROUND_BEGIN = "RoundBegin"
    ROUND_END = "RoundEnd"
    BOMB_PLANTED = "BombPlanted"
    BOMB_DEFUSED = "BombDefused"
    BOMB_EXPLODED = "BombExploded"
    CONNECTION_LOST = "ConnectionLost"
    CONNECTION_ESTABLISHED = "ConnectionEstablished"


_PHASE_LOOKUP = {
    "warmup": RoundPhase.WARMUP,
    "freezetime": RoundPhase.FREEZETIME,
    "freeze_time": RoundPhase.FREEZETIME,
    "live": RoundPhase.LIVE,
    "over": RoundPhase.OVER,
}

# "planting" and "defusing" are transient feed values. A defuse in progress
# still means the bomb is planted.
_BOMB_LOOKUP = {
    "carried": BombState.CARRIED,
    "planting": BombState.CARRIED,
    "dropped": BombState.DROPPED,
    "planted": BombState.PLANTED,
    "defusing": BombState.PLANTED,
    "defused": BombState.DEFUSED,
    "exploded": BombState.EXPLODED,
}

UNKNOWN_WINNER = "Unknown"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO timestamp as naive local time, converting offset-aware values."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


# ============================================================================
# Live Snapshot
# ============================================================================


@dataclass
class StateSnapshot:
    """One coherent view of the match right now."""

    # Match
    map_name: str = ""
    game_mode: str = ""
    map_phase: str = ""
    round_phase: RoundPhase = RoundPhase.UNKNOWN
    round_number: int = 0  # internal counter, authoritative
    reported_round: int | None = None  # as reported by the feed, informational
    score_t: int = 0
    score_ct: int = 0

    # Player
    player_id: str = ""
    player_name: str = ""
    player_team: str = ""
    health: int = 0
    armor: int = 0
    money: int = 0
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    mvps: int = 0
    score: int = 0
    active_weapon: str = ""

    # Bomb
    bomb_state: BombState = BombState.UNKNOWN
    bomb_planted_time: datetime | None = None
    bomb_defused_time: datetime | None = None
    bomb_exploded_time: datetime | None = None

    # Round
    round_start_time: datetime | None = None
    round_time: int = 0
    round_result: RoundResult = RoundResult.UNKNOWN
    last_round_winner: str = ""

    # Connection
    is_connected: bool = False
    connection_status: str = "Waiting for connection..."
    last_message_time: datetime | None = None
    messages_received: int = 0

    # Session aggregates
    session_id: str | None = None
    session_start_time: datetime | None = None
    session_duration: timedelta = field(default_factory=timedelta)
    total_rounds: int = 0
    rounds_won: int = 0
    rounds_lost: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_rounds <= 0:
            return 0.0
        return self.rounds_won / self.total_rounds * 100

    @property
    def kd_ratio(self) -> float:
        return self.kills / self.deaths if self.deaths > 0 else float(self.kills)

    @property
    def is_alive(self) -> bool:
        return self.health > 0

    @property
    def has_armor(self) -> bool:
        return self.armor > 0

    @property
    def is_bomb_planted(self) -> bool:
        return self.bomb_state == BombState.PLANTED

    @property
    def is_bomb_defused(self) -> bool:
        return self.bomb_state == BombState.DEFUSED

    @property
    def is_bomb_exploded(self) -> bool:
        return self.bomb_state == BombState.EXPLODED

    def score_display(self) -> str:
        return f"{self.score_t} - {self.score_ct}"

    def player_status(self) -> str:
        if not self.is_alive:
            return "Dead"
        if self.has_armor:
            return f"Alive ({self.health}HP, {self.armor}AP)"
        return f"Alive ({self.health}HP)"

    def round_time_display(self) -> str:
        minutes, seconds = divmod(max(self.round_time, 0), 60)
        return f"{minutes:02d}:{seconds:02d}"

    def session_duration_display(self) -> str:
        total = int(self.session_duration.total_seconds())
        hours, rest = divmod(max(total, 0), 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def last_message_display(self, now: datetime | None = None) -> str:
        """Human readable age of the last feed message."""
        if self.last_message_time is None:
            return "Never"
        elapsed = ((now or datetime.now()) - self.last_message_time).total_seconds()
        if elapsed < 60:
            return f"{elapsed:.0f}s ago"
        if elapsed < 3600:
            return f"{elapsed / 60:.0f}m ago"
        return f"{elapsed / 3600:.0f}h ago"

    def to_dict(self) -> dict[str, Any]:
        return {
            "map": {
                "name": self.map_name,
                "mode": self.game_mode,
                "phase": self.map_phase,
                "score_t": self.score_t,
                "score_ct": self.score_ct,
                "score_display": self.score_display(),
            },
            "round": {
                "phase": self.round_phase.value,
                "number": self.round_number,
                "reported_number": self.reported_round,
                "start_time": _iso(self.round_start_time),
                "time": self.round_time,
                "result": self.round_result.value,
                "last_winner": self.last_round_winner,
            },
            "player": {
                "id": self.player_id,
                "name": self.player_name,
                "team": self.player_team,
                "health": self.health,
                "armor": self.armor,
                "money": self.money,
                "kills": self.kills,
                "deaths": self.deaths,
                "assists": self.assists,
                "mvps": self.mvps,
                "score": self.score,
                "active_weapon": self.active_weapon,
                "kd_ratio": round(self.kd_ratio, 2),
                "status": self.player_status(),
            },
            "bomb": {
                "state": self.bomb_state.value,
                "planted_time": _iso(self.bomb_planted_time),
                "defused_time": _iso(self.bomb_defused_time),
                "exploded_time": _iso(self.bomb_exploded_time),
            },
            "connection": {
                "is_connected": self.is_connected,
                "status": self.connection_status,
                "last_message_time": _iso(self.last_message_time),
                "messages_received": self.messages_received,
            },
            "session": {
                "id": self.session_id,
                "start_time": _iso(self.session_start_time),
                "duration_seconds": round(self.session_duration.total_seconds(), 1),
                "total_rounds": self.total_rounds,
                "rounds_won": self.rounds_won,
                "rounds_lost": self.rounds_lost,
                "win_rate": round(self.win_rate, 1),
            },
        }


# ============================================================================
# Session History
# ============================================================================


@dataclass
class RoundRecord:
    """One round within a session."""

    round_number: int
    phase: str = RoundPhase.LIVE.value
    start_time: datetime | None = None
    end_time: datetime | None = None
    winner: str = ""
    win_condition: WinCondition = WinCondition.UNKNOWN
    score_t: int = 0
    score_ct: int = 0

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "phase": self.phase,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "winner": self.winner,
            "win_condition": self.win_condition.value,
            "score_t": self.score_t,
            "score_ct": self.score_ct,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoundRecord:
        return cls(
            round_number=int(data["round_number"]),
            phase=data.get("phase", RoundPhase.LIVE.value),
            start_time=_parse_dt(data.get("start_time")),
            end_time=_parse_dt(data.get("end_time")),
            winner=data.get("winner", ""),
            win_condition=WinCondition(data.get("win_condition", WinCondition.UNKNOWN.value)),
            score_t=int(data.get("score_t", 0)),
            score_ct=int(data.get("score_ct", 0)),
        )


@dataclass(frozen=True)
class GameEvent:
    """Append-only session log entry."""

    event_type: str
    timestamp: datetime
    round_number: int = 0
    player_id: str = ""
    player_name: str = ""
    description: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "player_id": self.player_id,
            "player_name": self.player_name,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "round_number": self.round_number,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameEvent:
        timestamp = _parse_dt(data["timestamp"])
        if timestamp is None:
            raise ValueError("event has no timestamp")
        return cls(
            event_type=data["event_type"],
            timestamp=timestamp,
            round_number=int(data.get("round_number", 0)),
            player_id=data.get("player_id", ""),
            player_name=data.get("player_name", ""),
            description=data.get("description", ""),
            payload=dict(data.get("payload") or {}),
        )


@dataclass
class PlayerSessionStats:
    """
    Aggregate for the tracked player within one session.

    Kills through mvps are cumulative values copied from the feed. Rounds won
    and lost are maintained from round outcomes.
    """

    steam_id: str = ""
    team: str = ""
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    money: int = 800
    score: int = 0
    mvps: int = 0
    rounds_won: int = 0
    rounds_lost: int = 0

    @property
    def kd_ratio(self) -> float:
        return self.kills / self.deaths if self.deaths > 0 else float(self.kills)

    @property
    def win_rate(self) -> float:
        played = self.rounds_won + self.rounds_lost
        return self.rounds_won / played * 100 if played > 0 else float(self.rounds_won)

    def to_dict(self) -> dict[str, Any]:
        return {
            "steam_id": self.steam_id,
            "team": self.team,
            "kills": self.kills,
            "deaths": self.deaths,
            "assists": self.assists,
            "money": self.money,
            "score": self.score,
            "mvps": self.mvps,
            "rounds_won": self.rounds_won,
            "rounds_lost": self.rounds_lost,
            "kd_ratio": round(self.kd_ratio, 2),
            "win_rate": round(self.win_rate, 1),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlayerSessionStats:
        return cls(
            steam_id=data.get("steam_id", ""),
            team=data.get("team", ""),
            kills=int(data.get("kills", 0)),
            deaths=int(data.get("deaths", 0)),
            assists=int(data.get("assists", 0)),
            money=int(data.get("money", 0)),
            score=int(data.get("score", 0)),
            mvps=int(data.get("mvps", 0)),
            rounds_won=int(data.get("rounds_won", 0)),
            rounds_lost=int(data.get("rounds_lost", 0)),
        )


@dataclass
class SessionRecord:
    """One tracked match."""

    session_id: str
    map_name: str
    player_team: str
    player_steam_id: str
    start_time: datetime
    player_name: str = ""
    game_mode: str = ""
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    status: SessionStatus = SessionStatus.ACTIVE
    rounds: list[RoundRecord] = field(default_factory=list)
    events: list[GameEvent] = field(default_factory=list)
    player_stats: PlayerSessionStats = field(default_factory=PlayerSessionStats)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def summary(self) -> dict[str, Any]:
        """Compact listing entry without rounds and events."""
        return {
            "session_id": self.session_id,
            "map_name": self.map_name,
            "player_team": self.player_team,
            "player_steam_id": self.player_steam_id,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": _iso(self.end_time),
            "duration_seconds": round(self.duration_seconds, 1),
            "round_count": len(self.rounds),
            "rounds_won": self.player_stats.rounds_won,
            "rounds_lost": self.player_stats.rounds_lost,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "map_name": self.map_name,
            "game_mode": self.game_mode,
            "player_team": self.player_team,
            "player_steam_id": self.player_steam_id,
            "player_name": self.player_name,
            "start_time": self.start_time.isoformat(),
            "end_time": _iso(self.end_time),
            "duration_seconds": self.duration_seconds,
            "status": self.status.value,
            "rounds": [r.to_dict() for r in self.rounds],
            "events": [e.to_dict() for e in self.events],
            "player_stats": self.player_stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        start_time = _parse_dt(data["start_time"])
        if start_time is None:
            raise ValueError("session has no start_time")
        return cls(
            session_id=data["session_id"],
            map_name=data["map_name"],
            game_mode=data.get("game_mode", ""),
            player_team=data.get("player_team", ""),
            player_steam_id=data.get("player_steam_id", ""),
            player_name=data.get("player_name", ""),
            start_time=start_time,
            end_time=_parse_dt(data.get("end_time")),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
            rounds=[RoundRecord.from_dict(r) for r in data.get("rounds", [])],
            events=[GameEvent.from_dict(e) for e in data.get("events", [])],
            player_stats=PlayerSessionStats.from_dict(data.get("player_stats") or {}),
        )
