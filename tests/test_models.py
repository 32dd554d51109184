"""Tests for the match state and session models."""

from datetime import datetime, timedelta

import pytest

from gsitrack.models import (
    BombState,
    GameEvent,
    PlayerSessionStats,
    RoundPhase,
    RoundRecord,
    SessionRecord,
    SessionStatus,
    StateSnapshot,
    WinCondition,
)

T0 = datetime(2026, 10, 18, 15, 30, 0)


class TestEnumParsing:
    """Tests for feed string parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("live", RoundPhase.LIVE),
            ("LIVE", RoundPhase.LIVE),
            ("freezetime", RoundPhase.FREEZETIME),
            ("over", RoundPhase.OVER),
            ("warmup", RoundPhase.WARMUP),
            ("halftime", RoundPhase.UNKNOWN),
            (None, RoundPhase.UNKNOWN),
            ("", RoundPhase.UNKNOWN),
        ],
    )
    def test_round_phase(self, text, expected):
        assert RoundPhase.parse(text) == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("planted", BombState.PLANTED),
            ("Defused", BombState.DEFUSED),
            ("exploded", BombState.EXPLODED),
            ("carried", BombState.CARRIED),
            ("dropped", BombState.DROPPED),
            ("planting", BombState.CARRIED),
            ("defusing", BombState.PLANTED),
            ("sideways", BombState.UNKNOWN),
        ],
    )
    def test_bomb_state(self, text, expected):
        assert BombState.parse(text) == expected


class TestStateSnapshot:
    """Tests for StateSnapshot derived values."""

    def test_defaults(self):
        """A fresh snapshot is the reset baseline."""
        snap = StateSnapshot()
        assert snap.round_phase == RoundPhase.UNKNOWN
        assert snap.bomb_state == BombState.UNKNOWN
        assert snap.is_connected is False
        assert snap.total_rounds == 0
        assert snap.session_duration == timedelta()

    def test_win_rate_zero_rounds(self):
        assert StateSnapshot().win_rate == 0.0

    def test_win_rate(self):
        snap = StateSnapshot(total_rounds=4, rounds_won=3, rounds_lost=1)
        assert snap.win_rate == 75.0

    def test_kd_ratio(self):
        assert StateSnapshot(kills=10, deaths=4).kd_ratio == 2.5
        assert StateSnapshot(kills=3, deaths=0).kd_ratio == 3.0

    def test_player_status(self):
        assert StateSnapshot(health=0).player_status() == "Dead"
        assert StateSnapshot(health=80, armor=50).player_status() == "Alive (80HP, 50AP)"
        assert StateSnapshot(health=80).player_status() == "Alive (80HP)"

    def test_display_helpers(self):
        snap = StateSnapshot(
            score_t=7, score_ct=5, round_time=95, session_duration=timedelta(hours=1, minutes=2, seconds=3)
        )
        assert snap.score_display() == "7 - 5"
        assert snap.round_time_display() == "01:35"
        assert snap.session_duration_display() == "01:02:03"

    def test_last_message_display(self):
        snap = StateSnapshot()
        assert snap.last_message_display(T0) == "Never"
        snap.last_message_time = T0
        assert snap.last_message_display(T0 + timedelta(seconds=5)) == "5s ago"
        assert snap.last_message_display(T0 + timedelta(minutes=3)) == "3m ago"

    def test_to_dict_is_json_safe(self):
        """to_dict renders enums and times as plain values."""
        snap = StateSnapshot(
            map_name="de_dust2",
            round_phase=RoundPhase.LIVE,
            bomb_state=BombState.PLANTED,
            bomb_planted_time=T0,
            total_rounds=2,
            rounds_won=1,
        )
        data = snap.to_dict()
        assert data["map"]["name"] == "de_dust2"
        assert data["round"]["phase"] == "Live"
        assert data["bomb"]["state"] == "Planted"
        assert data["bomb"]["planted_time"] == T0.isoformat()
        assert data["session"]["win_rate"] == 50.0


class TestPlayerSessionStats:
    """Tests for PlayerSessionStats derived values."""

    def test_default_money(self):
        assert PlayerSessionStats().money == 800

    def test_win_rate_no_rounds(self):
        assert PlayerSessionStats().win_rate == 0

    def test_win_rate(self):
        assert PlayerSessionStats(rounds_won=1, rounds_lost=3).win_rate == 25.0


class TestSessionRecord:
    """Tests for SessionRecord serialization."""

    def _session(self) -> SessionRecord:
        return SessionRecord(
            session_id="dust2_20261018_153000_00000001_CT",
            map_name="de_dust2",
            player_team="CT",
            player_steam_id="76561198000000001",
            start_time=T0,
            end_time=T0 + timedelta(minutes=30),
            duration_seconds=1800.0,
            status=SessionStatus.COMPLETED,
            rounds=[
                RoundRecord(
                    round_number=1,
                    start_time=T0,
                    end_time=T0 + timedelta(minutes=2),
                    winner="CT",
                    win_condition=WinCondition.BOMB,
                    score_ct=1,
                )
            ],
            events=[GameEvent(event_type="RoundBegin", timestamp=T0, round_number=1, payload={"score_t": 0})],
            player_stats=PlayerSessionStats(steam_id="76561198000000001", team="CT", kills=20, rounds_won=1),
        )

    def test_document_round_trip(self):
        """A persisted document reads back to an equal record."""
        session = self._session()
        assert SessionRecord.from_dict(session.to_dict()) == session

    def test_summary_omits_history(self):
        summary = self._session().summary()
        assert summary["round_count"] == 1
        assert summary["status"] == "Completed"
        assert "events" not in summary

    def test_malformed_document_raises(self):
        with pytest.raises((KeyError, ValueError, TypeError)):
            SessionRecord.from_dict({"session_id": "x"})

    def test_round_is_open(self):
        assert RoundRecord(round_number=1, start_time=T0).is_open
        assert not RoundRecord(round_number=1, start_time=T0, end_time=T0).is_open

    def test_event_is_frozen(self):
        event = GameEvent(event_type="RoundBegin", timestamp=T0)
        with pytest.raises(AttributeError):
            event.round_number = 3
