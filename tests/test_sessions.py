"""Tests for the session history store."""

import json
from datetime import datetime

from gsitrack.models import GameEvent, RoundRecord, SessionStatus, WinCondition
from gsitrack.sessions import SessionStore, generate_session_id

PLAYER_ID = "76561198000000001"


def _round(number, winner, clock):
    return RoundRecord(
        round_number=number,
        start_time=clock(),
        end_time=clock.advance(90),
        winner=winner,
        win_condition=WinCondition.UNKNOWN,
    )


class TestGenerateSessionId:
    """Tests for session id generation."""

    def test_format(self):
        session_id = generate_session_id("de_dust2", PLAYER_ID, "CT", datetime(2026, 10, 18, 15, 30, 0))
        assert session_id == "dust2_20261018_153000_00000001_CT"

    def test_short_player_id(self):
        session_id = generate_session_id("cs_office", "42", "T", datetime(2026, 1, 2, 3, 4, 5))
        assert session_id == "office_20260102_030405_42_T"

    def test_unsafe_characters_replaced(self):
        session_id = generate_session_id("workshop/123/de map", PLAYER_ID, "CT", datetime(2026, 1, 1))
        assert "/" not in session_id
        assert " " not in session_id


class TestSessionLifecycle:
    """Tests for starting, updating and ending sessions."""

    def test_start_persists(self, store):
        session_id = store.start_new_session("de_dust2", "CT", PLAYER_ID, "Tester", "competitive")
        path = store.sessions_dir / f"{session_id}.json"
        assert path.exists()
        data = json.loads(path.read_text())
        assert data["status"] == "Active"
        assert data["map_name"] == "de_dust2"
        assert store.current_session_id == session_id

    def test_start_while_active_abandons_previous(self, store, clock):
        first = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        clock.advance(60)
        second = store.start_new_session("de_mirage", "CT", PLAYER_ID)

        assert first != second
        assert store.get_session(first).status == SessionStatus.ABANDONED
        assert store.get_session(second).status == SessionStatus.ACTIVE
        active = [s for s in store.get_all_sessions() if s.is_active]
        assert len(active) == 1

    def test_same_second_ids_are_unique(self, store):
        first = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        second = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        assert second == f"{first}_2"

    def test_round_outcomes_counted(self, store, clock):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        store.add_round_data(_round(1, "CT", clock))
        store.add_round_data(_round(2, "T", clock))
        store.add_round_data(_round(3, "Unknown", clock))

        session = store.get_current_session()
        assert len(session.rounds) == 3
        assert session.player_stats.rounds_won == 1
        assert session.player_stats.rounds_lost == 1

    def test_round_outcomes_need_a_known_team(self, store, clock):
        store.start_new_session("de_dust2", "", PLAYER_ID)
        store.add_round_data(_round(1, "T", clock))

        session = store.get_current_session()
        assert len(session.rounds) == 1
        assert session.player_stats.rounds_won == 0
        assert session.player_stats.rounds_lost == 0

    def test_events_appended(self, store, clock):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        store.add_game_event(GameEvent(event_type="BombPlanted", timestamp=clock(), round_number=1))
        session = store.get_session(store.current_session_id)
        assert [e.event_type for e in session.events] == ["BombPlanted"]

    def test_player_stats_for_other_player_ignored(self, store):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        store.update_player_stats("someone-else", kills=30)
        store.update_player_stats(PLAYER_ID, team="CT", kills=5, deaths=2, money=4200)
        stats = store.get_current_session().player_stats
        assert stats.kills == 5
        assert stats.deaths == 2
        assert stats.money == 4200

    def test_end_session(self, store, clock):
        session_id = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        clock.advance(600)
        store.end_session(SessionStatus.COMPLETED)

        assert store.get_current_session() is None
        session = store.get_session(session_id)
        assert session.status == SessionStatus.COMPLETED
        assert session.duration_seconds == 600.0
        assert session.end_time is not None

    def test_end_without_session_is_noop(self, store):
        store.end_session()
        assert store.get_all_sessions() == []

    def test_mutations_without_session_are_dropped(self, store, clock):
        store.add_round_data(_round(1, "CT", clock))
        store.add_game_event(GameEvent(event_type="RoundBegin", timestamp=clock()))
        assert store.get_all_sessions() == []

    def test_current_session_is_a_copy(self, store):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        copy = store.get_current_session()
        copy.rounds.append(RoundRecord(round_number=99))
        assert store.get_current_session().rounds == []


class TestQueries:
    """Tests for history queries."""

    def test_newest_first(self, store, clock):
        first = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        clock.advance(3600)
        second = store.start_new_session("de_mirage", "T", PLAYER_ID)
        ids = [s.session_id for s in store.get_all_sessions()]
        assert ids == [second, first]

    def test_by_steam_id_and_map(self, store, clock):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        clock.advance(10)
        store.start_new_session("de_mirage", "T", "76561198000000002")
        store.end_session()

        assert len(store.get_sessions_by_steam_id(PLAYER_ID)) == 1
        assert len(store.get_sessions_by_map("DE_MIRAGE")) == 1
        assert store.get_sessions_by_map("de_nuke") == []

    def test_unknown_session(self, store):
        assert store.get_session("nope") is None
        assert store.get_session("../etc/passwd") is None

    def test_corrupt_file_skipped(self, store, clock):
        """Unreadable documents are skipped, the rest are returned."""
        first = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        clock.advance(60)
        second = store.start_new_session("de_mirage", "CT", PLAYER_ID)
        store.end_session()
        (store.sessions_dir / "broken.json").write_text("{ not json")

        sessions = store.get_all_sessions()
        assert [s.session_id for s in sessions] == [second, first]

    def test_incomplete_documents_skipped(self, store):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        store.end_session()
        (store.sessions_dir / "partial.json").write_text(json.dumps({"session_id": "partial"}))
        (store.sessions_dir / "no_start.json").write_text(
            json.dumps({"session_id": "no_start", "map_name": "de_nuke", "start_time": ""})
        )

        assert [s.map_name for s in store.get_all_sessions()] == ["de_dust2"]

    def test_offset_timestamps_sort_with_local_ones(self, store, clock):
        store.start_new_session("de_dust2", "CT", PLAYER_ID)
        clock.advance(60)
        session_id = store.start_new_session("de_mirage", "CT", PLAYER_ID)
        store.end_session()

        data = json.loads((store.sessions_dir / f"{session_id}.json").read_text())
        data["session_id"] = "imported"
        data["start_time"] = "2026-10-18T15:30:00+00:00"
        data["events"] = [{"event_type": "SessionStart", "timestamp": "2026-10-18T15:30:00+00:00"}]
        (store.sessions_dir / "imported.json").write_text(json.dumps(data))

        sessions = store.get_all_sessions()
        assert len(sessions) == 3
        imported = next(s for s in sessions if s.session_id == "imported")
        assert imported.start_time.tzinfo is None
        assert imported.events[0].timestamp.tzinfo is None

    def test_history_survives_restart(self, store, clock):
        """A fresh store over the same directory reads back identical rounds."""
        store.start_new_session("de_dust2", "CT", PLAYER_ID, "Tester", "competitive")
        recorded = RoundRecord(
            round_number=1,
            start_time=clock(),
            end_time=clock.advance(95),
            winner="CT",
            win_condition=WinCondition.BOMB,
            score_t=0,
            score_ct=1,
        )
        store.add_round_data(recorded)

        sessions = SessionStore(store.sessions_dir, clock=clock).get_all_sessions()
        assert len(sessions) == 1
        assert sessions[0].rounds == [recorded]
        assert sessions[0].player_stats.rounds_won == 1


class TestDeleteSession:
    """Tests for deleting sessions."""

    def test_delete(self, store):
        session_id = store.start_new_session("de_dust2", "CT", PLAYER_ID)
        store.end_session()
        assert store.delete_session(session_id) is True
        assert store.get_session(session_id) is None

    def test_delete_missing(self, store):
        assert store.delete_session("nope") is False

    def test_delete_rejects_path_traversal(self, store):
        assert store.delete_session("../sessions") is False
