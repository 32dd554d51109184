"""Tests for the synthetic feed generator."""

from gsitrack.feed import decode_payload
from gsitrack.models import BombState, RoundPhase, WinCondition
from gsitrack.simulator import FeedSimulator


class TestPayloads:
    def test_payload_decodes_cleanly(self, tracker):
        simulator = FeedSimulator(tracker, seed=1)
        update = decode_payload(simulator.build_payload())
        assert update.errors == {}
        assert update.dropped_fields == []
        assert update.player_id == simulator.player_id
        assert update.map.name == "de_dust2"


class TestScriptedRounds:
    """Tests for driving a tracker with simulated rounds."""

    def test_play_rounds(self, tracker, store):
        simulator = FeedSimulator(tracker, team="CT", seed=7)
        winners = [simulator.play_round() for _ in range(6)]

        stats = tracker.get_current_stats()
        assert stats.total_rounds == 6
        assert stats.rounds_won == winners.count("CT")
        assert stats.rounds_lost == winners.count("T")
        assert stats.score_t == simulator.score_t
        assert stats.score_ct == simulator.score_ct
        assert len(store.get_current_session().rounds) == 6

    def test_defused_round(self, tracker):
        simulator = FeedSimulator(tracker, seed=3)
        assert simulator.play_round(plant=True, winner="CT") == "CT"

        stats = tracker.get_current_stats()
        assert stats.bomb_state == BombState.DEFUSED
        assert stats.round_phase == RoundPhase.OVER
        assert tracker.get_round_history()[0].win_condition == WinCondition.BOMB

    def test_exploded_round(self, tracker, store):
        simulator = FeedSimulator(tracker, team="CT", seed=3)
        simulator.play_round(plant=True, winner="T")

        events = [e.event_type for e in store.get_current_session().events]
        assert "BombPlanted" in events
        assert "BombExploded" in events
        assert tracker.get_current_stats().rounds_lost == 1

    def test_step_cycle(self, tracker):
        simulator = FeedSimulator(tracker, seed=5)
        for _ in range(10):
            simulator.step()
        assert tracker.get_current_stats().total_rounds == 2

    def test_seed_reproducible(self, tracker, clock):
        from gsitrack.tracker import TrackerEngine

        first = FeedSimulator(TrackerEngine(clock=clock), seed=11)
        second = FeedSimulator(TrackerEngine(clock=clock), seed=11)
        assert [first.play_round() for _ in range(5)] == [second.play_round() for _ in range(5)]
