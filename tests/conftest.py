"""Shared fixtures for gsitrack tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import pytest

from gsitrack.sessions import SessionStore
from gsitrack.tracker import TrackerEngine

PLAYER_ID = "76561198000000001"
OTHER_PLAYER_ID = "76561198000000002"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 18, 15, 30, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def build_payload(
    player_id: str | None = PLAYER_ID,
    map_name: str | None = "de_dust2",
    round_phase: str | None = None,
    score_t: int | None = 0,
    score_ct: int | None = 0,
    team: str = "CT",
    bomb: str | None = None,
    map_phase: str = "live",
    **player_state: Any,
) -> dict[str, Any]:
    """Game state payload in the client's wire format."""
    payload: dict[str, Any] = {"provider": {"name": "Counter-Strike: Global Offensive"}}
    if map_name is not None:
        payload["map"] = {
            "name": map_name,
            "mode": "competitive",
            "phase": map_phase,
            "round": (score_t or 0) + (score_ct or 0),
            "team_t": {"score": score_t},
            "team_ct": {"score": score_ct},
        }
    if round_phase is not None:
        payload["round"] = {"phase": round_phase}
    if bomb is not None:
        payload["bomb"] = {"state": bomb}
    if player_id is not None:
        state = {"health": 100, "armor": 100, "money": 800}
        state.update(player_state)
        payload["player"] = {
            "steamid": player_id,
            "name": "Tester",
            "team": team,
            "state": state,
            "match_stats": {"kills": 0, "assists": 0, "deaths": 0, "mvps": 0, "score": 0},
        }
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock) -> SessionStore:
    return SessionStore(tmp_path / "sessions", clock=clock)


@pytest.fixture
def tracker(store, clock) -> TrackerEngine:
    return TrackerEngine(store, clock=clock)


@pytest.fixture
def payload():
    """Factory for feed payloads."""
    return build_payload
