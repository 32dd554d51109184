"""
Synthetic Feed Generator

Produces game state payloads shaped like the real client's and pushes them
through TrackerEngine.update_state, so everything downstream of the feed can
be exercised without a running game.
"""

from __future__ import annotations

import copy
import logging
import random
from typing import Any

from gsitrack.tracker import TrackerEngine

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_ID = "76561198000000001"

_WEAPONS = ("weapon_ak47", "weapon_m4a1", "weapon_awp", "weapon_deagle", "weapon_usp_silencer")


class FeedSimulator:
    """
    Drives a tracker with scripted rounds.

    Example usage:
        simulator = FeedSimulator(tracker, seed=42)
        simulator.play_round(plant=True, winner="T")
    """

    def __init__(
        self,
        tracker: TrackerEngine,
        player_id: str = DEFAULT_PLAYER_ID,
        player_name: str = "Simulated",
        team: str = "CT",
        map_name: str = "de_dust2",
        seed: int | None = None,
    ):
        self.tracker = tracker
        self.player_id = player_id
        self.player_name = player_name
        self.team = team
        self.map_name = map_name
        self._random = random.Random(seed)

        self.score_t = 0
        self.score_ct = 0
        self.round_phase = "freezetime"
        self.bomb_state: str | None = None
        self.health = 100
        self.armor = 100
        self.money = 800
        self.kills = 0
        self.deaths = 0
        self.assists = 0
        self.mvps = 0
        self._step = 0

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def build_payload(self) -> dict[str, Any]:
        """Current simulated state in the client's wire format."""
        payload: dict[str, Any] = {
            "provider": {"name": "Counter-Strike: Global Offensive", "steamid": self.player_id},
            "map": {
                "name": self.map_name,
                "mode": "competitive",
                "phase": "live",
                "round": self.score_t + self.score_ct,
                "team_t": {"score": self.score_t},
                "team_ct": {"score": self.score_ct},
            },
            "round": {"phase": self.round_phase},
            "player": {
                "steamid": self.player_id,
                "name": self.player_name,
                "team": self.team,
                "activity": "playing",
                "state": {"health": self.health, "armor": self.armor, "money": self.money},
                "match_stats": {
                    "kills": self.kills,
                    "deaths": self.deaths,
                    "assists": self.assists,
                    "mvps": self.mvps,
                    "score": self.kills * 2 + self.assists,
                },
                "weapons": {"weapon_0": {"name": self._random.choice(_WEAPONS), "state": "active"}},
            },
        }
        if self.bomb_state is not None:
            payload["round"]["bomb"] = self.bomb_state
        return payload

    def send(self) -> dict[str, Any]:
        payload = self.build_payload()
        self.tracker.update_state(copy.deepcopy(payload))
        return payload

    # ------------------------------------------------------------------
    # Scripted moments
    # ------------------------------------------------------------------

    def simulate_freezetime(self) -> None:
        self.round_phase = "freezetime"
        self.bomb_state = None
        self.health = 100
        self.send()

    def simulate_round_start(self) -> None:
        self.round_phase = "live"
        self.send()

    def simulate_player_actions(self) -> None:
        """Random damage, kills and money changes during a live round."""
        if self._random.random() < 0.3:
            self.health = max(0, self.health - self._random.randint(10, 50))
            self.armor = max(0, self.armor - self._random.randint(5, 20))
        if self._random.random() < 0.2:
            self.kills += 1
            self.money = min(16000, self.money + 300)
        if self.health == 0:
            self.deaths += 1
        self.send()

    def simulate_bomb_planted(self) -> None:
        self.round_phase = "live"
        self.bomb_state = "planted"
        self.send()

    def simulate_bomb_defused(self) -> None:
        self.bomb_state = "defused"
        self.send()

    def simulate_bomb_exploded(self) -> None:
        self.bomb_state = "exploded"
        self.send()

    def simulate_round_end(self, winner: str | None = None) -> str:
        """
        End the live round, crediting the winner with a point.

        Returns:
            The winning side
        """
        winner = (winner or self._random.choice(("T", "CT"))).upper()
        if winner == "T":
            self.score_t += 1
        else:
            self.score_ct += 1
        if winner == self.team:
            self.money = min(16000, self.money + 3250)
        else:
            self.money = min(16000, self.money + 1400)
        self.round_phase = "over"
        self.send()
        return winner

    def play_round(self, plant: bool | None = None, winner: str | None = None) -> str:
        """
        Play one complete round: freezetime, live, optional plant, over.

        Args:
            plant: Whether the bomb gets planted; random when None
            winner: Winning side; bomb outcome and randomness decide when None

        Returns:
            The winning side
        """
        self.simulate_freezetime()
        self.simulate_round_start()
        self.simulate_player_actions()

        if plant is None:
            plant = self._random.random() < 0.5
        if plant:
            self.simulate_bomb_planted()
            if winner is None:
                winner = self._random.choice(("T", "CT"))
            if winner.upper() == "T":
                self.simulate_bomb_exploded()
            else:
                self.simulate_bomb_defused()

        return self.simulate_round_end(winner)

    def step(self) -> None:
        """Advance a scripted cycle by one update, for periodic driving."""
        actions = (
            self.simulate_freezetime,
            self.simulate_round_start,
            self.simulate_player_actions,
            self.simulate_bomb_planted,
            self.simulate_round_end,
        )
        actions[self._step]()
        self._step = (self._step + 1) % len(actions)
