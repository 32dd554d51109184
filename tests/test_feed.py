"""Tests for feed payload decoding."""

from gsitrack.feed import FeedUpdate, decode_payload


class TestDecodePayload:
    """Tests for decode_payload."""

    def test_full_payload(self, payload):
        update = decode_payload(payload(round_phase="live", bomb="planted", score_t=3, score_ct=2))
        assert update.sections == {"provider", "map", "round", "bomb", "player"}
        assert update.map.name == "de_dust2"
        assert update.map.team_t.score == 3
        assert update.map.team_ct.score == 2
        assert update.round.phase == "live"
        assert update.bomb.state == "planted"
        assert update.player_id == "76561198000000001"
        assert update.player.state.health == 100
        assert update.errors == {}

    def test_empty_payload(self):
        update = decode_payload({})
        assert update.is_empty
        assert update.player_id is None

    def test_non_mapping_payload(self):
        """Lists, strings and None decode to an empty update with an error."""
        for raw in ([1, 2], "text", None, 42):
            update = decode_payload(raw)
            assert isinstance(update, FeedUpdate)
            assert update.is_empty
            assert "payload" in update.errors

    def test_section_not_an_object(self, payload):
        """A broken section is skipped, the others survive."""
        raw = payload()
        raw["map"] = "de_dust2"
        update = decode_payload(raw)
        assert update.map is None
        assert "map" in update.errors
        assert update.player is not None

    def test_invalid_field_dropped(self, payload):
        """A field with the wrong type is dropped and reported."""
        raw = payload(health="abc")
        update = decode_payload(raw)
        assert update.player.state.health is None
        assert update.player.state.armor == 100
        assert update.player.state.money == 800
        assert any("health" in path for path in update.dropped_fields)

    def test_unknown_keys_ignored(self, payload):
        raw = payload()
        raw["player"]["position"] = "1.0, 2.0, 3.0"
        raw["allplayers"] = {}
        update = decode_payload(raw)
        assert update.player is not None
        assert update.errors == {}


class TestAliases:
    """Tests for alternative key spellings."""

    def test_camel_case_keys(self):
        raw = {
            "map": {"name": "de_inferno", "teamT": {"score": 4}, "teamCT": {"score": 6}},
            "player": {
                "id": 76561198000000001,
                "team": "T",
                "matchStats": {"kills": 9},
                "activeWeapon": {"name": "weapon_ak47"},
            },
        }
        update = decode_payload(raw)
        assert update.map.team_t.score == 4
        assert update.map.team_ct.score == 6
        assert update.player_id == "76561198000000001"
        assert update.player.match_stats.kills == 9
        assert update.player.current_weapon.name == "weapon_ak47"

    def test_flat_player_fields(self):
        """health/kills given directly on the player are folded into their sections."""
        update = decode_payload({"player": {"steamid": "1", "health": 40, "money": 2000, "kills": 3}})
        assert update.player.state.health == 40
        assert update.player.state.money == 2000
        assert update.player.match_stats.kills == 3

    def test_active_weapon_from_weapon_map(self):
        raw = {
            "player": {
                "steamid": "1",
                "weapons": {
                    "weapon_0": {"name": "weapon_knife", "state": "holstered"},
                    "weapon_1": {"name": "weapon_m4a1", "state": "active"},
                },
            }
        }
        assert decode_payload(raw).player.current_weapon.name == "weapon_m4a1"

    def test_round_win_team(self):
        update = decode_payload({"round": {"phase": "over", "win_team": "CT", "bomb": "defused"}})
        assert update.round.win_team == "CT"
        assert update.round.bomb == "defused"
