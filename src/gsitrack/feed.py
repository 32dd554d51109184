"""
Game State Integration Payload Schema

Declares the subset of the game client's state payload the tracker reads and
decodes it section by section. Decoding never raises: a section that cannot be
read is skipped and reported, a field that cannot be read is dropped and
reported, and everything else is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

SECTIONS = ("map", "round", "player", "bomb", "provider", "auth")

_FLAT_STATE_KEYS = ("health", "armor", "money", "helmet")
_FLAT_MATCH_KEYS = ("kills", "deaths", "assists", "mvps", "score")


class FeedNode(BaseModel):
    """Base node: unknown keys are ignored, invalid fields are dropped."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _drop_invalid(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError as e:
            if isinstance(info.context, dict):
                info.context.setdefault("dropped", []).append(f"{cls.__name__}.{info.field_name}")
            logger.debug(f"Dropping invalid feed field {cls.__name__}.{info.field_name}: {e}")
            return None


class TeamNode(FeedNode):
    score: int | None = None
    name: str | None = None


class MapNode(FeedNode):
    name: str | None = None
    mode: str | None = None
    phase: str | None = None
    round: int | None = None
    team_t: TeamNode | None = Field(None, validation_alias=AliasChoices("team_t", "teamT"))
    team_ct: TeamNode | None = Field(None, validation_alias=AliasChoices("team_ct", "teamCT"))


class RoundNode(FeedNode):
    phase: str | None = None
    bomb: str | None = None
    win_team: str | None = Field(None, validation_alias=AliasChoices("win_team", "winTeam"))


class PlayerStateNode(FeedNode):
    health: int | None = None
    armor: int | None = None
    helmet: bool | None = None
    money: int | None = None
    flashed: int | None = None
    round_kills: int | None = None


class MatchStatsNode(FeedNode):
    kills: int | None = None
    assists: int | None = None
    deaths: int | None = None
    mvps: int | None = None
    score: int | None = None


class WeaponNode(FeedNode):
    name: str | None = None
    type: str | None = None
    state: str | None = None


class PlayerNode(FeedNode):
    id: str | None = Field(None, validation_alias=AliasChoices("steamid", "id", "steam_id"))
    name: str | None = None
    team: str | None = None
    activity: str | None = None
    state: PlayerStateNode | None = None
    match_stats: MatchStatsNode | None = Field(
        None, validation_alias=AliasChoices("match_stats", "matchStats")
    )
    weapons: dict[str, WeaponNode] | None = None
    active_weapon: WeaponNode | None = Field(
        None, validation_alias=AliasChoices("active_weapon", "activeWeapon")
    )

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_fields(cls, data: Any) -> Any:
        """Accept health/kills/... directly on the player node."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "matchStats" in data and "match_stats" not in data:
            data["match_stats"] = data.pop("matchStats")
        for target, keys in (("state", _FLAT_STATE_KEYS), ("match_stats", _FLAT_MATCH_KEYS)):
            flat = {k: data.pop(k) for k in keys if k in data}
            if not flat:
                continue
            nested = data.get(target)
            merged = dict(nested) if isinstance(nested, dict) else {}
            for key, value in flat.items():
                merged.setdefault(key, value)
            data[target] = merged
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def current_weapon(self) -> WeaponNode | None:
        """Explicit active weapon, else the weapon whose state is 'active'."""
        if self.active_weapon is not None:
            return self.active_weapon
        for weapon in (self.weapons or {}).values():
            if weapon is not None and (weapon.state or "").lower() == "active":
                return weapon
        return None


class BombNode(FeedNode):
    state: str | None = None
    countdown: float | None = None


class ProviderNode(FeedNode):
    name: str | None = None
    steamid: str | None = None
    timestamp: int | None = None


class AuthNode(FeedNode):
    token: str | None = None


_SECTION_MODELS: dict[str, type[FeedNode]] = {
    "map": MapNode,
    "round": RoundNode,
    "player": PlayerNode,
    "bomb": BombNode,
    "provider": ProviderNode,
    "auth": AuthNode,
}


@dataclass
class FeedUpdate:
    """Result of decoding one payload: parsed sections plus what was lost."""

    map: MapNode | None = None
    round: RoundNode | None = None
    player: PlayerNode | None = None
    bomb: BombNode | None = None
    provider: ProviderNode | None = None
    auth: AuthNode | None = None
    errors: dict[str, str] = field(default_factory=dict)
    dropped_fields: list[str] = field(default_factory=list)

    @property
    def sections(self) -> frozenset[str]:
        return frozenset(name for name in SECTIONS if getattr(self, name) is not None)

    @property
    def is_empty(self) -> bool:
        return not self.sections

    @property
    def player_id(self) -> str | None:
        if self.player is None or not self.player.id:
            return None
        return self.player.id


def decode_payload(raw: Any) -> FeedUpdate:
    """
    Decode a raw payload into a FeedUpdate.

    Args:
        raw: JSON-decoded payload from the game client

    Returns:
        FeedUpdate with every section that could be read
    """
    update = FeedUpdate()
    if not isinstance(raw, dict):
        update.errors["payload"] = f"expected an object, got {type(raw).__name__}"
        logger.warning(f"Ignoring feed payload of type {type(raw).__name__}")
        return update

    for name, model in _SECTION_MODELS.items():
        section = raw.get(name)
        if section is None:
            continue
        context: dict[str, list[str]] = {"dropped": []}
        try:
            node = model.model_validate(section, context=context)
        except ValidationError as e:
            update.errors[name] = str(e.errors()[0].get("msg", e)) if e.errors() else str(e)
            logger.warning(f"Skipping malformed '{name}' section: {update.errors[name]}")
            continue
        setattr(update, name, node)
        update.dropped_fields.extend(f"{name}:{path}" for path in context["dropped"])

    if update.dropped_fields:
        logger.warning(f"Dropped invalid feed fields: {', '.join(update.dropped_fields)}")
    return update
