"""Lifecycle of an active dungeon run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from delve.content import DungeonDefinition
from delve.errors import NotPartyMember, RoomNotCompleted, RunNotActive

from .rooms import BossPayload, BuffSpec, Room

__all__ = ["PlayerState", "Run", "RunStatus", "TeamBuff"]

RunStatus = Literal["active", "completed", "failed"]


@dataclass
class PlayerState:
    """Per-run copy of a player's combat attributes."""

    player_id: int
    username: str
    level: int
    hp: int
    max_hp: int
    mana: int
    max_mana: int
    damage_dealt: int = 0
    actions_taken: int = 0
    defending: bool = False
    defend_until: Optional[datetime] = None
    last_action_at: Optional[datetime] = None

    @property
    def incapacitated(self) -> bool:
        return self.hp <= 0

    def is_defending(self, now: datetime) -> bool:
        return self.defending and self.defend_until is not None and self.defend_until > now

    def cooldown_remaining(self, now: datetime, cooldown: timedelta) -> float:
        if self.last_action_at is None:
            return 0.0
        elapsed = now - self.last_action_at
        if elapsed >= cooldown:
            return 0.0
        return (cooldown - elapsed).total_seconds()


@dataclass(frozen=True)
class TeamBuff:
    name: str
    description: str
    power: int = 0
    defense: int = 0
    crit_chance: float = 0.0
    loot_bonus: float = 0.0
    duration: str = "dungeon"

    @classmethod
    def from_spec(cls, name: str, description: str, spec: BuffSpec) -> "TeamBuff":
        return cls(
            name=name,
            description=description,
            power=spec.power,
            defense=spec.defense,
            crit_chance=spec.crit_chance,
            loot_bonus=spec.loot_bonus,
            duration=spec.duration,
        )


@dataclass
class Run:
    """One traversal of a generated dungeon by a fixed party.

    ``current_room_index`` only moves forward. Once it reaches the number of
    rooms the run is ``completed``.
    """

    id: str
    dungeon: DungeonDefinition
    party: Dict[int, PlayerState]
    rooms: List[Room]
    started_at: datetime
    guild_id: Optional[int] = None
    channel_id: Optional[int] = None
    average_level: int = 1
    current_room_index: int = 0
    completed_rooms: List[Room] = field(default_factory=list)
    team_buffs: List[TeamBuff] = field(default_factory=list)
    message_id: Optional[int] = None
    status: RunStatus = "active"

    @property
    def current_room(self) -> Optional[Room]:
        if 0 <= self.current_room_index < len(self.rooms):
            return self.rooms[self.current_room_index]
        return None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def on_final_room(self) -> bool:
        return self.current_room_index == len(self.rooms) - 1

    @property
    def boss_room(self) -> Optional[Room]:
        for room in self.rooms:
            if isinstance(room.payload, BossPayload):
                return room
        return None

    def member(self, player_id: int) -> PlayerState:
        try:
            return self.party[player_id]
        except KeyError as exc:
            raise NotPartyMember() from exc

    def living_players(self) -> List[PlayerState]:
        return [player for player in self.party.values() if not player.incapacitated]

    def all_incapacitated(self) -> bool:
        return bool(self.party) and not self.living_players()

    def remove_player(self, player_id: int) -> PlayerState:
        state = self.member(player_id)
        del self.party[player_id]
        return state

    def add_buff(self, buff: TeamBuff) -> None:
        self.team_buffs.append(buff)

    @property
    def power_bonus(self) -> int:
        return sum(buff.power for buff in self.team_buffs)

    @property
    def defense_bonus(self) -> int:
        return sum(buff.defense for buff in self.team_buffs)

    @property
    def crit_bonus(self) -> float:
        return sum(buff.crit_chance for buff in self.team_buffs)

    @property
    def loot_bonus(self) -> float:
        return sum(buff.loot_bonus for buff in self.team_buffs)

    def ensure_active(self) -> None:
        if not self.is_active:
            raise RunNotActive()

    def advance_room(self) -> Optional[Room]:
        """Move past the completed current room.

        Returns the new current room, or ``None`` when the run just completed.
        """

        self.ensure_active()
        room = self.current_room
        if room is None or not room.completed:
            raise RoomNotCompleted()
        self.completed_rooms.append(room)
        self.current_room_index += 1
        if self.current_room_index >= len(self.rooms):
            self.status = "completed"
            return None
        return self.current_room

    def mark_failed(self) -> None:
        self.status = "failed"
