"""Builders shared by the dungeon tests."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from delve.content import DungeonDefinition
from delve.dungeon.rooms import Enemy, Room, RoomPayload
from delve.dungeon.run import PlayerState, Run

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedRandom(random.Random):
    """Random source with predictable answers for exact-value assertions.

    ``random()`` pops from ``randoms`` and then returns ``default``;
    ``uniform`` always returns ``uniform``; ``choice`` picks ``choice_index``;
    ``randint`` returns its lower bound unless ``randint_value`` is set.
    """

    def __init__(
        self,
        *,
        randoms: Iterable[float] = (),
        default: float = 0.99,
        uniform: float = 1.0,
        choice_index: int = 0,
        randint_value: Optional[int] = None,
    ) -> None:
        super().__init__(0)
        self._randoms = list(randoms)
        self._default = default
        self._uniform = uniform
        self._choice_index = choice_index
        self._randint_value = randint_value

    def random(self) -> float:  # type: ignore[override]
        if self._randoms:
            return self._randoms.pop(0)
        return self._default

    def uniform(self, a: float, b: float) -> float:  # type: ignore[override]
        return self._uniform

    def choice(self, seq):  # type: ignore[override]
        return seq[min(self._choice_index, len(seq) - 1)]

    def randint(self, a: int, b: int) -> int:  # type: ignore[override]
        if self._randint_value is None:
            return a
        return max(a, min(b, self._randint_value))


def make_dungeon(**overrides: object) -> DungeonDefinition:
    data: dict[str, object] = {
        "id": "test_crypt",
        "name": "Test Crypt",
        "theme": "varyn",
        "biome": None,
        "minLevel": 1,
        "floors": [
            {
                "name": "Crypt Rat",
                "baseHp": 80,
                "hpPerLevel": 10,
                "baseDamage": 10,
                "damagePerLevel": 1.5,
                "loot": [{"item": "rat_tail", "chance": 0.5, "min": 1, "max": 2}],
            },
            {
                "name": "Crypt Lord",
                "boss": True,
                "baseHp": 200,
                "hpPerLevel": 20,
                "loot": [{"item": "lord_ring", "chance": 0.5}],
                "relic": {"item": "crypt_crown", "chance": 0.5},
            },
        ],
    }
    data.update(overrides)
    return DungeonDefinition.from_mapping(data)


def make_player(player_id: int, *, level: int = 1, hp: int = 100, mana: int = 50) -> PlayerState:
    return PlayerState(
        player_id=player_id,
        username=f"Player {player_id}",
        level=level,
        hp=hp,
        max_hp=100,
        mana=mana,
        max_mana=50,
    )


def make_enemy(
    name: str = "Crypt Rat",
    *,
    hp: int = 90,
    damage: int = 12,
    xp: int = 58,
    coins: int = 44,
) -> Enemy:
    return Enemy(name=name, hp=hp, max_hp=hp, damage=damage, xp=xp, coins=coins)


def make_room(payload: RoomPayload, *, number: int = 1, difficulty: int = 1) -> Room:
    return Room(
        id=f"room_{number}",
        number=number,
        difficulty=difficulty,
        name=f"Room {number}",
        emoji="⚔️",
        description="A test chamber.",
        payload=payload,
    )


def make_run(
    rooms: Sequence[Room],
    players: Sequence[PlayerState],
    *,
    dungeon: Optional[DungeonDefinition] = None,
) -> Run:
    return Run(
        id="run_test_1",
        dungeon=dungeon or make_dungeon(),
        party={player.player_id: player for player in players},
        rooms=list(rooms),
        started_at=T0,
        guild_id=1,
        channel_id=10,
    )
