"""Procedural run generation."""

from __future__ import annotations

import itertools
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence

from delve.content import DungeonDefinition, FloorTemplate
from delve.errors import EmptyParty

from .encounters import PUZZLES, ROOM_EMOJI, event_catalog, pick_flavour, select_by_difficulty
from .rooms import (
    Boss,
    BossPayload,
    CombatPayload,
    EliteChallenge,
    Enemy,
    EventPayload,
    ItemDrop,
    PreBossPayload,
    PuzzlePayload,
    Room,
    RoomType,
    TreasureLoot,
    TreasurePayload,
)
from .run import PlayerState, Run
from .scaling import (
    COMBAT_SCALING_STEP,
    TREASURE_SCALING_STEP,
    difficulty_for_room,
    round_half_up,
    scaled_stat,
    scaling_multiplier,
)

__all__ = [
    "FIRST_HALF_WEIGHTS",
    "PartyMember",
    "RunGenerator",
    "SECOND_HALF_WEIGHTS",
    "average_level",
    "pick_room_type",
]

log = logging.getLogger(__name__)

MIN_REGULAR_ROOMS = 2
MAX_EXTRA_ROOMS = 2
MAX_ENEMIES = 3
MAX_TREASURE_ITEMS = 3
TREASURE_LOOT_CHANCE = 0.3
DEFAULT_PLAYER_HP = 100
DEFAULT_PLAYER_MANA = 50

# Stands in for the boss floor of a dungeon that lists no floors.
FALLBACK_BOSS = FloorTemplate(name="Dungeon Guardian", boss=True)

# Cumulative thresholds, checked in order against a uniform roll.
FIRST_HALF_WEIGHTS: Sequence[tuple[RoomType, float]] = (
    ("combat", 0.40),
    ("treasure", 0.25),
    ("puzzle", 0.20),
    ("event", 0.15),
)
SECOND_HALF_WEIGHTS: Sequence[tuple[RoomType, float]] = (
    ("combat", 0.35),
    ("puzzle", 0.20),
    ("event", 0.20),
    ("treasure", 0.25),
)


@dataclass(frozen=True)
class PartyMember:
    """Snapshot of a player taken when the run launches."""

    player_id: int
    username: str
    level: int = 1
    hp: int = DEFAULT_PLAYER_HP
    max_hp: int = DEFAULT_PLAYER_HP
    mana: int = DEFAULT_PLAYER_MANA
    max_mana: int = DEFAULT_PLAYER_MANA

    @classmethod
    def from_record(
        cls, player_id: int, username: str, record: Mapping[str, object]
    ) -> "PartyMember":
        def _int(key: str, default: int) -> int:
            try:
                value = int(record.get(key) or 0)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                return default
            return value if value > 0 else default

        max_hp = _int("maxHp", DEFAULT_PLAYER_HP)
        max_mana = _int("maxMana", DEFAULT_PLAYER_MANA)
        return cls(
            player_id=player_id,
            username=str(record.get("username") or username),
            level=_int("level", 1),
            hp=_int("hp", max_hp),
            max_hp=max_hp,
            mana=_int("mana", max_mana),
            max_mana=max_mana,
        )

    def to_state(self) -> PlayerState:
        return PlayerState(
            player_id=self.player_id,
            username=self.username,
            level=self.level,
            hp=self.hp,
            max_hp=self.max_hp,
            mana=self.mana,
            max_mana=self.max_mana,
        )


def average_level(members: Sequence[PartyMember]) -> int:
    if not members:
        raise EmptyParty()
    return round_half_up(sum(member.level for member in members) / len(members))


def pick_room_type(index: int, total: int, roll: float) -> RoomType:
    """Map a uniform ``roll`` to a room type for regular room ``index``."""

    weights = FIRST_HALF_WEIGHTS if index < total / 2 else SECOND_HALF_WEIGHTS
    threshold = 0.0
    for room_type, weight in weights:
        threshold += weight
        if roll < threshold:
            return room_type
    return weights[-1][0]


class RunGenerator:
    """Build runs for a party from a dungeon definition."""

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._serial = itertools.count(1)

    def next_run_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        return f"run_{millis}_{next(self._serial)}"

    def generate(
        self,
        dungeon: DungeonDefinition,
        members: Sequence[PartyMember],
        *,
        guild_id: Optional[int] = None,
        channel_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Run:
        if not members:
            raise EmptyParty()
        current_time = now or datetime.now(timezone.utc)
        level = average_level(members)
        rng = self._rng

        regular_count = MIN_REGULAR_ROOMS + rng.randint(0, MAX_EXTRA_ROOMS)
        rooms: List[Room] = []
        for index in range(regular_count):
            room_type = pick_room_type(index, regular_count, rng.random())
            rooms.append(self._regular_room(room_type, dungeon, level, index + 1))
        rooms.append(self._pre_boss_room(level, len(rooms) + 1))
        boss_floor = dungeon.boss_floor or FALLBACK_BOSS
        rooms.append(self._boss_room(boss_floor, level, len(rooms) + 1))

        run = Run(
            id=self.next_run_id(current_time),
            dungeon=dungeon,
            party={member.player_id: member.to_state() for member in members},
            rooms=rooms,
            started_at=current_time,
            guild_id=guild_id,
            channel_id=channel_id,
            average_level=level,
        )
        log.info(
            "Generated run %s for %s: %s rooms, average level %s",
            run.id,
            dungeon.id,
            len(rooms),
            level,
        )
        return run

    # -- regular rooms ------------------------------------------------------
    def _regular_room(
        self, room_type: RoomType, dungeon: DungeonDefinition, level: int, number: int
    ) -> Room:
        rng = self._rng
        difficulty = difficulty_for_room(level, number)
        name, description = pick_flavour(dungeon.theme, room_type, rng)
        if room_type == "combat":
            payload = CombatPayload(enemies=self.generate_enemies(dungeon, level, difficulty))
        elif room_type == "puzzle":
            payload = PuzzlePayload(puzzle=select_by_difficulty(PUZZLES, difficulty, rng))
        elif room_type == "treasure":
            payload = TreasurePayload(loot=self.generate_treasure(dungeon, level, difficulty))
        else:
            payload = EventPayload(
                event=select_by_difficulty(event_catalog(difficulty), difficulty, rng)
            )
        return Room(
            id=f"room_{number}",
            number=number,
            difficulty=difficulty,
            name=name,
            emoji=ROOM_EMOJI[room_type],
            description=description,
            payload=payload,
        )

    def generate_enemies(
        self, dungeon: DungeonDefinition, level: int, difficulty: int
    ) -> List[Enemy]:
        rng = self._rng
        multiplier = scaling_multiplier(difficulty, COMBAT_SCALING_STEP)
        floors = dungeon.regular_floors
        if not floors:
            return [
                Enemy(
                    name="Dungeon Guardian",
                    hp=round_half_up((50 + level * 5) * multiplier),
                    max_hp=round_half_up((50 + level * 5) * multiplier),
                    damage=round_half_up((5 + level) * multiplier),
                    xp=round_half_up((30 + level * 5) * multiplier),
                    coins=round_half_up((20 + level * 3) * multiplier),
                )
            ]

        template = rng.choice(floors)
        count = min(MAX_ENEMIES, 1 + rng.randint(0, 1) + difficulty // 2)
        return [self._enemy_from_floor(template, level, multiplier) for _ in range(count)]

    @staticmethod
    def _enemy_from_floor(template: FloorTemplate, level: int, multiplier: float) -> Enemy:
        hp = scaled_stat(
            template.base_hp, template.hp_per_level, level,
            default_base=80, default_per_level=10, multiplier=multiplier,
        )
        return Enemy(
            name=template.name,
            emoji=template.emoji or "👹",
            hp=hp,
            max_hp=hp,
            damage=scaled_stat(
                template.base_damage, template.damage_per_level, level,
                default_base=10, default_per_level=1.5, multiplier=multiplier,
            ),
            xp=scaled_stat(
                template.base_xp, template.xp_per_level, level,
                default_base=50, default_per_level=8, multiplier=multiplier,
            ),
            coins=scaled_stat(
                template.base_coins, template.coins_per_level, level,
                default_base=40, default_per_level=4, multiplier=multiplier,
            ),
            loot=tuple(template.loot),
        )

    def generate_treasure(
        self, dungeon: DungeonDefinition, level: int, difficulty: int
    ) -> TreasureLoot:
        rng = self._rng
        multiplier = scaling_multiplier(difficulty, TREASURE_SCALING_STEP)
        coins = round_half_up((50 + level * 10 + rng.randint(0, 49)) * multiplier)
        items: List[ItemDrop] = []
        if rng.random() < TREASURE_LOOT_CHANCE * difficulty:
            for entry in dungeon.loot_tables():
                if rng.random() < entry.chance_or(TREASURE_LOOT_CHANCE) * difficulty * 0.5:
                    items.append(ItemDrop(entry.item, rng.randint(entry.min, entry.max)))
        return TreasureLoot(coins=coins, items=tuple(items[: min(MAX_TREASURE_ITEMS, difficulty)]))

    # -- fixed rooms --------------------------------------------------------
    def _pre_boss_room(self, level: int, number: int) -> Room:
        hp = 150 + level * 15
        guardian = Enemy(
            name="Elite Guardian",
            emoji="🛡️",
            hp=hp,
            max_hp=hp,
            damage=15 + level * 2,
            xp=100 + level * 12,
            coins=80 + level * 8,
        )
        return Room(
            id=f"room_{number}",
            number=number,
            difficulty=difficulty_for_room(level, number),
            name="Pre-Boss Chamber",
            emoji=ROOM_EMOJI["pre_boss"],
            description="The final guardian awaits beyond. Complete this challenge to proceed.",
            payload=PreBossPayload(
                challenge=EliteChallenge(
                    name="Elite Guardian",
                    description="A powerful guardian blocks the path to the boss chamber.",
                    enemy=guardian,
                )
            ),
        )

    @staticmethod
    def _boss_room(floor: FloorTemplate, level: int, number: int) -> Room:
        hp = scaled_stat(floor.base_hp, floor.hp_per_level, level, default_base=200, default_per_level=20)
        boss = Boss(
            name=floor.name,
            emoji=floor.emoji or "🐉",
            hp=hp,
            max_hp=hp,
            damage=scaled_stat(
                floor.base_damage, floor.damage_per_level, level,
                default_base=20, default_per_level=2.8,
            ),
            xp=scaled_stat(floor.base_xp, floor.xp_per_level, level, default_base=200, default_per_level=18),
            coins=scaled_stat(
                floor.base_coins, floor.coins_per_level, level,
                default_base=200, default_per_level=10,
            ),
            loot=tuple(floor.loot),
            relic=floor.relic,
        )
        return Room(
            id="boss_room",
            number=number,
            difficulty=difficulty_for_room(level, number),
            name=floor.name or "Boss Chamber",
            emoji=floor.emoji or ROOM_EMOJI["boss"],
            description=floor.description or "The final guardian awaits.",
            payload=BossPayload(boss=boss),
        )
