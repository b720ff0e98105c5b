"""Room models for generated dungeon runs.

Every room carries exactly one payload variant. The variant is fixed when the
room is generated; afterwards only completion, rewards and the per-variant
progress fields (puzzle attempts, event choice, challenge engagement, enemy
hit points) change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List, Literal, Optional, Sequence, Union

from delve.content import LootEntry, RelicDrop

__all__ = [
    "BossPayload",
    "BuffSpec",
    "CombatPayload",
    "EliteChallenge",
    "Enemy",
    "Event",
    "EventPayload",
    "ItemDrop",
    "PreBossPayload",
    "Puzzle",
    "PuzzlePayload",
    "PuzzleState",
    "Room",
    "RoomPayload",
    "RoomRewards",
    "RoomType",
    "StatusEffect",
    "TreasureLoot",
    "TreasurePayload",
]

RoomType = Literal["combat", "puzzle", "treasure", "event", "pre_boss", "boss"]
StatusEffectType = Literal["stun", "burn"]
PuzzleType = Literal["sequence", "riddle", "math", "pattern"]
EventType = Literal["heal", "buff", "combat_bonus", "loot_bonus", "choice"]
ChoiceOption = Literal["coins", "item", "buff"]


@dataclass
class StatusEffect:
    type: StatusEffectType
    duration: int
    damage: int = 0


@dataclass
class Enemy:
    """A hostile combatant in a combat, pre-boss or boss room."""

    name: str
    hp: int
    max_hp: int
    damage: int
    xp: int
    coins: int
    emoji: str = "👹"
    loot: Sequence[LootEntry] = field(default_factory=tuple)
    status_effects: List[StatusEffect] = field(default_factory=list)

    @property
    def alive(self) -> bool:
        return self.hp > 0

    def has_effect(self, effect_type: StatusEffectType) -> bool:
        return any(
            effect.type == effect_type and effect.duration > 0
            for effect in self.status_effects
        )


@dataclass
class Boss(Enemy):
    emoji: str = "🐉"
    relic: Optional[RelicDrop] = None


@dataclass(frozen=True)
class Puzzle:
    type: PuzzleType
    question: str
    solution: tuple[str, ...]
    hint: str
    difficulty: int


@dataclass
class PuzzleState:
    attempts: int = 0
    max_attempts: int = 3
    sequence_progress: List[int] = field(default_factory=list)
    solved: bool = False


@dataclass(frozen=True)
class ItemDrop:
    item_id: str
    quantity: int = 1

    def label(self) -> str:
        return f"{self.item_id} x{self.quantity}"


@dataclass(frozen=True)
class TreasureLoot:
    coins: int
    items: tuple[ItemDrop, ...] = ()


@dataclass(frozen=True)
class BuffSpec:
    power: int = 0
    defense: int = 0
    crit_chance: float = 0.0
    loot_bonus: float = 0.0
    duration: str = "dungeon"


@dataclass(frozen=True)
class Event:
    type: EventType
    name: str
    description: str
    difficulty: int
    buff: Optional[BuffSpec] = None
    heal_percent: float = 0.0
    restore_mana: bool = False
    choices: tuple[ChoiceOption, ...] = ()
    xp_bonus: int = 0


@dataclass
class EliteChallenge:
    name: str
    description: str
    enemy: Enemy
    type: str = "elite_combat"
    engaged: bool = False


@dataclass
class RoomRewards:
    xp: int = 0
    coins: int = 0
    items: List[ItemDrop] = field(default_factory=list)


@dataclass
class CombatPayload:
    kind: ClassVar[RoomType] = "combat"

    enemies: List[Enemy]

    def targets(self) -> List[Enemy]:
        return self.enemies


@dataclass
class PuzzlePayload:
    kind: ClassVar[RoomType] = "puzzle"

    puzzle: Puzzle
    state: PuzzleState = field(default_factory=PuzzleState)


@dataclass
class TreasurePayload:
    kind: ClassVar[RoomType] = "treasure"

    loot: TreasureLoot


@dataclass
class EventPayload:
    kind: ClassVar[RoomType] = "event"

    event: Event
    choice: Optional[ChoiceOption] = None
    presented: bool = False


@dataclass
class PreBossPayload:
    kind: ClassVar[RoomType] = "pre_boss"

    challenge: EliteChallenge

    def targets(self) -> List[Enemy]:
        if not self.challenge.engaged:
            return []
        return [self.challenge.enemy]


@dataclass
class BossPayload:
    kind: ClassVar[RoomType] = "boss"

    boss: Boss

    def targets(self) -> List[Enemy]:
        return [self.boss]


RoomPayload = Union[
    CombatPayload,
    PuzzlePayload,
    TreasurePayload,
    EventPayload,
    PreBossPayload,
    BossPayload,
]


@dataclass
class Room:
    id: str
    number: int
    difficulty: int
    name: str
    emoji: str
    description: str
    payload: RoomPayload
    rewards: RoomRewards = field(default_factory=RoomRewards)
    _completed: bool = field(default=False, init=False, repr=False)

    @property
    def type(self) -> RoomType:
        return self.payload.kind

    @property
    def completed(self) -> bool:
        return self._completed

    def mark_completed(self, rewards: Optional[RoomRewards] = None) -> None:
        """Flag the room as done. Completion never reverts."""

        if rewards is not None and not self._completed:
            self.rewards = rewards
        self._completed = True

    def combat_targets(self) -> List[Enemy]:
        """Enemies that combat actions currently resolve against."""

        if isinstance(self.payload, (CombatPayload, PreBossPayload, BossPayload)):
            return self.payload.targets()
        return []
