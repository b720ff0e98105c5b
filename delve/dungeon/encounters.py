"""Fixed puzzle and event catalogs plus themed room flavour text."""

from __future__ import annotations

import random
from typing import Dict, List, Mapping, Sequence

from .rooms import BuffSpec, Event, Puzzle, RoomType

__all__ = [
    "PUZZLES",
    "ROOM_EMOJI",
    "THEME_FLAVOUR",
    "event_catalog",
    "pick_flavour",
    "select_by_difficulty",
]

PUZZLES: tuple[Puzzle, ...] = (
    Puzzle(
        type="sequence",
        question="Press the buttons in the correct order: Red, Blue, Green, Yellow",
        solution=("red", "blue", "green", "yellow"),
        hint="Follow the colors of the rainbow.",
        difficulty=1,
    ),
    Puzzle(
        type="sequence",
        question="Press the buttons in the correct order: Fire, Water, Earth, Air, Void",
        solution=("fire", "water", "earth", "air", "void"),
        hint="Follow the elemental cycle.",
        difficulty=2,
    ),
    Puzzle(
        type="riddle",
        question=(
            "I speak without a mouth and hear without ears. I have no body, "
            "but I come alive with wind. What am I?"
        ),
        solution=("echo",),
        hint="Think of something that repeats sounds.",
        difficulty=1,
    ),
    Puzzle(
        type="riddle",
        question="The more you take, the more you leave behind. What am I?",
        solution=("footsteps",),
        hint="Think about walking.",
        difficulty=2,
    ),
    Puzzle(
        type="riddle",
        question=(
            "I have cities, but no houses. I have mountains, but no trees. "
            "I have water, but no fish. What am I?"
        ),
        solution=("map",),
        hint="Think about navigation.",
        difficulty=3,
    ),
    Puzzle(
        type="math",
        question="Solve: (5 × 3) + (10 ÷ 2) = ?",
        solution=("20",),
        hint="Remember order of operations: multiplication and division first.",
        difficulty=1,
    ),
    Puzzle(
        type="math",
        question="Solve: (12 × 4) - (8 ÷ 2) + 5 = ?",
        solution=("49",),
        hint="Order of operations: parentheses, multiplication/division, then addition/subtraction.",
        difficulty=2,
    ),
    Puzzle(
        type="math",
        question="Solve: (15 × 3) + (20 ÷ 4) - (6 × 2) = ?",
        solution=("38",),
        hint="Work from left to right after handling parentheses.",
        difficulty=3,
    ),
    Puzzle(
        type="pattern",
        question="What comes next in the sequence: 2, 4, 8, 16, ?",
        solution=("32",),
        hint="Each number doubles the previous one.",
        difficulty=2,
    ),
    Puzzle(
        type="pattern",
        question="What comes next in the sequence: 1, 4, 9, 16, ?",
        solution=("25",),
        hint="Think about squares.",
        difficulty=3,
    ),
)


def event_catalog(difficulty: int) -> List[Event]:
    """Return every event with its payload scaled to ``difficulty``."""

    return [
        Event(
            type="buff",
            name="Ancient Blessing",
            description="A mystical aura grants your team a temporary power boost!",
            difficulty=1,
            buff=BuffSpec(power=10 + difficulty * 2),
        ),
        Event(
            type="buff",
            name="Elemental Empowerment",
            description="Elemental energy surges through your party, enhancing all abilities!",
            difficulty=2,
            buff=BuffSpec(power=15 + difficulty * 3, defense=5 + difficulty),
        ),
        Event(
            type="heal",
            name="Healing Spring",
            description="A restorative spring restores your party's health.",
            difficulty=1,
            heal_percent=0.3 + difficulty * 0.05,
        ),
        Event(
            type="heal",
            name="Restorative Fountain",
            description="A powerful fountain fully restores your party's health and mana!",
            difficulty=3,
            heal_percent=1.0,
            restore_mana=True,
        ),
        Event(
            type="choice",
            name="Mysterious Altar",
            description="An altar offers a choice: take coins or a random item.",
            difficulty=1,
            choices=("coins", "item"),
        ),
        Event(
            type="choice",
            name="Ancient Shrine",
            description="A shrine offers multiple rewards. Choose wisely.",
            difficulty=2,
            choices=("coins", "item", "buff"),
        ),
        Event(
            type="combat_bonus",
            name="Combat Training Ground",
            description="A training area that grants combat experience and temporary bonuses.",
            difficulty=2,
            buff=BuffSpec(crit_chance=0.1),
            xp_bonus=50 + difficulty * 20,
        ),
        Event(
            type="loot_bonus",
            name="Treasure Finder's Blessing",
            description="A blessing that increases loot discovery for the rest of the dungeon.",
            difficulty=3,
            buff=BuffSpec(loot_bonus=0.2),
        ),
    ]


def select_by_difficulty(entries: Sequence, difficulty: int, rng: random.Random | None = None):
    """Pick uniformly among ``entries`` at or below ``difficulty``.

    Falls back to the whole catalog when nothing qualifies.
    """

    generator = rng or random
    eligible = [entry for entry in entries if entry.difficulty <= difficulty]
    return generator.choice(eligible or list(entries))


ROOM_EMOJI: Mapping[RoomType, str] = {
    "combat": "⚔️",
    "puzzle": "🧩",
    "treasure": "💎",
    "event": "✨",
    "pre_boss": "🔥",
    "boss": "🐉",
}

THEME_FLAVOUR: Dict[str, Dict[str, Dict[str, tuple[str, ...]]]] = {
    "varyn": {
        "names": {
            "combat": ("Shadow Chamber", "Void Hall", "Dark Passage"),
            "puzzle": ("Void Lock", "Shadow Mechanism"),
            "treasure": ("Void Cache", "Shadow Vault"),
            "event": ("Void Anomaly", "Shadow Event"),
        },
        "descriptions": {
            "combat": (
                "Void creatures lurk in the shadows.",
                "Dark entities guard this passage.",
                "Shadow beasts block your path.",
            ),
            "puzzle": (
                "Ancient void mechanisms block your path.",
                "Shadow locks require solving.",
                "Dark puzzles guard this chamber.",
            ),
            "treasure": (
                "A void cache awaits discovery.",
                "Shadow treasures lie hidden here.",
                "Dark riches await the brave.",
            ),
            "event": (
                "A void anomaly pulses here.",
                "Shadow energy swirls in this chamber.",
                "Dark forces gather.",
            ),
        },
    },
    "kweebec": {
        "names": {
            "combat": ("Root Chamber", "Grove Hall", "Nature Passage"),
            "puzzle": ("Ancient Lock", "Grove Mechanism"),
            "treasure": ("Nature Cache", "Grove Vault"),
            "event": ("Grove Blessing", "Nature Event"),
        },
        "descriptions": {
            "combat": (
                "Nature guardians protect this grove.",
                "Root-bound creatures defend this chamber.",
                "Wildlife blocks your path.",
            ),
            "puzzle": (
                "Nature puzzles block your path.",
                "Ancient grove mechanisms require solving.",
                "Root-bound puzzles guard this chamber.",
            ),
            "treasure": (
                "Nature treasures await discovery.",
                "Grove riches lie hidden here.",
                "Wild treasures await the brave.",
            ),
            "event": (
                "Nature energy flows here.",
                "Grove blessings await.",
                "Wild magic gathers.",
            ),
        },
    },
    "human": {
        "names": {
            "combat": ("Stone Chamber", "Fortress Hall", "Military Passage"),
            "puzzle": ("Ancient Lock", "Fortress Mechanism"),
            "treasure": ("Military Cache", "Fortress Vault"),
            "event": ("Military Aid", "Fortress Event"),
        },
        "descriptions": {
            "combat": (
                "Military constructs guard this area.",
                "Fortress defenders block your path.",
                "Automated defenses activate.",
            ),
            "puzzle": (
                "Ancient fortress mechanisms block your path.",
                "Military locks require solving.",
                "Automated puzzles guard this chamber.",
            ),
            "treasure": (
                "Military supplies await discovery.",
                "Fortress riches lie hidden here.",
                "Ancient treasures await the brave.",
            ),
            "event": (
                "Ancient mechanisms activate.",
                "Fortress systems come online.",
                "Military aid arrives.",
            ),
        },
    },
}

FALLBACK_THEME = "varyn"


def pick_flavour(
    theme: str,
    room_type: RoomType,
    rng: random.Random | None = None,
) -> tuple[str, str]:
    """Return a ``(name, description)`` pair for a regular room."""

    generator = rng or random
    flavour = THEME_FLAVOUR.get(theme, THEME_FLAVOUR[FALLBACK_THEME])
    names = flavour["names"].get(room_type) or flavour["names"]["combat"]
    descriptions = flavour["descriptions"].get(room_type) or flavour["descriptions"]["combat"]
    return generator.choice(names), generator.choice(descriptions)
