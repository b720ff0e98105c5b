"""Difficulty and stat scaling shared by generation and resolution."""

from __future__ import annotations

import math

__all__ = [
    "COMBAT_SCALING_STEP",
    "MAX_DIFFICULTY",
    "MIN_DIFFICULTY",
    "TREASURE_SCALING_STEP",
    "difficulty_for_room",
    "round_half_up",
    "scaled_stat",
    "scaling_multiplier",
]

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
COMBAT_SCALING_STEP = 0.2
TREASURE_SCALING_STEP = 0.3


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""

    return int(math.floor(value + 0.5))


def difficulty_for_room(average_level: int, room_number: int) -> int:
    """Return the 1-5 difficulty of the 1-based ``room_number``."""

    raw = average_level // 2 + room_number // 2
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, raw))


def scaling_multiplier(difficulty: int, step: float) -> float:
    return 1 + (difficulty - 1) * step


def scaled_stat(
    base: float | None,
    per_level: float | None,
    level: int,
    *,
    default_base: float,
    default_per_level: float,
    multiplier: float = 1.0,
) -> int:
    """Compute ``round((base + per_level * level) * multiplier)``.

    Missing template values fall back to the supplied defaults.
    """

    resolved_base = default_base if base is None else base
    resolved_per_level = default_per_level if per_level is None else per_level
    return round_half_up((resolved_base + resolved_per_level * level) * multiplier)
