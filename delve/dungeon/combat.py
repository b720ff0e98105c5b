"""Combat utilities for damage rolls, status effects and counterattacks."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .rooms import Enemy, StatusEffect
from .run import PlayerState
from .scaling import round_half_up

__all__ = [
    "ABILITY_CRIT_BONUS",
    "ABILITY_MANA_COST",
    "AttackRoll",
    "Counterattack",
    "STATUS_EFFECT_CHANCE",
    "ability_base_damage",
    "attack_base_damage",
    "choose_counterattacker",
    "first_living",
    "resolve_counterattack",
    "roll_damage",
    "roll_status_effect",
    "tick_status_effects",
]

ABILITY_MANA_COST = 10
ABILITY_CRIT_BONUS = 0.15
CRITICAL_MULTIPLIER = 1.5
STATUS_EFFECT_CHANCE = 0.2
STATUS_EFFECT_DURATION = 2
ATTACK_VARIANCE = (0.8, 1.2)
ABILITY_VARIANCE = (0.9, 1.1)


def attack_base_damage(level: int, power_bonus: int) -> int:
    return 10 + level * 2 + power_bonus


def ability_base_damage(level: int, power_bonus: int) -> int:
    return 15 + level * 3 + power_bonus


@dataclass(frozen=True)
class AttackRoll:
    base: int
    damage: int
    critical: bool


def roll_damage(
    base: int,
    variance: tuple[float, float],
    crit_chance: float,
    *,
    rng: random.Random | None = None,
) -> AttackRoll:
    """Roll ``round(base * uniform(variance))``, applying crits as x1.5."""

    generator = rng or random
    damage = max(0, round_half_up(base * generator.uniform(*variance)))
    critical = generator.random() < crit_chance
    if critical:
        damage = math.floor(damage * CRITICAL_MULTIPLIER)
    return AttackRoll(base=base, damage=damage, critical=critical)


def roll_status_effect(damage: int, rng: random.Random | None = None) -> Optional[StatusEffect]:
    generator = rng or random
    if generator.random() >= STATUS_EFFECT_CHANCE:
        return None
    effect_type = "stun" if generator.random() < 0.5 else "burn"
    return StatusEffect(
        type=effect_type,
        duration=STATUS_EFFECT_DURATION,
        damage=math.floor(damage * 0.1),
    )


def tick_status_effects(enemy: Enemy) -> int:
    """Advance ``enemy``'s effects by one action and return burn damage dealt."""

    burned = 0
    remaining: List[StatusEffect] = []
    for effect in enemy.status_effects:
        effect.duration -= 1
        if effect.type == "burn" and effect.duration > 0:
            dealt = min(enemy.hp, effect.damage)
            enemy.hp = max(0, enemy.hp - effect.damage)
            burned += dealt
        if effect.duration > 0:
            remaining.append(effect)
    enemy.status_effects = remaining
    return burned


def first_living(enemies: Iterable[Enemy]) -> Optional[Enemy]:
    for enemy in enemies:
        if enemy.alive:
            return enemy
    return None


def choose_counterattacker(target: Enemy, enemies: Sequence[Enemy]) -> Optional[Enemy]:
    """The struck enemy retaliates if it survived, else the next living one."""

    if target.alive:
        return target
    return first_living(enemies)


@dataclass(frozen=True)
class Counterattack:
    attacker: str
    target_id: int
    damage: int
    defended: bool


def resolve_counterattack(
    attacker: Enemy,
    players: Sequence[PlayerState],
    *,
    now: datetime,
    defense_bonus: int = 0,
    rng: random.Random | None = None,
) -> Optional[Counterattack]:
    """Strike a random living player.

    A target still inside its defend window takes half damage. The target's
    defend flag is consumed either way.
    """

    generator = rng or random
    living = [player for player in players if not player.incapacitated]
    if not living:
        return None
    target = generator.choice(living)
    damage = max(0, attacker.damage - defense_bonus)
    defended = target.is_defending(now)
    if defended:
        damage //= 2
    target.hp = max(0, target.hp - damage)
    target.defending = False
    return Counterattack(
        attacker=attacker.name,
        target_id=target.player_id,
        damage=damage,
        defended=defended,
    )
