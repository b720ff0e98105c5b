from __future__ import annotations

from datetime import timedelta
from pathlib import Path
import random
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from delve.dungeon.actions import ActionResolver
from delve.dungeon.combat import roll_status_effect, tick_status_effects
from delve.dungeon.rooms import (
    CombatPayload,
    EliteChallenge,
    PreBossPayload,
    StatusEffect,
    TreasureLoot,
    TreasurePayload,
)
from delve.dungeon.run import TeamBuff
from delve.errors import (
    ActionCooldown,
    InsufficientMana,
    PlayerIncapacitated,
    RunNotActive,
    WrongRoomType,
)
from tests.factories import T0, ScriptedRandom, make_enemy, make_player, make_room, make_run


def _combat_run(*enemies, players=None):
    room = make_room(CombatPayload(enemies=list(enemies) or [make_enemy()]))
    return make_run([room], players or [make_player(1)])


def test_attack_deals_rolled_damage_and_takes_counterattack() -> None:
    run = _combat_run(make_enemy())
    outcome = ActionResolver(rng=ScriptedRandom()).perform(run, 1, "attack", now=T0)

    enemy = run.current_room.payload.enemies[0]
    assert outcome.damage == 12
    assert outcome.critical is False
    assert enemy.hp == 78
    assert outcome.counterattack is not None
    assert outcome.counterattack.damage == 12
    assert run.party[1].hp == 88
    assert run.party[1].damage_dealt == 12
    assert not outcome.room_completed


def test_attack_damage_stays_within_variance_bounds() -> None:
    for seed in range(50):
        run = _combat_run(make_enemy(hp=10_000))
        outcome = ActionResolver(rng=random.Random(seed)).perform(run, 1, "attack", now=T0)
        assert 10 <= outcome.damage <= 14


def test_defend_halves_the_next_counterattack() -> None:
    run = _combat_run(make_enemy())
    resolver = ActionResolver(rng=ScriptedRandom())

    defended = resolver.perform(run, 1, "defend", now=T0)
    assert defended.damage == 0
    assert run.party[1].defending is True

    outcome = resolver.perform(run, 1, "attack", now=T0 + timedelta(seconds=2))
    assert outcome.counterattack.defended is True
    assert outcome.counterattack.damage == 6
    assert run.party[1].hp == 94
    assert run.party[1].defending is False


def test_defend_window_expires() -> None:
    run = _combat_run(make_enemy())
    resolver = ActionResolver(rng=ScriptedRandom())
    resolver.perform(run, 1, "defend", now=T0)
    outcome = resolver.perform(run, 1, "attack", now=T0 + timedelta(seconds=6))
    assert outcome.counterattack.defended is False
    assert outcome.counterattack.damage == 12


def test_team_defense_reduces_counterattacks() -> None:
    run = _combat_run(make_enemy())
    run.add_buff(TeamBuff(name="Ward", description="", defense=5))
    outcome = ActionResolver(rng=ScriptedRandom()).perform(run, 1, "attack", now=T0)
    assert outcome.counterattack.damage == 7


def test_actions_are_rate_limited() -> None:
    run = _combat_run(make_enemy())
    resolver = ActionResolver(rng=ScriptedRandom())
    resolver.perform(run, 1, "attack", now=T0)
    with pytest.raises(ActionCooldown) as excinfo:
        resolver.perform(run, 1, "attack", now=T0 + timedelta(milliseconds=500))
    assert excinfo.value.remaining == pytest.approx(0.5)
    resolver.perform(run, 1, "attack", now=T0 + timedelta(seconds=1))


def test_ability_spends_mana_and_can_crit() -> None:
    run = _combat_run(make_enemy(hp=200))
    outcome = ActionResolver(rng=ScriptedRandom(randoms=[0.0])).perform(run, 1, "ability", now=T0)
    assert outcome.critical is True
    assert outcome.damage == 27
    assert run.party[1].mana == 40


def test_ability_without_mana_is_rejected() -> None:
    run = _combat_run(make_enemy(), players=[make_player(1, mana=5)])
    with pytest.raises(InsufficientMana) as excinfo:
        ActionResolver(rng=ScriptedRandom()).perform(run, 1, "ability", now=T0)
    assert excinfo.value.required == 10
    assert excinfo.value.available == 5
    assert run.current_room.payload.enemies[0].hp == 90


def test_stunned_enemy_cannot_counterattack() -> None:
    run = _combat_run(make_enemy())
    rng = ScriptedRandom(randoms=[0.5, 0.1, 0.2])
    outcome = ActionResolver(rng=rng).perform(run, 1, "ability", now=T0)

    enemy = run.current_room.payload.enemies[0]
    assert enemy.has_effect("stun")
    assert outcome.counterattack is None
    assert "stunned" in outcome.message
    assert run.party[1].hp == 100


def test_status_effect_roll() -> None:
    assert roll_status_effect(40, ScriptedRandom(randoms=[0.5])) is None
    burn = roll_status_effect(45, ScriptedRandom(randoms=[0.1, 0.7]))
    assert burn is not None
    assert (burn.type, burn.duration, burn.damage) == ("burn", 2, 4)


def test_burn_ticks_before_each_hit() -> None:
    enemy = make_enemy()
    enemy.status_effects.append(StatusEffect(type="burn", duration=2, damage=5))
    assert tick_status_effects(enemy) == 5
    assert enemy.hp == 85
    assert tick_status_effects(enemy) == 0
    assert enemy.status_effects == []


def test_burning_target_takes_extra_damage_in_combat() -> None:
    enemy = make_enemy()
    enemy.status_effects.append(StatusEffect(type="burn", duration=2, damage=5))
    run = _combat_run(enemy)
    outcome = ActionResolver(rng=ScriptedRandom()).perform(run, 1, "attack", now=T0)
    assert enemy.hp == 73
    assert "burn deals 5 more" in outcome.message


def test_last_kill_clears_room_with_summed_rewards() -> None:
    first = make_enemy("Crypt Rat", hp=10, xp=58, coins=44)
    second = make_enemy("Crypt Rat", hp=10, xp=58, coins=44)
    run = _combat_run(first, second)
    resolver = ActionResolver(rng=ScriptedRandom())

    opening = resolver.perform(run, 1, "attack", now=T0)
    assert not opening.room_completed
    assert opening.counterattack is not None

    closing = resolver.perform(run, 1, "attack", now=T0 + timedelta(seconds=1))
    assert closing.room_completed
    assert closing.counterattack is None
    assert closing.announcement == "**Room Cleared!** All enemies defeated!"
    room = run.current_room
    assert room.completed
    assert (room.rewards.xp, room.rewards.coins) == (116, 88)


def test_combat_in_cleared_room_reports_completion() -> None:
    run = _combat_run(make_enemy(hp=0))
    outcome = ActionResolver(rng=ScriptedRandom()).perform(run, 1, "attack", now=T0)
    assert outcome.room_completed
    assert outcome.damage == 0
    assert run.current_room.completed


def test_incapacitated_player_cannot_act() -> None:
    run = _combat_run(make_enemy(), players=[make_player(1, hp=0), make_player(2)])
    with pytest.raises(PlayerIncapacitated):
        ActionResolver(rng=ScriptedRandom()).perform(run, 1, "attack", now=T0)


def test_party_wipe_fails_the_run() -> None:
    run = _combat_run(make_enemy(), players=[make_player(1, hp=5)])
    resolver = ActionResolver(rng=ScriptedRandom())
    outcome = resolver.perform(run, 1, "attack", now=T0)
    assert outcome.run_failed
    assert run.status == "failed"
    with pytest.raises(RunNotActive):
        resolver.perform(run, 1, "attack", now=T0 + timedelta(seconds=2))


def test_combat_actions_require_a_combat_room() -> None:
    room = make_room(TreasurePayload(loot=TreasureLoot(coins=10)))
    run = make_run([room], [make_player(1)])
    with pytest.raises(WrongRoomType):
        ActionResolver(rng=ScriptedRandom()).perform(run, 1, "attack", now=T0)


def test_pre_boss_guardian_must_be_challenged_first() -> None:
    guardian = make_enemy("Elite Guardian", hp=165, damage=17)
    challenge = EliteChallenge(name="Elite Guardian", description="", enemy=guardian)
    run = make_run([make_room(PreBossPayload(challenge=challenge))], [make_player(1)])
    resolver = ActionResolver(rng=ScriptedRandom())

    with pytest.raises(WrongRoomType):
        resolver.perform(run, 1, "attack", now=T0)

    engaged = resolver.perform(run, 1, "challenge", now=T0)
    assert "engaged" in engaged.message
    assert challenge.engaged is True
    again = resolver.perform(run, 1, "challenge", now=T0)
    assert "already engaged" in again.message

    outcome = resolver.perform(run, 1, "attack", now=T0)
    assert guardian.hp == 153
    assert outcome.counterattack.damage == 17
