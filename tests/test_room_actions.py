from __future__ import annotations

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from delve.dungeon.actions import ActionResolver, puzzle_rewards
from delve.dungeon.encounters import PUZZLES
from delve.dungeon.rooms import (
    BuffSpec,
    Event,
    EventPayload,
    ItemDrop,
    PuzzlePayload,
    TreasureLoot,
    TreasurePayload,
)
from delve.errors import (
    AlreadyChosen,
    AlreadyClaimed,
    NoChoiceRequired,
    NotPartyMember,
    RoomAlreadyCompleted,
    RoomNotCompleted,
    TooManyAttempts,
    UnknownAction,
)
from tests.factories import T0, ScriptedRandom, make_player, make_room, make_run


def _puzzle(kind: str, difficulty: int = 1):
    for puzzle in PUZZLES:
        if puzzle.type == kind and puzzle.difficulty == difficulty:
            return puzzle
    raise AssertionError(f"no {kind} puzzle at difficulty {difficulty}")


def _run_with(payload, *, players=None, extra_rooms=()):
    rooms = [make_room(payload, number=1)]
    rooms.extend(make_room(room_payload, number=index + 2) for index, room_payload in enumerate(extra_rooms))
    return make_run(rooms, players or [make_player(1)])


def _resolver() -> ActionResolver:
    return ActionResolver(rng=ScriptedRandom())


# -- puzzles ---------------------------------------------------------------


def test_sequence_puzzle_counts_presses_until_complete() -> None:
    puzzle = _puzzle("sequence")
    run = _run_with(PuzzlePayload(puzzle=puzzle), players=[make_player(1), make_player(2)])
    resolver = _resolver()

    for press in range(1, len(puzzle.solution)):
        outcome = resolver.perform(run, 1 + press % 2, "solve", now=T0)
        assert not outcome.room_completed
        assert f"{press}/{len(puzzle.solution)}" in outcome.message

    final = resolver.perform(run, 1, "solve", now=T0)
    assert final.room_completed
    assert (final.rewards.xp, final.rewards.coins) == (100, 70)
    with pytest.raises(RoomAlreadyCompleted):
        resolver.perform(run, 1, "solve", now=T0)


def test_riddle_without_answer_resolves_immediately() -> None:
    run = _run_with(PuzzlePayload(puzzle=_puzzle("riddle")))
    outcome = _resolver().perform(run, 1, "solve", now=T0)
    assert outcome.room_completed
    assert "echo" in outcome.message
    assert (outcome.rewards.xp, outcome.rewards.coins) == (130, 85)


def test_riddle_answer_is_case_insensitive() -> None:
    run = _run_with(PuzzlePayload(puzzle=_puzzle("riddle")))
    outcome = _resolver().perform(run, 1, "solve", " ECHO ", now=T0)
    assert outcome.room_completed


def test_wrong_answers_exhaust_attempts_and_reveal_hint() -> None:
    puzzle = _puzzle("riddle")
    payload = PuzzlePayload(puzzle=puzzle)
    run = _run_with(payload)
    resolver = _resolver()

    first = resolver.perform(run, 1, "solve", "wind", now=T0)
    assert first.message == "That is not right. 2 attempts left."
    second = resolver.perform(run, 1, "solve", "wind", now=T0)
    assert second.message == "That is not right. 1 attempt left."
    with pytest.raises(TooManyAttempts) as excinfo:
        resolver.perform(run, 1, "solve", "wind", now=T0)
    assert puzzle.hint in str(excinfo.value)
    with pytest.raises(TooManyAttempts):
        resolver.perform(run, 1, "solve", "echo", now=T0)
    assert payload.state.attempts == 3
    assert not run.current_room.completed


def test_math_answer_is_checked_arithmetically() -> None:
    run = _run_with(PuzzlePayload(puzzle=_puzzle("math")))
    resolver = _resolver()
    wrong = resolver.perform(run, 1, "solve", "21", now=T0)
    assert not wrong.room_completed
    outcome = resolver.perform(run, 1, "solve", "4 * 5", now=T0)
    assert outcome.room_completed
    assert "**20**" in outcome.message
    assert outcome.rewards.xp == puzzle_rewards(_puzzle("math")).xp == 80


def test_pattern_answer() -> None:
    run = _run_with(PuzzlePayload(puzzle=_puzzle("pattern", 2)))
    outcome = _resolver().perform(run, 1, "solve", "32", now=T0)
    assert outcome.room_completed
    assert (outcome.rewards.xp, outcome.rewards.coins) == (130, 95)


# -- treasure --------------------------------------------------------------


def test_treasure_is_claimed_once() -> None:
    loot = TreasureLoot(coins=75, items=(ItemDrop("rat_tail", 2),))
    run = _run_with(TreasurePayload(loot=loot))
    resolver = _resolver()
    outcome = resolver.perform(run, 1, "claim", now=T0)
    assert outcome.room_completed
    assert outcome.rewards.coins == 75
    assert outcome.rewards.items == [ItemDrop("rat_tail", 2)]
    assert "rat_tail x2" in outcome.message
    with pytest.raises(AlreadyClaimed):
        resolver.perform(run, 1, "claim", now=T0)


# -- events ----------------------------------------------------------------


def test_heal_event_restores_party() -> None:
    event = Event(type="heal", name="Spring", description="", difficulty=1, heal_percent=0.35)
    run = _run_with(EventPayload(event=event), players=[make_player(1, hp=50), make_player(2, hp=90)])
    outcome = _resolver().perform(run, 1, "interact", now=T0)
    assert outcome.room_completed
    assert run.party[1].hp == 85
    assert run.party[2].hp == 100
    assert (outcome.rewards.xp, outcome.rewards.coins) == (30, 20)


def test_fountain_restores_mana() -> None:
    event = Event(
        type="heal", name="Fountain", description="", difficulty=3, heal_percent=1.0, restore_mana=True
    )
    run = _run_with(EventPayload(event=event), players=[make_player(1, hp=10, mana=0)])
    _resolver().perform(run, 1, "interact", now=T0)
    assert run.party[1].hp == 100
    assert run.party[1].mana == 50


def test_buff_event_adds_team_buff() -> None:
    event = Event(
        type="buff",
        name="Empowerment",
        description="",
        difficulty=2,
        buff=BuffSpec(power=21, defense=7),
    )
    run = _run_with(EventPayload(event=event))
    outcome = _resolver().perform(run, 1, "interact", now=T0)
    assert run.power_bonus == 21
    assert run.defense_bonus == 7
    assert "Power: +21, Defense: +7" in outcome.message
    assert (outcome.rewards.xp, outcome.rewards.coins) == (40, 25)
    with pytest.raises(RoomAlreadyCompleted):
        _resolver().perform(run, 1, "interact", now=T0)


def test_combat_bonus_and_loot_bonus_events() -> None:
    training = Event(
        type="combat_bonus",
        name="Training",
        description="",
        difficulty=2,
        buff=BuffSpec(crit_chance=0.1),
        xp_bonus=90,
    )
    finder = Event(
        type="loot_bonus", name="Finder", description="", difficulty=3, buff=BuffSpec(loot_bonus=0.2)
    )
    run = _run_with(EventPayload(event=training), extra_rooms=[EventPayload(event=finder)])
    resolver = _resolver()
    first = resolver.perform(run, 1, "interact", now=T0)
    assert (first.rewards.xp, first.rewards.coins) == (90, 30)
    assert run.crit_bonus == pytest.approx(0.1)
    resolver.perform(run, 1, "advance", now=T0)
    second = resolver.perform(run, 1, "interact", now=T0)
    assert (second.rewards.xp, second.rewards.coins) == (50, 40)
    assert run.loot_bonus == pytest.approx(0.2)


def _choice_event() -> Event:
    return Event(
        type="choice",
        name="Ancient Shrine",
        description="",
        difficulty=2,
        choices=("coins", "item", "buff"),
    )


def test_choice_event_presents_options_then_pays_once() -> None:
    payload = EventPayload(event=_choice_event())
    run = _run_with(payload)
    resolver = _resolver()

    presented = resolver.perform(run, 1, "interact", now=T0)
    assert presented.choices == ("coins", "item", "buff")
    assert payload.presented is True
    assert not presented.room_completed

    with pytest.raises(UnknownAction):
        resolver.perform(run, 1, "event_choice", "gems", now=T0)

    outcome = resolver.perform(run, 1, "event_choice", "coins", now=T0)
    assert outcome.room_completed
    assert (outcome.rewards.xp, outcome.rewards.coins) == (20, 150)
    assert payload.choice == "coins"
    with pytest.raises(AlreadyChosen):
        resolver.perform(run, 1, "event_choice", "buff", now=T0)


def test_item_choice_draws_from_dungeon_loot() -> None:
    run = _run_with(EventPayload(event=_choice_event()))
    outcome = _resolver().perform(run, 1, "event_choice", "item", now=T0)
    assert outcome.rewards.items == [ItemDrop("rat_tail", 1)]
    assert outcome.rewards.xp == 30


def test_buff_choice_grants_shrine_blessing() -> None:
    run = _run_with(EventPayload(event=_choice_event()))
    outcome = _resolver().perform(run, 1, "event_choice", "buff", now=T0)
    assert outcome.rewards.xp == 40
    assert run.power_bonus == 20
    assert run.defense_bonus == 10


def test_event_choice_requires_choice_event() -> None:
    event = Event(type="heal", name="Spring", description="", difficulty=1, heal_percent=0.3)
    run = _run_with(EventPayload(event=event))
    with pytest.raises(NoChoiceRequired):
        _resolver().perform(run, 1, "event_choice", "coins", now=T0)


# -- navigation ------------------------------------------------------------


def test_advance_requires_completed_room() -> None:
    run = _run_with(
        TreasurePayload(loot=TreasureLoot(coins=5)),
        extra_rooms=[TreasurePayload(loot=TreasureLoot(coins=6))],
    )
    resolver = _resolver()
    with pytest.raises(RoomNotCompleted):
        resolver.perform(run, 1, "advance", now=T0)
    resolver.perform(run, 1, "claim", now=T0)
    moved = resolver.perform(run, 1, "advance", now=T0)
    assert run.current_room_index == 1
    assert "Room 2" in moved.message
    assert [room.number for room in run.completed_rooms] == [1]


def test_complete_only_from_final_room() -> None:
    run = _run_with(
        TreasurePayload(loot=TreasureLoot(coins=5)),
        extra_rooms=[TreasurePayload(loot=TreasureLoot(coins=6))],
    )
    resolver = _resolver()
    resolver.perform(run, 1, "claim", now=T0)
    with pytest.raises(UnknownAction):
        resolver.perform(run, 1, "complete", now=T0)
    resolver.perform(run, 1, "advance", now=T0)
    resolver.perform(run, 1, "claim", now=T0)
    outcome = resolver.perform(run, 1, "complete", now=T0)
    assert outcome.run_completed
    assert run.status == "completed"
    assert run.current_room is None


def test_leave_removes_player_and_reports_empty_party() -> None:
    run = _run_with(TreasurePayload(loot=TreasureLoot(coins=5)), players=[make_player(1), make_player(2)])
    resolver = _resolver()
    first = resolver.perform(run, 1, "leave", now=T0)
    assert not first.party_empty
    assert set(run.party) == {2}
    with pytest.raises(NotPartyMember):
        resolver.perform(run, 1, "claim", now=T0)
    run.mark_failed()
    last = resolver.perform(run, 2, "leave", now=T0)
    assert last.party_empty


def test_unknown_action_is_rejected() -> None:
    run = _run_with(TreasurePayload(loot=TreasureLoot(coins=5)))
    with pytest.raises(UnknownAction):
        _resolver().perform(run, 1, "dance", now=T0)
