from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from delve.content import DungeonCatalog, LootEntry, RelicDrop
from delve.dungeon.rewards import PlayerReward, RequeueCoordinator, apply_reward, compute_rewards
from delve.dungeon.rooms import Boss, BossPayload, ItemDrop, RoomRewards, TreasureLoot, TreasurePayload
from delve.dungeon.run import TeamBuff
from delve.errors import NotPartyMember, RunOrQueueNotFound, UnknownAction, VoteClosed
from delve.players import default_player_record
from delve.queues import QueueManager
from delve.sessions import SessionRegistry
from tests.factories import T0, ScriptedRandom, make_player, make_room, make_run


def _boss() -> Boss:
    return Boss(
        name="Crypt Lord",
        hp=220,
        max_hp=220,
        damage=23,
        xp=218,
        coins=210,
        loot=(LootEntry(item="lord_ring", chance=0.5),),
        relic=RelicDrop(item="crypt_crown", chance=0.5),
    )


def _cleared_run(*player_ids: int, boss_defeated: bool = True):
    treasure = make_room(TreasurePayload(loot=TreasureLoot(coins=75)), number=1)
    boss_room = make_room(BossPayload(boss=_boss()), number=2)
    run = make_run([treasure, boss_room], [make_player(pid) for pid in player_ids])
    treasure.mark_completed(RoomRewards(xp=100, coins=75, items=[ItemDrop("rat_tail", 1)]))
    run.advance_room()
    if boss_defeated:
        boss = boss_room.payload.boss
        boss_room.mark_completed(RoomRewards(xp=boss.xp, coins=boss.coins))
        run.advance_room()
    return run


def test_rewards_sum_completed_rooms_plus_boss_bonus() -> None:
    run = _cleared_run(1, 2)
    assert run.status == "completed"
    rng = ScriptedRandom(randoms=[0.1, 0.9, 0.1, 0.1])
    rewards = compute_rewards(run, rng=rng)

    assert [reward.player_id for reward in rewards] == [1, 2]
    first, second = rewards
    assert (first.xp, first.coins) == (100 + 218 + 218, 75 + 210 + 210)
    assert first.items == (ItemDrop("rat_tail", 1), ItemDrop("lord_ring", 1))
    assert second.items == (
        ItemDrop("rat_tail", 1),
        ItemDrop("lord_ring", 1),
        ItemDrop("crypt_crown", 1),
    )
    assert second.item_summary() == "rat_tail x1, lord_ring x1, crypt_crown x1"


def test_boss_room_rewards_count_alongside_boss_bonus() -> None:
    treasure = make_room(TreasurePayload(loot=TreasureLoot(coins=5)), number=1)
    boss = Boss(name="Warden", hp=1, max_hp=1, damage=1, xp=200, coins=100)
    boss_room = make_room(BossPayload(boss=boss), number=2)
    run = make_run([treasure, boss_room], [make_player(1)])
    treasure.mark_completed(RoomRewards(xp=10, coins=5))
    run.advance_room()
    boss_room.mark_completed(RoomRewards(xp=200, coins=100))
    run.advance_room()

    (reward,) = compute_rewards(run, rng=ScriptedRandom())
    assert (reward.xp, reward.coins) == (410, 205)


def test_loot_bonus_raises_boss_drop_chance() -> None:
    run = _cleared_run(1)
    run.add_buff(TeamBuff(name="Finder", description="", loot_bonus=1.0))
    rewards = compute_rewards(run, rng=ScriptedRandom(default=0.99))
    assert [item.item_id for item in rewards[0].items] == ["rat_tail", "lord_ring", "crypt_crown"]


def test_undefeated_boss_adds_nothing() -> None:
    run = _cleared_run(1, boss_defeated=False)
    rewards = compute_rewards(run, rng=ScriptedRandom(default=0.0))
    assert (rewards[0].xp, rewards[0].coins) == (100, 75)
    assert rewards[0].items == (ItemDrop("rat_tail", 1),)


def test_apply_reward_updates_record() -> None:
    record = default_player_record(1, "Ada")
    reward = PlayerReward(
        player_id=1, username="Ada", xp=150, coins=40, items=(ItemDrop("rat_tail", 2),)
    )
    assert apply_reward(record, reward) is True
    assert record["level"] == 2
    assert record["xp"] == 50
    assert record["maxHp"] == 110
    assert record["hp"] == 110
    assert record["coins"] == 40
    assert record["inventory"] == {"rat_tail": 2}
    assert record["stats"]["dungeonsCleared"] == 1

    assert apply_reward(record, PlayerReward(player_id=1, username="Ada", xp=10)) is False
    assert record["stats"]["dungeonsCleared"] == 2


def _coordinator(window: float = 30.0, callbacks=None):
    sessions = SessionRegistry()
    queues = QueueManager(DungeonCatalog.from_definitions([]), sessions)

    async def on_resolved(outcome) -> None:
        if callbacks is not None:
            callbacks.append(outcome)

    coordinator = RequeueCoordinator(
        sessions, queues, window=timedelta(seconds=window), on_resolved=on_resolved
    )
    return sessions, queues, coordinator


def test_votes_resolve_once_when_everyone_has_voted() -> None:
    async def scenario() -> None:
        callbacks: list = []
        sessions, queues, coordinator = _coordinator(callbacks=callbacks)
        run = _cleared_run(1, 2, 3, 4)
        sessions.add_run(run)
        ballot = coordinator.open(run, now=T0)
        assert ballot.deadline == T0 + timedelta(seconds=30)

        for player_id, choice in ((1, "requeue"), (2, "requeue"), (3, "leave")):
            progress, outcome = coordinator.vote(run.id, player_id, choice)
            assert outcome is None
        assert progress.votes_cast == 3 and progress.eligible == 4

        progress, outcome = coordinator.vote(run.id, 4, "Requeue")
        assert progress.complete
        assert outcome is not None
        assert outcome.trigger == "votes"
        assert outcome.requeue == (1, 2, 4)
        assert outcome.leave == (3,)
        assert outcome.queue_result.added == (1, 2, 4)
        assert outcome.launch_ready is False
        assert queues.status(1).id == "1:test_crypt"
        assert queues.status(3) is None
        assert sessions.get_run(run.id) is None
        assert sessions.run_for_player(1) is None
        assert coordinator.pending() == ()

        assert coordinator.resolve(run.id, "timeout") is None
        with pytest.raises(RunOrQueueNotFound):
            coordinator.vote(run.id, 1, "leave")
        await asyncio.sleep(0)
        assert ballot.timer.cancelled()
        assert callbacks == []

    asyncio.run(scenario())


def test_timeout_resolves_with_votes_so_far() -> None:
    async def scenario() -> None:
        callbacks: list = []
        sessions, queues, coordinator = _coordinator(window=0.01, callbacks=callbacks)
        run = _cleared_run(1, 2)
        sessions.add_run(run)
        coordinator.open(run, now=T0)
        coordinator.vote(run.id, 1, "requeue")

        await asyncio.sleep(0.1)

        assert len(callbacks) == 1
        outcome = callbacks[0]
        assert outcome.trigger == "timeout"
        assert outcome.requeue == (1,)
        assert outcome.leave == (2,)
        assert queues.status(1) is not None
        assert sessions.get_run(run.id) is None
        assert coordinator.resolve(run.id, "votes") is None

    asyncio.run(scenario())


def test_timer_does_not_fire_after_vote_resolution() -> None:
    async def scenario() -> None:
        callbacks: list = []
        sessions, _, coordinator = _coordinator(window=0.01, callbacks=callbacks)
        run = _cleared_run(1)
        sessions.add_run(run)
        coordinator.open(run, now=T0)
        _, outcome = coordinator.vote(run.id, 1, "leave")
        assert outcome is not None and outcome.queue_result is None
        await asyncio.sleep(0.1)
        assert callbacks == []

    asyncio.run(scenario())


def test_vote_validation() -> None:
    async def scenario() -> None:
        sessions, _, coordinator = _coordinator()
        run = _cleared_run(1, 2)
        sessions.add_run(run)

        with pytest.raises(VoteClosed):
            coordinator.vote(run.id, 1, "requeue")
        with pytest.raises(RunOrQueueNotFound):
            coordinator.vote("run_missing", 1, "requeue")

        coordinator.open(run, now=T0)
        with pytest.raises(UnknownAction):
            coordinator.vote(run.id, 1, "maybe")
        with pytest.raises(NotPartyMember):
            coordinator.vote(run.id, 99, "requeue")
        await coordinator.shutdown()
        assert coordinator.pending() == ()

    asyncio.run(scenario())


def test_departed_player_no_longer_holds_up_the_vote() -> None:
    async def scenario() -> None:
        sessions, queues, coordinator = _coordinator()
        run = _cleared_run(1, 2)
        sessions.add_run(run)
        ballot = coordinator.open(run, now=T0)
        run.remove_player(2)

        assert ballot.progress().eligible == 1
        with pytest.raises(NotPartyMember):
            coordinator.vote(run.id, 2, "requeue")

        progress, outcome = coordinator.vote(run.id, 1, "requeue")
        assert progress.eligible == 1 and progress.complete
        assert outcome is not None
        assert outcome.trigger == "votes"
        assert outcome.requeue == (1,)
        assert outcome.leave == (2,)
        assert queues.status(2) is None
        await asyncio.sleep(0)
        assert ballot.timer.cancelled()

    asyncio.run(scenario())


def test_leaving_after_votes_resolves_the_ballot() -> None:
    async def scenario() -> None:
        sessions, _, coordinator = _coordinator()
        run = _cleared_run(1, 2, 3)
        sessions.add_run(run)
        coordinator.open(run, now=T0)
        coordinator.vote(run.id, 1, "requeue")
        coordinator.vote(run.id, 2, "requeue")
        assert coordinator.member_left(run.id) is None

        run.remove_player(3)
        outcome = coordinator.member_left(run.id)
        assert outcome is not None
        assert outcome.requeue == (1, 2)
        assert outcome.leave == (3,)
        assert coordinator.pending() == ()
        assert coordinator.member_left(run.id) is None

    asyncio.run(scenario())


def test_last_member_leaving_closes_the_vote() -> None:
    async def scenario() -> None:
        sessions, _, coordinator = _coordinator()
        run = _cleared_run(1)
        sessions.add_run(run)
        coordinator.open(run, now=T0)
        run.remove_player(1)

        outcome = coordinator.member_left(run.id)
        assert outcome is not None
        assert outcome.requeue == ()
        assert outcome.queue_result is None
        assert sessions.get_run(run.id) is None

    asyncio.run(scenario())
