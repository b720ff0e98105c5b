"""Reward finalization and the post-run requeue vote."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Literal, MutableMapping, Optional, Sequence

from delve.errors import NotPartyMember, RunOrQueueNotFound, UnknownAction, VoteClosed
from delve.players import add_item as default_add_item
from delve.players import add_xp as default_add_xp
from delve.queues import QueueManager, QueueMember, RequeueResult
from delve.sessions import SessionRegistry

from .rooms import BossPayload, ItemDrop
from .run import Run

__all__ = [
    "BOSS_LOOT_CHANCE",
    "PlayerReward",
    "REQUEUE_WINDOW",
    "RequeueBallot",
    "RequeueCoordinator",
    "RequeueOutcome",
    "VoteProgress",
    "apply_reward",
    "compute_rewards",
]

log = logging.getLogger(__name__)

REQUEUE_WINDOW = timedelta(seconds=30)
BOSS_LOOT_CHANCE = 0.5

VoteChoice = Literal["requeue", "leave"]
ResolutionTrigger = Literal["votes", "timeout"]


@dataclass(frozen=True)
class PlayerReward:
    """Everything a single adventurer takes home from a run."""

    player_id: int
    username: str
    xp: int = 0
    coins: int = 0
    items: tuple[ItemDrop, ...] = ()

    def item_summary(self) -> str:
        return ", ".join(item.label() for item in self.items) or "None"


def _drop_chance(chance: float, loot_bonus: float) -> float:
    return min(1.0, chance * (1 + loot_bonus))


def compute_rewards(run: Run, *, rng: random.Random | None = None) -> List[PlayerReward]:
    """Total the run's rewards for every remaining party member.

    Completed rooms contribute their xp, coins and items. The boss adds its
    own xp and coins when defeated, and its loot table and relic are rolled
    independently for each player.
    """

    generator = rng or random
    room_xp = 0
    room_coins = 0
    room_items: List[ItemDrop] = []
    for room in run.completed_rooms:
        room_xp += room.rewards.xp
        room_coins += room.rewards.coins
        room_items.extend(room.rewards.items)

    boss_room = run.boss_room
    boss = boss_room.payload.boss if boss_room and isinstance(boss_room.payload, BossPayload) else None
    boss_defeated = bool(boss_room and boss_room.completed)

    rewards: List[PlayerReward] = []
    for player in run.party.values():
        xp = room_xp
        coins = room_coins
        items = list(room_items)
        if boss is not None and boss_defeated:
            xp += boss.xp
            coins += boss.coins
            for entry in boss.loot:
                if generator.random() < _drop_chance(entry.chance_or(BOSS_LOOT_CHANCE), run.loot_bonus):
                    items.append(ItemDrop(entry.item, generator.randint(entry.min, entry.max)))
            relic = boss.relic
            if relic is not None and generator.random() < _drop_chance(relic.chance, run.loot_bonus):
                items.append(ItemDrop(relic.item, relic.amount))
        rewards.append(
            PlayerReward(
                player_id=player.player_id,
                username=player.username,
                xp=xp,
                coins=coins,
                items=tuple(items),
            )
        )
    return rewards


def apply_reward(
    record: MutableMapping[str, object],
    reward: PlayerReward,
    *,
    add_xp: Callable[[MutableMapping[str, object], int], bool] = default_add_xp,
    add_item: Callable[[MutableMapping[str, object], str, int], None] = default_add_item,
) -> bool:
    """Write ``reward`` into ``record``. Returns whether the player levelled."""

    leveled = add_xp(record, reward.xp) if reward.xp > 0 else False
    if reward.coins > 0:
        record["coins"] = int(record.get("coins", 0) or 0) + reward.coins
    for item in reward.items:
        add_item(record, item.item_id, item.quantity)
    stats = record.get("stats")
    if not isinstance(stats, MutableMapping):
        stats = {}
        record["stats"] = stats
    stats["dungeonsCleared"] = int(stats.get("dungeonsCleared", 0) or 0) + 1
    return leveled


@dataclass(frozen=True)
class VoteProgress:
    eligible: int
    requeue: int
    leave: int

    @property
    def votes_cast(self) -> int:
        return self.requeue + self.leave

    @property
    def complete(self) -> bool:
        return self.votes_cast >= self.eligible


@dataclass(frozen=True)
class RequeueOutcome:
    run_id: str
    trigger: ResolutionTrigger
    requeue: tuple[int, ...]
    leave: tuple[int, ...]
    queue_result: Optional[RequeueResult] = None

    @property
    def launch_ready(self) -> bool:
        return self.queue_result is not None and self.queue_result.queue.is_full


@dataclass
class RequeueBallot:
    """Open vote for one completed run."""

    run: Run
    voters: Dict[int, QueueMember]
    opened_at: datetime
    deadline: datetime
    votes: Dict[int, VoteChoice] = field(default_factory=dict)
    resolved: bool = False
    timer: Optional["asyncio.Task[None]"] = None

    def eligible(self) -> List[int]:
        """Voters still in the party. Players who left after the clear drop out."""

        return [pid for pid in self.voters if pid in self.run.party]

    def progress(self) -> VoteProgress:
        eligible = self.eligible()
        cast = [self.votes[pid] for pid in eligible if pid in self.votes]
        requeue = sum(1 for choice in cast if choice == "requeue")
        return VoteProgress(
            eligible=len(eligible),
            requeue=requeue,
            leave=len(cast) - requeue,
        )


ResolutionCallback = Callable[[RequeueOutcome], Awaitable[None]]


class RequeueCoordinator:
    """Run the timed requeue vote and resolve it exactly once.

    Both the countdown and the last ballot can trigger resolution. Whichever
    arrives first flips ``RequeueBallot.resolved`` before touching any
    registry; the other trigger then finds the ballot gone and does nothing.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        queues: QueueManager,
        *,
        window: timedelta = REQUEUE_WINDOW,
        on_resolved: Optional[ResolutionCallback] = None,
    ) -> None:
        self.sessions = sessions
        self.queues = queues
        self.window = window
        self.on_resolved = on_resolved
        self._ballots: Dict[str, RequeueBallot] = {}

    def ballot(self, run_id: str) -> Optional[RequeueBallot]:
        return self._ballots.get(run_id)

    def open(self, run: Run, *, now: Optional[datetime] = None) -> RequeueBallot:
        """Start the vote for ``run``. Must be called from a running loop."""

        current_time = now or datetime.now(timezone.utc)
        existing = self._ballots.get(run.id)
        if existing is not None:
            return existing
        voters = {
            player.player_id: QueueMember(
                player_id=player.player_id,
                username=player.username,
                joined_at=current_time,
            )
            for player in run.party.values()
        }
        ballot = RequeueBallot(
            run=run,
            voters=voters,
            opened_at=current_time,
            deadline=current_time + self.window,
        )
        self._ballots[run.id] = ballot
        loop = asyncio.get_running_loop()
        ballot.timer = loop.create_task(self._expire(run.id))
        log.info("Opened requeue vote for run %s (%s voters)", run.id, len(voters))
        return ballot

    def vote(
        self, run_id: str, player_id: int, choice: str
    ) -> tuple[VoteProgress, Optional[RequeueOutcome]]:
        """Record a vote; resolve immediately once every current member has voted."""

        normalised = choice.strip().lower()
        if normalised not in ("requeue", "leave"):
            raise UnknownAction("Vote 'requeue' or 'leave'.")
        ballot = self._ballots.get(run_id)
        if ballot is None:
            if self.sessions.get_run(run_id) is None:
                raise RunOrQueueNotFound("That dungeon run no longer exists.")
            raise VoteClosed()
        if ballot.resolved:
            raise VoteClosed()
        if player_id not in ballot.voters or player_id not in ballot.run.party:
            raise NotPartyMember()
        ballot.votes[player_id] = normalised  # type: ignore[assignment]
        progress = ballot.progress()
        if progress.complete:
            return progress, self.resolve(run_id, "votes")
        return progress, None

    def member_left(self, run_id: str) -> Optional[RequeueOutcome]:
        """Re-check an open vote after a player leaves the finished run.

        The remaining members may all have voted already, or nobody may be
        left at all; either way the vote resolves now instead of waiting
        for the timer.
        """

        ballot = self._ballots.get(run_id)
        if ballot is None or ballot.resolved:
            return None
        if ballot.progress().complete:
            return self.resolve(run_id, "votes")
        return None

    def resolve(self, run_id: str, trigger: ResolutionTrigger) -> Optional[RequeueOutcome]:
        ballot = self._ballots.get(run_id)
        if ballot is None or ballot.resolved:
            log.debug("Ignoring %s resolution for run %s; already resolved", trigger, run_id)
            return None
        ballot.resolved = True
        del self._ballots[run_id]
        timer = ballot.timer
        if timer is not None and timer is not _current_task():
            timer.cancel()

        run = ballot.run
        members = set(ballot.eligible())
        requeue = tuple(
            pid for pid in ballot.voters if pid in members and ballot.votes.get(pid) == "requeue"
        )
        leave = tuple(pid for pid in ballot.voters if pid not in requeue)
        self.sessions.discard_run(run.id)

        queue_result: Optional[RequeueResult] = None
        if requeue:
            queue_result = self.queues.create_prefilled(
                run.dungeon,
                [ballot.voters[pid] for pid in requeue],
                guild_id=run.guild_id,
                channel_id=run.channel_id,
            )
        log.info(
            "Resolved requeue vote for run %s by %s: %s requeue, %s leave",
            run.id,
            trigger,
            len(requeue),
            len(leave),
        )
        return RequeueOutcome(
            run_id=run.id,
            trigger=trigger,
            requeue=requeue,
            leave=leave,
            queue_result=queue_result,
        )

    async def _expire(self, run_id: str) -> None:
        await asyncio.sleep(self.window.total_seconds())
        async with self.sessions.lock:
            outcome = self.resolve(run_id, "timeout")
        if outcome is not None and self.on_resolved is not None:
            try:
                await self.on_resolved(outcome)
            except Exception:
                log.exception("Requeue resolution handler failed for run %s", run_id)

    async def shutdown(self) -> None:
        """Cancel outstanding timers without resolving their votes."""

        timers = [ballot.timer for ballot in self._ballots.values() if ballot.timer is not None]
        self._ballots.clear()
        for timer in timers:
            timer.cancel()
        for timer in timers:
            try:
                await timer
            except asyncio.CancelledError:
                pass

    def pending(self) -> Sequence[str]:
        return tuple(self._ballots)


def _current_task() -> Optional["asyncio.Task[object]"]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
