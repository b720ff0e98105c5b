"""High level orchestration used by the Discord cog."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from .content import DungeonCatalog
from .dungeon.actions import ACTION_COOLDOWN, ActionOutcome, ActionResolver
from .dungeon.generator import PartyMember, RunGenerator
from .dungeon.rewards import (
    REQUEUE_WINDOW,
    PlayerReward,
    RequeueCoordinator,
    RequeueOutcome,
    VoteProgress,
    apply_reward,
    compute_rewards,
)
from .dungeon.run import Run
from .errors import RunOrQueueNotFound
from .players import PlayerRepository, default_player_record
from .queues import Queue, QueueManager
from .sessions import SessionRegistry

__all__ = ["ActionResult", "DelveService", "RunCompletion"]

log = logging.getLogger(__name__)


@dataclass
class RunCompletion:
    run: Run
    rewards: List[PlayerReward]
    level_ups: List[str] = field(default_factory=list)
    progress: Optional[VoteProgress] = None


@dataclass
class ActionResult:
    run: Run
    outcome: ActionOutcome
    completion: Optional[RunCompletion] = None
    run_closed: bool = False
    requeue: Optional[RequeueOutcome] = None


class DelveService:
    """Glue the queue, generator, resolver and reward coordinator together.

    Every mutation of shared run or queue state happens while holding
    :attr:`SessionRegistry.lock`.
    """

    def __init__(
        self,
        catalog: DungeonCatalog,
        players: PlayerRepository,
        *,
        sessions: Optional[SessionRegistry] = None,
        rng: random.Random | None = None,
        cooldown: timedelta = ACTION_COOLDOWN,
        requeue_window: timedelta = REQUEUE_WINDOW,
        on_requeue_resolved: Optional[Callable[[RequeueOutcome], Awaitable[None]]] = None,
    ) -> None:
        self.catalog = catalog
        self.players = players
        self.sessions = sessions or SessionRegistry()
        self._rng = rng or random.Random()
        self.queues = QueueManager(catalog, self.sessions)
        self.generator = RunGenerator(rng=self._rng)
        self.resolver = ActionResolver(rng=self._rng, cooldown=cooldown)
        self.coordinator = RequeueCoordinator(
            self.sessions,
            self.queues,
            window=requeue_window,
            on_resolved=on_requeue_resolved,
        )

    # -- queues --------------------------------------------------------------
    async def enqueue(
        self,
        player_id: int,
        username: str,
        selector: str | None = None,
        *,
        guild_id: Optional[int] = None,
        channel_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[str, Queue]:
        record = await self.players.load_or_create(player_id, username)
        async with self.sessions.lock:
            return self.queues.enqueue(
                player_id,
                username,
                record,
                selector,
                guild_id=guild_id,
                channel_id=channel_id,
                now=now,
            )

    async def leave_queue(self, player_id: int) -> tuple[Queue, bool]:
        async with self.sessions.lock:
            return self.queues.leave(player_id)

    async def queue_status(self, player_id: int) -> Optional[Queue]:
        async with self.sessions.lock:
            return self.queues.status(player_id)

    # -- runs ----------------------------------------------------------------
    async def launch(self, queue_id: str, *, now: Optional[datetime] = None) -> Run:
        """Consume a queue and start a run for its roster."""

        async with self.sessions.lock:
            queue = self.queues.claim(queue_id)
            members: List[PartyMember] = []
            for entry in queue.roster():
                record = await self.players.load(entry.player_id)
                if record is None:
                    record = default_player_record(entry.player_id, entry.username)
                members.append(PartyMember.from_record(entry.player_id, entry.username, record))
            run = self.generator.generate(
                queue.dungeon,
                members,
                guild_id=queue.guild_id,
                channel_id=queue.channel_id,
                now=now,
            )
            self.sessions.add_run(run)
        log.info("Launched run %s in %s with %s players", run.id, queue.dungeon.id, len(members))
        return run

    async def launch_if_ready(self, outcome: RequeueOutcome) -> Optional[Run]:
        if not outcome.launch_ready or outcome.queue_result is None:
            return None
        return await self.launch(outcome.queue_result.queue.id)

    async def attach_message(self, run_id: str, message_id: int) -> None:
        async with self.sessions.lock:
            run = self.sessions.get_run(run_id)
            if run is None:
                raise RunOrQueueNotFound("That dungeon run no longer exists.")
            self.sessions.attach_message(run, message_id)

    async def get_run(self, run_id: str) -> Optional[Run]:
        async with self.sessions.lock:
            return self.sessions.get_run(run_id)

    async def perform(
        self,
        run_id: str,
        player_id: int,
        action: str,
        argument: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ActionResult:
        current_time = now or datetime.now(timezone.utc)
        async with self.sessions.lock:
            run = self.sessions.get_run(run_id)
            if run is None:
                raise RunOrQueueNotFound("That dungeon run no longer exists.")
            outcome = self.resolver.perform(run, player_id, action, argument, now=current_time)
            result = ActionResult(run=run, outcome=outcome)

            if outcome.action == "leave":
                self.sessions.detach_player(player_id, run.id)
                if self.coordinator.ballot(run.id) is not None:
                    result.requeue = self.coordinator.member_left(run.id)
                    result.run_closed = result.requeue is not None
                elif outcome.party_empty:
                    self.sessions.discard_run(run.id)
                    result.run_closed = True
                    log.info("Run %s discarded after the last player left", run.id)
            elif outcome.run_failed:
                self.sessions.discard_run(run.id)
                result.run_closed = True
                log.info("Run %s failed: the whole party fell", run.id)
            elif outcome.run_completed:
                result.completion = await self._finalise(run, now=current_time)
        if result.requeue is not None:
            await self._notify_resolved(result.requeue)
        return result

    async def _finalise(self, run: Run, *, now: datetime) -> RunCompletion:
        rewards = compute_rewards(run, rng=self._rng)
        level_ups: List[str] = []
        for reward in rewards:
            try:
                record = await self.players.load(reward.player_id)
                if record is None:
                    record = default_player_record(reward.player_id, reward.username)
                if apply_reward(record, reward):
                    level_ups.append(f"<@{reward.player_id}> leveled up to {record.get('level')}!")
                await self.players.save(reward.player_id, record)
            except Exception:
                log.exception("Failed to write rewards for player %s in run %s", reward.player_id, run.id)
        ballot = self.coordinator.open(run, now=now)
        log.info("Run %s completed; rewards written for %s players", run.id, len(rewards))
        return RunCompletion(
            run=run,
            rewards=rewards,
            level_ups=level_ups,
            progress=ballot.progress(),
        )

    # -- requeue -------------------------------------------------------------
    async def vote(
        self, run_id: str, player_id: int, choice: str
    ) -> tuple[VoteProgress, Optional[RequeueOutcome]]:
        async with self.sessions.lock:
            progress, outcome = self.coordinator.vote(run_id, player_id, choice)
        if outcome is not None:
            await self._notify_resolved(outcome)
        return progress, outcome

    async def _notify_resolved(self, outcome: RequeueOutcome) -> None:
        if self.coordinator.on_resolved is None:
            return
        try:
            await self.coordinator.on_resolved(outcome)
        except Exception:
            log.exception("Requeue resolution handler failed for run %s", outcome.run_id)

    async def shutdown(self) -> None:
        await self.coordinator.shutdown()
