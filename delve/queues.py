"""Waiting rosters that turn individual players into dungeon parties."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Mapping, Optional, Sequence

from .content import DungeonCatalog, DungeonDefinition
from .errors import (
    AlreadyQueued,
    IneligiblePlayer,
    NotQueued,
    QueueFull,
    RunOrQueueNotFound,
)
from .sessions import SessionRegistry

__all__ = [
    "MAX_PARTY_SIZE",
    "REMOTE_ACCESS_ITEM",
    "Queue",
    "QueueManager",
    "QueueMember",
    "RequeueResult",
    "check_eligibility",
    "make_queue_id",
]

log = logging.getLogger(__name__)

MAX_PARTY_SIZE = 4
REMOTE_ACCESS_ITEM = "remote_dungeon_key"

JoinStatus = Literal["created", "added", "exists"]


def make_queue_id(guild_id: Optional[int], dungeon_id: str) -> str:
    scope = str(guild_id) if guild_id is not None else "global"
    return f"{scope}:{dungeon_id}"


def _record_level(record: Mapping[str, object]) -> int:
    try:
        return int(record.get("level", 1) or 1)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 1


def _has_remote_access(record: Mapping[str, object]) -> bool:
    flags = record.get("flags")
    if isinstance(flags, Mapping) and flags.get("dungeonAnywhere"):
        return True
    inventory = record.get("inventory")
    if isinstance(inventory, Mapping):
        try:
            return int(inventory.get(REMOTE_ACCESS_ITEM, 0) or 0) > 0
        except (TypeError, ValueError):
            return False
    return False


def _current_biome(record: Mapping[str, object]) -> str | None:
    exploration = record.get("exploration")
    if isinstance(exploration, Mapping):
        biome = exploration.get("currentBiome")
        return str(biome) if biome else None
    return None


def check_eligibility(record: Mapping[str, object], dungeon: DungeonDefinition) -> None:
    """Raise :class:`IneligiblePlayer` if ``record`` cannot enter ``dungeon``."""

    level = _record_level(record)
    if level < dungeon.min_level:
        raise IneligiblePlayer(
            f"{dungeon.name} requires level {dungeon.min_level} (you are level {level})."
        )
    if not dungeon.biome or _has_remote_access(record):
        return
    biome = _current_biome(record)
    if biome is None or biome.lower() != dungeon.biome.lower():
        raise IneligiblePlayer(
            f"You must be in the {dungeon.biome} biome to enter {dungeon.name}."
        )


@dataclass(frozen=True)
class QueueMember:
    player_id: int
    username: str
    joined_at: datetime


@dataclass
class Queue:
    """Roster of players waiting for one dungeon in one guild."""

    id: str
    dungeon: DungeonDefinition
    guild_id: Optional[int]
    channel_id: Optional[int]
    created_at: datetime
    members: Dict[int, QueueMember] = field(default_factory=dict)
    max_size: int = MAX_PARTY_SIZE

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return self.size >= self.max_size

    @property
    def ready(self) -> bool:
        return self.is_full

    def roster(self) -> List[QueueMember]:
        return list(self.members.values())


@dataclass(frozen=True)
class RequeueResult:
    queue: Queue
    added: tuple[int, ...]
    overflow: tuple[int, ...] = ()


class QueueManager:
    """Enqueue, dequeue and launch-claim parties waiting for a dungeon."""

    def __init__(
        self,
        catalog: DungeonCatalog,
        sessions: SessionRegistry,
        *,
        max_party_size: int = MAX_PARTY_SIZE,
    ) -> None:
        self.catalog = catalog
        self.sessions = sessions
        self.max_party_size = max_party_size

    def resolve_dungeon(self, selector: str | None, level: int) -> DungeonDefinition:
        try:
            return self.catalog.dungeons.resolve(selector, level)
        except KeyError as exc:
            if selector and selector.strip():
                raise RunOrQueueNotFound(f"Unknown dungeon '{selector}'.") from exc
            raise IneligiblePlayer(f"No dungeon is available for level {level}.") from exc

    def enqueue(
        self,
        player_id: int,
        username: str,
        record: Mapping[str, object],
        selector: str | None = None,
        *,
        guild_id: Optional[int] = None,
        channel_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[JoinStatus, Queue]:
        current_time = now or datetime.now(timezone.utc)
        dungeon = self.resolve_dungeon(selector, _record_level(record))
        check_eligibility(record, dungeon)

        if self.sessions.run_for_player(player_id) is not None:
            raise AlreadyQueued("You are already inside a dungeon run.")

        queue_id = make_queue_id(guild_id, dungeon.id)
        current = self.sessions.queue_for_player(player_id)
        if current is not None:
            if current.id == queue_id:
                return "exists", current
            raise AlreadyQueued(
                f"You are already queued for {current.dungeon.name}. Leave that queue first."
            )

        status: JoinStatus = "added"
        queue = self.sessions.get_queue(queue_id)
        if queue is None:
            queue = Queue(
                id=queue_id,
                dungeon=dungeon,
                guild_id=guild_id,
                channel_id=channel_id,
                created_at=current_time,
                max_size=self.max_party_size,
            )
            self.sessions.add_queue(queue)
            status = "created"
        elif queue.is_full:
            raise QueueFull(f"The queue for {dungeon.name} is full.")

        queue.members[player_id] = QueueMember(
            player_id=player_id, username=username, joined_at=current_time
        )
        self.sessions.index_queue_member(player_id, queue.id)
        log.debug("Player %s joined queue %s (%s/%s)", player_id, queue.id, queue.size, queue.max_size)
        return status, queue

    def leave(self, player_id: int) -> tuple[Queue, bool]:
        """Remove ``player_id`` from their queue.

        Returns the queue and whether it was deleted for being empty.
        """

        queue = self.sessions.queue_for_player(player_id)
        if queue is None:
            raise NotQueued()
        queue.members.pop(player_id, None)
        self.sessions.unindex_queue_member(player_id)
        if not queue.members:
            self.sessions.discard_queue(queue.id)
            return queue, True
        return queue, False

    def status(self, player_id: int) -> Optional[Queue]:
        return self.sessions.queue_for_player(player_id)

    def claim(self, queue_id: str) -> Queue:
        """Atomically remove a queue and its index entries for launch."""

        queue = self.sessions.discard_queue(queue_id)
        if queue is None:
            raise RunOrQueueNotFound("That queue no longer exists.")
        return queue

    def create_prefilled(
        self,
        dungeon: DungeonDefinition,
        members: Sequence[QueueMember],
        *,
        guild_id: Optional[int] = None,
        channel_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> RequeueResult:
        """Queue ``members`` directly, skipping the eligibility checks.

        If a queue for the same guild and dungeon already exists the members
        are merged into it while space remains.
        """

        current_time = now or datetime.now(timezone.utc)
        queue_id = make_queue_id(guild_id, dungeon.id)
        queue = self.sessions.get_queue(queue_id)
        if queue is None:
            queue = Queue(
                id=queue_id,
                dungeon=dungeon,
                guild_id=guild_id,
                channel_id=channel_id,
                created_at=current_time,
                max_size=self.max_party_size,
            )
            self.sessions.add_queue(queue)

        added: list[int] = []
        overflow: list[int] = []
        for member in members:
            existing = self.sessions.queue_for_player(member.player_id)
            if existing is not None and existing.id != queue.id:
                overflow.append(member.player_id)
                continue
            if member.player_id in queue.members:
                continue
            if queue.is_full:
                overflow.append(member.player_id)
                continue
            queue.members[member.player_id] = QueueMember(
                player_id=member.player_id,
                username=member.username,
                joined_at=current_time,
            )
            self.sessions.index_queue_member(member.player_id, queue.id)
            added.append(member.player_id)

        if not queue.members:
            self.sessions.discard_queue(queue.id)
        return RequeueResult(queue=queue, added=tuple(added), overflow=tuple(overflow))
