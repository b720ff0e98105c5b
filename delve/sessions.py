"""Process-wide registries for active dungeon runs and queues."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .dungeon.run import Run
    from .queues import Queue

__all__ = ["SessionRegistry"]


class SessionRegistry:
    """Own the shared run/queue maps and their reverse indices.

    One instance is created at start-up and injected into every component
    that needs it. The registry does not lock on its own; interaction
    handlers hold :attr:`lock` while they mutate it so concurrent button
    presses are applied one at a time.
    """

    __slots__ = (
        "_runs",
        "_player_runs",
        "_message_runs",
        "_queues",
        "_player_queues",
        "_lock",
    )

    def __init__(self) -> None:
        self._runs: Dict[str, "Run"] = {}
        self._player_runs: Dict[int, str] = {}
        self._message_runs: Dict[int, str] = {}
        self._queues: Dict[str, "Queue"] = {}
        self._player_queues: Dict[int, str] = {}
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        """Expose the registry lock for callers that batch operations."""

        return self._lock

    # -- runs ----------------------------------------------------------------
    def add_run(self, run: "Run") -> None:
        self._runs[run.id] = run
        for player_id in run.party:
            self._player_runs[player_id] = run.id
        if run.message_id is not None:
            self._message_runs[run.message_id] = run.id

    def get_run(self, run_id: str) -> Optional["Run"]:
        return self._runs.get(run_id)

    def run_for_player(self, player_id: int) -> Optional["Run"]:
        run_id = self._player_runs.get(player_id)
        return self._runs.get(run_id) if run_id else None

    def run_for_message(self, message_id: int) -> Optional["Run"]:
        run_id = self._message_runs.get(message_id)
        return self._runs.get(run_id) if run_id else None

    def attach_message(self, run: "Run", message_id: int) -> None:
        if run.message_id is not None:
            self._message_runs.pop(run.message_id, None)
        run.message_id = message_id
        self._message_runs[message_id] = run.id

    def detach_player(self, player_id: int, run_id: str) -> None:
        if self._player_runs.get(player_id) == run_id:
            del self._player_runs[player_id]

    def discard_run(self, run_id: str) -> Optional["Run"]:
        """Remove a run and every index entry pointing at it."""

        run = self._runs.pop(run_id, None)
        for player_id, indexed in list(self._player_runs.items()):
            if indexed == run_id:
                del self._player_runs[player_id]
        for message_id, indexed in list(self._message_runs.items()):
            if indexed == run_id:
                del self._message_runs[message_id]
        return run

    # -- queues --------------------------------------------------------------
    def get_queue(self, queue_id: str) -> Optional["Queue"]:
        return self._queues.get(queue_id)

    def queue_for_player(self, player_id: int) -> Optional["Queue"]:
        queue_id = self._player_queues.get(player_id)
        return self._queues.get(queue_id) if queue_id else None

    def add_queue(self, queue: "Queue") -> None:
        self._queues[queue.id] = queue
        for player_id in queue.members:
            self._player_queues[player_id] = queue.id

    def index_queue_member(self, player_id: int, queue_id: str) -> None:
        self._player_queues[player_id] = queue_id

    def unindex_queue_member(self, player_id: int) -> None:
        self._player_queues.pop(player_id, None)

    def discard_queue(self, queue_id: str) -> Optional["Queue"]:
        queue = self._queues.pop(queue_id, None)
        for player_id, indexed in list(self._player_queues.items()):
            if indexed == queue_id:
                del self._player_queues[player_id]
        return queue
