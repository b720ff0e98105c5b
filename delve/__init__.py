"""Procedural dungeon runs for the Delve Discord bot."""

from .errors import DungeonError
from .players import PlayerRepository
from .queues import MAX_PARTY_SIZE, Queue, QueueManager
from .sessions import SessionRegistry

__all__ = [
    "DungeonError",
    "MAX_PARTY_SIZE",
    "PlayerRepository",
    "Queue",
    "QueueManager",
    "SessionRegistry",
]
