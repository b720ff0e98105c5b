"""Exceptions surfaced to players when a dungeon action cannot proceed."""

from __future__ import annotations

__all__ = [
    "ActionCooldown",
    "ActionError",
    "AlreadyChosen",
    "AlreadyClaimed",
    "AlreadyQueued",
    "DungeonError",
    "EligibilityError",
    "EmptyParty",
    "IneligiblePlayer",
    "InsufficientMana",
    "NoChoiceRequired",
    "NotPartyMember",
    "NotQueued",
    "PlayerIncapacitated",
    "QueueError",
    "QueueFull",
    "RoomAlreadyCompleted",
    "RoomNotCompleted",
    "RunNotActive",
    "RunOrQueueNotFound",
    "StateConflict",
    "TooManyAttempts",
    "UnknownAction",
    "VoteClosed",
    "WrongRoomType",
]


class DungeonError(RuntimeError):
    """Base class for recoverable, player-facing dungeon failures.

    ``str(exc)`` is the short message shown to the acting player.
    """


class EligibilityError(DungeonError):
    """Raised when a player does not meet an entry requirement."""


class StateConflict(DungeonError):
    """Raised when an action conflicts with state that already exists."""


class QueueError(DungeonError):
    """Raised for queue membership failures."""


class ActionError(DungeonError):
    """Raised when a room action cannot be resolved."""


class IneligiblePlayer(EligibilityError):
    pass


class EmptyParty(EligibilityError):
    def __init__(self, message: str = "A dungeon run needs at least one adventurer.") -> None:
        super().__init__(message)


class AlreadyQueued(StateConflict):
    pass


class AlreadyClaimed(StateConflict):
    def __init__(self, message: str = "This treasure has already been claimed.") -> None:
        super().__init__(message)


class AlreadyChosen(StateConflict):
    def __init__(self, message: str = "A choice has already been made here.") -> None:
        super().__init__(message)


class NoChoiceRequired(StateConflict):
    def __init__(self, message: str = "This event does not require a choice.") -> None:
        super().__init__(message)


class RoomAlreadyCompleted(StateConflict):
    def __init__(self, message: str = "This room has already been completed.") -> None:
        super().__init__(message)


class VoteClosed(StateConflict):
    def __init__(self, message: str = "Voting for this run has already closed.") -> None:
        super().__init__(message)


class QueueFull(QueueError):
    pass


class NotQueued(QueueError):
    def __init__(self, message: str = "You are not in a dungeon queue.") -> None:
        super().__init__(message)


class RunOrQueueNotFound(QueueError):
    pass


class WrongRoomType(ActionError):
    pass


class PlayerIncapacitated(ActionError):
    def __init__(self, message: str = "You are incapacitated and cannot act.") -> None:
        super().__init__(message)


class ActionCooldown(ActionError):
    def __init__(self, remaining: float) -> None:
        super().__init__(f"Slow down! You can act again in {remaining:.1f}s.")
        self.remaining = remaining


class InsufficientMana(ActionError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Not enough mana ({available}/{required}).")
        self.required = required
        self.available = available


class TooManyAttempts(ActionError):
    def __init__(self, hint: str) -> None:
        super().__init__(f"Too many attempts! Hint: {hint}")
        self.hint = hint


class NotPartyMember(ActionError):
    def __init__(self, message: str = "You are not part of this dungeon run.") -> None:
        super().__init__(message)


class RoomNotCompleted(ActionError):
    def __init__(self, message: str = "You must complete this room before advancing.") -> None:
        super().__init__(message)


class RunNotActive(ActionError):
    def __init__(self, message: str = "This dungeon run is no longer active.") -> None:
        super().__init__(message)


class UnknownAction(ActionError):
    pass
