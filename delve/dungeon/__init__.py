"""Run generation, resolution and reward utilities."""

from .actions import ACTIONS, ActionOutcome, ActionResolver
from .generator import PartyMember, RunGenerator
from .rewards import (
    PlayerReward,
    RequeueCoordinator,
    RequeueOutcome,
    VoteProgress,
    apply_reward,
    compute_rewards,
)
from .rooms import Enemy, Room, RoomRewards
from .run import PlayerState, Run, TeamBuff

__all__ = [
    "ACTIONS",
    "ActionOutcome",
    "ActionResolver",
    "Enemy",
    "PartyMember",
    "PlayerReward",
    "PlayerState",
    "RequeueCoordinator",
    "RequeueOutcome",
    "Room",
    "RoomRewards",
    "Run",
    "RunGenerator",
    "TeamBuff",
    "VoteProgress",
    "apply_reward",
    "compute_rewards",
]
