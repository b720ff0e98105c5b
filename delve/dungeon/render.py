"""Platform-neutral view models for runs, queues and completion summaries.

The Discord cog turns these into embeds and buttons; nothing here depends on
the chat library.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional, Sequence

from delve.queues import Queue

from .rewards import PlayerReward, VoteProgress
from .rooms import (
    BossPayload,
    CombatPayload,
    EventPayload,
    PreBossPayload,
    PuzzlePayload,
    Room,
    TreasurePayload,
)
from .run import Run

__all__ = [
    "ActionAffordance",
    "StatusField",
    "StatusView",
    "enabled_actions",
    "progress_bar",
    "render_actions",
    "render_completion",
    "render_party",
    "render_queue",
    "render_status",
    "render_vote_actions",
]

ButtonTone = Literal["primary", "secondary", "success", "danger"]

STATUS_COLOUR = 0x8E44AD
COMPLETE_COLOUR = 0x9B59B6
FAILED_COLOUR = 0x992D22


@dataclass(frozen=True)
class StatusField:
    name: str
    value: str
    inline: bool = False


@dataclass
class StatusView:
    title: str
    description: str
    fields: List[StatusField] = field(default_factory=list)
    footer: Optional[str] = None
    colour: int = STATUS_COLOUR

    def add_field(self, name: str, value: str, *, inline: bool = False) -> None:
        self.fields.append(StatusField(name=name, value=value or "None", inline=inline))


@dataclass(frozen=True)
class ActionAffordance:
    action: str
    label: str
    tone: ButtonTone = "secondary"
    disabled: bool = False
    argument: Optional[str] = None


def progress_bar(current: int, total: int, width: int = 10) -> str:
    if total <= 0:
        return "░" * width
    filled = max(0, min(width, round(width * current / total)))
    return "█" * filled + "░" * (width - filled)


def render_party(run: Run) -> str:
    lines = []
    for player in run.party.values():
        marker = "💀" if player.incapacitated else "🧍"
        line = (
            f"{marker} **{player.username}** (Lv {player.level}) "
            f"❤️ {player.hp}/{player.max_hp} 💙 {player.mana}/{player.max_mana}"
        )
        if player.defending:
            line += " 🛡️"
        lines.append(line)
    return "\n".join(lines) or "Nobody remains."


def _enemy_lines(enemies: Iterable) -> str:
    lines = []
    for enemy in enemies:
        status = "💀" if not enemy.alive else f"HP: {enemy.hp}/{enemy.max_hp}"
        effects = ", ".join(f"{effect.type} ({effect.duration})" for effect in enemy.status_effects)
        line = f"{enemy.emoji} **{enemy.name}** ({status})"
        if effects:
            line += f" [{effects}]"
        lines.append(line)
    return "\n".join(lines)


def _room_detail(view: StatusView, room: Room) -> None:
    payload = room.payload
    if isinstance(payload, CombatPayload):
        view.add_field("Enemies", _enemy_lines(payload.enemies))
    elif isinstance(payload, BossPayload):
        view.add_field("Boss", _enemy_lines([payload.boss]))
    elif isinstance(payload, PreBossPayload):
        challenge = payload.challenge
        if challenge.engaged:
            view.add_field(challenge.name, _enemy_lines([challenge.enemy]))
        else:
            view.add_field(challenge.name, challenge.description)
    elif isinstance(payload, PuzzlePayload):
        state = payload.state
        value = payload.puzzle.question
        if payload.puzzle.type == "sequence":
            value += f"\nProgress: {len(state.sequence_progress)}/{len(payload.puzzle.solution)}"
        elif state.attempts:
            value += f"\nAttempts: {state.attempts}/{state.max_attempts}"
        view.add_field("Puzzle", value)
    elif isinstance(payload, TreasurePayload):
        if room.completed:
            view.add_field("Treasure", f"Claimed {payload.loot.coins} coins.")
        else:
            view.add_field("Treasure", "A cache glints in the dark. Claim it!")
    elif isinstance(payload, EventPayload):
        event = payload.event
        value = event.description
        if payload.choice is not None:
            value += f"\nChosen: {payload.choice.capitalize()}"
        view.add_field(event.name, value)


def render_status(run: Run) -> StatusView:
    """Build the status view for the run's current room."""

    room = run.current_room
    total = len(run.rooms)
    if room is None:
        view = StatusView(
            title=f"🏰 {run.dungeon.name}",
            description="The dungeon has been cleared." if run.status == "completed" else "The expedition has ended.",
            colour=COMPLETE_COLOUR if run.status == "completed" else FAILED_COLOUR,
        )
        view.add_field("Party", render_party(run))
        return view

    position = run.current_room_index + 1
    view = StatusView(
        title=f"🏰 {run.dungeon.name} | Room {position}/{total}",
        description=f"{room.emoji} **{room.name}**\n{room.description}",
    )
    if run.status == "failed":
        view.colour = FAILED_COLOUR
        view.description += "\n\n**The party has fallen.**"
    view.add_field("Party", render_party(run))
    _room_detail(view, room)
    if room.completed:
        view.add_field("Status", "✅ Room complete. Advance when ready.")
    if run.team_buffs:
        buffs = "\n".join(f"• {buff.name}: {buff.description}" for buff in run.team_buffs)
        view.add_field("Team Buffs", buffs)
    view.footer = f"Room {position} of {total} {progress_bar(position - 1, total)}"
    return view


def render_actions(run: Run) -> List[ActionAffordance]:
    """Return the legal action affordances for the current room.

    Navigation is always included: advance (enabled once the room is
    complete), complete (final room only) and leave.
    """

    room = run.current_room
    affordances: List[ActionAffordance] = []
    if room is None or not run.is_active:
        affordances.append(ActionAffordance("leave", "Leave", "danger"))
        return affordances

    payload = room.payload
    done = room.completed
    if isinstance(payload, (CombatPayload, BossPayload)) or (
        isinstance(payload, PreBossPayload) and payload.challenge.engaged
    ):
        affordances.extend(
            (
                ActionAffordance("attack", "Attack", "danger", disabled=done),
                ActionAffordance("ability", "Ability", "primary", disabled=done),
                ActionAffordance("defend", "Defend", "secondary", disabled=done),
            )
        )
    elif isinstance(payload, PreBossPayload):
        affordances.append(ActionAffordance("challenge", "Challenge", "danger", disabled=done))
    elif isinstance(payload, PuzzlePayload):
        affordances.append(ActionAffordance("solve", "Solve", "primary", disabled=done))
    elif isinstance(payload, TreasurePayload):
        affordances.append(ActionAffordance("claim", "Claim", "success", disabled=done))
    elif isinstance(payload, EventPayload):
        event = payload.event
        if event.type == "choice" and payload.presented and payload.choice is None:
            affordances.extend(
                ActionAffordance("event_choice", choice.capitalize(), "primary", argument=choice)
                for choice in event.choices
            )
        else:
            affordances.append(ActionAffordance("interact", "Interact", "primary", disabled=done))

    if run.on_final_room:
        affordances.append(ActionAffordance("complete", "Complete", "success", disabled=not done))
    else:
        affordances.append(ActionAffordance("advance", "Next Room", "success", disabled=not done))
    affordances.append(ActionAffordance("leave", "Leave", "danger"))
    return affordances


def enabled_actions(affordances: Sequence[ActionAffordance]) -> List[str]:
    return [item.action for item in affordances if not item.disabled]


def render_queue(queue: Queue) -> StatusView:
    dungeon = queue.dungeon
    view = StatusView(
        title=f"⏳ Queue: {dungeon.name}",
        description=dungeon.description or f"Waiting for adventurers ({queue.size}/{queue.max_size}).",
    )
    roster = "\n".join(
        f"{index}. {member.username}" for index, member in enumerate(queue.roster(), start=1)
    )
    view.add_field("Party", roster)
    requirements = f"Level {dungeon.min_level}+"
    if dungeon.biome:
        requirements += f" | Biome: {dungeon.biome}"
    view.add_field("Requirements", requirements, inline=True)
    view.add_field("Theme", dungeon.theme.capitalize(), inline=True)
    view.footer = f"{queue.size}/{queue.max_size} {progress_bar(queue.size, queue.max_size)}"
    if queue.ready:
        view.colour = COMPLETE_COLOUR
    return view


def render_completion(
    run: Run,
    rewards: Sequence[PlayerReward],
    *,
    level_ups: Sequence[str] = (),
    progress: Optional[VoteProgress] = None,
    window_seconds: Optional[int] = None,
) -> StatusView:
    view = StatusView(
        title="🎉 Dungeon Cleared!",
        description=f"Your party successfully completed **{run.dungeon.name}**!",
        colour=COMPLETE_COLOUR,
    )
    for reward in rewards:
        view.add_field(
            reward.username,
            f"XP: {reward.xp}\nCoins: {reward.coins}\nItems: {reward.item_summary()}",
            inline=True,
        )
    if level_ups:
        view.add_field("Level Ups", "\n".join(level_ups))
    if progress is not None:
        view.add_field(
            "Requeue Vote",
            f"Requeue: {progress.requeue} | Leave: {progress.leave} | Waiting: "
            f"{max(0, progress.eligible - progress.votes_cast)}",
        )
    if window_seconds is not None:
        view.footer = f"Vote within {window_seconds}s to queue again. Silence counts as leave."
    return view


def render_vote_actions() -> List[ActionAffordance]:
    return [
        ActionAffordance("requeue", "Requeue", "success"),
        ActionAffordance("leave_vote", "Leave", "danger"),
    ]
