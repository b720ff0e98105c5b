"""Validate and execute player actions against the current room."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

from delve.errors import (
    ActionCooldown,
    AlreadyChosen,
    AlreadyClaimed,
    InsufficientMana,
    NoChoiceRequired,
    PlayerIncapacitated,
    RoomAlreadyCompleted,
    TooManyAttempts,
    UnknownAction,
    WrongRoomType,
)

from .arithmetic import ExpressionError, evaluate, extract_expression, format_number
from .combat import (
    ABILITY_CRIT_BONUS,
    ABILITY_MANA_COST,
    ABILITY_VARIANCE,
    ATTACK_VARIANCE,
    Counterattack,
    ability_base_damage,
    attack_base_damage,
    choose_counterattacker,
    first_living,
    resolve_counterattack,
    roll_damage,
    roll_status_effect,
    tick_status_effects,
)
from .rooms import (
    BossPayload,
    CombatPayload,
    Enemy,
    EventPayload,
    ItemDrop,
    PreBossPayload,
    Puzzle,
    PuzzlePayload,
    Room,
    RoomRewards,
    TreasurePayload,
)
from .run import PlayerState, Run, TeamBuff

__all__ = [
    "ACTIONS",
    "ACTION_COOLDOWN",
    "ActionOutcome",
    "ActionResolver",
    "DEFEND_WINDOW",
    "PUZZLE_REWARDS",
]

log = logging.getLogger(__name__)

ACTION_COOLDOWN = timedelta(seconds=1)
DEFEND_WINDOW = timedelta(seconds=5)

ACTIONS = (
    "attack",
    "ability",
    "defend",
    "solve",
    "claim",
    "interact",
    "event_choice",
    "challenge",
    "advance",
    "complete",
    "leave",
)

# (base xp, xp per difficulty, base coins, coins per difficulty)
PUZZLE_REWARDS: Mapping[str, tuple[int, int, int, int]] = {
    "sequence": (75, 25, 50, 20),
    "riddle": (100, 30, 60, 25),
    "math": (60, 20, 40, 15),
    "pattern": (80, 25, 55, 20),
}

EVENT_REWARDS: Mapping[str, tuple[int, int]] = {
    "heal": (30, 20),
    "buff": (40, 25),
    "loot_bonus": (50, 40),
}
COMBAT_BONUS_COINS = 30

SHRINE_BLESSING = TeamBuff(
    name="Shrine Blessing",
    description="A powerful blessing from the shrine.",
    power=20,
    defense=10,
)


@dataclass
class ActionOutcome:
    """Result of one resolved action.

    ``message`` is shown to the acting player. ``announcement`` is an
    optional public line for the whole channel.
    """

    action: str
    message: str
    announcement: Optional[str] = None
    damage: int = 0
    critical: bool = False
    counterattack: Optional[Counterattack] = None
    room_completed: bool = False
    run_completed: bool = False
    run_failed: bool = False
    party_empty: bool = False
    choices: tuple[str, ...] = ()
    rewards: Optional[RoomRewards] = None


def _combat_rewards(enemies: List[Enemy]) -> RoomRewards:
    return RoomRewards(
        xp=sum(enemy.xp for enemy in enemies),
        coins=sum(enemy.coins for enemy in enemies),
    )


def puzzle_rewards(puzzle: Puzzle) -> RoomRewards:
    base_xp, xp_step, base_coins, coin_step = PUZZLE_REWARDS[puzzle.type]
    difficulty = puzzle.difficulty or 1
    return RoomRewards(xp=base_xp + difficulty * xp_step, coins=base_coins + difficulty * coin_step)


def expected_answer(puzzle: Puzzle) -> str:
    """Return the canonical answer, computing it for math puzzles."""

    if puzzle.type == "math":
        try:
            return format_number(evaluate(extract_expression(puzzle.question)))
        except ExpressionError:
            log.warning("Math puzzle has an unparseable question: %s", puzzle.question)
    return puzzle.solution[0]


def answer_matches(puzzle: Puzzle, answer: str) -> bool:
    candidate = answer.strip().lower()
    if not candidate:
        return False
    if puzzle.type in ("math", "pattern"):
        try:
            value = evaluate(candidate)
            target = float(expected_answer(puzzle))
        except (ExpressionError, ValueError):
            return False
        return math.isclose(value, target)
    return candidate in {option.lower() for option in puzzle.solution}


class ActionResolver:
    """Dispatch player action keywords to room handlers.

    Handlers mutate the run in place and return an :class:`ActionOutcome`.
    Index bookkeeping for players leaving or runs ending is left to the
    caller.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        cooldown: timedelta = ACTION_COOLDOWN,
        defend_window: timedelta = DEFEND_WINDOW,
    ) -> None:
        self._rng = rng or random.Random()
        self.cooldown = cooldown
        self.defend_window = defend_window
        self._handlers: Dict[str, Callable[..., ActionOutcome]] = {
            "attack": self._handle_combat,
            "ability": self._handle_combat,
            "defend": self._handle_combat,
            "solve": self._handle_solve,
            "claim": self._handle_claim,
            "interact": self._handle_interact,
            "event_choice": self._handle_event_choice,
            "challenge": self._handle_challenge,
            "advance": self._handle_advance,
            "complete": self._handle_complete,
        }

    def perform(
        self,
        run: Run,
        player_id: int,
        action: str,
        argument: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ActionOutcome:
        current_time = now or datetime.now(timezone.utc)
        keyword = action.strip().lower()
        player = run.member(player_id)
        if keyword == "leave":
            return self._handle_leave(run, player)
        handler = self._handlers.get(keyword)
        if handler is None:
            raise UnknownAction(f"Unknown action '{action}'.")
        run.ensure_active()
        room = run.current_room
        if room is None:  # pragma: no cover - an active run always has a room
            raise WrongRoomType("There is no room to act in.")
        return handler(run, room, player, keyword, argument, current_time)

    # -- combat -------------------------------------------------------------
    def _handle_combat(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        payload = room.payload
        if not isinstance(payload, (CombatPayload, BossPayload, PreBossPayload)):
            raise WrongRoomType("This is not a combat room.")
        if isinstance(payload, PreBossPayload) and not payload.challenge.engaged:
            raise WrongRoomType("Challenge the Elite Guardian before fighting it.")
        if player.incapacitated:
            raise PlayerIncapacitated()
        remaining = player.cooldown_remaining(now, self.cooldown)
        if remaining > 0:
            raise ActionCooldown(remaining)

        enemies = room.combat_targets()
        target = first_living(enemies)
        if room.completed or target is None:
            room.mark_completed(_combat_rewards(enemies))
            return ActionOutcome(
                action=action,
                message="This room is already cleared!",
                room_completed=True,
                rewards=room.rewards,
            )

        if action == "defend":
            player.defending = True
            player.defend_until = now + self.defend_window
            player.last_action_at = now
            seconds = int(self.defend_window.total_seconds())
            return ActionOutcome(
                action=action,
                message=f"You brace for the next attack. Incoming damage halved for {seconds} seconds.",
            )

        crit_chance = run.crit_bonus
        if action == "ability":
            if player.mana < ABILITY_MANA_COST:
                raise InsufficientMana(ABILITY_MANA_COST, player.mana)
            base = ability_base_damage(player.level, run.power_bonus)
            roll = roll_damage(base, ABILITY_VARIANCE, crit_chance + ABILITY_CRIT_BONUS, rng=self._rng)
            player.mana = max(0, player.mana - ABILITY_MANA_COST)
            verb = "You unleash a critical ability" if roll.critical else "You use an ability"
        else:
            base = attack_base_damage(player.level, run.power_bonus)
            roll = roll_damage(base, ATTACK_VARIANCE, crit_chance, rng=self._rng)
            verb = "You land a critical hit" if roll.critical else "You attack"
        player.last_action_at = now

        burned = tick_status_effects(target)
        target.hp = max(0, target.hp - roll.damage)
        player.damage_dealt += roll.damage
        player.actions_taken += 1

        parts = [f"{verb} {target.name} for **{roll.damage}** damage"]
        if burned:
            parts.append(f"(burn deals {burned} more)")
        if action == "ability" and target.alive:
            effect = roll_status_effect(roll.damage, self._rng)
            if effect is not None:
                target.status_effects.append(effect)
                parts.append(f"and inflict {effect.type}")
        message = " ".join(parts) + "!"
        if target.alive:
            message += f" {target.name} has {target.hp}/{target.max_hp} HP remaining."
        else:
            message += f" {target.name} is defeated!"

        outcome = ActionOutcome(action=action, message=message, damage=roll.damage, critical=roll.critical)

        attacker = choose_counterattacker(target, enemies)
        if attacker is not None:
            if attacker.has_effect("stun"):
                outcome.message += f" {attacker.name} is stunned and cannot strike back."
            else:
                counter = resolve_counterattack(
                    attacker,
                    list(run.party.values()),
                    now=now,
                    defense_bonus=run.defense_bonus,
                    rng=self._rng,
                )
                if counter is not None:
                    outcome.counterattack = counter
                    if counter.target_id == player.player_id:
                        outcome.message += f" {attacker.name} counterattacks for {counter.damage} damage!"
                    else:
                        outcome.message += (
                            f" {attacker.name} strikes <@{counter.target_id}> for {counter.damage} damage!"
                        )

        if first_living(enemies) is None:
            room.mark_completed(_combat_rewards(enemies))
            outcome.room_completed = True
            outcome.rewards = room.rewards
            outcome.announcement = "**Room Cleared!** All enemies defeated!"
        elif run.all_incapacitated():
            run.mark_failed()
            outcome.run_failed = True
            outcome.announcement = "The party has fallen. The dungeon claims another expedition."
        return outcome

    # -- puzzle -------------------------------------------------------------
    def _handle_solve(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        payload = room.payload
        if not isinstance(payload, PuzzlePayload):
            raise WrongRoomType("This is not a puzzle room.")
        puzzle = payload.puzzle
        state = payload.state
        if state.solved or room.completed:
            raise RoomAlreadyCompleted("This puzzle has already been solved!")

        if puzzle.type == "sequence":
            # Presses are counted, not checked against the announced order.
            state.sequence_progress.append(player.player_id)
            needed = len(puzzle.solution)
            if len(state.sequence_progress) < needed:
                return ActionOutcome(
                    action=action,
                    message=f"Sequence progress: {len(state.sequence_progress)}/{needed}. Continue the sequence!",
                )
            return self._solve_puzzle(
                room,
                payload,
                action,
                f"Your team followed the sequence: {' → '.join(puzzle.solution)}",
            )

        if state.attempts >= state.max_attempts:
            raise TooManyAttempts(puzzle.hint)
        state.attempts += 1
        if argument is not None and not answer_matches(puzzle, argument):
            left = state.max_attempts - state.attempts
            if left <= 0:
                raise TooManyAttempts(puzzle.hint)
            return ActionOutcome(
                action=action,
                message=f"That is not right. {left} attempt{'s' if left != 1 else ''} left.",
            )
        return self._solve_puzzle(
            room,
            payload,
            action,
            f"The answer was **{expected_answer(puzzle)}**.",
        )

    @staticmethod
    def _solve_puzzle(room: Room, payload: PuzzlePayload, action: str, detail: str) -> ActionOutcome:
        payload.state.solved = True
        room.mark_completed(puzzle_rewards(payload.puzzle))
        return ActionOutcome(
            action=action,
            message=f"Puzzle solved! {detail}",
            room_completed=True,
            rewards=room.rewards,
        )

    # -- treasure -----------------------------------------------------------
    def _handle_claim(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        payload = room.payload
        if not isinstance(payload, TreasurePayload):
            raise WrongRoomType("This is not a treasure room.")
        if room.completed:
            raise AlreadyClaimed()
        loot = payload.loot
        room.mark_completed(RoomRewards(coins=loot.coins, items=list(loot.items)))
        message = f"Treasure claimed! You found {loot.coins} coins."
        if loot.items:
            message += " Items: " + ", ".join(item.label() for item in loot.items) + "."
        return ActionOutcome(action=action, message=message, room_completed=True, rewards=room.rewards)

    # -- events -------------------------------------------------------------
    def _handle_interact(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        payload = room.payload
        if not isinstance(payload, EventPayload):
            raise WrongRoomType("This is not an event room.")
        if room.completed:
            raise RoomAlreadyCompleted("This event has already run its course.")
        event = payload.event

        if event.type == "choice":
            payload.presented = True
            options = ", ".join(choice.capitalize() for choice in event.choices)
            return ActionOutcome(
                action=action,
                message=f"{event.name}: Choose your reward! ({options})",
                choices=tuple(event.choices),
            )

        if event.type == "heal":
            for member in run.party.values():
                healed = math.floor(member.max_hp * event.heal_percent)
                member.hp = min(member.max_hp, member.hp + healed)
                if event.restore_mana:
                    member.mana = member.max_mana
            xp, coins = EVENT_REWARDS["heal"]
            message = f"{event.name}: Your party has been healed!"
            if event.restore_mana:
                message += " Mana fully restored!"
        else:
            spec = event.buff
            if spec is not None:
                run.add_buff(TeamBuff.from_spec(event.name, event.description, spec))
            if event.type == "combat_bonus":
                xp, coins = event.xp_bonus, COMBAT_BONUS_COINS
                message = f"{event.name}: Your team gained combat experience and bonuses!"
            elif event.type == "loot_bonus":
                xp, coins = EVENT_REWARDS["loot_bonus"]
                message = f"{event.name}: Your team's loot discovery has been enhanced!"
            else:
                xp, coins = EVENT_REWARDS["buff"]
                power = spec.power if spec else 0
                message = f"{event.name}: Your team received a buff! Power: +{power}"
                if spec is not None and spec.defense:
                    message += f", Defense: +{spec.defense}"
        room.mark_completed(RoomRewards(xp=xp, coins=coins))
        return ActionOutcome(action=action, message=message, room_completed=True, rewards=room.rewards)

    def _handle_event_choice(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        payload = room.payload
        if not isinstance(payload, EventPayload):
            raise WrongRoomType("This is not an event room.")
        event = payload.event
        if event.type != "choice":
            raise NoChoiceRequired()
        if payload.choice is not None:
            raise AlreadyChosen()
        choice = (argument or "").strip().lower()
        if choice not in event.choices:
            options = ", ".join(event.choices)
            raise UnknownAction(f"Pick one of: {options}.")

        if choice == "coins":
            coins = 100 + room.difficulty * 50
            rewards = RoomRewards(xp=20, coins=coins)
            message = f"You chose coins! Received {coins} coins."
        elif choice == "item":
            loot = run.dungeon.loot_tables()
            if loot:
                entry = self._rng.choice(loot)
                drop = ItemDrop(entry.item, self._rng.randint(entry.min, entry.max))
                rewards = RoomRewards(xp=30, items=[drop])
                message = f"You chose an item! Received {drop.label()}."
            else:
                rewards = RoomRewards(xp=30, coins=50)
                message = "You chose an item! Received 50 coins instead."
        else:
            run.add_buff(SHRINE_BLESSING)
            rewards = RoomRewards(xp=40)
            message = "You chose a buff! Your team received a powerful blessing!"
        payload.choice = choice  # type: ignore[assignment]
        room.mark_completed(rewards)
        return ActionOutcome(action=action, message=message, room_completed=True, rewards=room.rewards)

    # -- pre-boss -----------------------------------------------------------
    def _handle_challenge(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        payload = room.payload
        if not isinstance(payload, PreBossPayload):
            raise WrongRoomType("This is not the pre-boss chamber.")
        if room.completed:
            raise RoomAlreadyCompleted("The guardian has already been defeated.")
        challenge = payload.challenge
        if not challenge.enemy.alive:
            room.mark_completed(_combat_rewards([challenge.enemy]))
            return ActionOutcome(
                action=action,
                message="Pre-boss challenge completed! You may now proceed to the boss.",
                room_completed=True,
                rewards=room.rewards,
            )
        if challenge.engaged:
            return ActionOutcome(action=action, message=f"{challenge.name} is already engaged. Fight!")
        challenge.engaged = True
        return ActionOutcome(
            action=action,
            message=f"{challenge.name} engaged! Use combat actions to defeat it.",
        )

    # -- navigation ---------------------------------------------------------
    def _handle_advance(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        next_room = run.advance_room()
        if next_room is None:
            return ActionOutcome(
                action=action,
                message=f"{run.dungeon.name} has been cleared!",
                run_completed=True,
            )
        return ActionOutcome(action=action, message=f"Your party moves on to {next_room.name}.")

    def _handle_complete(
        self,
        run: Run,
        room: Room,
        player: PlayerState,
        action: str,
        argument: Optional[str],
        now: datetime,
    ) -> ActionOutcome:
        if not run.on_final_room:
            raise UnknownAction("The dungeon can only be completed from its final room.")
        return self._handle_advance(run, room, player, action, argument, now)

    def _handle_leave(self, run: Run, player: PlayerState) -> ActionOutcome:
        run.remove_player(player.player_id)
        return ActionOutcome(
            action="leave",
            message="You have left the dungeon.",
            party_empty=not run.party,
        )
