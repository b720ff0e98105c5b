"""Dungeon queue commands and run interaction views."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

from delve.content import DungeonCatalog
from delve.dungeon.render import (
    ActionAffordance,
    StatusView,
    render_actions,
    render_completion,
    render_queue,
    render_status,
    render_vote_actions,
)
from delve.dungeon.rewards import RequeueOutcome
from delve.dungeon.run import Run
from delve.errors import DungeonError
from delve.players import PlayerRepository
from delve.queues import Queue
from delve.service import DelveService, RunCompletion

log = logging.getLogger(__name__)

CUSTOM_ID_PREFIX = "delve"
BUTTON_STYLES: Dict[str, discord.ButtonStyle] = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


def _default_data_path() -> Path:
    override = os.getenv("DELVE_DATA_PATH")
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "data"


def build_custom_id(action: str, run_id: str, argument: Optional[str] = None) -> str:
    parts = [CUSTOM_ID_PREFIX, action, run_id]
    if argument:
        parts.append(argument)
    return ":".join(parts)


def to_embed(view: StatusView) -> discord.Embed:
    embed = discord.Embed(
        title=view.title,
        description=view.description,
        colour=discord.Colour(view.colour),
    )
    for status_field in view.fields:
        embed.add_field(name=status_field.name, value=status_field.value, inline=status_field.inline)
    if view.footer:
        embed.set_footer(text=view.footer)
    return embed


class RunActionView(discord.ui.View):
    """Buttons for the actions that are legal in the run's current room."""

    def __init__(self, cog: "DungeonCog", run: Run) -> None:
        super().__init__(timeout=None)
        self.cog = cog
        self.run_id = run.id
        for affordance in render_actions(run):
            self._add_action_button(affordance)

    def _add_action_button(self, affordance: ActionAffordance) -> None:
        button = discord.ui.Button(
            label=affordance.label,
            style=BUTTON_STYLES.get(affordance.tone, discord.ButtonStyle.secondary),
            custom_id=build_custom_id(affordance.action, self.run_id, affordance.argument),
            disabled=affordance.disabled,
        )
        button.callback = self._make_callback(affordance.action, affordance.argument)
        self.add_item(button)

    def _make_callback(
        self, action: str, argument: Optional[str]
    ) -> Callable[[discord.Interaction], Awaitable[None]]:
        async def _callback(interaction: discord.Interaction) -> None:
            await self.cog.handle_action(interaction, self.run_id, action, argument)

        return _callback


class RequeueView(discord.ui.View):
    """Requeue or leave buttons shown on the completion summary."""

    def __init__(self, cog: "DungeonCog", run_id: str) -> None:
        super().__init__(timeout=None)
        self.cog = cog
        self.run_id = run_id
        for affordance in render_vote_actions():
            choice = "requeue" if affordance.action == "requeue" else "leave"
            button = discord.ui.Button(
                label=affordance.label,
                style=BUTTON_STYLES.get(affordance.tone, discord.ButtonStyle.secondary),
                custom_id=build_custom_id("vote", run_id, choice),
            )
            button.callback = self._make_callback(choice)
            self.add_item(button)

    def _make_callback(self, choice: str) -> Callable[[discord.Interaction], Awaitable[None]]:
        async def _callback(interaction: discord.Interaction) -> None:
            await self.cog.handle_vote(interaction, self.run_id, choice)

        return _callback


class DungeonCog(commands.Cog):
    """Slash commands to queue for dungeons and play through runs."""

    dungeon_group = app_commands.Group(name="dungeon", description="Procedural dungeon runs")

    def __init__(self, bot: commands.Bot, *, data_path: Optional[Path] = None) -> None:
        self.bot = bot
        self.data_path = data_path or _default_data_path()
        self.catalog = DungeonCatalog.load_or_empty(self.data_path)
        self.players = PlayerRepository(self.data_path / "players.json")
        self.service = DelveService(
            self.catalog,
            self.players,
            on_requeue_resolved=self._handle_requeue_resolved,
        )
        self._completions: Dict[str, RunCompletion] = {}
        self._completion_messages: Dict[str, tuple[int, int]] = {}

    async def cog_unload(self) -> None:  # noqa: D401 - discord.py hook
        await self.service.shutdown()
        try:
            self.bot.tree.remove_command(
                self.dungeon_group.name,
                type=discord.AppCommandType.chat_input,
            )
        except (app_commands.CommandTreeException, KeyError):
            pass

    # ------------------------------------------------------------------
    async def _send_ephemeral_message(
        self, interaction: discord.Interaction, message: str
    ) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    def _resolve_channel(self, channel_id: Optional[int]) -> Optional[discord.abc.Messageable]:
        if channel_id is None:
            return None
        channel = self.bot.get_channel(channel_id)
        if channel is None or not hasattr(channel, "send"):
            return None
        return channel  # type: ignore[return-value]

    async def _announce(self, channel_id: Optional[int], content: str) -> None:
        channel = self._resolve_channel(channel_id)
        if channel is None:
            return
        try:
            await channel.send(content)
        except discord.HTTPException:
            log.warning("Failed to send announcement to channel %s", channel_id)

    async def _post_run_message(self, run: Run) -> None:
        channel = self._resolve_channel(run.channel_id)
        if channel is None:
            log.warning("Run %s has no reachable channel; it cannot be rendered", run.id)
            return
        mentions = " ".join(f"<@{player_id}>" for player_id in run.party)
        try:
            message = await channel.send(
                content=f"{mentions} your party enters **{run.dungeon.name}**!",
                embed=to_embed(render_status(run)),
                view=RunActionView(self, run),
            )
        except discord.HTTPException:
            log.warning("Failed to post run message for %s", run.id)
            return
        try:
            await self.service.attach_message(run.id, message.id)
        except DungeonError:
            log.debug("Run %s ended before its message was attached", run.id)

    async def _refresh_run_message(self, interaction: discord.Interaction, run: Run) -> None:
        if run.message_id is None:
            return
        view = RunActionView(self, run) if run.is_active else None
        try:
            await interaction.followup.edit_message(
                message_id=run.message_id,
                embed=to_embed(render_status(run)),
                view=view,
            )
        except discord.HTTPException:
            log.warning("Failed to refresh run message %s for %s", run.message_id, run.id)

    async def _launch(self, queue: Queue) -> None:
        try:
            run = await self.service.launch(queue.id)
        except DungeonError as exc:
            log.warning("Could not launch queue %s: %s", queue.id, exc)
            return
        await self._post_run_message(run)

    # -- interactions -------------------------------------------------------
    async def handle_action(
        self,
        interaction: discord.Interaction,
        run_id: str,
        action: str,
        argument: Optional[str] = None,
    ) -> None:
        try:
            result = await self.service.perform(run_id, interaction.user.id, action, argument)
        except DungeonError as exc:
            await self._send_ephemeral_message(interaction, f"❌ {exc}")
            return

        outcome = result.outcome
        await self._send_ephemeral_message(interaction, outcome.message)
        if outcome.announcement:
            await self._announce(result.run.channel_id, outcome.announcement)

        if result.completion is not None:
            await self._show_completion(interaction, result.completion)
            return
        await self._refresh_run_message(interaction, result.run)

    async def _show_completion(
        self, interaction: discord.Interaction, completion: RunCompletion
    ) -> None:
        run = completion.run
        self._completions[run.id] = completion
        window = int(self.service.coordinator.window.total_seconds())
        embed = to_embed(
            render_completion(
                run,
                completion.rewards,
                level_ups=completion.level_ups,
                progress=completion.progress,
                window_seconds=window,
            )
        )
        if run.message_id is None:
            return
        if run.channel_id is not None:
            self._completion_messages[run.id] = (run.channel_id, run.message_id)
        try:
            await interaction.followup.edit_message(
                message_id=run.message_id,
                embed=embed,
                view=RequeueView(self, run.id),
            )
        except discord.HTTPException:
            log.warning("Failed to render completion for run %s", run.id)

    async def handle_vote(
        self, interaction: discord.Interaction, run_id: str, choice: str
    ) -> None:
        try:
            progress, outcome = await self.service.vote(run_id, interaction.user.id, choice)
        except DungeonError as exc:
            await self._send_ephemeral_message(interaction, f"❌ {exc}")
            return
        label = "requeue" if choice == "requeue" else "leave"
        await self._send_ephemeral_message(
            interaction,
            f"Vote recorded: {label} ({progress.votes_cast}/{progress.eligible}).",
        )
        completion = self._completions.get(run_id)
        if outcome is None and completion is not None and completion.run.message_id is not None:
            completion.progress = progress
            window = int(self.service.coordinator.window.total_seconds())
            try:
                await interaction.followup.edit_message(
                    message_id=completion.run.message_id,
                    embed=to_embed(
                        render_completion(
                            completion.run,
                            completion.rewards,
                            level_ups=completion.level_ups,
                            progress=progress,
                            window_seconds=window,
                        )
                    ),
                    view=RequeueView(self, run_id),
                )
            except discord.HTTPException:
                log.warning("Failed to refresh vote tally for run %s", run_id)

    async def _handle_requeue_resolved(self, outcome: RequeueOutcome) -> None:
        self._completions.pop(outcome.run_id, None)
        location = self._completion_messages.pop(outcome.run_id, None)
        if location is not None:
            channel = self._resolve_channel(location[0])
            if isinstance(channel, discord.abc.Messageable) and hasattr(channel, "get_partial_message"):
                try:
                    await channel.get_partial_message(location[1]).edit(view=None)  # type: ignore[attr-defined]
                except discord.HTTPException:
                    log.warning("Failed to close vote buttons for run %s", outcome.run_id)

        result = outcome.queue_result
        if result is None:
            return
        queue = result.queue
        mentions = " ".join(f"<@{player_id}>" for player_id in result.added)
        summary = f"{mentions} queued again for **{queue.dungeon.name}** ({queue.size}/{queue.max_size})."
        if result.overflow:
            summary += " The queue was full for: " + " ".join(f"<@{pid}>" for pid in result.overflow)
        await self._announce(queue.channel_id, summary)
        if outcome.launch_ready:
            await self._launch(queue)

    # -- commands -----------------------------------------------------------
    @dungeon_group.command(name="list", description="Show the dungeons you can queue for.")
    async def list_dungeons(self, interaction: discord.Interaction) -> None:
        dungeons = self.catalog.dungeons.values()
        if not dungeons:
            await interaction.response.send_message(
                "No dungeons are available right now.", ephemeral=True
            )
            return
        lines = []
        for dungeon in sorted(dungeons, key=lambda entry: entry.min_level):
            location = f" | {dungeon.biome}" if dungeon.biome else ""
            lines.append(f"**{dungeon.name}** (`{dungeon.id}`) | Level {dungeon.min_level}+{location}")
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @dungeon_group.command(name="queue", description="Join the queue for a dungeon.")
    @app_commands.describe(dungeon="Dungeon id or name. Defaults to the best one for your level.")
    async def queue(self, interaction: discord.Interaction, dungeon: Optional[str] = None) -> None:
        try:
            status, queue = await self.service.enqueue(
                interaction.user.id,
                interaction.user.display_name,
                dungeon,
                guild_id=interaction.guild_id,
                channel_id=interaction.channel_id,
            )
        except DungeonError as exc:
            await self._send_ephemeral_message(interaction, f"❌ {exc}")
            return

        if status == "exists":
            prefix = "You are already in this queue."
        else:
            prefix = f"You joined the queue for **{queue.dungeon.name}**."
        await interaction.response.send_message(
            prefix, embed=to_embed(render_queue(queue)), ephemeral=status == "exists"
        )
        if queue.ready:
            await self._launch(queue)

    @dungeon_group.command(name="leave", description="Leave your dungeon queue.")
    async def leave(self, interaction: discord.Interaction) -> None:
        try:
            queue, deleted = await self.service.leave_queue(interaction.user.id)
        except DungeonError as exc:
            await self._send_ephemeral_message(interaction, f"❌ {exc}")
            return
        message = f"You left the queue for **{queue.dungeon.name}**."
        if deleted:
            message += " The queue is now empty and has been closed."
        await interaction.response.send_message(message, ephemeral=True)

    @dungeon_group.command(name="status", description="Show your queue or active run.")
    async def status(self, interaction: discord.Interaction) -> None:
        queue = await self.service.queue_status(interaction.user.id)
        if queue is not None:
            await interaction.response.send_message(
                embed=to_embed(render_queue(queue)), ephemeral=True
            )
            return
        run = self.service.sessions.run_for_player(interaction.user.id)
        if run is not None:
            await interaction.response.send_message(
                embed=to_embed(render_status(run)), ephemeral=True
            )
            return
        await interaction.response.send_message("You are not queued.", ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    cog = DungeonCog(bot)
    await bot.add_cog(cog)
    existing = bot.tree.get_command(
        cog.dungeon_group.name,
        type=discord.AppCommandType.chat_input,
    )
    if existing is not None:
        bot.tree.remove_command(
            cog.dungeon_group.name,
            type=discord.AppCommandType.chat_input,
        )
    bot.tree.add_command(cog.dungeon_group)
