"""Entry point for the Delve dungeon bot."""

import logging
import os
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv

log = logging.getLogger("delve.bot")

DEFAULT_LOG_LEVEL = "INFO"


def configure_logging(level_name: str | None = None) -> None:
    level = logging.getLevelName((level_name or DEFAULT_LOG_LEVEL).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def get_cog_module_names(cogs_path: Path) -> list[str]:
    module_names: list[str] = []
    for path in sorted(cogs_path.glob("*.py")):
        if path.name.startswith("__"):
            continue
        module_names.append(f"cogs.{path.stem}")
    return module_names


def load_environment() -> str:
    """Load ``.env`` and return the Discord token.

    ``DELVE_DATA_PATH`` and ``DELVE_LOG_LEVEL`` are optional and read by the
    components that need them.
    """

    load_dotenv()
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise RuntimeError(
            "DISCORD_TOKEN environment variable is required. "
            "Set it in the .env file before starting the bot."
        )
    return token


async def load_cogs(bot: commands.Bot, cogs_path: Path) -> None:
    for module_name in get_cog_module_names(cogs_path):
        await bot.load_extension(module_name)
        log.info("Loaded cog: %s", module_name)


class DelveBot(commands.Bot):
    """Bot that only exposes slash (application) commands."""

    def __init__(self) -> None:
        intents = discord.Intents.default()
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
        )
        self._cogs_path = Path(__file__).parent / "cogs"

    async def setup_hook(self) -> None:  # type: ignore[override]
        await load_cogs(self, self._cogs_path)
        synced_commands = await self.tree.sync()
        log.info("Synced %s application commands", len(synced_commands))

    async def on_ready(self) -> None:
        log.info("Logged in as %s", self.user)

    async def process_commands(self, message: discord.Message) -> None:  # type: ignore[override]
        """Prefix commands are not supported."""
        return


def create_bot() -> commands.Bot:
    return DelveBot()


def main() -> None:
    token = load_environment()
    configure_logging(os.getenv("DELVE_LOG_LEVEL"))
    bot = create_bot()

    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        log.info("Shutting down bot")


if __name__ == "__main__":
    main()
