import logging
import os

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config.config_loader import ConfigLoader
from utils.logging import get_logger, set_module_logging_level

# Initialize logger
logger = get_logger(__name__)

# Load environment variables
load_dotenv()

# Load configuration using ConfigLoader
config = ConfigLoader.load_config()

# Load sensitive information from .env
TOKEN = os.getenv("DISCORD_TOKEN")

# Configure intents - start from none and enable only what's required
intents = discord.Intents.none()
intents.guilds = True  # Required: Guild events, channels
intents.members = True  # Required: Member cache for moves and overwrites
intents.voice_states = True  # Required: Voice channel join/leave for AutoRoom
intents.presences = True  # Optional: "Playing" activity for the {game} placeholder

# List of initial extensions to load
initial_extensions = [
    "cogs.autoroom.events",
]


class MyBot(commands.Bot):
    """Bot with project-specific attributes and helpers."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        # Assign the entire config to the bot instance
        self.config = config
        self.services = None

    async def setup_hook(self) -> None:
        """Initialize services and load cogs."""
        autoroom_cfg = (self.config or {}).get("autoroom", {}) or {}
        if autoroom_cfg.get("debug_logging"):
            set_module_logging_level("services.autoroom", logging.DEBUG)
            logger.warning(
                "AutoRoom debug logging is ENABLED - this may log member names. "
                "Disable in production."
            )

        # Initialize services container
        from services.service_container import ServiceContainer

        self.services = ServiceContainer(self)
        await self.services.initialize()
        logger.info("ServiceContainer initialized")

        for extension in initial_extensions:
            try:
                await self.load_extension(extension)
                logger.info(f"Loaded extension: {extension}")
            except commands.ExtensionError as e:
                logger.exception(f"Failed to load extension {extension}", exc_info=e)
                raise

    async def on_ready(self) -> None:
        """Log connection details once the gateway is ready."""
        if self.user is None:
            return
        logger.info(
            f"Logged in as {self.user.name} (ID: {self.user.id}) "
            f"in {len(self.guilds)} guild(s)"
        )

    async def close(self) -> None:
        """Shut down services before closing the gateway connection."""
        logger.info("Shutting down bot")

        # Cleanup services
        if self.services:
            try:
                await self.services.cleanup()
                logger.info("Services cleaned up")
            except Exception as e:
                logger.exception("Error cleaning up services", exc_info=e)

        # Call parent close
        await super().close()


def main() -> None:
    """Run the bot until interrupted."""
    if not TOKEN:
        logger.critical("DISCORD_TOKEN not found in environment variables.")
        raise ValueError("DISCORD_TOKEN not set.")

    bot = MyBot(command_prefix=commands.when_mentioned, intents=intents)
    bot.run(TOKEN, log_handler=None)


if __name__ == "__main__":
    main()
