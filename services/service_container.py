"""
Service Container

Central registry for all bot services providing dependency injection and service lifecycle management.
"""

from typing import TYPE_CHECKING, Optional

from helpers.discord_api import DiscordVoicePlatform, VoicePlatform
from utils.logging import get_logger

from .autoroom_service import AutoRoomService
from .base import BaseService
from .config_service import ConfigService

if TYPE_CHECKING:
    from discord.ext.commands import Bot


class ServiceContainer:
    """
    Central container for managing all bot services.

    Provides a centralized access point for services throughout the bot,
    handles initialization order, and manages service dependencies.
    """

    def __init__(
        self,
        bot: Optional["Bot"] = None,
        platform: VoicePlatform | None = None,
        *,
        test_mode: bool = False,
    ) -> None:
        self.logger = get_logger("services.container")
        self.bot = bot
        self.platform = platform
        self.test_mode = test_mode
        self._config: ConfigService | None = None
        self._autoroom: AutoRoomService | None = None
        self._initialized = False

    @property
    def config(self) -> ConfigService:
        """Get the configuration service."""
        if self._config is None:
            raise RuntimeError("ConfigService not initialized")
        return self._config

    @property
    def autoroom(self) -> AutoRoomService:
        """Get the AutoRoom service."""
        if self._autoroom is None:
            raise RuntimeError("AutoRoomService not initialized")
        return self._autoroom

    def get_all_services(self) -> list[BaseService]:
        """Get all initialized services for health monitoring."""
        return [s for s in (self._config, self._autoroom) if s is not None]

    async def initialize(self) -> None:
        """Initialize all services in dependency order."""
        if self._initialized:
            self.logger.warning("ServiceContainer already initialized")
            return

        try:
            self.logger.info("Initializing services")

            # Config first (no dependencies)
            self._config = ConfigService()
            await self._config.initialize()
            self.logger.debug("ConfigService initialized")

            # AutoRoom depends on config and the Discord platform
            if self.platform is None:
                if not self.bot:
                    raise RuntimeError("Bot instance required for DiscordVoicePlatform")
                self.platform = DiscordVoicePlatform(self.bot)
            self._autoroom = AutoRoomService(
                self._config, self.platform, test_mode=self.test_mode
            )
            await self._autoroom.initialize()
            self.logger.debug("AutoRoomService initialized")

            self._initialized = True
            self.logger.info("All services initialized successfully")

        except Exception as e:
            self.logger.exception("Failed to initialize services", exc_info=e)
            raise

    async def health_check(self) -> dict[str, dict]:
        """Collect health information from every service."""
        return {
            service.name: await service.health_check()
            for service in self.get_all_services()
        }

    async def cleanup(self) -> None:
        """Clean up all services in reverse dependency order."""
        if not self._initialized:
            return

        self.logger.info("Cleaning up services")

        if self._autoroom:
            await self._autoroom.shutdown()
            self._autoroom = None

        if self._config:
            await self._config.shutdown()
            self._config = None

        self._initialized = False
        self.logger.info("Services cleaned up")
