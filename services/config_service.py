"""Configuration service for per-guild settings and global configuration."""

import asyncio
import copy
from typing import Any

from config.config_loader import ConfigLoader
from services.db.database import Database
from services.db.repository import GuildSettingsRepository
from utils.errors import PolicyMissing
from utils.types import TenantPolicy

from .base import BaseService

# -----------------------------------------------------------------------------
# AutoRoom configuration keys (centralized constants)
# -----------------------------------------------------------------------------

AUTOROOM_PREFIX = "autoroom."

CONFIG_AUTOROOM_CREATOR = "autoroom.creator_channel_id"
CONFIG_AUTOROOM_CATEGORY = "autoroom.category_id"
CONFIG_AUTOROOM_NAME_TEMPLATE = "autoroom.name_template"
CONFIG_AUTOROOM_CAPACITY = "autoroom.capacity"
CONFIG_AUTOROOM_BITRATE = "autoroom.bitrate"
CONFIG_AUTOROOM_PRIVATE = "autoroom.is_private"
CONFIG_AUTOROOM_CLEANUP = "autoroom.cleanup_grace_minutes"

POLICY_KEYS = (
    CONFIG_AUTOROOM_CREATOR,
    CONFIG_AUTOROOM_CATEGORY,
    CONFIG_AUTOROOM_NAME_TEMPLATE,
    CONFIG_AUTOROOM_CAPACITY,
    CONFIG_AUTOROOM_BITRATE,
    CONFIG_AUTOROOM_PRIVATE,
    CONFIG_AUTOROOM_CLEANUP,
)

# Keys that only make sense per guild and must never come from global defaults
GUILD_ONLY_KEYS = frozenset({CONFIG_AUTOROOM_CREATOR, CONFIG_AUTOROOM_CATEGORY})


class ConfigService(BaseService):
    """
    Service for managing per-guild configuration and global settings.

    Acts as the AutoRoom configuration provider: guild overrides are cached
    in memory and persisted in SQLite, falling back to the YAML defaults.
    """

    def __init__(self, config_loader: ConfigLoader | None = None) -> None:
        super().__init__("config")
        self._global_config: dict[str, Any] = {}
        self._guild_cache: dict[int, dict[str, Any]] = {}
        self._cache_lock = asyncio.Lock()
        self._config_loader = config_loader or ConfigLoader()

    async def _initialize_impl(self) -> None:
        """Load global configuration and make sure the settings store exists."""
        await self._load_global_config()
        db_path = self._get_nested_value(self._global_config, "database.path")
        await Database.initialize(db_path)

    async def _load_global_config(self) -> None:
        """Load global configuration from the centralized ConfigLoader."""
        config = self._config_loader.load_config()
        # Work on a copy so service-specific coercions do not mutate the shared loader cache
        self._global_config = copy.deepcopy(config) if isinstance(config, dict) else {}

        if self._global_config:
            self.logger.info("Global configuration loaded successfully")
        else:
            self.logger.warning("Global config empty or missing; using defaults")

    async def get_guild_setting(
        self, guild_id: int, key: str, default: Any = None
    ) -> Any:
        """
        Get a setting for a specific guild.

        Args:
            guild_id: Discord guild ID
            key: Setting key (dot notation like "autoroom.bitrate")
            default: Default value if setting not found

        Returns:
            Setting value or default
        """
        self._ensure_initialized()

        guild_settings = await self._get_guild_settings(guild_id)

        if key in guild_settings:
            return guild_settings[key]

        if key in GUILD_ONLY_KEYS:
            return default

        global_value = self._get_nested_value(self._global_config, key)
        return global_value if global_value is not None else default

    async def set_guild_setting(
        self,
        guild_id: int,
        key: str,
        value: Any,
        *,
        changed_by: int | None = None,
    ) -> None:
        """
        Set a guild-specific setting.

        Args:
            guild_id: Discord guild ID
            key: Setting key
            value: Setting value (will be JSON serialized)
            changed_by: Optional ID of the admin making the change (audit trail)
        """
        self._ensure_initialized()

        await GuildSettingsRepository.upsert(guild_id, key, value, changed_by)

        async with self._cache_lock:
            self._guild_cache.setdefault(guild_id, {})[key] = value

        self.logger.debug(f"Set guild {guild_id} setting {key} = {value}")

    async def get_global_setting(self, key: str, default: Any = None) -> Any:
        """Get a global setting (dot notation supported)."""
        self._ensure_initialized()
        value = self._get_nested_value(self._global_config, key)
        return value if value is not None else default

    async def get_tenant_policy(self, guild_id: int) -> TenantPolicy | None:
        """
        Resolve the AutoRoom policy for a guild.

        Returns:
            The policy, or None when the guild has no creator channel configured.
        """
        settings = {
            key[len(AUTOROOM_PREFIX):]: await self.get_guild_setting(guild_id, key)
            for key in POLICY_KEYS
        }
        try:
            return TenantPolicy.from_settings(settings, tenant_id=guild_id)
        except PolicyMissing:
            self.logger.debug("No AutoRoom policy for guild %s", guild_id)
            return None

    async def clear_tenant_policy(self, guild_id: int) -> int:
        """Remove every stored AutoRoom setting for a guild."""
        self._ensure_initialized()
        deleted = await GuildSettingsRepository.delete_prefix(guild_id, AUTOROOM_PREFIX)
        await self.clear_guild_cache(guild_id)
        self.logger.info(
            "Cleared %s AutoRoom settings for guild %s", deleted, guild_id
        )
        return deleted

    async def _get_guild_settings(self, guild_id: int) -> dict[str, Any]:
        """Get all settings for a guild, using cache when possible."""
        async with self._cache_lock:
            cached = self._guild_cache.get(guild_id)
            if cached is not None:
                return cached

        self.logger.debug(f"Cache MISS for guild {guild_id} - loading from database")
        settings = await GuildSettingsRepository.load(guild_id)

        async with self._cache_lock:
            # A concurrent set_guild_setting may have populated the cache meanwhile
            cached = self._guild_cache.setdefault(guild_id, settings)

        return cached

    def _get_nested_value(self, data: dict[str, Any], key: str) -> Any:
        """Get a value from nested dict using dot notation."""
        current: Any = data
        try:
            for k in key.split("."):
                current = current[k]
            return current
        except (KeyError, TypeError):
            return None

    async def clear_guild_cache(self, guild_id: int) -> None:
        """Clear cached settings for a guild."""
        async with self._cache_lock:
            self._guild_cache.pop(guild_id, None)

        self.logger.debug(f"Cleared cache for guild {guild_id}")

    async def health_check(self) -> dict[str, Any]:
        """Return health information for the config service."""
        base_health = await super().health_check()

        return {
            **base_health,
            **ConfigLoader.get_config_status(),
            "global_config_loaded": bool(self._global_config),
            "cached_guilds": len(self._guild_cache),
        }
