"""
Centralized module for the Discord API calls made by the AutoRoom service.

``VoicePlatform`` is the contract the service depends on; ``DiscordVoicePlatform``
fulfils it with discord.py. Every call is rate-limited and maps Discord errors
onto the service's error kinds:

- ``discord.NotFound``            -> ``ResourceAlreadyGone`` / ``DeleteResult.ALREADY_GONE``
- other ``HTTPException``/timeout -> ``PlatformUnavailable``
"""

import asyncio
from dataclasses import dataclass
from typing import Protocol

import discord
from aiolimiter import AsyncLimiter

from helpers.voice_permissions import AccessList, to_overwrites
from utils.errors import PlatformUnavailable, ResourceAlreadyGone
from utils.logging import get_logger
from utils.types import DeleteResult

logger = get_logger(__name__)

api_limiter = AsyncLimiter(max_rate=45, time_period=1)

VOICE_CHANNEL_TYPES = (discord.VoiceChannel, discord.StageChannel)


@dataclass(frozen=True)
class RoomSpec:
    """Everything needed to create one AutoRoom channel."""

    name: str
    parent_id: int | None
    capacity: int  # 0 = no limit
    bitrate: int  # bits per second
    access: AccessList


class VoicePlatform(Protocol):
    """Platform calls consumed by the AutoRoom service."""

    async def create_resource(self, tenant_id: int, spec: RoomSpec) -> int: ...

    async def move_member(
        self, tenant_id: int, member_id: int, resource_id: int
    ) -> None: ...

    async def delete_resource(
        self, resource_id: int, reason: str | None = None
    ) -> DeleteResult: ...

    async def get_live_occupancy(self, resource_id: int) -> int: ...

    async def get_parent_id(self, resource_id: int) -> int | None: ...


class DiscordVoicePlatform:
    """discord.py implementation of ``VoicePlatform``."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    def _get_guild(self, tenant_id: int) -> discord.Guild:
        guild = self.bot.get_guild(tenant_id)
        if guild is None:
            raise PlatformUnavailable("get_guild", f"guild {tenant_id} not in cache")
        return guild

    async def _resolve_channel(
        self, resource_id: int, operation: str
    ) -> discord.abc.GuildChannel:
        """Cache first, then the API; raises ResourceAlreadyGone if it no longer exists."""
        channel = self.bot.get_channel(resource_id)
        if channel is not None:
            return channel  # type: ignore[return-value]
        try:
            async with api_limiter:
                return await self.bot.fetch_channel(resource_id)  # type: ignore[return-value]
        except discord.NotFound as e:
            raise ResourceAlreadyGone(resource_id) from e
        except (discord.HTTPException, asyncio.TimeoutError) as e:
            raise PlatformUnavailable(operation, str(e)) from e

    async def create_resource(self, tenant_id: int, spec: RoomSpec) -> int:
        guild = self._get_guild(tenant_id)

        category = None
        if spec.parent_id is not None:
            candidate = guild.get_channel(spec.parent_id)
            if isinstance(candidate, discord.CategoryChannel):
                category = candidate
            else:
                logger.warning(
                    "Configured parent %s is not a category; creating at top level",
                    spec.parent_id,
                    extra={"guild_id": str(tenant_id)},
                )

        bitrate = min(spec.bitrate, int(guild.bitrate_limit))

        try:
            async with api_limiter:
                channel = await guild.create_voice_channel(
                    spec.name,
                    category=category,
                    user_limit=spec.capacity,
                    bitrate=bitrate,
                    overwrites=to_overwrites(guild, spec.access),
                    reason="AutoRoom created",
                )
        except (discord.HTTPException, asyncio.TimeoutError) as e:
            raise PlatformUnavailable("create_resource", str(e)) from e

        logger.debug(
            "Created voice channel '%s'",
            spec.name,
            extra={"guild_id": str(tenant_id), "channel_id": str(channel.id)},
        )
        return channel.id

    async def move_member(self, tenant_id: int, member_id: int, resource_id: int) -> None:
        guild = self._get_guild(tenant_id)
        member = guild.get_member(member_id)
        if member is None or member.voice is None or member.voice.channel is None:
            raise PlatformUnavailable("move_member", f"member {member_id} is not in voice")

        channel = guild.get_channel(resource_id)
        if not isinstance(channel, VOICE_CHANNEL_TYPES):
            raise ResourceAlreadyGone(resource_id)

        try:
            async with api_limiter:
                await member.move_to(channel, reason="Move to AutoRoom")
        except discord.NotFound as e:
            raise ResourceAlreadyGone(resource_id) from e
        except (discord.HTTPException, asyncio.TimeoutError) as e:
            raise PlatformUnavailable("move_member", str(e)) from e

    async def delete_resource(
        self, resource_id: int, reason: str | None = None
    ) -> DeleteResult:
        try:
            channel = await self._resolve_channel(resource_id, "delete_resource")
        except ResourceAlreadyGone:
            return DeleteResult.ALREADY_GONE

        try:
            async with api_limiter:
                await channel.delete(reason=reason or "AutoRoom empty")
        except discord.NotFound:
            logger.info(
                "Channel %s not found. It may have already been deleted.", resource_id
            )
            return DeleteResult.ALREADY_GONE
        except (discord.HTTPException, asyncio.TimeoutError) as e:
            raise PlatformUnavailable("delete_resource", str(e)) from e

        return DeleteResult.DELETED

    async def get_live_occupancy(self, resource_id: int) -> int:
        channel = await self._resolve_channel(resource_id, "get_live_occupancy")
        if not isinstance(channel, VOICE_CHANNEL_TYPES):
            raise ResourceAlreadyGone(resource_id)
        return len(channel.members)

    async def get_parent_id(self, resource_id: int) -> int | None:
        channel = self.bot.get_channel(resource_id)
        return getattr(channel, "category_id", None)
