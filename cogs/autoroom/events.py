"""
AutoRoom Events Cog

Handles Discord voice state events and delegates to the AutoRoomService.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from helpers.voice_utils import get_member_game_name
from utils.log_context import get_context_extra
from utils.logging import get_logger
from utils.types import VoiceTransition

if TYPE_CHECKING:
    from services.autoroom_service import AutoRoomService

logger = get_logger(__name__)


def build_transition(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
) -> VoiceTransition:
    """Convert a discord.py voice state update into a transition record."""
    return VoiceTransition(
        member_id=member.id,
        tenant_id=member.guild.id,
        previous_resource_id=before.channel.id if before.channel else None,
        current_resource_id=after.channel.id if after.channel else None,
        member_display_name=member.display_name,
        member_activity_name=get_member_game_name(member),
    )


class AutoRoomEvents(commands.Cog):
    """Feeds voice, channel and guild events to the AutoRoom service."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def autoroom_service(self) -> "AutoRoomService":
        """Get the AutoRoom service from the bot's service container."""
        services = getattr(self.bot, "services", None)
        if services is None:
            raise RuntimeError("Bot services not initialized")
        return services.autoroom

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        """Queue every channel change; mute/deafen/stream updates are skipped here."""
        if member.bot or before.channel == after.channel:
            return

        try:
            await self.autoroom_service.submit(build_transition(member, before, after))
        except Exception as e:
            logger.exception(
                "Error queueing voice state update",
                exc_info=e,
                extra=get_context_extra(guild=member.guild, user=member),
            )

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        """Forget an AutoRoom that was deleted by someone else."""
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            return

        try:
            self.autoroom_service.forget_resource(channel.id)
        except Exception as e:
            logger.exception(
                "Error handling channel deletion",
                exc_info=e,
                extra=get_context_extra(guild=channel.guild, channel=channel),
            )

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        """Drop every record of a guild the bot was removed from."""
        try:
            self.autoroom_service.discard_tenant(guild.id)
        except Exception as e:
            logger.exception(
                "Error forgetting departed guild",
                exc_info=e,
                extra=get_context_extra(guild=guild),
            )


async def setup(bot: commands.Bot) -> None:
    """Set up the AutoRoom Events cog."""
    await bot.add_cog(AutoRoomEvents(bot))
