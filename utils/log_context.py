"""
Utilities for building structured logging context.

Provides helper functions to extract guild_id, user_id, channel_id, etc.
from Discord objects and AutoRoom records for consistent logging.
"""

from typing import TYPE_CHECKING, Any

import discord

if TYPE_CHECKING:
    from utils.types import ManagedResource, VoiceTransition


def get_context_extra(
    guild: discord.Guild | None = None,
    user: discord.User | discord.Member | None = None,
    channel: discord.abc.GuildChannel | None = None,
    **additional: Any,
) -> dict[str, Any]:
    """
    Build a structured logging extra dict from Discord objects.

    Args:
        guild: Guild object
        user: User or Member object
        channel: Channel object
        **additional: Any additional key-value pairs to include

    Returns:
        Dict with guild_id, user_id, channel_id, and any additional fields

    Examples:
        logger.info("Voice event", extra=get_context_extra(guild=guild, user=member))
    """
    extra: dict[str, Any] = {}

    if guild:
        extra["guild_id"] = str(guild.id)
    if user:
        extra["user_id"] = str(user.id)
    if channel:
        extra["channel_id"] = str(channel.id)

    extra.update(additional)

    return extra


def transition_extra(transition: "VoiceTransition", **additional: Any) -> dict[str, Any]:
    """Logging extra for a voice transition record."""
    extra: dict[str, Any] = {
        "guild_id": str(transition.tenant_id),
        "user_id": str(transition.member_id),
    }
    if transition.previous_resource_id is not None:
        extra["channel_id"] = str(transition.previous_resource_id)
    extra.update(additional)
    return extra


def resource_extra(record: "ManagedResource", **additional: Any) -> dict[str, Any]:
    """Logging extra for a managed channel record."""
    extra: dict[str, Any] = {
        "guild_id": str(record.tenant_id),
        "user_id": str(record.owner_id),
        "resource_id": str(record.resource_id),
    }
    extra.update(additional)
    return extra
