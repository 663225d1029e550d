"""
Access lists for AutoRoom voice channels.

The provisioner describes permissions in a platform-neutral form; the
Discord adapter turns them into ``discord.PermissionOverwrite`` objects.
"""

from dataclasses import dataclass, field

import discord

from utils.logging import get_logger

logger = get_logger(__name__)

EVERYONE = "everyone"
MEMBER = "member"

# Control the owner gets over their own room
OWNER_PERMISSIONS = frozenset(
    {
        "view_channel",
        "connect",
        "manage_channels",
        "mute_members",
        "deafen_members",
        "move_members",
    }
)

# What @everyone is granted on a public room or denied on a private one
DEFAULT_VISIBILITY_PERMISSIONS = frozenset({"view_channel", "connect"})


@dataclass(frozen=True)
class AccessEntry:
    """Allow/deny sets for one target (a member id, or @everyone)."""

    target_type: str  # "member" or "everyone"
    target_id: int | None = None
    allow: frozenset[str] = field(default_factory=frozenset)
    deny: frozenset[str] = field(default_factory=frozenset)


AccessList = tuple[AccessEntry, ...]


def build_room_access(owner_id: int, is_private: bool) -> AccessList:
    """
    Build the access list for a new room.

    The owner gets elevated control scoped to this channel. @everyone can see
    and join a public room; a private room is hidden and locked for everyone
    but the owner.
    """
    owner = AccessEntry(MEMBER, owner_id, allow=OWNER_PERMISSIONS)
    if is_private:
        everyone = AccessEntry(EVERYONE, deny=DEFAULT_VISIBILITY_PERMISSIONS)
    else:
        everyone = AccessEntry(EVERYONE, allow=DEFAULT_VISIBILITY_PERMISSIONS)
    return (owner, everyone)


def to_overwrite(entry: AccessEntry) -> discord.PermissionOverwrite:
    """Convert one access entry into a discord.py overwrite."""
    values: dict[str, bool] = {name: True for name in entry.allow}
    values.update({name: False for name in entry.deny})
    return discord.PermissionOverwrite(**values)


def to_overwrites(
    guild: discord.Guild, access: AccessList
) -> dict[discord.Role | discord.Member | discord.Object, discord.PermissionOverwrite]:
    """
    Resolve an access list against a guild.

    Members missing from the cache are addressed by ``discord.Object`` so the
    owner's overwrite is never silently dropped.
    """
    overwrites: dict[
        discord.Role | discord.Member | discord.Object, discord.PermissionOverwrite
    ] = {}
    for entry in access:
        if entry.target_type == EVERYONE:
            target: discord.Role | discord.Member | discord.Object = guild.default_role
        elif entry.target_id is not None:
            target = guild.get_member(entry.target_id) or discord.Object(
                id=entry.target_id, type=discord.Member
            )
        else:
            logger.warning("Skipping access entry without a target: %r", entry)
            continue
        overwrites[target] = to_overwrite(entry)
    return overwrites
