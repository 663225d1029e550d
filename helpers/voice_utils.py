"""
Naming and limit helpers for AutoRoom voice channels.

Pure functions: no Discord calls, safe to use from any handler.
"""

import re

import discord

from utils.types import DEFAULT_NAME_TEMPLATE

MAX_CHANNEL_NAME_LENGTH = 100  # Discord limit

MIN_BITRATE_KBPS = 8
MAX_BITRATE_KBPS = 384
DEFAULT_BITRATE_KBPS = 64
MAX_USER_LIMIT = 99

_PLACEHOLDER_RE = re.compile(r"\{(user|count|game)\}")
_WHITESPACE_RE = re.compile(r"\s+")


def render_room_name(
    template: str | None,
    display_name: str,
    count: int,
    activity_name: str | None = None,
) -> str:
    """
    Render a channel name from a template.

    Recognized placeholders are ``{user}``, ``{count}`` and ``{game}``. Any other
    braces are left untouched. ``{game}`` is removed entirely when the member
    has no activity. Result is truncated to the Discord name limit.

    Examples:
        >>> render_room_name("{user}'s Room #{count}", "Ana", 2)
        "Ana's Room #2"
    """
    if not template or not template.strip():
        template = DEFAULT_NAME_TEMPLATE

    values = {"user": display_name, "count": str(count), "game": activity_name or ""}
    # Single pass so a display name containing "{count}" is not expanded
    name = _PLACEHOLDER_RE.sub(lambda match: values[match.group(1)], template)
    name = _WHITESPACE_RE.sub(" ", name).strip()

    if not name:
        name = DEFAULT_NAME_TEMPLATE.replace("{user}", display_name).strip()

    return name[:MAX_CHANNEL_NAME_LENGTH]


def clamp_capacity(capacity: int | None) -> int:
    """User limit in 0..99; 0 means unlimited."""
    if capacity is None or capacity <= 0:
        return 0
    return min(capacity, MAX_USER_LIMIT)


def clamp_bitrate(bitrate_kbps: int | None) -> int:
    """Bitrate in bits per second, from a kbps setting clamped to 8..384."""
    if bitrate_kbps is None or bitrate_kbps <= 0:
        bitrate_kbps = DEFAULT_BITRATE_KBPS
    bitrate_kbps = max(MIN_BITRATE_KBPS, min(bitrate_kbps, MAX_BITRATE_KBPS))
    return bitrate_kbps * 1000


def get_member_game_name(member: discord.Member) -> str | None:
    """Return the name of the game a member is playing, if any."""
    for activity in getattr(member, "activities", None) or ():
        if isinstance(activity, discord.Game):
            return activity.name
        if getattr(activity, "type", None) == discord.ActivityType.playing:
            name = getattr(activity, "name", None)
            if name:
                return name
    return None
