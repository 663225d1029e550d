"""
Test Factories Module

Centralized factory functions and fakes for creating test objects.
Provides an in-memory voice platform, policy and transition builders, and
a config service double.
"""

from .platform_factories import (
    CATEGORY_ID,
    CREATOR_ID,
    GUILD_ID,
    OTHER_GUILD_ID,
    FakeRoom,
    FakeVoicePlatform,
    creator_for,
    make_config_service,
    make_platform,
    make_policy,
    make_transition,
)

__all__ = [
    "CATEGORY_ID",
    "CREATOR_ID",
    "GUILD_ID",
    "OTHER_GUILD_ID",
    "FakeRoom",
    "FakeVoicePlatform",
    "creator_for",
    "make_config_service",
    "make_platform",
    "make_policy",
    "make_transition",
]
