"""
Database Package

Persistence for per-guild configuration.
"""

from .database import Database
from .repository import BaseRepository, GuildSettingsRepository
from .schema import init_schema

__all__ = [
    "BaseRepository",
    "Database",
    "GuildSettingsRepository",
    "init_schema",
]
