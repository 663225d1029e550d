"""
Services package for the AutoRoom bot.

This package contains service classes that handle business logic and data access
patterns for the bot's functionality. Services are organized by domain and provide
clean interfaces for bot operations.
"""

from .autoroom_directory import RoomDirectory
from .autoroom_service import AutoRoomService
from .base import BaseService
from .config_service import ConfigService
from .service_container import ServiceContainer

__all__ = [
    "AutoRoomService",
    "BaseService",
    "ConfigService",
    "RoomDirectory",
    "ServiceContainer",
]
