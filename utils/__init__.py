"""
Utilities Package

Common utilities and helper functions for the AutoRoom bot.
"""

from .errors import (
    BotError,
    ConfigError,
    PlatformUnavailable,
    PolicyMissing,
    ResourceAlreadyGone,
    ServiceError,
)
from .logging import get_logger, setup_logging
from .tasks import spawn
from .types import (
    DeleteResult,
    ManagedResource,
    ReclaimOutcome,
    SweepReport,
    TenantPolicy,
    VoiceTransition,
)

__all__ = [
    "BotError",
    "ConfigError",
    "DeleteResult",
    "ManagedResource",
    "PlatformUnavailable",
    "PolicyMissing",
    "ReclaimOutcome",
    "ResourceAlreadyGone",
    "ServiceError",
    "SweepReport",
    "TenantPolicy",
    "VoiceTransition",
    "get_logger",
    "setup_logging",
    "spawn",
]
