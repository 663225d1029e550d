"""
Type definitions and common data structures for the AutoRoom bot.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

from utils.errors import PolicyMissing

DEFAULT_NAME_TEMPLATE = "🎤 {user}'s Room"


def _optional_int(value: Any) -> int | None:
    """Coerce a stored setting to int, treating junk as unset."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class TenantPolicy:
    """Per-guild AutoRoom policy. Owned by the configuration provider."""

    creator_resource_id: int
    parent_group_id: int | None = None
    name_template: str = DEFAULT_NAME_TEMPLATE
    capacity: int | None = None  # 0 or None = no limit
    bitrate: int | None = None  # kbps
    is_private: bool = False
    cleanup_grace_minutes: int | None = None

    @classmethod
    def from_settings(
        cls, settings: Mapping[str, Any], tenant_id: int | None = None
    ) -> "TenantPolicy":
        """
        Build a policy from flat ``autoroom.*`` settings.

        Raises:
            PolicyMissing: if no creator channel is configured
        """
        creator_id = _optional_int(settings.get("creator_channel_id"))
        if not creator_id:
            raise PolicyMissing(tenant_id)

        template = settings.get("name_template")
        if not isinstance(template, str) or not template.strip():
            template = DEFAULT_NAME_TEMPLATE

        return cls(
            creator_resource_id=creator_id,
            parent_group_id=_optional_int(settings.get("category_id")),
            name_template=template,
            capacity=_optional_int(settings.get("capacity")),
            bitrate=_optional_int(settings.get("bitrate")),
            is_private=bool(settings.get("is_private", False)),
            cleanup_grace_minutes=_optional_int(settings.get("cleanup_grace_minutes")),
        )


@dataclass
class ManagedResource:
    """A voice channel created and owned by the AutoRoom service."""

    resource_id: int
    tenant_id: int
    owner_id: int
    created_at: float = field(default_factory=time.time)
    occupancy_count: int = 1


@dataclass(frozen=True)
class VoiceTransition:
    """One membership change as delivered by the gateway."""

    member_id: int
    tenant_id: int
    previous_resource_id: int | None = None
    current_resource_id: int | None = None
    member_display_name: str = ""
    member_activity_name: str | None = None

    @property
    def is_same_channel(self) -> bool:
        return self.previous_resource_id == self.current_resource_id


class DeleteResult(Enum):
    """Outcome of a platform delete call."""

    DELETED = "deleted"
    ALREADY_GONE = "already_gone"


class ReclaimOutcome(Enum):
    """What the reclaimer did with a suspected-vacant channel."""

    NOT_MANAGED = "not_managed"
    OCCUPIED = "occupied"
    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
    FAILED = "failed"


class SweepReport(NamedTuple):
    """Counters from one reconciliation pass."""

    checked: int = 0
    deleted: int = 0
    dropped: int = 0
    failed: int = 0
