"""
Platform Fakes

In-memory stand-in for the Discord voice platform plus builders for
policies, transitions and config services. Lets AutoRoom tests drive the
service without a gateway connection.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from helpers.discord_api import RoomSpec
from services.config_service import ConfigService
from utils.errors import PlatformUnavailable, ResourceAlreadyGone
from utils.types import DEFAULT_NAME_TEMPLATE, DeleteResult, TenantPolicy, VoiceTransition

GUILD_ID = 1000
OTHER_GUILD_ID = 2000
CREATOR_ID = 5000
CATEGORY_ID = 4000


@dataclass
class FakeRoom:
    """A voice channel living in the fake platform."""

    resource_id: int
    tenant_id: int
    parent_id: int | None = None
    spec: RoomSpec | None = None
    members: set[int] = field(default_factory=set)


class FakeVoicePlatform:
    """
    Async in-memory ``VoicePlatform``.

    Flip the ``fail_*`` flags to inject ``PlatformUnavailable``; set ``delay``
    to make every call yield to the event loop for that long.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.rooms: dict[int, FakeRoom] = {}
        self._next_id = 900_000

        self.created: list[RoomSpec] = []
        self.deleted: list[int] = []
        self.moves: list[tuple[int, int, int]] = []
        self.occupancy_checks: list[int] = []

        self.fail_create = False
        self.fail_move = False
        self.fail_delete = False
        self.fail_occupancy = False

    # -- test helpers -------------------------------------------------

    def add_room(
        self,
        resource_id: int,
        tenant_id: int = GUILD_ID,
        parent_id: int | None = None,
        members: set[int] | None = None,
    ) -> FakeRoom:
        room = FakeRoom(resource_id, tenant_id, parent_id, members=set(members or ()))
        self.rooms[resource_id] = room
        return room

    def join(self, member_id: int, resource_id: int) -> None:
        self.leave(member_id)
        self.rooms[resource_id].members.add(member_id)

    def leave(self, member_id: int) -> None:
        for room in self.rooms.values():
            room.members.discard(member_id)

    def location_of(self, member_id: int) -> int | None:
        for room in self.rooms.values():
            if member_id in room.members:
                return room.resource_id
        return None

    def remove_externally(self, resource_id: int) -> None:
        """Simulate a moderator deleting the channel by hand."""
        self.rooms.pop(resource_id, None)

    async def _tick(self) -> None:
        await asyncio.sleep(self.delay)

    # -- VoicePlatform ------------------------------------------------

    async def create_resource(self, tenant_id: int, spec: RoomSpec) -> int:
        await self._tick()
        if self.fail_create:
            raise PlatformUnavailable("create_resource", "injected failure")
        self._next_id += 1
        room = self.add_room(self._next_id, tenant_id, spec.parent_id)
        room.spec = spec
        self.created.append(spec)
        return room.resource_id

    async def move_member(self, tenant_id: int, member_id: int, resource_id: int) -> None:
        await self._tick()
        if self.fail_move:
            raise PlatformUnavailable("move_member", "injected failure")
        if resource_id not in self.rooms:
            raise ResourceAlreadyGone(resource_id)
        if self.location_of(member_id) is None:
            raise PlatformUnavailable("move_member", f"member {member_id} is not in voice")
        self.join(member_id, resource_id)
        self.moves.append((tenant_id, member_id, resource_id))

    async def delete_resource(
        self, resource_id: int, reason: str | None = None
    ) -> DeleteResult:
        await self._tick()
        if self.fail_delete:
            raise PlatformUnavailable("delete_resource", "injected failure")
        if self.rooms.pop(resource_id, None) is None:
            return DeleteResult.ALREADY_GONE
        self.deleted.append(resource_id)
        return DeleteResult.DELETED

    async def get_live_occupancy(self, resource_id: int) -> int:
        await self._tick()
        self.occupancy_checks.append(resource_id)
        if self.fail_occupancy:
            raise PlatformUnavailable("get_live_occupancy", "injected failure")
        room = self.rooms.get(resource_id)
        if room is None:
            raise ResourceAlreadyGone(resource_id)
        return len(room.members)

    async def get_parent_id(self, resource_id: int) -> int | None:
        room = self.rooms.get(resource_id)
        return room.parent_id if room else None


def make_platform(
    tenants: tuple[int, ...] = (GUILD_ID,),
    creator_id: int = CREATOR_ID,
    parent_id: int | None = CATEGORY_ID,
    delay: float = 0.0,
) -> FakeVoicePlatform:
    """Fake platform with a creator channel per tenant (ids offset by tenant)."""
    platform = FakeVoicePlatform(delay=delay)
    for tenant_id in tenants:
        platform.add_room(creator_for(tenant_id, creator_id), tenant_id, parent_id)
    return platform


def creator_for(tenant_id: int, creator_id: int = CREATOR_ID) -> int:
    """Creator channel id used by ``make_platform`` for a tenant."""
    return creator_id if tenant_id == GUILD_ID else creator_id + tenant_id


def make_policy(
    creator_resource_id: int = CREATOR_ID,
    name_template: str = DEFAULT_NAME_TEMPLATE,
    **overrides: Any,
) -> TenantPolicy:
    return TenantPolicy(
        creator_resource_id=creator_resource_id,
        name_template=name_template,
        **overrides,
    )


def make_transition(
    member_id: int,
    before: int | None = None,
    after: int | None = None,
    tenant_id: int = GUILD_ID,
    display_name: str = "Ana",
    activity: str | None = None,
) -> VoiceTransition:
    return VoiceTransition(
        member_id=member_id,
        tenant_id=tenant_id,
        previous_resource_id=before,
        current_resource_id=after,
        member_display_name=display_name,
        member_activity_name=activity,
    )


def make_config_service(
    policies: dict[int, TenantPolicy] | None = None,
    global_settings: dict[str, Any] | None = None,
) -> MagicMock:
    """
    ConfigService double serving fixed policies.

    ``policies`` is read on every call, so tests may mutate it afterwards.
    """
    policies = policies if policies is not None else {}
    global_settings = global_settings or {}

    async def get_tenant_policy(guild_id: int) -> TenantPolicy | None:
        return policies.get(guild_id)

    async def get_global_setting(key: str, default: Any = None) -> Any:
        return global_settings.get(key, default)

    async def clear_tenant_policy(guild_id: int) -> int:
        return 1 if policies.pop(guild_id, None) else 0

    config = MagicMock(spec=ConfigService)
    config.get_tenant_policy = AsyncMock(side_effect=get_tenant_policy)
    config.get_global_setting = AsyncMock(side_effect=get_global_setting)
    config.clear_tenant_policy = AsyncMock(side_effect=clear_tenant_policy)
    return config
