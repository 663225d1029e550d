"""
Tests for AutoRoom channel provisioning.

Covers the all-or-nothing guarantee, policy application, rollback when the
member cannot be moved, and concurrent creation triggers.
"""

import asyncio

import pytest

from helpers.voice_permissions import EVERYONE
from tests.factories import (
    CATEGORY_ID,
    CREATOR_ID,
    GUILD_ID,
    make_policy,
    make_transition,
)
from utils.types import ManagedResource

ANA = 1


def creation(member_id=ANA, display_name="Ana", activity=None):
    return make_transition(
        member_id, after=CREATOR_ID, display_name=display_name, activity=activity
    )


@pytest.mark.asyncio
async def test_bob_scenario(autoroom_service, platform):
    """Bob joins the creator, gets R1, leaves R1, and R1 is gone."""
    bob = 42
    platform.join(bob, CREATOR_ID)

    await autoroom_service.handle_transition(
        creation(bob, display_name="Bob")
    )

    records = autoroom_service.list_managed_resources(GUILD_ID)
    assert len(records) == 1
    r1 = records[0]
    assert isinstance(r1, ManagedResource)
    assert r1.owner_id == bob
    assert r1.occupancy_count == 1
    assert platform.location_of(bob) == r1.resource_id

    platform.leave(bob)
    await autoroom_service.handle_transition(
        make_transition(bob, before=r1.resource_id, display_name="Bob")
    )

    assert autoroom_service.list_managed_resources(GUILD_ID) == []
    assert r1.resource_id not in platform.rooms


@pytest.mark.asyncio
async def test_policy_applied_to_room(autoroom_service, platform, policies):
    policies[GUILD_ID] = make_policy(
        name_template="{user}'s Room #{count}",
        capacity=150,
        bitrate=96,
        is_private=True,
    )
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation())

    spec = platform.created[0]
    assert spec.name == "Ana's Room #1"
    assert spec.capacity == 99
    assert spec.bitrate == 96000
    assert spec.parent_id == CATEGORY_ID
    everyone = next(e for e in spec.access if e.target_type == EVERYONE)
    assert "connect" in everyone.deny


@pytest.mark.asyncio
async def test_explicit_category_overrides_creator_parent(
    autoroom_service, platform, policies
):
    policies[GUILD_ID] = make_policy(parent_group_id=4242)
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation())

    assert platform.created[0].parent_id == 4242


@pytest.mark.asyncio
async def test_count_grows_with_rooms_owned(autoroom_service, platform, policies):
    autoroom_service.creation_unmark_delay = 0
    policies[GUILD_ID] = make_policy(name_template="{user}'s Room #{count}")

    for _ in range(2):
        platform.join(ANA, CREATOR_ID)
        await autoroom_service.handle_transition(creation())
        # Keep the first room alive with another member
        platform.rooms[platform.location_of(ANA)].members.add(999)

    assert [s.name for s in platform.created] == ["Ana's Room #1", "Ana's Room #2"]


@pytest.mark.asyncio
async def test_game_placeholder(autoroom_service, platform, policies):
    policies[GUILD_ID] = make_policy(name_template="{user} playing {game}")
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation(activity="Chess"))

    assert platform.created[0].name == "Ana playing Chess"


@pytest.mark.asyncio
async def test_create_failure_leaves_directory_untouched(autoroom_service, platform):
    platform.fail_create = True
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation())

    assert len(autoroom_service.directory) == 0
    assert platform.location_of(ANA) == CREATOR_ID


@pytest.mark.asyncio
async def test_move_failure_rolls_back_channel(autoroom_service, platform):
    platform.fail_move = True
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation())

    assert len(autoroom_service.directory) == 0
    assert set(platform.rooms) == {CREATOR_ID}
    assert len(platform.deleted) == 1


@pytest.mark.asyncio
async def test_member_left_before_move(autoroom_service, platform):
    # Transition says Ana joined the creator, but she is already gone
    await autoroom_service.handle_transition(creation())

    assert len(autoroom_service.directory) == 0
    assert set(platform.rooms) == {CREATOR_ID}


@pytest.mark.asyncio
async def test_create_timeout_aborts(autoroom_service, platform):
    platform.delay = 0.2
    autoroom_service.provision_timeout = 0.05
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation())

    assert len(autoroom_service.directory) == 0


@pytest.mark.asyncio
async def test_concurrent_members_get_distinct_rooms(autoroom_service):
    platform = autoroom_service.platform
    platform.delay = 0.01
    members = list(range(1, 11))
    for member_id in members:
        platform.join(member_id, CREATOR_ID)

    await asyncio.gather(
        *(
            autoroom_service.handle_transition(creation(m, display_name=f"M{m}"))
            for m in members
        )
    )

    records = autoroom_service.list_managed_resources(GUILD_ID)
    assert sorted(r.owner_id for r in records) == members
    assert len({r.resource_id for r in records}) == len(members)
    for record in records:
        assert platform.location_of(record.owner_id) == record.resource_id


@pytest.mark.asyncio
async def test_duplicate_creation_event_deduplicated(autoroom_service):
    platform = autoroom_service.platform
    platform.delay = 0.01
    platform.join(ANA, CREATOR_ID)

    await asyncio.gather(
        autoroom_service.handle_transition(creation()),
        autoroom_service.handle_transition(creation()),
    )

    assert len(platform.created) == 1
    assert len(autoroom_service.directory) == 1



@pytest.mark.asyncio
async def test_late_duplicate_after_success_ignored(autoroom_service, platform):
    platform.join(ANA, CREATOR_ID)

    await autoroom_service.handle_transition(creation())
    # Gateway replays the original join after Ana was already moved
    await autoroom_service.handle_transition(creation())

    assert len(platform.created) == 1
    assert len(autoroom_service.directory) == 1


@pytest.mark.asyncio
async def test_member_can_create_again_after_unmark(autoroom_service, platform):
    autoroom_service.creation_unmark_delay = 0.01
    platform.join(ANA, CREATOR_ID)
    await autoroom_service.handle_transition(creation())

    await asyncio.sleep(0.05)
    platform.join(ANA, CREATOR_ID)
    await autoroom_service.handle_transition(creation())

    assert len(platform.created) == 2


@pytest.mark.asyncio
async def test_rejoin_right_after_room_reclaimed_creates_new_room(
    autoroom_service, platform
):
    platform.join(ANA, CREATOR_ID)
    await autoroom_service.handle_transition(creation())
    first_room = platform.location_of(ANA)

    # Ana leaves her room and reconnects to the creator well inside the unmark delay
    platform.leave(ANA)
    await autoroom_service.handle_transition(make_transition(ANA, before=first_room))
    platform.join(ANA, CREATOR_ID)
    await autoroom_service.handle_transition(creation())

    assert first_room in platform.deleted
    assert len(platform.created) == 2
    rooms = autoroom_service.list_managed_resources(GUILD_ID)
    assert [room.resource_id for room in rooms] == [platform.location_of(ANA)]


@pytest.mark.asyncio
async def test_rejoin_after_room_forgotten_creates_new_room(autoroom_service, platform):
    platform.join(ANA, CREATOR_ID)
    await autoroom_service.handle_transition(creation())
    room_id = platform.location_of(ANA)

    platform.remove_externally(room_id)
    assert autoroom_service.forget_resource(room_id) is True
    platform.join(ANA, CREATOR_ID)
    await autoroom_service.handle_transition(creation())

    assert len(platform.created) == 2
    assert len(autoroom_service.directory) == 1
