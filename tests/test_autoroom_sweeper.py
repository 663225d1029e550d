"""
Tests for the reconciliation sweeper.

The sweeper is the backstop for vacancies the gateway never reported.
"""

import asyncio

import pytest

from services.autoroom_service import AutoRoomService
from tests.factories import GUILD_ID, make_config_service
from utils.types import ManagedResource, SweepReport


def register(service, platform, resource_id, members=()):
    platform.add_room(resource_id, members=set(members))
    service.directory.add(
        ManagedResource(resource_id=resource_id, tenant_id=GUILD_ID, owner_id=1)
    )


@pytest.mark.asyncio
async def test_sweep_reclaims_missed_vacancy(autoroom_service, platform):
    register(autoroom_service, platform, 10)  # empty, no event ever arrived
    register(autoroom_service, platform, 11, members={1, 2})

    report = await autoroom_service.sweep_once()

    assert report == SweepReport(checked=2, deleted=1, dropped=0, failed=0)
    assert not autoroom_service.directory.is_managed(10)
    assert autoroom_service.directory.get(11).occupancy_count == 2


@pytest.mark.asyncio
async def test_sweep_drops_gone_rooms_without_delete(autoroom_service, platform):
    register(autoroom_service, platform, 10)
    platform.remove_externally(10)

    report = await autoroom_service.sweep_once()

    assert report.dropped == 1
    assert platform.deleted == []
    assert len(autoroom_service.directory) == 0


@pytest.mark.asyncio
async def test_sweep_rechecks_before_delete(autoroom_service, platform):
    """A member joining between the snapshot check and the delete keeps the room."""
    register(autoroom_service, platform, 10)
    original = platform.get_live_occupancy
    calls = 0

    async def occupancy(resource_id):
        nonlocal calls
        calls += 1
        if calls == 2:
            platform.rooms[resource_id].members.add(5)
        return await original(resource_id)

    platform.get_live_occupancy = occupancy

    report = await autoroom_service.sweep_once()

    assert report.deleted == 0
    assert autoroom_service.directory.is_managed(10)


@pytest.mark.asyncio
async def test_sweep_counts_failures_and_continues(autoroom_service, platform):
    register(autoroom_service, platform, 10)
    platform.fail_occupancy = True

    report = await autoroom_service.sweep_once()

    assert report.failed == 1
    assert autoroom_service.directory.is_managed(10)


@pytest.mark.asyncio
async def test_sweeper_loop_runs_on_interval(platform, policies):
    config = make_config_service(
        policies,
        {
            "autoroom.sweep_interval_seconds": 0.02,
            "autoroom.sweep_start_delay_seconds": 0.01,
        },
    )
    service = AutoRoomService(config, platform)
    await service.initialize()
    try:
        register(service, platform, 10)
        await asyncio.sleep(0.15)
        assert not service.directory.is_managed(10)
        health = await service.health_check()
        assert health["sweeper_running"] is True
        assert health["last_sweep"] is not None
    finally:
        await service.shutdown()

    assert service._sweeper_task is None


@pytest.mark.asyncio
async def test_sweeper_tick_error_does_not_stop_loop(platform, policies):
    config = make_config_service(
        policies,
        {
            "autoroom.sweep_interval_seconds": 0.01,
            "autoroom.sweep_start_delay_seconds": 0.01,
        },
    )
    service = AutoRoomService(config, platform)
    calls = 0
    real_sweep = service.sweep_once

    async def flaky_sweep():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return await real_sweep()

    service.sweep_once = flaky_sweep
    await service.initialize()
    try:
        await asyncio.sleep(0.1)
    finally:
        await service.shutdown()

    assert calls >= 2
