"""
AutoRoom service: personal voice channels created on demand.

A member joining a guild's creator channel gets a fresh voice channel and is
moved into it. The channel is deleted as soon as it is observed empty, and a
periodic sweeper catches any vacancy the gateway never told us about.

Flow::

    cog -> submit() -> queue -> _dispatch_loop -> handle_transition
                                                   |-> _provision
                                                   '-> reclaim
    _sweeper_loop -> sweep_once -> reclaim
"""

import asyncio
import time
from typing import Any

from config.config_loader import AUTOROOM_TIMER_DEFAULTS
from helpers.discord_api import RoomSpec, VoicePlatform
from helpers.voice_permissions import build_room_access
from helpers.voice_utils import clamp_bitrate, clamp_capacity, render_room_name
from services.autoroom_directory import RoomDirectory
from services.config_service import ConfigService
from utils.errors import PlatformUnavailable, ResourceAlreadyGone
from utils.log_context import resource_extra, transition_extra
from utils.tasks import spawn
from utils.types import (
    DeleteResult,
    ManagedResource,
    ReclaimOutcome,
    SweepReport,
    TenantPolicy,
    VoiceTransition,
)

from .base import BaseService


class AutoRoomService(BaseService):
    """Provisions, tracks and reclaims AutoRoom voice channels."""

    def __init__(
        self,
        config_service: ConfigService,
        platform: VoicePlatform,
        test_mode: bool = False,
    ) -> None:
        super().__init__("autoroom")
        self.config_service = config_service
        self.platform = platform
        self.test_mode = test_mode
        self.directory = RoomDirectory()

        self._queue: asyncio.Queue[VoiceTransition | None] = asyncio.Queue()
        self._dispatch_task: asyncio.Task | None = None
        self._handlers: set[asyncio.Task] = set()

        # (guild_id, user_id) pairs with a provisioning call in flight
        self._provisioning: set[tuple[int, int]] = set()
        # (guild_id, user_id) -> channel created moments ago; absorbs replayed joins
        self._recently_created: dict[tuple[int, int], int] = {}

        self._sweeper_task: asyncio.Task | None = None
        self._sweeper_stop = asyncio.Event()
        self._last_sweep: SweepReport | None = None
        self._last_sweep_at: float | None = None

        self.sweep_interval = AUTOROOM_TIMER_DEFAULTS["sweep_interval_seconds"]
        self.sweep_start_delay = AUTOROOM_TIMER_DEFAULTS["sweep_start_delay_seconds"]
        self.provision_timeout = AUTOROOM_TIMER_DEFAULTS["provision_timeout_seconds"]
        self.creation_unmark_delay = 2.0  # seconds a member stays marked after a success

    async def _initialize_impl(self) -> None:
        """Load timers and start the dispatch loop and, outside tests, the sweeper."""
        self.sweep_interval = await self._get_timer("sweep_interval_seconds")
        self.sweep_start_delay = await self._get_timer("sweep_start_delay_seconds")
        self.provision_timeout = await self._get_timer("provision_timeout_seconds")

        self._sweeper_stop.clear()
        self._dispatch_task = self._spawn_background_task(
            self._dispatch_loop(), name="autoroom.dispatch_loop"
        )
        if not self.test_mode:
            self._sweeper_task = self._spawn_background_task(
                self._sweeper_loop(), name="autoroom.sweeper"
            )

        self.logger.info(
            "AutoRoom ready (sweep every %.1fs, provision timeout %.1fs)",
            self.sweep_interval,
            self.provision_timeout,
        )

    async def _get_timer(self, name: str) -> float:
        value = await self.config_service.get_global_setting(
            f"autoroom.{name}", AUTOROOM_TIMER_DEFAULTS[name]
        )
        return float(value)

    async def _shutdown_impl(self) -> None:
        """Stop the sweeper, drain the queue, then wait for in-flight handlers."""
        self._sweeper_stop.set()
        if self._sweeper_task is not None:
            await asyncio.gather(self._sweeper_task, return_exceptions=True)
            self._sweeper_task = None

        if self._dispatch_task is not None:
            if not self._dispatch_task.done():
                await self._queue.put(None)
            await asyncio.gather(self._dispatch_task, return_exceptions=True)
            self._dispatch_task = None

        if self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

        if self._provisioning:
            self.logger.warning(
                "Shutting down with %s members still marked as creating",
                len(self._provisioning),
            )
            self._provisioning.clear()
        self._recently_created.clear()

    # ------------------------------------------------------------------
    # Event routing
    # ------------------------------------------------------------------

    async def submit(self, transition: VoiceTransition) -> None:
        """Queue a voice transition for the dispatch loop."""
        await self._queue.put(transition)

    async def _dispatch_loop(self) -> None:
        while True:
            transition = await self._queue.get()
            try:
                if transition is None:
                    self.logger.info("AutoRoom dispatcher received shutdown signal.")
                    break
                task = spawn(
                    self._run_handler(transition),
                    name=f"autoroom.handle.{transition.tenant_id}.{transition.member_id}",
                )
                self._handlers.add(task)
                task.add_done_callback(self._handlers.discard)
            finally:
                self._queue.task_done()

    async def _run_handler(self, transition: VoiceTransition) -> None:
        try:
            await self.handle_transition(transition)
        except Exception as e:
            self.logger.exception(
                "Error handling voice transition",
                exc_info=e,
                extra=transition_extra(transition),
            )

    async def drain(self) -> None:
        """Wait until every submitted transition has been fully handled."""
        if self._dispatch_task is not None and not self._dispatch_task.done():
            await self._queue.join()
        while self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

    async def handle_transition(self, transition: VoiceTransition) -> None:
        """
        Classify one transition and run the matching handler.

        Creation: the member came from nowhere into the creator channel.
        Vacancy: the member left a managed channel, wherever they went.
        """
        if transition.is_same_channel:
            return

        policy = await self.config_service.get_tenant_policy(transition.tenant_id)
        if policy is None:
            return

        if self.directory.is_managed(transition.previous_resource_id):
            self.logger.debug(
                "Member left managed channel", extra=transition_extra(transition)
            )
            await self.reclaim(transition.previous_resource_id)  # type: ignore[arg-type]
        elif (
            transition.previous_resource_id is None
            and transition.current_resource_id == policy.creator_resource_id
        ):
            await self._provision(transition, policy)

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def _provision(
        self, transition: VoiceTransition, policy: TenantPolicy
    ) -> ManagedResource | None:
        key = (transition.tenant_id, transition.member_id)
        if key in self._provisioning or key in self._recently_created:
            self.logger.debug(
                "Skipping duplicate creation event; provisioning in progress",
                extra=transition_extra(transition),
            )
            return None

        self._provisioning.add(key)
        try:
            record = await self._create_room(transition, policy)
        finally:
            self._provisioning.discard(key)

        if record is not None and self.creation_unmark_delay > 0:
            # Late duplicates of the same join arrive after the member was moved
            self._recently_created[key] = record.resource_id
            self._spawn_background_task(
                self._delayed_unmark(key, record.resource_id),
                name="autoroom.unmark_creating",
            )
        return record

    async def _delayed_unmark(self, key: tuple[int, int], resource_id: int) -> None:
        await asyncio.sleep(self.creation_unmark_delay)
        if self._recently_created.get(key) == resource_id:
            del self._recently_created[key]

    def _release_owner(self, record: ManagedResource) -> None:
        """Let the owner of a removed channel create a new one right away."""
        key = (record.tenant_id, record.owner_id)
        if self._recently_created.get(key) == record.resource_id:
            del self._recently_created[key]

    def _forget(self, resource_id: int) -> ManagedResource | None:
        record = self.directory.remove(resource_id)
        if record is not None:
            self._release_owner(record)
        return record

    def _drop_tenant(self, tenant_id: int) -> list[ManagedResource]:
        dropped = self.directory.drop_tenant(tenant_id)
        for record in dropped:
            self._release_owner(record)
        return dropped

    async def _create_room(
        self, transition: VoiceTransition, policy: TenantPolicy
    ) -> ManagedResource | None:
        tenant_id = transition.tenant_id
        member_id = transition.member_id

        parent_id = policy.parent_group_id
        if parent_id is None:
            parent_id = await self.platform.get_parent_id(policy.creator_resource_id)

        count = self.directory.count_owned(tenant_id, member_id) + 1
        spec = RoomSpec(
            name=render_room_name(
                policy.name_template,
                transition.member_display_name,
                count,
                transition.member_activity_name,
            ),
            parent_id=parent_id,
            capacity=clamp_capacity(policy.capacity),
            bitrate=clamp_bitrate(policy.bitrate),
            access=build_room_access(member_id, policy.is_private),
        )

        try:
            resource_id = await asyncio.wait_for(
                self.platform.create_resource(tenant_id, spec),
                timeout=self.provision_timeout,
            )
        except (PlatformUnavailable, asyncio.TimeoutError) as e:
            self.logger.warning(
                "Could not create AutoRoom: %s",
                str(e) or "timed out",
                extra=transition_extra(transition, outcome="create_failed"),
            )
            return None

        try:
            await asyncio.wait_for(
                self.platform.move_member(tenant_id, member_id, resource_id),
                timeout=self.provision_timeout,
            )
        except (PlatformUnavailable, ResourceAlreadyGone, asyncio.TimeoutError) as e:
            self.logger.warning(
                "Could not move member into new AutoRoom %s, rolling back: %s",
                resource_id,
                str(e) or "timed out",
                extra=transition_extra(transition, outcome="move_failed"),
            )
            await self._rollback(tenant_id, resource_id)
            return None

        record = ManagedResource(
            resource_id=resource_id, tenant_id=tenant_id, owner_id=member_id
        )
        self.directory.add(record)
        self.logger.info(
            "Created AutoRoom '%s'",
            spec.name,
            extra=resource_extra(record, outcome="created"),
        )
        return record

    async def _rollback(self, tenant_id: int, resource_id: int) -> None:
        """Delete a channel that was created but never registered."""
        try:
            await self.platform.delete_resource(
                resource_id, reason="AutoRoom provisioning rolled back"
            )
        except PlatformUnavailable as e:
            self.logger.error(
                "Rollback failed; channel %s left unmanaged: %s",
                resource_id,
                e,
                extra={"guild_id": str(tenant_id), "resource_id": str(resource_id)},
            )

    # ------------------------------------------------------------------
    # Reclaiming
    # ------------------------------------------------------------------

    async def reclaim(self, resource_id: int) -> ReclaimOutcome:
        """
        Delete a managed channel if it is empty.

        Safe to call any number of times and from concurrent callers: the
        first one to find the channel empty deletes it, the rest see no
        record and do nothing.
        """
        if not self.directory.is_managed(resource_id):
            return ReclaimOutcome.NOT_MANAGED

        async with self.directory.resource_lock(resource_id):
            record = self.directory.get(resource_id)
            if record is None:
                return ReclaimOutcome.NOT_MANAGED

            try:
                occupancy = await self.platform.get_live_occupancy(resource_id)
            except ResourceAlreadyGone:
                self._forget(resource_id)
                self.logger.info(
                    "AutoRoom already deleted, forgetting it",
                    extra=resource_extra(record, outcome="already_gone"),
                )
                return ReclaimOutcome.ALREADY_GONE
            except (PlatformUnavailable, asyncio.TimeoutError) as e:
                self.logger.warning(
                    "Occupancy check failed: %s",
                    e,
                    extra=resource_extra(record, outcome="failed"),
                )
                return ReclaimOutcome.FAILED

            if occupancy > 0:
                self.directory.update_occupancy(resource_id, occupancy)
                return ReclaimOutcome.OCCUPIED

            try:
                result = await self.platform.delete_resource(
                    resource_id, reason="AutoRoom empty"
                )
            except (PlatformUnavailable, asyncio.TimeoutError) as e:
                self.logger.warning(
                    "Delete failed, will retry on next sweep: %s",
                    e,
                    extra=resource_extra(record, outcome="failed"),
                )
                return ReclaimOutcome.FAILED

            self._forget(resource_id)
            self.logger.info(
                "Deleted empty AutoRoom",
                extra=resource_extra(record, outcome=result.value),
            )
            return ReclaimOutcome.DELETED

    # ------------------------------------------------------------------
    # Sweeper
    # ------------------------------------------------------------------

    async def sweep_once(self) -> SweepReport:
        """Check every managed channel once and reclaim the empty ones."""
        checked = deleted = dropped = failed = 0

        for record in self.directory.snapshot():
            resource_id = record.resource_id
            checked += 1
            try:
                occupancy = await self.platform.get_live_occupancy(resource_id)
            except ResourceAlreadyGone:
                async with self.directory.resource_lock(resource_id):
                    if self._forget(resource_id) is not None:
                        dropped += 1
                        self.logger.info(
                            "Dropped AutoRoom deleted outside the bot",
                            extra=resource_extra(record, outcome="dropped"),
                        )
                continue
            except (PlatformUnavailable, asyncio.TimeoutError) as e:
                failed += 1
                self.logger.warning(
                    "Sweep could not check channel: %s",
                    e,
                    extra=resource_extra(record, outcome="failed"),
                )
                continue

            if occupancy > 0:
                self.directory.update_occupancy(resource_id, occupancy)
                continue

            outcome = await self.reclaim(resource_id)
            if outcome is ReclaimOutcome.DELETED:
                deleted += 1
            elif outcome is ReclaimOutcome.ALREADY_GONE:
                dropped += 1
            elif outcome is ReclaimOutcome.FAILED:
                failed += 1

        self.directory.prune_locks()

        report = SweepReport(checked, deleted, dropped, failed)
        self._last_sweep = report
        self._last_sweep_at = time.time()
        if deleted or dropped or failed:
            self.logger.info(
                "Sweep finished: checked=%s deleted=%s dropped=%s failed=%s", *report
            )
        return report

    async def _sleep_unless_stopped(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._sweeper_stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _sweeper_loop(self) -> None:
        if await self._sleep_unless_stopped(self.sweep_start_delay):
            return

        while not self._sweeper_stop.is_set():
            try:
                await self.sweep_once()
            except Exception as e:
                self.logger.exception("Error in AutoRoom sweeper", exc_info=e)

            if await self._sleep_unless_stopped(self.sweep_interval):
                break

        self.logger.debug("AutoRoom sweeper stopped")

    # ------------------------------------------------------------------
    # Guild administration
    # ------------------------------------------------------------------

    def list_managed_resources(self, tenant_id: int) -> list[ManagedResource]:
        """Managed channels of a guild, oldest first."""
        return self.directory.records_for(tenant_id)

    async def describe_tenant(self, tenant_id: int) -> dict[str, Any]:
        """Policy and live rooms of a guild, as shown by an admin listing."""
        policy = await self.config_service.get_tenant_policy(tenant_id)
        rooms = self.list_managed_resources(tenant_id)
        return {
            "guild_id": tenant_id,
            "configured": policy is not None,
            "creator_channel_id": policy.creator_resource_id if policy else None,
            "category_id": policy.parent_group_id if policy else None,
            "name_template": policy.name_template if policy else None,
            "capacity": clamp_capacity(policy.capacity) if policy else None,
            "bitrate_kbps": clamp_bitrate(policy.bitrate) // 1000 if policy else None,
            "is_private": policy.is_private if policy else None,
            # Informational only; rooms are deleted as soon as they are empty
            "cleanup_grace_minutes": policy.cleanup_grace_minutes if policy else None,
            "rooms": [
                {
                    "channel_id": room.resource_id,
                    "owner_id": room.owner_id,
                    "created_at": room.created_at,
                    "occupancy": room.occupancy_count,
                }
                for room in rooms
            ],
        }

    async def force_reclaim(self, tenant_id: int) -> int:
        """Reclaim every managed channel of a guild; returns how many were deleted."""
        deleted = 0
        for record in self.directory.records_for(tenant_id):
            if await self.reclaim(record.resource_id) is ReclaimOutcome.DELETED:
                deleted += 1
        self.logger.info(
            "Force cleanup removed %s empty AutoRooms",
            deleted,
            extra={"guild_id": str(tenant_id)},
        )
        return deleted

    async def reset_tenant(self, tenant_id: int, *, clear_policy: bool = False) -> int:
        """
        Delete every managed channel of a guild and forget the guild.

        Best effort: a failed delete is logged and the record is dropped
        anyway. Other guilds are untouched.

        Args:
            tenant_id: Guild to reset
            clear_policy: Also remove the stored AutoRoom settings

        Returns:
            Number of channels deleted on the platform
        """
        deleted = 0
        for record in self.directory.records_for(tenant_id):
            resource_id = record.resource_id
            async with self.directory.resource_lock(resource_id):
                if self.directory.get(resource_id) is None:
                    continue
                try:
                    result = await self.platform.delete_resource(
                        resource_id, reason="AutoRoom reset"
                    )
                except (PlatformUnavailable, asyncio.TimeoutError) as e:
                    self.logger.warning(
                        "Reset could not delete channel: %s",
                        e,
                        extra=resource_extra(record, outcome="failed"),
                    )
                    continue
                if result is DeleteResult.DELETED:
                    deleted += 1

        dropped = self._drop_tenant(tenant_id)
        if clear_policy:
            await self.config_service.clear_tenant_policy(tenant_id)

        self.logger.info(
            "Reset AutoRoom for guild: %s deleted, %s records dropped",
            deleted,
            len(dropped),
            extra={"guild_id": str(tenant_id)},
        )
        return deleted

    def forget_resource(self, resource_id: int) -> bool:
        """Drop the record of a channel that was deleted outside the bot."""
        record = self._forget(resource_id)
        if record is None:
            return False
        self.logger.info(
            "AutoRoom deleted externally", extra=resource_extra(record, outcome="forgotten")
        )
        return True

    def discard_tenant(self, tenant_id: int) -> int:
        """Forget a guild the bot has left. No platform calls."""
        dropped = self._drop_tenant(tenant_id)
        if dropped:
            self.logger.info(
                "Forgot %s AutoRooms of departed guild",
                len(dropped),
                extra={"guild_id": str(tenant_id)},
            )
        return len(dropped)

    async def health_check(self) -> dict[str, Any]:
        """Return health information for the AutoRoom service."""
        base_health = await super().health_check()

        last_sweep = self._last_sweep._asdict() if self._last_sweep else None
        return {
            **base_health,
            "managed_rooms": len(self.directory),
            "rooms_per_guild": {
                str(tenant_id): count
                for tenant_id, count in self.directory.tenants().items()
            },
            "queue_depth": self._queue.qsize(),
            "in_flight_handlers": len(self._handlers),
            "provisioning": len(self._provisioning),
            "recently_created": len(self._recently_created),
            "resource_locks": self.directory.lock_count,
            "sweeper_running": self._sweeper_task is not None
            and not self._sweeper_task.done(),
            "sweep_interval_seconds": self.sweep_interval,
            "last_sweep": last_sweep,
            "last_sweep_at": self._last_sweep_at,
        }
