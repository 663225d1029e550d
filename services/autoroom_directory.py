"""
In-memory directory of AutoRoom channels.

Layout is ``tenant_id -> {resource_id -> ManagedResource}`` plus a table of
per-resource locks. All bucket mutations are synchronous, so they never
interleave with another coroutine; callers that need a check-then-act across
an ``await`` hold ``resource_lock(resource_id)``.
"""

import asyncio
import time

from utils.logging import get_logger
from utils.types import ManagedResource

logger = get_logger(__name__)


class RoomDirectory:
    """Tracks every channel the AutoRoom service created and still owns."""

    def __init__(self) -> None:
        self._buckets: dict[int, dict[int, ManagedResource]] = {}
        # resource_id -> tenant_id, keeps ids unique across tenants
        self._index: dict[int, int] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_last_used: dict[int, float] = {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._index

    def add(self, record: ManagedResource) -> None:
        """Register a new record. A resource id may only be registered once."""
        if record.resource_id in self._index:
            raise ValueError(f"Channel {record.resource_id} is already managed")
        self._buckets.setdefault(record.tenant_id, {})[record.resource_id] = record
        self._index[record.resource_id] = record.tenant_id

    def get(self, resource_id: int) -> ManagedResource | None:
        tenant_id = self._index.get(resource_id)
        if tenant_id is None:
            return None
        return self._buckets.get(tenant_id, {}).get(resource_id)

    def is_managed(self, resource_id: int | None) -> bool:
        return resource_id is not None and resource_id in self._index

    def remove(self, resource_id: int) -> ManagedResource | None:
        """Remove a record, returning it, or None if it was not present."""
        tenant_id = self._index.pop(resource_id, None)
        if tenant_id is None:
            return None
        bucket = self._buckets.get(tenant_id, {})
        record = bucket.pop(resource_id, None)
        if not bucket:
            self._buckets.pop(tenant_id, None)
        return record

    def update_occupancy(self, resource_id: int, count: int) -> bool:
        """Refresh the observed member count; False if the record is gone."""
        record = self.get(resource_id)
        if record is None:
            return False
        record.occupancy_count = count
        return True

    def records_for(self, tenant_id: int) -> list[ManagedResource]:
        """Records of one tenant, oldest first."""
        bucket = self._buckets.get(tenant_id, {})
        return sorted(bucket.values(), key=lambda r: r.created_at)

    def count_owned(self, tenant_id: int, owner_id: int) -> int:
        bucket = self._buckets.get(tenant_id, {})
        return sum(1 for record in bucket.values() if record.owner_id == owner_id)

    def snapshot(self) -> list[ManagedResource]:
        """Copy of the record list across all tenants, safe to iterate across awaits."""
        return [
            record for bucket in self._buckets.values() for record in bucket.values()
        ]

    def tenants(self) -> dict[int, int]:
        """Managed room count per tenant."""
        return {tenant_id: len(bucket) for tenant_id, bucket in self._buckets.items()}

    def drop_tenant(self, tenant_id: int) -> list[ManagedResource]:
        """Remove a tenant's whole bucket and return what it held."""
        bucket = self._buckets.pop(tenant_id, {})
        for resource_id in bucket:
            self._index.pop(resource_id, None)
        return list(bucket.values())

    def resource_lock(self, resource_id: int) -> asyncio.Lock:
        """Get or create the lock serializing mutations of one channel."""
        lock = self._locks.get(resource_id)
        if lock is None:
            lock = self._locks[resource_id] = asyncio.Lock()
        self._lock_last_used[resource_id] = time.time()
        return lock

    def prune_locks(self, max_age_seconds: float = 300) -> int:
        """Remove idle locks of channels that are no longer managed."""
        cutoff = time.time() - max_age_seconds
        pruned = 0
        for resource_id in list(self._locks):
            if resource_id in self._index:
                continue
            lock = self._locks[resource_id]
            if lock.locked() or self._lock_last_used.get(resource_id, 0) > cutoff:
                continue
            del self._locks[resource_id]
            self._lock_last_used.pop(resource_id, None)
            pruned += 1
        if pruned:
            logger.debug("Pruned %s idle channel locks", pruned)
        return pruned

    @property
    def lock_count(self) -> int:
        return len(self._locks)
