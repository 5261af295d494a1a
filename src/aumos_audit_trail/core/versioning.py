"""Per-entity version numbering.

Reading the current maximum and appending the next record must happen as
one critical section per (entity type, entity id). Within a process that
section is an asyncio.Lock from EntityLockRegistry. Across processes the
audits table's unique constraint on (auditable_type, auditable_id, version)
makes the loser of a race fail with PersistenceError.
"""

import asyncio
import weakref

from aumos_audit_trail.core.interfaces import IAuditStore
from aumos_audit_trail.core.types import EntityRef


class EntityLockRegistry:
    """Hands out one asyncio.Lock per entity.

    Locks are held weakly and disappear once no coroutine holds or waits
    on them. Different entities never share a lock.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, auditable: EntityRef) -> asyncio.Lock:
        """Return the lock guarding `auditable`'s version sequence."""
        lock = self._locks.get(auditable.key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[auditable.key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class VersionCounter:
    """Computes the next version number for an entity.

    Args:
        store: The audit store to read the current maximum from.
    """

    def __init__(self, store: IAuditStore) -> None:
        self._store = store

    async def next_version(self, entity_type: str, entity_id: str) -> int:
        """Return max(existing versions) + 1, or 1 for an entity with no records.

        Callers must hold the entity's lock from EntityLockRegistry until the
        record carrying this version has been appended. The lock does not
        cover a later commit: SqlAuditStore writers on separate sessions can
        still read the same maximum, and the loser fails on the unique
        constraint with PersistenceError.
        """
        current = await self._store.max_version(entity_type, entity_id)
        return (current or 0) + 1
