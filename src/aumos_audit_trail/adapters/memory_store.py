"""Append-only in-memory audit store.

Keeps each entity's records in a list sorted by version, with a parallel
list of version ints for bisect lookups. All write operations are
append-only; no updates or deletes are permitted.

Suitable for tests and for hosts that embed the audit trail without a
database. Like the audits table, it rejects a second record with the same
(auditable_type, auditable_id, version).
"""

from __future__ import annotations

import bisect
import uuid
from datetime import datetime

from aumos_audit_trail.core.types import ActorRef, AuditRecord, NoActor
from aumos_audit_trail.errors import NotFoundError, PersistenceError
from aumos_audit_trail.observability import get_logger

logger = get_logger(__name__)


class InMemoryAuditStore:
    """IAuditStore backed by per-entity sorted lists.

    Lookups for one entity are O(log n) + O(k) where k is the result size.
    Cross-entity queries (association, actor, time range) scan every record.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        # { (auditable_type, auditable_id): list[AuditRecord] } sorted by version
        self._records: dict[tuple[str, str], list[AuditRecord]] = {}
        # Parallel list of version ints for bisect operations
        self._versions: dict[tuple[str, str], list[int]] = {}
        self._by_id: dict[uuid.UUID, AuditRecord] = {}

    async def append(self, record: AuditRecord) -> AuditRecord:
        """Append a record at its sorted position.

        Raises:
            PersistenceError: If the entity already has a record with this
                version, or a record with this id already exists.
        """
        key = record.auditable.key
        versions = self._versions.setdefault(key, [])
        records = self._records.setdefault(key, [])

        index = bisect.bisect_left(versions, record.version)
        if index < len(versions) and versions[index] == record.version:
            logger.warning(
                "Audit record rejected: duplicate version",
                auditable_type=record.auditable.type_tag,
                auditable_id=record.auditable.id,
                version=record.version,
            )
            raise PersistenceError(
                "Audit record violates a store constraint",
                code="audit.version_conflict",
                status_code=409,
                meta={
                    "auditable_type": record.auditable.type_tag,
                    "auditable_id": record.auditable.id,
                    "version": record.version,
                },
            )
        if record.id in self._by_id:
            raise PersistenceError(
                f"Audit record {record.id} already exists",
                code="audit.duplicate_id",
                status_code=409,
            )

        versions.insert(index, record.version)
        records.insert(index, record)
        self._by_id[record.id] = record
        return record

    async def max_version(self, auditable_type: str, auditable_id: str) -> int | None:
        versions = self._versions.get((auditable_type, auditable_id))
        return versions[-1] if versions else None

    async def ancestors(
        self,
        auditable_type: str,
        auditable_id: str,
        version: int,
    ) -> list[AuditRecord]:
        key = (auditable_type, auditable_id)
        if key not in self._versions:
            return []
        high = bisect.bisect_right(self._versions[key], version)
        return self._records[key][:high]

    async def trail(self, auditable_type: str, auditable_id: str) -> list[AuditRecord]:
        return list(self._records.get((auditable_type, auditable_id), []))

    async def for_association(
        self,
        association_type: str,
        association_id: str,
    ) -> list[AuditRecord]:
        results = [
            record
            for record in self._by_id.values()
            if record.association is not None
            and record.association.key == (association_type, association_id)
        ]
        results.sort(key=lambda r: (r.created_at, r.version))
        return results

    async def get_by_id(self, record_id: uuid.UUID) -> AuditRecord:
        record = self._by_id.get(record_id)
        if record is None:
            raise NotFoundError(resource="AuditRecord", resource_id=str(record_id))
        return record

    async def query(
        self,
        auditable_type: str | None = None,
        actor: ActorRef | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> list[AuditRecord]:
        results = []
        for record in self._by_id.values():
            if auditable_type and record.auditable.type_tag != auditable_type:
                continue
            if actor is not None and not _same_actor(record.actor, actor):
                continue
            if start_time is not None and record.created_at < start_time:
                continue
            if end_time is not None and record.created_at > end_time:
                continue
            results.append(record)
        # Most recent first
        results.sort(key=lambda r: (r.created_at, r.version), reverse=True)
        offset = (page - 1) * page_size
        return results[offset:offset + page_size]

    def count(self) -> int:
        """Return the total number of stored records."""
        return len(self._by_id)


def _same_actor(recorded: ActorRef, wanted: ActorRef) -> bool:
    if isinstance(wanted, NoActor):
        return isinstance(recorded, NoActor)
    return recorded == wanted
