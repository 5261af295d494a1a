"""Abstract interfaces (Protocol classes) for the audit trail.

The service layer depends on these protocols, never on a concrete store,
so it can run against the SQLAlchemy audit wall or the in-memory store.

Protocols defined:
- IAuditStore
"""

import uuid
from datetime import datetime
from typing import Protocol

from aumos_audit_trail.core.types import ActorRef, AuditRecord


class IAuditStore(Protocol):
    """Append-only storage contract for AuditRecord.

    Implementations expose no update or delete operations.
    """

    async def append(self, record: AuditRecord) -> AuditRecord:
        """Persist a new audit record.

        Args:
            record: The fully built record, version already assigned.

        Returns:
            The persisted record.

        Raises:
            PersistenceError: If the store rejects the write, including a
                duplicate (auditable_type, auditable_id, version).
        """
        ...

    async def max_version(self, auditable_type: str, auditable_id: str) -> int | None:
        """Return the highest version recorded for an entity, or None."""
        ...

    async def ancestors(
        self,
        auditable_type: str,
        auditable_id: str,
        version: int,
    ) -> list[AuditRecord]:
        """Return an entity's records with version <= `version`, ascending."""
        ...

    async def trail(self, auditable_type: str, auditable_id: str) -> list[AuditRecord]:
        """Return an entity's complete history, ascending by version."""
        ...

    async def for_association(
        self,
        association_type: str,
        association_id: str,
    ) -> list[AuditRecord]:
        """Return records whose association is the given entity, oldest first."""
        ...

    async def get_by_id(self, record_id: uuid.UUID) -> AuditRecord:
        """Return a single record.

        Raises:
            NotFoundError: If no record has this id.
        """
        ...

    async def query(
        self,
        auditable_type: str | None = None,
        actor: ActorRef | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> list[AuditRecord]:
        """Filter the whole log, newest first.

        Args:
            auditable_type: Optional exact entity type filter.
            actor: Optional actor filter (NamedUser or LinkedUser).
            start_time: Optional inclusive lower bound on created_at.
            end_time: Optional inclusive upper bound on created_at.
            page: Page number (1-indexed).
            page_size: Records per page.
        """
        ...
