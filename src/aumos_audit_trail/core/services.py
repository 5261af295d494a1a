"""Audit trail service: the single entry point for hosts.

Hosts call record_change() from their entity lifecycle hooks with the
attribute diff they computed, and use the read operations to show history
or materialise a record as it was at an earlier version.

IMPORTANT: This service contains NO update or delete operations. The audit
trail is append-only.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from aumos_audit_trail.core.actor import resolve_actor
from aumos_audit_trail.core.interfaces import IAuditStore
from aumos_audit_trail.core.reconstruction import (
    iter_reconstructions,
    project_attributes,
    reconstruct_attributes,
)
from aumos_audit_trail.core.registry import EntitySchema, EntityTypeRegistry
from aumos_audit_trail.core.types import (
    AUDIT_ACTIONS,
    ActorRef,
    AuditRecord,
    ChangeSet,
    EntityRef,
)
from aumos_audit_trail.core.versioning import EntityLockRegistry, VersionCounter
from aumos_audit_trail.errors import ReferenceResolutionError, ValidationError
from aumos_audit_trail.observability import get_logger

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuditService:
    """Append-only audit trail orchestration.

    Args:
        store: Storage implementing IAuditStore.
        registry: Entity type registry used to materialise revisions. Only
            revision_at() and revision_of() need it.
        clock: Source of record timestamps. Defaults to UTC now.
        locks: Per-entity lock registry. Services that share a store within
            one process should share this too.
        user_type_tag: When set, EntityRef actors passed to record_change()
            must reference this entity type.
    """

    def __init__(
        self,
        store: IAuditStore,
        registry: EntityTypeRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
        locks: EntityLockRegistry | None = None,
        user_type_tag: str | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock or _utc_now
        self._locks = locks if locks is not None else EntityLockRegistry()
        self._versions = VersionCounter(store)
        self._user_type_tag = user_type_tag

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_change(
        self,
        auditable: EntityRef,
        action: str,
        change_set: ChangeSet | Mapping[str, Any] | None = None,
        *,
        association: EntityRef | None = None,
        actor: Any = None,
        comment: str | None = None,
    ) -> AuditRecord:
        """Append an audit record for one change to `auditable`.

        The actor is the explicit one if given, else the ambient actor from
        acting_as()/run_as(), else NoActor. The version is assigned while
        holding the entity's lock, so concurrent calls for the same entity
        in this process receive consecutive versions.

        Args:
            auditable: The entity that changed.
            action: create | update | destroy.
            change_set: ChangeSet or mapping of attribute -> (old, new).
            association: Optional related entity.
            actor: Optional explicit actor (str, EntityRef, or ActorRef).
            comment: Optional free-text annotation.

        Returns:
            The persisted AuditRecord.

        Raises:
            ValidationError: If `action` is not a known action kind, or a
                mapping change_set holds a value that is not an (old, new) pair.
            TypeError: If `actor` is not an accepted actor spelling.
            PersistenceError: If the store rejects the write. Not retried.
        """
        if action not in AUDIT_ACTIONS:
            raise ValidationError(
                f"Unknown audit action {action!r}",
                meta={"allowed": list(AUDIT_ACTIONS)},
            )
        if change_set is None:
            change_set = ChangeSet()
        elif not isinstance(change_set, ChangeSet):
            change_set = ChangeSet.from_pairs(dict(change_set))

        resolved_actor = resolve_actor(actor, self._user_type_tag)

        async with self._locks.lock_for(auditable):
            version = await self._versions.next_version(auditable.type_tag, auditable.id)
            record = AuditRecord(
                auditable=auditable,
                association=association,
                actor=resolved_actor,
                action=action,  # type: ignore[arg-type]
                change_set=change_set,
                version=version,
                comment=comment,
                created_at=self._clock(),
            )
            persisted = await self._store.append(record)

        logger.info(
            "Recorded change",
            auditable_type=auditable.type_tag,
            auditable_id=auditable.id,
            action=action,
            version=version,
            actor_kind=resolved_actor.kind,
            attributes=change_set.attribute_names(),
        )
        return persisted

    # ------------------------------------------------------------------
    # Trail queries
    # ------------------------------------------------------------------

    async def ancestors_up_to(self, auditable: EntityRef, version: int) -> list[AuditRecord]:
        """Return the entity's records with version <= `version`, ascending."""
        return await self._store.ancestors(auditable.type_tag, auditable.id, version)

    async def trail_for(self, auditable: EntityRef) -> list[AuditRecord]:
        """Return the entity's full history, ascending by version."""
        return await self._store.trail(auditable.type_tag, auditable.id)

    async def audits_for_association(self, association: EntityRef) -> list[AuditRecord]:
        """Return every record that names `association` as its related entity."""
        return await self._store.for_association(association.type_tag, association.id)

    async def get_record(self, record_id: uuid.UUID) -> AuditRecord:
        return await self._store.get_by_id(record_id)

    async def query_trail(
        self,
        auditable_type: str | None = None,
        actor: ActorRef | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> list[AuditRecord]:
        """Report across the whole log, newest first.

        Args:
            auditable_type: Optional exact entity type filter.
            actor: Optional actor filter; NoActor matches unattributed records.
            start_time: Optional inclusive lower bound on created_at.
            end_time: Optional inclusive upper bound on created_at.
            page: Page number (1-indexed).
            page_size: Records per page.

        Raises:
            ValidationError: If page or page_size is below 1.
        """
        if page < 1 or page_size < 1:
            raise ValidationError(
                "page and page_size must be positive",
                meta={"page": page, "page_size": page_size},
            )
        return await self._store.query(
            auditable_type=auditable_type,
            actor=actor,
            start_time=start_time,
            end_time=end_time,
            page=page,
            page_size=page_size,
        )

    # ------------------------------------------------------------------
    # Reconstruction
    # ------------------------------------------------------------------

    async def reconstruct(self, auditable: EntityRef, target_version: int) -> dict[str, Any]:
        """Return the entity's attributes as of `target_version`.

        A target beyond the latest version yields the latest state. A target
        below the first version yields an empty mapping.
        """
        ancestors = await self.ancestors_up_to(auditable, target_version)
        return reconstruct_attributes(ancestors)

    async def revisions(
        self,
        auditable: EntityRef,
        target_version: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return the reconstructed attributes at every version up to the target.

        Args:
            auditable: The entity.
            target_version: Last version to include. None means all.
        """
        if target_version is None:
            records = await self.trail_for(auditable)
        else:
            records = await self.ancestors_up_to(auditable, target_version)
        return list(iter_reconstructions(records))

    async def revision_at(self, auditable: EntityRef, target_version: int) -> Any:
        """Materialise the entity as it was at `target_version`.

        The live instance is loaded through the type's schema and the
        reconstructed attributes are projected onto it; when it no longer
        exists a blank instance is built instead. When no record matches the
        target, a blank instance is returned. Nothing is persisted.

        Raises:
            ReferenceResolutionError: If the entity type is not registered.
        """
        schema = self._resolve_schema(auditable.type_tag)
        attributes = await self.reconstruct(auditable, target_version)
        if not attributes:
            return schema.new_instance()

        instance = await schema.load(auditable.id)
        if instance is None:
            logger.debug(
                "Live instance missing, projecting revision onto a blank instance",
                auditable_type=auditable.type_tag,
                auditable_id=auditable.id,
            )
            instance = schema.new_instance()
        return project_attributes(attributes, instance, schema)

    async def revision_of(self, record: AuditRecord) -> Any:
        """Materialise the audited entity as it was right after `record`."""
        return await self.revision_at(record.auditable, record.version)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def audited_classes(self) -> list[EntitySchema]:
        """Return the schemas of every audited entity type."""
        if self._registry is None:
            return []
        return self._registry.audited_classes()

    def _resolve_schema(self, type_tag: str) -> EntitySchema:
        if self._registry is None:
            raise ReferenceResolutionError(
                f"Unknown entity type {type_tag!r}: no entity registry configured",
                meta={"type_tag": type_tag},
            )
        return self._registry.resolve(type_tag)
