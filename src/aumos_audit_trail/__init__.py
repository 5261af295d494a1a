"""AumOS Audit Trail: versioned change tracking for host records.

Every create, update, or destroy of a tracked record is appended to an
immutable audit log with a gapless per-entity version number. Any prior
version of a record can be reconstructed by replaying its change-sets.
"""

from aumos_audit_trail.core.actor import acting_as, current_actor, resolve_actor, run_as, run_as_async
from aumos_audit_trail.core.registry import EntitySchema, EntityTypeRegistry
from aumos_audit_trail.core.services import AuditService
from aumos_audit_trail.core.types import (
    AuditRecord,
    ChangeSet,
    EntityRef,
    LinkedUser,
    NamedUser,
    NoActor,
)

__all__ = [
    "AuditRecord",
    "AuditService",
    "ChangeSet",
    "EntityRef",
    "EntitySchema",
    "EntityTypeRegistry",
    "LinkedUser",
    "NamedUser",
    "NoActor",
    "acting_as",
    "current_actor",
    "resolve_actor",
    "run_as",
    "run_as_async",
]
