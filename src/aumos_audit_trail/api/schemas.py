"""Pydantic response schemas for the audit trail read API.

All API outputs use Pydantic models, never raw dicts.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from aumos_audit_trail.core.types import AuditRecord, LinkedUser, NamedUser


class ChangeResponse(BaseModel):
    """One attribute change inside an audit record."""

    old: Any = Field(description="Value before the change")
    new: Any = Field(description="Value after the change")


class AuditRecordResponse(BaseModel):
    """Response schema for a single audit record."""

    id: uuid.UUID = Field(description="Audit record UUID")
    auditable_type: str = Field(description="Entity type tag of the audited record")
    auditable_id: str = Field(description="Id of the audited record")
    association_type: str | None = Field(default=None, description="Related entity type tag")
    association_id: str | None = Field(default=None, description="Related entity id")
    user_id: str | None = Field(default=None, description="Linked-user actor id")
    username: str | None = Field(default=None, description="Named-user actor label")
    action: str = Field(description="create | update | destroy")
    changes: dict[str, ChangeResponse] = Field(description="Attribute -> old/new values")
    version: int = Field(description="Per-entity version number")
    comment: str | None = Field(default=None, description="Free-text annotation")
    created_at: datetime = Field(description="UTC timestamp of the change")

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditRecordResponse":
        """Flatten a domain record into the API shape."""
        return cls(
            id=record.id,
            auditable_type=record.auditable.type_tag,
            auditable_id=record.auditable.id,
            association_type=record.association.type_tag if record.association else None,
            association_id=record.association.id if record.association else None,
            user_id=record.actor.user_id if isinstance(record.actor, LinkedUser) else None,
            username=record.actor.name if isinstance(record.actor, NamedUser) else None,
            action=record.action,
            changes={
                name: ChangeResponse(old=old, new=new)
                for name, (old, new) in record.change_set.changes.items()
            },
            version=record.version,
            comment=record.comment,
            created_at=record.created_at,
        )


class RevisionResponse(BaseModel):
    """Reconstructed attributes of an entity at a version."""

    auditable_type: str = Field(description="Entity type tag")
    auditable_id: str = Field(description="Entity id")
    requested_version: int = Field(description="Version asked for")
    version: int | None = Field(
        description="Version the state actually reflects; None when no record matched",
    )
    attributes: dict[str, Any] = Field(description="Attribute state, without the version key")


class AuditedTypesResponse(BaseModel):
    """Names of the entity types registered as audited."""

    audited_types: list[str] = Field(description="Sorted audited entity type names")
