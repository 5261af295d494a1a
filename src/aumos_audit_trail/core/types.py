"""Domain types for the audit trail.

All types are frozen pydantic models:
- EntityRef   : polymorphic (type_tag, id) reference to any host entity
- ActorRef    : NamedUser | LinkedUser | NoActor tagged union
- ChangeSet   : attribute -> (old, new) pairs for one change event
- AuditRecord : one immutable, versioned entry in an entity's audit log
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aumos_audit_trail.errors import ValidationError

AuditAction = Literal["create", "update", "destroy"]

AUDIT_ACTIONS: tuple[str, ...] = ("create", "update", "destroy")


def _as_id(value: Any) -> str:
    if value is None:
        raise ValueError("entity id must not be None")
    return str(value)


class EntityRef(BaseModel):
    """Tagged reference to a host entity.

    Ids of any host type (int, UUID, str) are normalised to str so that
    references compare equal regardless of how the host spells the id.

    Attributes:
        type_tag: Registered entity type name, e.g. "Post".
        id: Opaque entity identifier.
    """

    model_config = ConfigDict(frozen=True)

    type_tag: str = Field(..., min_length=1, description="Registered entity type name")
    id: str = Field(..., description="Opaque entity identifier")

    @field_validator("id", mode="before")
    @classmethod
    def _normalise_id(cls, value: Any) -> str:
        return _as_id(value)

    @classmethod
    def of(cls, type_tag: str, entity_id: Any) -> EntityRef:
        """Build a reference from a type tag and a host id."""
        return cls(type_tag=type_tag, id=entity_id)

    @property
    def key(self) -> tuple[str, str]:
        return (self.type_tag, self.id)


class NamedUser(BaseModel):
    """Actor recorded as a free-form string label."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["named"] = "named"
    name: str = Field(..., description="User label, e.g. a login name or job name")


class LinkedUser(BaseModel):
    """Actor recorded as a reference to a host user entity.

    The referenced user is not validated to exist.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["linked"] = "linked"
    user_id: str = Field(..., description="Identifier of the host user entity")

    @field_validator("user_id", mode="before")
    @classmethod
    def _normalise_id(cls, value: Any) -> str:
        return _as_id(value)


class NoActor(BaseModel):
    """No actor could be attributed to the change."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


ActorRef = Annotated[Union[NamedUser, LinkedUser, NoActor], Field(discriminator="kind")]

NO_ACTOR = NoActor()


class ChangeSet(BaseModel):
    """Attribute changes for a single change event.

    Maps attribute name to an (old value, new value) pair. Values may be any
    primitive the diff codec supports (str, number, bool, None, dates,
    Decimal, UUID) or lists/dicts of those.
    """

    model_config = ConfigDict(frozen=True)

    changes: dict[str, tuple[Any, Any]] = Field(default_factory=dict)

    @classmethod
    def from_pairs(cls, changes: dict[str, Any]) -> ChangeSet:
        """Build a change-set from a mapping of attribute -> (old, new).

        Raises:
            ValidationError: If a value is not a two-element list or tuple.
        """
        pairs: dict[str, tuple[Any, Any]] = {}
        for name, pair in changes.items():
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise ValidationError(
                    f"Change for attribute {name!r} is not an (old, new) pair",
                    meta={"attribute": name},
                )
            pairs[name] = (pair[0], pair[1])
        return cls(changes=pairs)

    def new_attributes(self) -> dict[str, Any]:
        """Return the changed attributes with their new values."""
        return {name: pair[1] for name, pair in self.changes.items()}

    def old_attributes(self) -> dict[str, Any]:
        """Return the changed attributes with their old values."""
        return {name: pair[0] for name, pair in self.changes.items()}

    def attribute_names(self) -> list[str]:
        return sorted(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    def __bool__(self) -> bool:
        return bool(self.changes)


class AuditRecord(BaseModel):
    """Immutable record of one change to an audited entity.

    Attributes:
        id: Globally unique record identifier.
        auditable: The entity that changed.
        association: Optional related entity involved in the change,
            e.g. the owning parent.
        actor: Who made the change.
        action: create | update | destroy.
        change_set: Attribute changes carried by this record.
        version: Gapless per-entity sequence number starting at 1.
        comment: Optional free-text annotation.
        created_at: UTC timestamp of the change.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Record identifier")
    auditable: EntityRef = Field(..., description="The entity that changed")
    association: EntityRef | None = Field(default=None, description="Related entity, if any")
    actor: ActorRef = Field(default_factory=NoActor, description="Who made the change")
    action: AuditAction = Field(..., description="create | update | destroy")
    change_set: ChangeSet = Field(default_factory=ChangeSet, description="Attribute changes")
    version: int = Field(..., ge=1, description="Per-entity version number")
    comment: str | None = Field(default=None, description="Free-text annotation")
    created_at: datetime = Field(..., description="UTC timestamp of the change")

    def new_attributes(self) -> dict[str, Any]:
        return self.change_set.new_attributes()

    def old_attributes(self) -> dict[str, Any]:
        return self.change_set.old_attributes()
