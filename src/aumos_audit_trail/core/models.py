"""SQLAlchemy ORM model for the audit trail.

Models:
- AuditRecordRow: one row per change event in the append-only `audits` table

The table has NO UPDATE or DELETE operations. Rows are written only through
SqlAuditStore.append() and converted to the frozen AuditRecord domain type
on the way out.

Indexes support trail lookups by auditable entity, reporting by association,
by linked user, and by time range. The unique constraint on
(auditable_type, auditable_id, version) makes concurrent writers that
computed the same version fail rather than fork an entity's history.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from aumos_audit_trail.core.codec import decode_change_set, encode_change_set
from aumos_audit_trail.core.types import (
    NO_ACTOR,
    ActorRef,
    AuditRecord,
    EntityRef,
    LinkedUser,
    NamedUser,
)


class Base(DeclarativeBase):
    """Declarative base for audit trail tables."""


class AuditRecordRow(Base):
    """Immutable audit row for one change to an audited entity.

    Attributes:
        id: Record UUID.
        auditable_type: Type tag of the changed entity.
        auditable_id: Id of the changed entity.
        association_type: Type tag of the related entity, if any.
        association_id: Id of the related entity, if any.
        user_id: Linked-user actor id. Mutually exclusive with username.
        username: Named-user actor label. Mutually exclusive with user_id.
        action: create | update | destroy.
        changes: JSON text produced by the diff codec.
        version: Gapless per-entity version number.
        comment: Optional free-text annotation.
        created_at: Immutable UTC timestamp of the change.
    """

    __tablename__ = "audits"
    __table_args__ = (
        UniqueConstraint(
            "auditable_type",
            "auditable_id",
            "version",
            name="uq_audits_auditable_version",
        ),
        Index("ix_audits_auditable", "auditable_id", "auditable_type"),
        Index("ix_audits_association", "association_id", "association_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    auditable_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Entity type tag of the audited record",
    )
    auditable_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Id of the audited record",
    )
    association_type: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Entity type tag of a related record, e.g. the owning parent",
    )
    association_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Id of the related record",
    )
    user_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Linked-user actor id. NULL when username is set or no actor.",
    )
    username: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Named-user actor label. NULL when user_id is set or no actor.",
    )
    action: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="create | update | destroy",
    )
    changes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Encoded change-set: {attribute: [old, new]}",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Gapless version number within auditable_type + auditable_id",
    )
    comment: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Optional free-text annotation",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Immutable change timestamp (UTC)",
    )

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditRecordRow":
        """Build an unsaved row from a domain record."""
        user_id, username = actor_columns(record.actor)
        return cls(
            id=record.id,
            auditable_type=record.auditable.type_tag,
            auditable_id=record.auditable.id,
            association_type=record.association.type_tag if record.association else None,
            association_id=record.association.id if record.association else None,
            user_id=user_id,
            username=username,
            action=record.action,
            changes=encode_change_set(record.change_set),
            version=record.version,
            comment=record.comment,
            created_at=record.created_at,
        )

    def to_record(self) -> AuditRecord:
        """Convert this row to the frozen domain type.

        Raises:
            DecodeError: If the stored change-set blob is malformed.
        """
        association = None
        if self.association_type is not None and self.association_id is not None:
            association = EntityRef(type_tag=self.association_type, id=self.association_id)
        return AuditRecord(
            id=self.id,
            auditable=EntityRef(type_tag=self.auditable_type, id=self.auditable_id),
            association=association,
            actor=actor_from_columns(self.user_id, self.username),
            action=self.action,  # type: ignore[arg-type]
            change_set=decode_change_set(self.changes),
            version=self.version,
            comment=self.comment,
            created_at=self.created_at,
        )


def actor_columns(actor: ActorRef) -> tuple[str | None, str | None]:
    """Split an actor into (user_id, username) column values.

    At most one of the two is set.
    """
    if isinstance(actor, LinkedUser):
        return actor.user_id, None
    if isinstance(actor, NamedUser):
        return None, actor.name
    return None, None


def actor_from_columns(user_id: str | None, username: str | None) -> ActorRef:
    """Inverse of actor_columns(). user_id wins if both are somehow set."""
    if user_id is not None:
        return LinkedUser(user_id=user_id)
    if username is not None:
        return NamedUser(name=username)
    return NO_ACTOR
