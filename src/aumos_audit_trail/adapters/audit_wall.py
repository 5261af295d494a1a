"""Audit Wall: SQLAlchemy engine, sessions, and the append-only audit store.

This module is the ONLY place that connects to AUMOS_AUDIT_AUDIT_DB_URL.

Key exports:
- init_audit_db(...)      : Call at startup to initialize the audit engine
- close_audit_db()        : Call at shutdown to dispose the engine
- create_audit_schema()   : Create the audits table (local development, tests)
- get_audit_db_session()  : FastAPI dependency for audit DB sessions
- SqlAuditStore           : IAuditStore with append-only write + read operations
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from aumos_audit_trail.core.models import AuditRecordRow, Base
from aumos_audit_trail.core.types import ActorRef, AuditRecord, LinkedUser, NamedUser
from aumos_audit_trail.errors import NotFoundError, PersistenceError
from aumos_audit_trail.observability import get_logger

logger = get_logger(__name__)

# Module-level engine and session factory, set by init_audit_db()
_audit_engine: AsyncEngine | None = None
_audit_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_audit_db(
    audit_db_url: str,
    pool_size: int = 5,
    max_overflow: int = 2,
    pool_timeout: int = 30,
) -> None:
    """Initialize the Audit Wall database engine and session factory.

    Must be called once at application startup before any audit record
    can be written.

    Args:
        audit_db_url: SQLAlchemy async connection URL for the audit database.
        pool_size: Connection pool size.
        max_overflow: Max overflow connections above pool_size.
        pool_timeout: Seconds to wait for a connection before raising.
    """
    global _audit_engine, _audit_session_factory  # noqa: PLW0603

    logger.info(
        "Initializing Audit Wall engine",
        pool_size=pool_size,
        max_overflow=max_overflow,
    )

    engine_kwargs: dict[str, int | bool] = {"echo": False, "pool_pre_ping": True}
    # sqlite uses a static/null pool that rejects sizing arguments
    if not audit_db_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
        )

    # Echo stays disabled so change-set values never reach the logs
    _audit_engine = create_async_engine(audit_db_url, **engine_kwargs)

    _audit_session_factory = async_sessionmaker(
        bind=_audit_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Audit Wall engine initialized")


async def close_audit_db() -> None:
    """Dispose the Audit Wall database engine."""
    global _audit_engine, _audit_session_factory  # noqa: PLW0603

    if _audit_engine is not None:
        logger.info("Disposing Audit Wall engine")
        await _audit_engine.dispose()
        _audit_engine = None
        _audit_session_factory = None


async def create_audit_schema() -> None:
    """Create the audits table and its indexes if they do not exist.

    Production schemas are managed by migrations; this is for local
    development and integration tests.

    Raises:
        RuntimeError: If init_audit_db() has not been called yet.
    """
    if _audit_engine is None:
        raise RuntimeError(
            "Audit Wall database has not been initialized. "
            "Call init_audit_db() in the application lifespan handler."
        )
    async with _audit_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info("Audit Wall schema ensured")


async def get_audit_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an Audit Wall database session.

    The transaction is committed when the request succeeds and rolled back
    on any exception, so a failed append never leaves a partial write.

    Yields:
        AsyncSession: A session connected to the Audit Wall database.

    Raises:
        RuntimeError: If init_audit_db() has not been called yet.
    """
    if _audit_session_factory is None:
        raise RuntimeError(
            "Audit Wall database has not been initialized. "
            "Call init_audit_db() in the application lifespan handler."
        )

    async with _audit_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class SqlAuditStore:
    """Append-only IAuditStore over the Audit Wall database.

    This store has no update() or delete() methods because the audit trail
    is immutable. append() flushes but does not commit; the owning session
    (see get_audit_db_session) decides the transaction boundary.

    Args:
        session: An audit DB session from get_audit_db_session().
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize SqlAuditStore with an audit DB session.

        Args:
            session: A SQLAlchemy async session connected to the Audit Wall DB.
        """
        self._session = session

    async def append(self, record: AuditRecord) -> AuditRecord:
        """Insert one audit row.

        Args:
            record: The domain record, version already assigned.

        Returns:
            The record as persisted.

        Raises:
            PersistenceError: On a constraint violation (including a lost
                version race) or any other database failure.
        """
        row = AuditRecordRow.from_record(record)
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            logger.warning(
                "Audit record rejected by constraint",
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
            ) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "Audit record write failed",
                auditable_type=record.auditable.type_tag,
                auditable_id=record.auditable.id,
                error=str(exc),
            )
            raise PersistenceError(f"Audit record write failed: {exc}") from exc

        logger.info(
            "Audit record written",
            record_id=str(record.id),
            auditable_type=record.auditable.type_tag,
            auditable_id=record.auditable.id,
            version=record.version,
            action=record.action,
        )
        return record

    async def max_version(self, auditable_type: str, auditable_id: str) -> int | None:
        """Return the entity's highest version, or None when it has no rows.

        Raises:
            PersistenceError: If the database cannot be read. This query is
                part of the write path, so it fails the same way append does.
        """
        stmt = select(func.max(AuditRecordRow.version)).where(
            AuditRecordRow.auditable_type == auditable_type,
            AuditRecordRow.auditable_id == auditable_id,
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read current version: {exc}") from exc
        return result.scalar()

    async def ancestors(
        self,
        auditable_type: str,
        auditable_id: str,
        version: int,
    ) -> list[AuditRecord]:
        """Return the entity's rows with version <= `version`, ascending.

        Raises:
            DecodeError: If a stored change-set is malformed.
        """
        stmt = (
            select(AuditRecordRow)
            .where(
                AuditRecordRow.auditable_type == auditable_type,
                AuditRecordRow.auditable_id == auditable_id,
                AuditRecordRow.version <= version,
            )
            .order_by(AuditRecordRow.version)
        )
        return await self._fetch(stmt)

    async def trail(self, auditable_type: str, auditable_id: str) -> list[AuditRecord]:
        stmt = (
            select(AuditRecordRow)
            .where(
                AuditRecordRow.auditable_type == auditable_type,
                AuditRecordRow.auditable_id == auditable_id,
            )
            .order_by(AuditRecordRow.version)
        )
        return await self._fetch(stmt)

    async def for_association(
        self,
        association_type: str,
        association_id: str,
    ) -> list[AuditRecord]:
        stmt = (
            select(AuditRecordRow)
            .where(
                AuditRecordRow.association_type == association_type,
                AuditRecordRow.association_id == association_id,
            )
            .order_by(AuditRecordRow.created_at, AuditRecordRow.version)
        )
        return await self._fetch(stmt)

    async def get_by_id(self, record_id: uuid.UUID) -> AuditRecord:
        """Retrieve a single audit record by ID.

        Raises:
            NotFoundError: If not found.
        """
        stmt = select(AuditRecordRow).where(AuditRecordRow.id == record_id)
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(resource="AuditRecord", resource_id=str(record_id))
        return row.to_record()

    async def query(
        self,
        auditable_type: str | None = None,
        actor: ActorRef | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> list[AuditRecord]:
        """Query the audit log with filters, newest first."""
        stmt = select(AuditRecordRow)

        if auditable_type:
            stmt = stmt.where(AuditRecordRow.auditable_type == auditable_type)
        if isinstance(actor, LinkedUser):
            stmt = stmt.where(AuditRecordRow.user_id == actor.user_id)
        elif isinstance(actor, NamedUser):
            stmt = stmt.where(AuditRecordRow.username == actor.name)
        elif actor is not None:
            stmt = stmt.where(
                AuditRecordRow.user_id.is_(None),
                AuditRecordRow.username.is_(None),
            )
        if start_time:
            stmt = stmt.where(AuditRecordRow.created_at >= start_time)
        if end_time:
            stmt = stmt.where(AuditRecordRow.created_at <= end_time)

        stmt = stmt.order_by(AuditRecordRow.created_at.desc(), AuditRecordRow.version.desc())
        stmt = stmt.offset((page - 1) * page_size).limit(page_size)
        return await self._fetch(stmt)

    async def _fetch(self, stmt: object) -> list[AuditRecord]:
        result = await self._session.execute(stmt)  # type: ignore[arg-type]
        return [row.to_record() for row in result.scalars().all()]
