"""API router for aumos-audit-trail.

Read-only endpoints for building history views and reports. Routes are
thin; all logic lives in AuditService. Included in main.py under the
/api/v1 prefix.

Endpoints:
- GET /audits                                  : Filtered report across the log
- GET /audits/{type}/{id}                      : Full trail of one entity
- GET /audits/{type}/{id}/ancestors?version=N  : Trail up to version N
- GET /audits/{type}/{id}/versions/{N}         : Attributes as of version N
- GET /audited-types                           : Registered audited type names
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_audit_trail.adapters.audit_wall import SqlAuditStore, get_audit_db_session
from aumos_audit_trail.api.schemas import AuditedTypesResponse, AuditRecordResponse, RevisionResponse
from aumos_audit_trail.core.reconstruction import VERSION_ATTRIBUTE
from aumos_audit_trail.core.registry import EntityTypeRegistry
from aumos_audit_trail.core.services import AuditService
from aumos_audit_trail.core.types import ActorRef, EntityRef, LinkedUser, NamedUser
from aumos_audit_trail.core.versioning import EntityLockRegistry
from aumos_audit_trail.errors import ValidationError
from aumos_audit_trail.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["audit-trail"])


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def get_entity_registry(request: Request) -> EntityTypeRegistry:
    """Return the registry the host stored on app.state, or an empty one."""
    registry = getattr(request.app.state, "entity_registry", None)
    return registry if registry is not None else EntityTypeRegistry()


def get_audit_service(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_audit_db_session)],
    registry: Annotated[EntityTypeRegistry, Depends(get_entity_registry)],
) -> AuditService:
    """Construct AuditService over the Audit Wall session."""
    locks = getattr(request.app.state, "entity_locks", None)
    settings = getattr(request.app.state, "settings", None)
    return AuditService(
        store=SqlAuditStore(session),
        registry=registry,
        locks=locks if isinstance(locks, EntityLockRegistry) else None,
        user_type_tag=settings.user_type_tag if settings is not None else None,
    )


AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
AuditableType = Annotated[str, Path(min_length=1, max_length=100)]
AuditableId = Annotated[str, Path(min_length=1, max_length=100)]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/audits", response_model=list[AuditRecordResponse])
async def query_audits(
    service: AuditServiceDep,
    auditable_type: str | None = Query(default=None),
    user_id: str | None = Query(default=None, description="Linked-user actor id"),
    username: str | None = Query(default=None, description="Named-user actor label"),
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
) -> list[AuditRecordResponse]:
    """Report across the audit log, newest first."""
    if user_id is not None and username is not None:
        raise ValidationError("Filter by user_id or username, not both")
    actor: ActorRef | None = None
    if user_id is not None:
        actor = LinkedUser(user_id=user_id)
    elif username is not None:
        actor = NamedUser(name=username)

    records = await service.query_trail(
        auditable_type=auditable_type,
        actor=actor,
        start_time=start_time,
        end_time=end_time,
        page=page,
        page_size=page_size,
    )
    return [AuditRecordResponse.from_record(record) for record in records]


@router.get("/audits/{auditable_type}/{auditable_id}", response_model=list[AuditRecordResponse])
async def get_trail(
    auditable_type: AuditableType,
    auditable_id: AuditableId,
    service: AuditServiceDep,
) -> list[AuditRecordResponse]:
    """Return the full history of one entity, oldest first."""
    records = await service.trail_for(EntityRef(type_tag=auditable_type, id=auditable_id))
    return [AuditRecordResponse.from_record(record) for record in records]


@router.get(
    "/audits/{auditable_type}/{auditable_id}/ancestors",
    response_model=list[AuditRecordResponse],
)
async def get_ancestors(
    auditable_type: AuditableType,
    auditable_id: AuditableId,
    service: AuditServiceDep,
    version: int = Query(..., description="Highest version to include"),
) -> list[AuditRecordResponse]:
    """Return one entity's records up to and including `version`."""
    records = await service.ancestors_up_to(
        EntityRef(type_tag=auditable_type, id=auditable_id),
        version,
    )
    return [AuditRecordResponse.from_record(record) for record in records]


@router.get(
    "/audits/{auditable_type}/{auditable_id}/versions/{version}",
    response_model=RevisionResponse,
)
async def get_revision(
    auditable_type: AuditableType,
    auditable_id: AuditableId,
    version: int,
    service: AuditServiceDep,
) -> RevisionResponse:
    """Return the entity's attributes as they were at `version`."""
    attributes = await service.reconstruct(
        EntityRef(type_tag=auditable_type, id=auditable_id),
        version,
    )
    reflected_version = attributes.pop(VERSION_ATTRIBUTE, None)
    return RevisionResponse(
        auditable_type=auditable_type,
        auditable_id=auditable_id,
        requested_version=version,
        version=reflected_version,
        attributes=attributes,
    )


@router.get("/audited-types", response_model=AuditedTypesResponse)
async def list_audited_types(
    registry: Annotated[EntityTypeRegistry, Depends(get_entity_registry)],
) -> AuditedTypesResponse:
    """Return the entity type names registered as audited."""
    return AuditedTypesResponse(audited_types=sorted(registry.audited_type_names))
