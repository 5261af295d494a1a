"""AumOS Audit Trail service entry point.

Initializes the FastAPI application with:
- Structured logging
- Audit Wall database connection for the append-only audit log
- Entity type registry and per-entity lock registry on app.state

Hosts embedding the read API register their entity types on
app.state.entity_registry before serving requests.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aumos_audit_trail.adapters.audit_wall import close_audit_db, create_audit_schema, init_audit_db
from aumos_audit_trail.api.router import router
from aumos_audit_trail.core.registry import EntityTypeRegistry
from aumos_audit_trail.core.versioning import EntityLockRegistry
from aumos_audit_trail.errors import AuditTrailError
from aumos_audit_trail.observability import configure_logging, get_logger
from aumos_audit_trail.settings import Settings

logger = get_logger(__name__)

settings = Settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    configure_logging(settings.log_level, settings.log_format)

    logger.info(
        "Initializing Audit Wall database",
        service=settings.service_name,
        pool_size=settings.audit_db_pool_size,
    )
    await init_audit_db(
        audit_db_url=settings.audit_db_url,
        pool_size=settings.audit_db_pool_size,
        max_overflow=settings.audit_db_max_overflow,
        pool_timeout=settings.audit_db_pool_timeout,
    )
    if settings.audit_db_create_schema:
        await create_audit_schema()

    if getattr(app.state, "entity_registry", None) is None:
        app.state.entity_registry = EntityTypeRegistry()
    app.state.entity_locks = EntityLockRegistry()
    app.state.settings = settings

    logger.info("Audit trail startup complete", service=settings.service_name)

    yield

    logger.info("Shutting down audit trail")
    await close_audit_db()
    logger.info("Audit trail shutdown complete")


async def audit_error_handler(request: Request, exc: AuditTrailError) -> JSONResponse:
    """Render AuditTrailError subclasses with their status code and error code."""
    logger.warning(
        "Request failed",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict())


def create_app() -> FastAPI:
    """Build the FastAPI application with routes and error handlers."""
    application = FastAPI(
        title="aumos-audit-trail",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_exception_handler(AuditTrailError, audit_error_handler)  # type: ignore[arg-type]
    application.include_router(router, prefix="/api/v1")
    return application


app: FastAPI = create_app()
