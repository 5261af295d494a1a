"""Service settings for aumos-audit-trail.

All settings use the AUMOS_AUDIT_ prefix and cover:
- Audit Wall database connection and pool sizing
- Linked-user attribution
- Structured logging output
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for aumos-audit-trail.

    Environment variable prefix: AUMOS_AUDIT_
    """

    service_name: str = "aumos-audit-trail"

    # -------------------------------------------------------------------------
    # Audit Wall: append-only store for audit records
    # -------------------------------------------------------------------------

    audit_db_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/aumos_audit",
        description="SQLAlchemy async URL for the audit database. "
        "The DB user only needs INSERT and SELECT grants on the audits table.",
    )
    audit_db_pool_size: int = Field(
        default=5,
        description="Connection pool size for the audit DB.",
    )
    audit_db_max_overflow: int = Field(
        default=2,
        description="Max overflow connections above audit_db_pool_size.",
    )
    audit_db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for an audit DB connection before raising an error.",
    )
    audit_db_create_schema: bool = Field(
        default=False,
        description="Create the audits table at startup. Intended for local development only.",
    )

    # -------------------------------------------------------------------------
    # Attribution
    # -------------------------------------------------------------------------

    user_type_tag: str = Field(
        default="User",
        description="Entity type tag that linked-user actors refer to.",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level.",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="json for production, console for local development.",
    )

    model_config = SettingsConfigDict(env_prefix="AUMOS_AUDIT_", extra="ignore")
