"""Typed errors for aumos-audit-trail.

Every error carries a stable dot-separated `code` for programmatic handling,
a human-readable `message`, and the HTTP status the read API renders it with.
"""

from typing import Any


class AuditTrailError(Exception):
    """Base error for the audit trail.

    Args:
        message: Human-readable description.
        code: Stable error code.
        status_code: HTTP status used by the read API.
        meta: Optional safe-to-expose debugging payload.
    """

    default_code = "audit.error"
    default_status = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.meta = dict(meta or {})

    def to_public_dict(self) -> dict[str, Any]:
        """Render the error as a JSON-safe payload."""
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.meta:
            payload["meta"] = self.meta
        return payload


class PersistenceError(AuditTrailError):
    """The underlying store rejected a write.

    Raised for constraint violations (including a lost version race) and
    connectivity failures. Never retried by this package.
    """

    default_code = "audit.persistence_failed"
    default_status = 503


class ReferenceResolutionError(AuditTrailError):
    """An entity type tag does not resolve to a registered entity schema."""

    default_code = "audit.unknown_entity_type"
    default_status = 404


class DecodeError(AuditTrailError):
    """A stored change-set blob cannot be decoded."""

    default_code = "audit.change_set_undecodable"
    default_status = 500


class ValidationError(AuditTrailError):
    """An argument passed to the audit trail is invalid."""

    default_code = "audit.invalid_argument"
    default_status = 422


class NotFoundError(AuditTrailError):
    """A requested audit record does not exist."""

    default_code = "audit.not_found"
    default_status = 404

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            f"{resource} {resource_id} not found",
            meta={"resource": resource, "resource_id": resource_id},
        )
