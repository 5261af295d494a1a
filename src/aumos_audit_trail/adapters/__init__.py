"""Adapters: storage backends for the audit trail.

Contains:
- audit_wall.py   : SQLAlchemy engine/session and the append-only SqlAuditStore
- memory_store.py : InMemoryAuditStore for tests and embedded use
"""

__all__: list[str] = []
