"""Test fixtures for aumos-audit-trail.

Provides:
- post_ref / author_ref: deterministic EntityRefs used across tests
- memory_store: a fresh InMemoryAuditStore
- fixed_clock: a clock that advances one second per call
- live_posts / entity_registry: a registry with a Post entity type whose
  loader reads from the live_posts dict
- audit_service: an AuditService wired to the fixtures above
"""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta

import pytest

from aumos_audit_trail.adapters.memory_store import InMemoryAuditStore
from aumos_audit_trail.core import actor as actor_module
from aumos_audit_trail.core.registry import EntityTypeRegistry
from aumos_audit_trail.core.services import AuditService
from aumos_audit_trail.core.types import EntityRef

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class Post:
    """Minimal host entity used to exercise revision projection."""

    def __init__(self, id: str | None = None, title: str | None = None, body: str | None = None) -> None:
        self.id = id
        self.title = title
        self.body = body
        self.version: int | None = None
        self.tags_csv: str | None = None

    def set_tags(self, tags: list[str]) -> None:
        self.tags_csv = ",".join(tags)


@pytest.fixture(autouse=True)
def _clear_ambient_actor() -> Iterator[None]:
    """Guarantee no ambient actor leaks between tests."""
    actor_module._ambient_actor.set(None)
    yield
    actor_module._ambient_actor.set(None)


@pytest.fixture()
def post_ref() -> EntityRef:
    return EntityRef(type_tag="Post", id="1")


@pytest.fixture()
def author_ref() -> EntityRef:
    return EntityRef(type_tag="Author", id="7")


@pytest.fixture()
def memory_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture()
def fixed_clock() -> Callable[[], datetime]:
    """Return a clock starting at BASE_TIME that advances 1s per call."""
    ticks = {"n": 0}

    def clock() -> datetime:
        now = BASE_TIME + timedelta(seconds=ticks["n"])
        ticks["n"] += 1
        return now

    return clock


@pytest.fixture()
def live_posts() -> dict[str, Post]:
    """Live Post instances keyed by id, as the host's loader would see them."""
    return {}


@pytest.fixture()
def entity_registry(live_posts: dict[str, Post]) -> EntityTypeRegistry:
    registry = EntityTypeRegistry()
    registry.register_type(
        "Post",
        factory=Post,
        fields={"title", "body", "version"},
        setters={"tags": lambda post, value: post.set_tags(value)},
        loader=live_posts.get,
    )
    return registry


@pytest.fixture()
def audit_service(
    memory_store: InMemoryAuditStore,
    entity_registry: EntityTypeRegistry,
    fixed_clock: Callable[[], datetime],
) -> AuditService:
    return AuditService(memory_store, registry=entity_registry, clock=fixed_clock)
