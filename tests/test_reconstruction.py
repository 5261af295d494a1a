"""Tests for the revision reconstruction engine and the entity registry.

Covers: the fold over new-attribute views, intermediate revisions,
projection precedence (declared field, then setter, then skip), and
registry resolution.
"""

from datetime import UTC, datetime

import pytest

from aumos_audit_trail.core.reconstruction import (
    iter_reconstructions,
    project_attributes,
    reconstruct_attributes,
)
from aumos_audit_trail.core.registry import EntitySchema, EntityTypeRegistry
from aumos_audit_trail.core.types import AuditRecord, ChangeSet, EntityRef
from aumos_audit_trail.errors import ReferenceResolutionError
from tests.conftest import Post

REF = EntityRef(type_tag="Post", id="1")


def record(version: int, **changes: tuple) -> AuditRecord:
    return AuditRecord(
        auditable=REF,
        action="create" if version == 1 else "update",
        change_set=ChangeSet(changes=changes),
        version=version,
        created_at=datetime(2024, 1, version, tzinfo=UTC),
    )


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------


def test_reconstruct_empty_input_is_empty_mapping() -> None:
    assert reconstruct_attributes([]) == {}


def test_reconstruct_merges_new_values_and_sets_version() -> None:
    records = [
        record(1, title=(None, "A"), body=(None, "first")),
        record(2, title=("A", "B")),
    ]
    assert reconstruct_attributes(records) == {"title": "B", "body": "first", "version": 2}


def test_reconstruct_applies_records_in_version_order() -> None:
    records = [record(2, title=("A", "B")), record(1, title=(None, "A"))]
    assert reconstruct_attributes(records)["title"] == "B"


def test_reconstruct_keeps_explicit_none_values() -> None:
    records = [record(1, title=(None, "A")), record(2, title=("A", None))]
    assert reconstruct_attributes(records) == {"title": None, "version": 2}


def test_reconstruct_with_empty_change_set_still_advances_version() -> None:
    records = [record(1, title=(None, "A")), record(2)]
    assert reconstruct_attributes(records) == {"title": "A", "version": 2}


def test_iter_reconstructions_yields_each_step_independently() -> None:
    steps = list(
        iter_reconstructions(
            [
                record(1, title=(None, "A")),
                record(2, title=("A", "B"), body=(None, "x")),
                record(3, body=("x", "y")),
            ]
        )
    )

    assert steps == [
        {"title": "A", "version": 1},
        {"title": "B", "body": "x", "version": 2},
        {"title": "B", "body": "y", "version": 3},
    ]
    steps[0]["title"] = "mutated"
    assert steps[1]["title"] == "B"


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


class TestProjectAttributes:
    """project_attributes precedence rules."""

    def _schema(self, calls: list[tuple[str, object]]) -> EntitySchema:
        return EntitySchema(
            type_tag="Post",
            factory=Post,
            fields=frozenset({"title", "version"}),
            setters={
                "tags": lambda post, value: post.set_tags(value),
                "title": lambda post, value: calls.append(("title", value)),
            },
        )

    def test_declared_field_is_set_directly(self) -> None:
        calls: list[tuple[str, object]] = []
        post = project_attributes({"title": "B", "version": 2}, Post(), self._schema(calls))

        assert post.title == "B"
        assert post.version == 2

    def test_declared_field_wins_over_setter(self) -> None:
        calls: list[tuple[str, object]] = []
        project_attributes({"title": "B"}, Post(), self._schema(calls))
        assert calls == []

    def test_setter_used_when_not_a_declared_field(self) -> None:
        post = project_attributes({"tags": ["a", "b"]}, Post(), self._schema([]))
        assert post.tags_csv == "a,b"

    def test_unknown_attribute_is_skipped(self) -> None:
        post = project_attributes({"body": "ignored", "nope": 1}, Post(), self._schema([]))
        assert post.body is None
        assert not hasattr(post, "nope")

    def test_returns_same_instance(self) -> None:
        original = Post(id="1")
        assert project_attributes({}, original, self._schema([])) is original


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestEntityTypeRegistry:
    """EntityTypeRegistry resolution and the audited set."""

    def test_resolve_registered_type(self) -> None:
        registry = EntityTypeRegistry()
        schema = registry.register_type("Post", factory=Post, fields=["title"])
        assert registry.resolve("Post") is schema
        assert "Post" in registry
        assert schema.fields == frozenset({"title"})

    def test_resolve_unknown_type_raises(self) -> None:
        registry = EntityTypeRegistry()
        with pytest.raises(ReferenceResolutionError) as exc_info:
            registry.resolve("Ghost")
        assert exc_info.value.meta == {"type_tag": "Ghost"}

    def test_audited_classes_resolves_sorted_names(self) -> None:
        registry = EntityTypeRegistry()
        registry.register_type("Post", factory=Post)
        registry.register_type("Comment", factory=dict)
        registry.register_type("Session", factory=dict, audited=False)

        assert registry.audited_type_names == frozenset({"Post", "Comment"})
        assert [s.type_tag for s in registry.audited_classes()] == ["Comment", "Post"]

    def test_audited_classes_raises_for_unregistered_name(self) -> None:
        registry = EntityTypeRegistry()
        registry.mark_audited("Invoice")
        with pytest.raises(ReferenceResolutionError):
            registry.audited_classes()

    @pytest.mark.asyncio()
    async def test_load_supports_sync_and_async_loaders(self) -> None:
        live = {"1": Post(id="1")}

        async def async_loader(entity_id: str) -> Post | None:
            return live.get(entity_id)

        sync_schema = EntitySchema(type_tag="Post", factory=Post, loader=live.get)
        async_schema = EntitySchema(type_tag="Post", factory=Post, loader=async_loader)
        no_loader = EntitySchema(type_tag="Post", factory=Post)

        assert await sync_schema.load("1") is live["1"]
        assert await async_schema.load("1") is live["1"]
        assert await async_schema.load("2") is None
        assert await no_loader.load("1") is None
