"""Entity type registry.

Hosts declare each entity type that revisions can be materialised into:
how to build a blank instance, how to load the live one, which attribute
names are declared fields (assigned directly), and which are assignable
only through a setter callable. Attributes that are neither are skipped
during projection.

The registry also keeps the set of audited type names. That set is purely
descriptive; the core does not enforce it when recording changes.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from aumos_audit_trail.errors import ReferenceResolutionError
from aumos_audit_trail.observability import get_logger

logger = get_logger(__name__)

Loader = Callable[[str], Any]
Setter = Callable[[Any, Any], None]


@dataclass(frozen=True)
class EntitySchema:
    """Host-declared description of one entity type.

    Attributes:
        type_tag: Name used in EntityRef.type_tag.
        factory: Zero-argument callable returning a blank instance.
        fields: Attribute names assigned directly with setattr().
        setters: Attribute name -> callable(instance, value) for attributes
            that are not declared fields.
        loader: Optional callable(entity_id) returning the live instance or
            None. May be sync or async.
    """

    type_tag: str
    factory: Callable[[], Any]
    fields: frozenset[str] = frozenset()
    setters: Mapping[str, Setter] = field(default_factory=dict)
    loader: Loader | None = None

    def is_field(self, name: str) -> bool:
        return name in self.fields

    def setter_for(self, name: str) -> Setter | None:
        return self.setters.get(name)

    def new_instance(self) -> Any:
        return self.factory()

    async def load(self, entity_id: str) -> Any | None:
        """Fetch the live instance, or None when absent or no loader is set."""
        if self.loader is None:
            return None
        found = self.loader(entity_id)
        if inspect.isawaitable(found):
            found = await found
        return found


class EntityTypeRegistry:
    """Lookup of EntitySchema by type tag, plus the audited type names."""

    def __init__(self) -> None:
        self._schemas: dict[str, EntitySchema] = {}
        self._audited: set[str] = set()

    def register(self, schema: EntitySchema, *, audited: bool = True) -> EntitySchema:
        """Register (or replace) the schema for `schema.type_tag`."""
        self._schemas[schema.type_tag] = schema
        if audited:
            self._audited.add(schema.type_tag)
        logger.debug(
            "Entity type registered",
            type_tag=schema.type_tag,
            fields=sorted(schema.fields),
            setters=sorted(schema.setters),
            audited=audited,
        )
        return schema

    def register_type(
        self,
        type_tag: str,
        factory: Callable[[], Any],
        fields: Iterable[str] = (),
        setters: Mapping[str, Setter] | None = None,
        loader: Loader | None = None,
        audited: bool = True,
    ) -> EntitySchema:
        """Build and register an EntitySchema in one call."""
        schema = EntitySchema(
            type_tag=type_tag,
            factory=factory,
            fields=frozenset(fields),
            setters=MappingProxyType(dict(setters or {})),
            loader=loader,
        )
        return self.register(schema, audited=audited)

    def mark_audited(self, type_tag: str) -> None:
        """Add a type name to the audited set without registering a schema."""
        self._audited.add(type_tag)

    def resolve(self, type_tag: str) -> EntitySchema:
        """Return the schema for `type_tag`.

        Raises:
            ReferenceResolutionError: If no schema is registered for it.
        """
        schema = self._schemas.get(type_tag)
        if schema is None:
            raise ReferenceResolutionError(
                f"Unknown entity type {type_tag!r}",
                meta={"type_tag": type_tag},
            )
        return schema

    def __contains__(self, type_tag: object) -> bool:
        return type_tag in self._schemas

    @property
    def audited_type_names(self) -> frozenset[str]:
        return frozenset(self._audited)

    def audited_classes(self) -> list[EntitySchema]:
        """Resolve every audited type name to its schema, sorted by name.

        Raises:
            ReferenceResolutionError: If an audited name has no schema.
        """
        return [self.resolve(type_tag) for type_tag in sorted(self._audited)]
