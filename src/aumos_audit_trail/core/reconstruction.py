"""Revision reconstruction: replay change-sets into attribute state.

Given an entity's audit records, folds their "new attributes" views in
version order to produce the entity's attributes as of the last record,
with the record's version number included under the "version" key. The
resulting mapping can then be projected onto a host instance through its
EntitySchema.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from aumos_audit_trail.core.registry import EntitySchema
from aumos_audit_trail.core.types import AuditRecord
from aumos_audit_trail.observability import get_logger

logger = get_logger(__name__)

VERSION_ATTRIBUTE = "version"


def _in_version_order(records: Iterable[AuditRecord]) -> list[AuditRecord]:
    return sorted(records, key=lambda record: record.version)


def _apply(attributes: dict[str, Any], record: AuditRecord) -> None:
    attributes.update(record.change_set.new_attributes())
    attributes[VERSION_ATTRIBUTE] = record.version


def reconstruct_attributes(records: Iterable[AuditRecord]) -> dict[str, Any]:
    """Fold records into the attribute state as of the highest version.

    Records are applied in ascending version order regardless of the order
    they are passed in. Later versions overwrite earlier values for the same
    attribute. An empty input yields an empty mapping, with no "version" key.

    Args:
        records: Audit records of a single entity.

    Returns:
        The reconstructed attribute mapping.
    """
    attributes: dict[str, Any] = {}
    for record in _in_version_order(records):
        _apply(attributes, record)
    return attributes


def iter_reconstructions(records: Iterable[AuditRecord]) -> Iterator[dict[str, Any]]:
    """Yield the reconstructed attributes after each record is applied.

    Each yielded mapping is an independent copy, so callers may keep them.
    """
    attributes: dict[str, Any] = {}
    for record in _in_version_order(records):
        _apply(attributes, record)
        yield dict(attributes)


def project_attributes(
    attributes: dict[str, Any],
    instance: Any,
    schema: EntitySchema,
) -> Any:
    """Assign reconstructed attributes onto a host instance.

    Declared fields are assigned directly. Other attributes go through the
    schema's setter callable when one is registered, and are skipped
    otherwise.

    Args:
        attributes: Output of reconstruct_attributes().
        instance: The live or blank host instance. Mutated in place.
        schema: The instance's entity schema.

    Returns:
        The same instance.
    """
    skipped: list[str] = []
    for name, value in attributes.items():
        if schema.is_field(name):
            setattr(instance, name, value)
            continue
        setter = schema.setter_for(name)
        if setter is not None:
            setter(instance, value)
        else:
            skipped.append(name)

    if skipped:
        logger.debug(
            "Skipped attributes not settable on entity type",
            type_tag=schema.type_tag,
            attributes=sorted(skipped),
        )
    return instance
