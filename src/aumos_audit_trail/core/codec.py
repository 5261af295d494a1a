"""Diff codec: ChangeSet <-> persisted JSON text.

A change-set is stored as a JSON object mapping attribute name to a
two-element [old, new] array. JSON-native values (str, int, float, bool,
null) are written as-is. Values JSON cannot represent faithfully are
written as tagged objects so their Python type survives the round trip:

    {"__type__": "datetime", "value": "2024-01-01T12:00:00+00:00"}

Supported tags: datetime, date, time, decimal, uuid, tuple, dict. The dict
tag is only used for mappings that themselves contain a "__type__" key.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from aumos_audit_trail.core.types import ChangeSet
from aumos_audit_trail.errors import DecodeError

_TYPE_KEY = "__type__"
_VALUE_KEY = "value"


def _encode_value(value: Any) -> Any:
    # bool is an int subclass; check before the numeric branch
    if value is None or isinstance(value, (bool, str, int, float)):
        return value
    # datetime is a date subclass; check it first
    if isinstance(value, datetime):
        return {_TYPE_KEY: "datetime", _VALUE_KEY: value.isoformat()}
    if isinstance(value, date):
        return {_TYPE_KEY: "date", _VALUE_KEY: value.isoformat()}
    if isinstance(value, time):
        return {_TYPE_KEY: "time", _VALUE_KEY: value.isoformat()}
    if isinstance(value, Decimal):
        return {_TYPE_KEY: "decimal", _VALUE_KEY: str(value)}
    if isinstance(value, uuid.UUID):
        return {_TYPE_KEY: "uuid", _VALUE_KEY: str(value)}
    if isinstance(value, tuple):
        return {_TYPE_KEY: "tuple", _VALUE_KEY: [_encode_value(item) for item in value]}
    if isinstance(value, list):
        return [_encode_value(item) for item in value]
    if isinstance(value, dict):
        if not all(isinstance(key, str) for key in value):
            raise TypeError("Cannot encode change-set mapping with non-string keys")
        encoded = {key: _encode_value(item) for key, item in value.items()}
        if _TYPE_KEY in value:
            return {_TYPE_KEY: "dict", _VALUE_KEY: encoded}
        return encoded
    raise TypeError(f"Cannot encode change-set value of type {type(value).__name__}")


_DECODERS: dict[str, Callable[[Any], Any]] = {
    "datetime": lambda raw: datetime.fromisoformat(raw),
    "date": lambda raw: date.fromisoformat(raw),
    "time": lambda raw: time.fromisoformat(raw),
    "decimal": lambda raw: Decimal(raw),
    "uuid": lambda raw: uuid.UUID(raw),
    "tuple": lambda raw: tuple(_decode_value(item) for item in raw),
    "dict": lambda raw: {key: _decode_value(item) for key, item in raw.items()},
}


def _decode_value(raw: Any) -> Any:
    if isinstance(raw, list):
        return [_decode_value(item) for item in raw]
    if not isinstance(raw, dict):
        return raw
    if _TYPE_KEY not in raw:
        return {key: _decode_value(item) for key, item in raw.items()}

    tag = raw[_TYPE_KEY]
    if not isinstance(tag, str):
        raise DecodeError(f"Tagged value has a non-string tag: {tag!r}", meta={"tag": repr(tag)})
    decoder = _DECODERS.get(tag)
    if decoder is None or _VALUE_KEY not in raw:
        raise DecodeError(f"Unknown or incomplete tagged value: {tag!r}", meta={"tag": str(tag)})
    try:
        return decoder(raw[_VALUE_KEY])
    except (TypeError, ValueError, AttributeError, InvalidOperation) as exc:
        raise DecodeError(f"Invalid {tag} value in change-set: {exc}", meta={"tag": tag}) from exc


def encode_change_set(change_set: ChangeSet) -> str:
    """Serialize a ChangeSet to JSON text.

    Args:
        change_set: The change-set to encode.

    Returns:
        Compact JSON text with keys sorted for stable output.

    Raises:
        TypeError: If a value has no supported encoding, or a mapping
            value has non-string keys.
    """
    payload = {
        name: [_encode_value(old), _encode_value(new)]
        for name, (old, new) in change_set.changes.items()
    }
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


def decode_change_set(blob: str | bytes | None) -> ChangeSet:
    """Deserialize JSON text produced by encode_change_set().

    A NULL or empty blob decodes to the empty change-set.

    Args:
        blob: The stored JSON text.

    Returns:
        The decoded ChangeSet.

    Raises:
        DecodeError: If the blob is not valid JSON, is not an object, holds
            an entry that is not an [old, new] pair, or holds an unknown
            tagged value.
    """
    if blob is None or blob in ("", b""):
        return ChangeSet()

    try:
        payload = json.loads(blob)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Change-set is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise DecodeError(
            "Change-set must be a JSON object",
            meta={"found": type(payload).__name__},
        )

    changes: dict[str, tuple[Any, Any]] = {}
    for name, pair in payload.items():
        if not isinstance(pair, list) or len(pair) != 2:
            raise DecodeError(
                f"Change for attribute {name!r} is not an [old, new] pair",
                meta={"attribute": name},
            )
        changes[name] = (_decode_value(pair[0]), _decode_value(pair[1]))

    return ChangeSet(changes=changes)
