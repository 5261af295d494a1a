"""Tests for the diff codec.

Covers: round trips for empty, single-key, and mixed-type change-sets,
tagged value encoding, NULL blobs, and DecodeError on malformed input.
"""

import json
import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal

import pytest

from aumos_audit_trail.core.codec import decode_change_set, encode_change_set
from aumos_audit_trail.core.types import ChangeSet
from aumos_audit_trail.errors import DecodeError


class TestRoundTrip:
    """decode(encode(c)) == c for every supported shape."""

    def test_empty_change_set(self) -> None:
        change_set = ChangeSet()
        assert decode_change_set(encode_change_set(change_set)) == change_set

    def test_single_key(self) -> None:
        change_set = ChangeSet(changes={"name": (None, "A")})
        assert decode_change_set(encode_change_set(change_set)) == change_set

    def test_mixed_value_types_keep_their_type(self) -> None:
        change_set = ChangeSet(
            changes={
                "title": ("old", "new"),
                "views": (1, 2),
                "rating": (3.5, 4.25),
                "published": (False, True),
                "deleted_at": (None, None),
                "publish_on": (date(2024, 1, 1), date(2024, 2, 1)),
                "updated_at": (
                    datetime(2024, 1, 1, 8, 30, tzinfo=UTC),
                    datetime(2024, 1, 2, 9, 45, 10, tzinfo=UTC),
                ),
                "reminder": (time(8, 0), time(9, 30)),
                "price": (Decimal("9.99"), Decimal("12.50")),
                "owner": (uuid.UUID(int=1), uuid.UUID(int=2)),
                "tags": (["a"], ["a", "b"]),
                "meta": ({"k": 1}, {"k": 2, "nested": [date(2024, 5, 5)]}),
            }
        )

        decoded = decode_change_set(encode_change_set(change_set))

        assert decoded == change_set
        assert type(decoded.changes["views"][1]) is int
        assert type(decoded.changes["published"][1]) is bool
        assert type(decoded.changes["publish_on"][0]) is date
        assert isinstance(decoded.changes["updated_at"][1], datetime)
        assert decoded.changes["updated_at"][1].tzinfo is not None
        assert isinstance(decoded.changes["price"][1], Decimal)
        assert isinstance(decoded.changes["owner"][0], uuid.UUID)

    def test_dict_value_with_reserved_key_survives(self) -> None:
        change_set = ChangeSet(changes={"payload": (None, {"__type__": "not-a-tag", "x": 1})})
        assert decode_change_set(encode_change_set(change_set)) == change_set

    def test_tuple_value_survives(self) -> None:
        change_set = ChangeSet(changes={"point": ((1, 2), (3, 4))})
        decoded = decode_change_set(encode_change_set(change_set))
        assert decoded.changes["point"] == ((1, 2), (3, 4))


class TestEncoding:
    """Shape of the persisted text."""

    def test_encodes_pairs_as_two_element_arrays(self) -> None:
        blob = encode_change_set(ChangeSet(changes={"name": ("A", "B")}))
        assert json.loads(blob) == {"name": ["A", "B"]}

    def test_dates_are_tagged(self) -> None:
        blob = encode_change_set(ChangeSet(changes={"d": (None, date(2024, 1, 31))}))
        assert json.loads(blob)["d"][1] == {"__type__": "date", "value": "2024-01-31"}

    def test_output_is_stable_regardless_of_key_order(self) -> None:
        first = encode_change_set(ChangeSet(changes={"a": (1, 2), "b": (3, 4)}))
        second = encode_change_set(ChangeSet(changes={"b": (3, 4), "a": (1, 2)}))
        assert first == second

    def test_unsupported_value_raises_type_error(self) -> None:
        with pytest.raises(TypeError, match="Cannot encode"):
            encode_change_set(ChangeSet(changes={"x": (None, object())}))

    @pytest.mark.parametrize("mapping", [{1: "a"}, {"ok": {(1, 2): "nested"}}])
    def test_non_string_mapping_keys_raise_type_error(self, mapping: dict) -> None:
        with pytest.raises(TypeError, match="non-string keys"):
            encode_change_set(ChangeSet(changes={"meta": (None, mapping)}))


class TestDecoding:
    """Decoding of stored blobs, including failure modes."""

    @pytest.mark.parametrize("blob", [None, "", b""])
    def test_null_or_empty_blob_is_empty_change_set(self, blob: str | bytes | None) -> None:
        assert decode_change_set(blob) == ChangeSet()

    def test_accepts_bytes(self) -> None:
        assert decode_change_set(b'{"n":[1,2]}') == ChangeSet(changes={"n": (1, 2)})

    def test_invalid_json_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="not valid JSON"):
            decode_change_set("{not json")

    def test_non_object_payload_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="JSON object"):
            decode_change_set("[1, 2]")

    @pytest.mark.parametrize("tag", ["[1]", "{\"a\": 1}", "7", "null"])
    def test_non_string_tag_raises_decode_error(self, tag: str) -> None:
        blob = '{"a": [{"__type__": ' + tag + ', "value": 1}, null]}'
        with pytest.raises(DecodeError, match="non-string tag"):
            decode_change_set(blob)

    def test_non_pair_entry_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="not an \\[old, new\\] pair") as exc_info:
            decode_change_set('{"name": "A"}')
        assert exc_info.value.meta == {"attribute": "name"}

    def test_three_element_entry_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError):
            decode_change_set('{"name": [1, 2, 3]}')

    def test_unknown_tag_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="Unknown or incomplete tagged value"):
            decode_change_set('{"x": [null, {"__type__": "complex", "value": "1+2j"}]}')

    def test_invalid_tagged_value_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="Invalid date value"):
            decode_change_set('{"x": [null, {"__type__": "date", "value": "yesterday"}]}')

    def test_decode_error_is_an_audit_trail_error(self) -> None:
        from aumos_audit_trail.errors import AuditTrailError

        with pytest.raises(AuditTrailError) as exc_info:
            decode_change_set("nope")
        assert exc_info.value.code == "audit.change_set_undecodable"
