"""
Tests for the opaque cursor codec and keyset helpers.
"""
import base64
import json
from datetime import datetime, timezone

import pytest

from parley.utils.pagination import Cursor, clamp_limit, decode_cursor, encode_cursor


CREATED = datetime(2026, 3, 1, 8, 15, 42, 503211, tzinfo=timezone.utc)


def _raw_token(payload) -> str:
    raw = json.dumps(payload) if not isinstance(payload, str) else payload
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


class TestEncodeCursor:
    """Tests for encode_cursor()."""

    def test_token_is_unpadded_base64url_json(self):
        token = encode_cursor(Cursor(id="msg-1", timestamp=CREATED))

        assert "=" not in token
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded))
        assert payload == {"id": "msg-1", "createdAt": "2026-03-01T08:15:42.503211Z"}

    def test_decodes_back_to_same_position(self):
        cursor = Cursor(id="c0ffee", timestamp=CREATED)
        assert decode_cursor(encode_cursor(cursor)) == cursor

    def test_requires_timestamp(self):
        with pytest.raises(ValueError):
            encode_cursor(Cursor(id="msg-1"))

    def test_requires_id(self):
        with pytest.raises(ValueError):
            encode_cursor(Cursor(id="", timestamp=CREATED))

    def test_naive_timestamp_is_treated_as_utc(self):
        naive = CREATED.replace(tzinfo=None)
        assert encode_cursor(Cursor(id="x", timestamp=naive)) == encode_cursor(Cursor(id="x", timestamp=CREATED))


class TestDecodeCursor:
    """Tests for decode_cursor()."""

    @pytest.mark.parametrize("token", [None, ""])
    def test_empty_input_returns_none(self, token):
        assert decode_cursor(token) is None

    def test_json_without_timestamp_is_degraded(self):
        cursor = decode_cursor(_raw_token({"id": "abc"}))

        assert cursor == Cursor(id="abc")
        assert cursor.is_degraded

    def test_bare_identifier_is_degraded(self):
        cursor = decode_cursor("3f2b9c1e-7d4a-4c55-9a0e-2b1d6f8e4a10")

        assert cursor is not None
        assert cursor.id == "3f2b9c1e-7d4a-4c55-9a0e-2b1d6f8e4a10"
        assert cursor.timestamp is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"createdAt": "2026-03-01T08:15:42Z"},
            {"id": "", "createdAt": "2026-03-01T08:15:42Z"},
            {"id": 42, "createdAt": "2026-03-01T08:15:42Z"},
            {"id": "abc", "createdAt": "not a date"},
            {"id": "abc", "createdAt": 1700000000},
            ["abc"],
        ],
    )
    def test_malformed_payloads_return_none(self, payload):
        assert decode_cursor(_raw_token(payload)) is None

    def test_non_identifier_garbage_returns_none(self):
        assert decode_cursor("%%% not a cursor %%%") is None

    def test_offset_timestamps_are_normalized_to_utc(self):
        cursor = decode_cursor(_raw_token({"id": "abc", "createdAt": "2026-03-01T16:15:42.503211+08:00"}))
        assert cursor.timestamp == CREATED


class TestClampLimit:
    """Tests for clamp_limit()."""

    def test_default_when_missing(self):
        assert clamp_limit(None, 50, 200) == 50

    def test_caps_at_maximum(self):
        assert clamp_limit(10_000, 50, 200) == 200

    def test_floor_is_one(self):
        assert clamp_limit(0, 50, 200) == 1
        assert clamp_limit(-5, 50, 200) == 1

    def test_passes_values_in_range(self):
        assert clamp_limit(7, 50, 200) == 7
