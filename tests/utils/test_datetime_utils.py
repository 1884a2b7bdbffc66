"""
Tests for datetime utilities module.

Tests timezone handling, UTC conversion, and ISO format parsing.
"""
from datetime import datetime, timezone, timedelta

import pytest

from parley.utils.datetime_utils import ensure_utc, parse_iso_utc, to_iso_utc, utc_now


class TestUtcNow:
    """Tests for utc_now() function."""

    def test_returns_timezone_aware_datetime(self):
        result = utc_now()
        assert result.tzinfo == timezone.utc

    def test_returns_current_time(self):
        before = datetime.now(timezone.utc)
        result = utc_now()
        after = datetime.now(timezone.utc)
        assert before <= result <= after


class TestEnsureUtc:
    """Tests for ensure_utc() function."""

    def test_naive_datetime_is_assumed_utc(self):
        """SQLite hands back naive values; they must keep their wall time."""
        result = ensure_utc(datetime(2025, 12, 16, 11, 30, 0, 123456))

        assert result.tzinfo == timezone.utc
        assert (result.hour, result.minute, result.microsecond) == (11, 30, 123456)

    def test_converts_other_offsets_to_utc(self):
        plus_eight = timezone(timedelta(hours=8))
        result = ensure_utc(datetime(2025, 12, 16, 19, 30, tzinfo=plus_eight))

        assert result.tzinfo == timezone.utc
        assert result.hour == 11

    def test_handles_none_input(self):
        assert ensure_utc(None) is None


class TestIsoConversion:
    """Tests for to_iso_utc() and parse_iso_utc()."""

    def test_to_iso_uses_z_suffix(self):
        dt = datetime(2025, 12, 16, 11, 30, 0, 123456, tzinfo=timezone.utc)
        assert to_iso_utc(dt) == "2025-12-16T11:30:00.123456Z"

    def test_to_iso_handles_none(self):
        assert to_iso_utc(None) is None

    def test_parse_accepts_z_suffix(self):
        result = parse_iso_utc("2025-12-16T11:30:00.123456Z")
        assert result == datetime(2025, 12, 16, 11, 30, 0, 123456, tzinfo=timezone.utc)

    def test_parse_converts_offsets(self):
        result = parse_iso_utc("2025-12-16T19:30:00+08:00")
        assert result == datetime(2025, 12, 16, 11, 30, tzinfo=timezone.utc)

    def test_parse_keeps_microsecond_precision(self):
        """Keyset cursors depend on exact timestamps surviving serialization."""
        original = utc_now()
        assert parse_iso_utc(to_iso_utc(original)) == original

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_iso_utc("yesterday")
