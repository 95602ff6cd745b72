"""Tests for utility functions."""

import pytest

from tablemirror.utils import (
    date_prefix,
    dumps_json,
    format_duration,
    loads_json,
    sanitize_identifier,
    timestamp_to_iso,
)


class TestSanitizeIdentifier:
    """Tests for identifier sanitization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("status", "status"),
            ("due_date", "due_date"),
            ("Field42", "Field42"),
            ("ti-tle", "title"),
            ("x'); DROP TABLE cache_records; --", "xDROPTABLEcache_records"),
            ('a"b', "ab"),
            ("naïve", "nave"),
            ("", ""),
            (None, ""),
            (123, "123"),
        ],
    )
    def test_sanitize(self, raw, expected):
        assert sanitize_identifier(raw) == expected


class TestDatePrefix:
    """Tests for date prefix detection."""

    def test_full_timestamp(self):
        """Test that a timestamp yields its day."""
        assert date_prefix("2024-06-24T00:00:00Z") == "2024-06-24"

    def test_plain_date(self):
        assert date_prefix("2024-06-24") == "2024-06-24"

    @pytest.mark.parametrize("value", ["24/06/2024", "2024-6-24", "soon", "", None, 20240624, {"date": "2024-06-24"}])
    def test_non_dates(self, value):
        """Test that anything not starting with YYYY-MM-DD has no prefix."""
        assert date_prefix(value) is None

    @pytest.mark.parametrize(
        "value",
        [
            "٢٠٢٤-٠٦-٢٤",  # Arabic-Indic digits
            "２０２４-０６-２４",  # fullwidth digits
        ],
    )
    def test_only_ascii_digits(self, value):
        """Test that the prefix check agrees with the SQL GLOB's [0-9]."""
        assert date_prefix(value) is None


class TestJson:
    """Tests for payload serialization."""

    def test_compact_output(self):
        assert dumps_json({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_unicode_survives(self):
        """Test that non-ASCII text is kept as-is."""
        text = dumps_json({"title": "Zürich"})
        assert "Zürich" in text
        assert loads_json(text) == {"title": "Zürich"}

    def test_loads_bytes(self):
        assert loads_json(b'{"id": "r1"}') == {"id": "r1"}


class TestFormatting:
    """Tests for human-readable formatting."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (None, "-"),
            (-5, "0s"),
            (0, "0s"),
            (45, "45s"),
            (60, "1m"),
            (125, "2m 5s"),
            (3600, "1h"),
            (3720, "1h 2m"),
            (86400, "1d"),
            (90000, "1d 1h"),
        ],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_timestamp_to_iso(self):
        """Test ISO conversion in UTC."""
        assert timestamp_to_iso(0) == "1970-01-01T00:00:00+00:00"
        assert timestamp_to_iso(None) is None
