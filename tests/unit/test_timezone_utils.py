"""Unit tests for inkscreen.core.timezone_utils module."""

import datetime
import zoneinfo

import pytest

from inkscreen.core.timezone_utils import (
    get_default_timezone,
    now_utc,
    parse_target_datetime,
    resolve_timezone,
)

pytestmark = pytest.mark.unit


class TestGetDefaultTimezone:
    """Tests for get_default_timezone."""

    def test_default_when_unset(self):
        """Test UTC is used when nothing is configured."""
        assert get_default_timezone() == "UTC"

    def test_reads_environment(self, monkeypatch):
        """Test the inkscreen variable wins over DEFAULT_TIMEZONE."""
        monkeypatch.setenv("DEFAULT_TIMEZONE", "Europe/Berlin")
        assert get_default_timezone() == "Europe/Berlin"

        monkeypatch.setenv("INKSCREEN_DEFAULT_TIMEZONE", "Asia/Tokyo")
        assert get_default_timezone() == "Asia/Tokyo"

    def test_invalid_zone_falls_back(self, monkeypatch):
        """Test an unknown zone in the environment is ignored."""
        monkeypatch.setenv("INKSCREEN_DEFAULT_TIMEZONE", "Nowhere/Land")

        assert get_default_timezone(fallback="Europe/Paris") == "Europe/Paris"


class TestResolveTimezone:
    """Tests for resolve_timezone."""

    @pytest.mark.parametrize(
        ("requested", "default", "expected"),
        [
            ("America/Chicago", "Europe/Warsaw", "America/Chicago"),
            ("local", "Europe/Warsaw", "Europe/Warsaw"),
            ("", "Europe/Warsaw", "Europe/Warsaw"),
            (None, "Europe/Warsaw", "Europe/Warsaw"),
            ("Bad/Zone", "Europe/Warsaw", "Europe/Warsaw"),
            ("Bad/Zone", "Also/Bad", "UTC"),
            (None, None, "UTC"),
        ],
    )
    def test_resolution_order(self, requested, default, expected):
        """Test widget zone, then default zone, then UTC."""
        assert resolve_timezone(requested, default).key == expected


class TestNowUtc:
    """Tests for now_utc."""

    def test_now_utc_is_aware(self):
        """Test the real clock returns an aware UTC datetime."""
        assert now_utc().tzinfo is not None

    def test_now_utc_override(self, monkeypatch):
        """Test INKSCREEN_TEST_TIME pins the clock and converts to UTC."""
        monkeypatch.setenv("INKSCREEN_TEST_TIME", "2025-10-27T08:20:00-07:00")

        assert now_utc() == datetime.datetime(2025, 10, 27, 15, 20, tzinfo=datetime.timezone.utc)

    def test_now_utc_naive_override_is_utc(self, monkeypatch):
        """Test a naive override is read as UTC."""
        monkeypatch.setenv("INKSCREEN_TEST_TIME", "2026-01-01T00:00:00")

        assert now_utc() == datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)

    def test_now_utc_invalid_override_ignored(self, monkeypatch):
        """Test an unparseable override falls back to the real clock."""
        monkeypatch.setenv("INKSCREEN_TEST_TIME", "yesterday-ish")

        assert now_utc().year >= 2025


class TestParseTargetDatetime:
    """Tests for parse_target_datetime."""

    def test_naive_value_uses_zone(self):
        """Test naive values are interpreted in the given zone."""
        zone = zoneinfo.ZoneInfo("Europe/Warsaw")

        result = parse_target_datetime("2026-12-25", zone)

        assert result == datetime.datetime(2026, 12, 25, tzinfo=zone)

    def test_aware_value_kept(self):
        """Test explicit offsets are respected."""
        result = parse_target_datetime("2026-12-25T10:00:00+02:00", datetime.timezone.utc)

        assert result.utcoffset() == datetime.timedelta(hours=2)

    def test_loose_format_parsed(self):
        """Test non-ISO dates are accepted."""
        result = parse_target_datetime("Dec 25 2026", datetime.timezone.utc)

        assert result.date() == datetime.date(2026, 12, 25)

    @pytest.mark.parametrize("value", ["", "   ", "not a date", None, 20261225])
    def test_invalid_values(self, value):
        """Test invalid or non-string values give None."""
        assert parse_target_datetime(value, datetime.timezone.utc) is None
