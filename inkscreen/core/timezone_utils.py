"""Time zone resolution and clock helpers shared by the time-based widgets."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from typing import Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_SERVER_TIMEZONE = "UTC"

# Widget config values meaning "use the process default zone"
LOCAL_ZONE_ALIASES = frozenset({"", "local"})


def _load_zone(name: str) -> Optional[zoneinfo.ZoneInfo]:
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        return None


def get_default_timezone(fallback: str = DEFAULT_SERVER_TIMEZONE) -> str:
    """Get the process-wide default time zone from the environment.

    Reads INKSCREEN_DEFAULT_TIMEZONE, then DEFAULT_TIMEZONE. An unset or
    unknown zone falls back to ``fallback``.

    Args:
        fallback: Zone used when the environment provides none (default UTC)

    Returns:
        Valid IANA time zone name
    """
    tz_name = os.environ.get("INKSCREEN_DEFAULT_TIMEZONE") or os.environ.get("DEFAULT_TIMEZONE")
    if not tz_name:
        return fallback

    if _load_zone(tz_name) is None:
        logger.warning("Invalid default timezone %r, using %s", tz_name, fallback)
        return fallback

    return tz_name


def resolve_timezone(requested: Optional[str], default_zone: Optional[str] = None) -> zoneinfo.ZoneInfo:
    """Resolve the effective zone for a widget.

    Order: the explicit widget zone, else the process default zone, else UTC.
    Never raises; an unrecognized value falls back to the next candidate.

    Args:
        requested: Zone from the widget config ("local" and "" mean unset)
        default_zone: Process default zone name

    Returns:
        ZoneInfo for the effective zone
    """
    candidates = []
    if requested is not None and str(requested).strip() not in LOCAL_ZONE_ALIASES:
        candidates.append(str(requested).strip())
    if default_zone:
        candidates.append(default_zone)

    for name in candidates:
        zone = _load_zone(name)
        if zone is not None:
            return zone
        logger.warning("Unknown timezone %r, falling back", name)

    return zoneinfo.ZoneInfo(DEFAULT_SERVER_TIMEZONE)


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the INKSCREEN_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-10-27T08:20:00-07:00"; naive means UTC).

    Returns:
        Current time in UTC with timezone info
    """
    test_time = os.environ.get("INKSCREEN_TEST_TIME")
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
        except ValueError as e:
            logger.warning("Failed to parse INKSCREEN_TEST_TIME=%r: %s", test_time, e)
        else:
            if dt.tzinfo is None:
                return dt.replace(tzinfo=datetime.timezone.utc)
            return dt.astimezone(datetime.timezone.utc)

    return datetime.datetime.now(datetime.timezone.utc)


def parse_target_datetime(value: object, zone: datetime.tzinfo) -> Optional[datetime.datetime]:
    """Parse a widget target date/time.

    Naive values are interpreted in ``zone``.

    Args:
        value: ISO-like date or datetime string
        zone: Zone applied to naive values

    Returns:
        Aware datetime, or None when the value cannot be parsed
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = date_parser.isoparse(value.strip())
    except ValueError:
        try:
            dt = date_parser.parse(value.strip())
        except (ValueError, OverflowError):
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone)
    return dt
