"""
Timezone-aware conversions between absolute instants and civil dates.

Every day-level lookup in the engine is keyed by an ISO date string
("YYYY-MM-DD") computed in the configured IANA timezone, never in the host's
local timezone. All helpers here are pure and return ``None`` instead of
raising when their input cannot be interpreted.
"""

from __future__ import annotations

import re
from datetime import datetime, tzinfo
from typing import Any, List, Union

import pendulum
from pendulum import DateTime

TimezoneLike = Union[str, tzinfo]

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?$")


def resolve_timezone(timezone: TimezoneLike | None) -> tzinfo | None:
    """
    Resolve an IANA timezone name to a pendulum timezone.

    Returns None for empty or unknown names.
    """
    if isinstance(timezone, tzinfo):
        return timezone
    if not timezone or not isinstance(timezone, str):
        return None

    try:
        return pendulum.timezone(timezone)
    except (ValueError, KeyError):
        return None


def parse_instant(raw: Any) -> DateTime | None:
    """
    Parse a stored timestamp into an aware pendulum DateTime.

    Accepts ISO 8601 strings and ``datetime`` objects. Values without an
    offset are interpreted as UTC, which is how the appointment store
    serializes ``timestamptz`` columns.
    """
    if raw is None:
        return None

    if isinstance(raw, DateTime):
        return raw

    if isinstance(raw, datetime):
        return pendulum.instance(raw, tz="UTC")

    if not isinstance(raw, str) or not raw.strip():
        return None

    try:
        parsed = pendulum.parse(raw.strip())
    except ValueError:
        return None

    # Durations and intervals are not instants
    if not isinstance(parsed, DateTime):
        return None

    return parsed


def parse_time_of_day(value: str) -> tuple[int, int] | None:
    """Parse "H:MM", "HH:MM" or "HH:MM:SS" into (hour, minute)."""
    if not isinstance(value, str):
        return None

    match = _TIME_RE.match(value.strip())
    if not match:
        return None

    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        return None

    return hour, minute


def is_iso_date(value: Any) -> bool:
    """Check whether value is a real calendar date in "YYYY-MM-DD" form."""
    if not isinstance(value, str):
        return False

    match = _ISO_DATE_RE.match(value)
    if not match:
        return False

    try:
        pendulum.date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return False

    return True


def to_civil_date(instant: Any, timezone: TimezoneLike | None) -> str | None:
    """
    Project an absolute instant onto the civil calendar date in a timezone.

    Args:
        instant: Aware datetime or ISO 8601 timestamp
        timezone: IANA timezone identifier

    Returns:
        "YYYY-MM-DD" string, or None if the instant or timezone is invalid
    """
    zone = resolve_timezone(timezone)
    parsed = parse_instant(instant)
    if zone is None or parsed is None:
        return None

    return parsed.in_timezone(zone).to_date_string()


def to_instant(iso_date: str, time_of_day: str, timezone: TimezoneLike | None) -> DateTime | None:
    """
    Interpret a wall-clock date and time in a timezone as an absolute instant.

    Args:
        iso_date: Civil date as "YYYY-MM-DD"
        time_of_day: Wall-clock time as "HH:MM" (seconds are ignored)
        timezone: IANA timezone identifier

    Returns:
        Aware DateTime in the given timezone, or None if any input is malformed
    """
    zone = resolve_timezone(timezone)
    if zone is None or not is_iso_date(iso_date):
        return None

    parsed_time = parse_time_of_day(time_of_day)
    if parsed_time is None:
        return None

    year, month, day = (int(part) for part in iso_date.split("-"))
    hour, minute = parsed_time

    return pendulum.datetime(year, month, day, hour, minute, tz=zone)


def format_hhmm(instant: DateTime, timezone: TimezoneLike | None) -> str | None:
    """Format an instant as its "HH:MM" wall-clock time in a timezone."""
    zone = resolve_timezone(timezone)
    if zone is None:
        return None

    return instant.in_timezone(zone).format("HH:mm")


def now_in(timezone: TimezoneLike | None, now: Any = None) -> DateTime | None:
    """Return ``now`` (or the current instant) expressed in the timezone."""
    zone = resolve_timezone(timezone)
    if zone is None:
        return None

    current = parse_instant(now) if now is not None else pendulum.now("UTC")
    if current is None:
        return None

    return current.in_timezone(zone)


def today(timezone: TimezoneLike | None, now: Any = None) -> str | None:
    """Return the civil date of ``now`` in the timezone."""
    current = now_in(timezone, now)
    return current.to_date_string() if current is not None else None


def date_range(start_iso: str, days: int) -> List[str]:
    """
    Generate consecutive ISO dates starting at ``start_iso``.

    Example: date_range("2024-12-30", 3) -> ["2024-12-30", "2024-12-31", "2025-01-01"]
    """
    if not is_iso_date(start_iso) or days <= 0:
        return []

    current = pendulum.parse(start_iso, exact=True)
    return [current.add(days=offset).to_date_string() for offset in range(days)]
