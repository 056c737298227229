"""
Timezone utilities for the event sync service.

All instants are stored as naive UTC datetimes. Event data sources publish
match times as local wall-clock values without an offset, so every such value
is converted to UTC using the event's declared time zone before it reaches the
sync engine. Tolerance comparisons (replay detection) are only meaningful on
these converted values.
"""
import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.logging import get_logger

logger = get_logger(__name__)

UTC = timezone.utc

# Fractional seconds of any length; .NET sources trim trailing zeros (".45")
# and can send 7 digits (".1234567")
_FRACTION_RE = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")

# Windows zone names some event sources still publish, mapped to IANA ids
WINDOWS_TO_IANA = {
    "Eastern Standard Time": "America/New_York",
    "Central Standard Time": "America/Chicago",
    "Mountain Standard Time": "America/Denver",
    "US Mountain Standard Time": "America/Phoenix",
    "Pacific Standard Time": "America/Los_Angeles",
    "Alaskan Standard Time": "America/Anchorage",
    "Hawaiian Standard Time": "Pacific/Honolulu",
    "Atlantic Standard Time": "America/Halifax",
    "Newfoundland Standard Time": "America/St_Johns",
    "Canada Central Standard Time": "America/Regina",
    "US Eastern Standard Time": "America/Indiana/Indianapolis",
    "Central Standard Time (Mexico)": "America/Mexico_City",
    "E. South America Standard Time": "America/Sao_Paulo",
    "GMT Standard Time": "Europe/London",
    "W. Europe Standard Time": "Europe/Berlin",
    "Romance Standard Time": "Europe/Paris",
    "Central European Standard Time": "Europe/Warsaw",
    "Turkey Standard Time": "Europe/Istanbul",
    "Israel Standard Time": "Asia/Jerusalem",
    "India Standard Time": "Asia/Kolkata",
    "China Standard Time": "Asia/Shanghai",
    "Taipei Standard Time": "Asia/Taipei",
    "Tokyo Standard Time": "Asia/Tokyo",
    "AUS Eastern Standard Time": "Australia/Sydney",
    "UTC": "UTC",
}


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def resolve_time_zone(name: Optional[str]) -> ZoneInfo:
    """
    Resolve a source-provided zone name to a ZoneInfo.

    Accepts IANA ids and common Windows zone names. Blank or unknown names
    fall back to UTC.

    Examples:
        >>> resolve_time_zone("Eastern Standard Time").key
        'America/New_York'
        >>> resolve_time_zone(None).key
        'UTC'
    """
    if not name or not name.strip():
        return ZoneInfo("UTC")

    name = name.strip()
    iana = WINDOWS_TO_IANA.get(name, name)
    try:
        return ZoneInfo(iana)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown time zone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def local_to_utc(value: Optional[datetime], tz: ZoneInfo) -> Optional[datetime]:
    """
    Convert a local wall-clock datetime to a naive UTC datetime.

    Values that already carry an offset are converted from that offset
    instead of being reinterpreted in ``tz``.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(UTC).replace(tzinfo=None)


def utc_to_local(value: datetime, tz: ZoneInfo) -> datetime:
    """Convert a naive UTC datetime to an aware datetime in ``tz``."""
    return value.replace(tzinfo=UTC).astimezone(tz)


def parse_source_datetime(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from a data source.

    Sources send values like ``2025-03-01T09:30:00`` or
    ``2025-03-01T09:30:00.123`` (and occasionally a trailing ``Z``). The
    fraction is padded or truncated to microseconds first, since
    ``fromisoformat`` on Python 3.10 only takes 3 or 6 digits.

    Examples:
        >>> parse_source_datetime("2025-03-07T09:16:12.45")
        datetime.datetime(2025, 3, 7, 9, 16, 12, 450000)
    """
    if not raw:
        return None
    normalized = _FRACTION_RE.sub(
        lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", raw.strip(), count=1
    )
    return datetime.fromisoformat(normalized.replace("Z", "+00:00"))
