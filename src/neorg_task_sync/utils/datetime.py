"""Datetime utilities with consistent UTC timezone handling.

Remote timestamps arrive as RFC 3339 strings and document timestamps come
from file modification times; both are normalized to aware UTC datetimes
here so the sync engine can compare them directly.
"""

from datetime import date, datetime, time, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return current datetime in UTC timezone.

    Returns:
        Current datetime with timezone=UTC
    """
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware, assuming UTC if naive.

    Args:
        dt: Datetime to check/convert, or None

    Returns:
        Timezone-aware datetime in UTC, or None if input was None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def from_timestamp(timestamp: float) -> datetime:
    """Convert a POSIX timestamp (e.g. ``st_mtime``) to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by REST APIs.

    Accepts a trailing ``Z`` and fractional seconds of any precision.

    Args:
        value: Timestamp string, or None

    Returns:
        Timezone-aware datetime in UTC, or None if input was empty

    Raises:
        ValueError: If the string is not a valid timestamp
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    # fromisoformat only accepts 3 or 6 fractional digits on older Pythons
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"

    return ensure_aware(datetime.fromisoformat(text))


def to_rfc3339(dt: datetime) -> str:
    """Format an aware datetime as RFC 3339 with a ``Z`` suffix."""
    aware_dt = ensure_aware(dt)
    return aware_dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{aware_dt.microsecond // 1000:03d}Z"


def date_to_rfc3339(day: date) -> str:
    """Encode a calendar day the way task stores expect due dates: midnight UTC."""
    return to_rfc3339(datetime.combine(day, time.min, tzinfo=timezone.utc))


def rfc3339_to_date(value: Optional[str]) -> Optional[date]:
    """Decode a due timestamp back into its calendar day."""
    parsed = parse_rfc3339(value)
    return parsed.date() if parsed else None
