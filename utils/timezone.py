"""UTC-everywhere time handling for tokens, challenges and audit records."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere. Tests patch it per module
    to move challenge and token clocks.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def to_epoch(dt: datetime) -> float:
    """Seconds since the epoch for an aware datetime (used in Lua comparisons)."""
    return to_utc(dt).timestamp()


def seconds_until(dt: datetime, now: datetime | None = None) -> int:
    """Whole seconds from now until dt, never below 1 (valid as a key TTL)."""
    now = now or now_utc()
    return max(int((to_utc(dt) - now).total_seconds()), 1)
