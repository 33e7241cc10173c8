"""Calendar week arithmetic for weekly list provisioning.

Week boundaries are computed in the caller's timezone and stored as UTC instants. Whether a
stored list already covers a week is decided by ``same_calendar_day`` alone.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.core.errors import ValidationFailed


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def resolve_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Raises:
        ValidationFailed: If the name is empty or unknown
    """
    if not name:
        raise ValidationFailed("Missing timezone")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationFailed(f"Unknown timezone: {name}") from e


def weekday_index(name: str) -> int:
    """Return the Python weekday index (Monday=0) for a weekday name."""
    try:
        return WEEKDAYS.index(name.lower())
    except ValueError as e:
        raise ValidationFailed(f"Unknown weekday: {name}") from e


def start_of_week(now: datetime, tz: ZoneInfo, week_starts_on: str = "sunday") -> datetime:
    """Return the UTC instant at which the caller's current week began.

    ``now`` is converted into ``tz``, truncated to local midnight of the first day of the
    week there, and converted back to UTC.
    """
    local_now = now.astimezone(tz)
    days_back = (local_now.weekday() - weekday_index(week_starts_on)) % 7
    local_date = local_now.date() - timedelta(days=days_back)
    local_start = datetime(local_date.year, local_date.month, local_date.day, tzinfo=tz)
    return local_start.astimezone(UTC)


def next_week_start(now: datetime, tz: ZoneInfo, week_starts_on: str = "sunday") -> datetime:
    """Return the UTC instant at which the caller's following week begins."""
    this_week = start_of_week(now, tz, week_starts_on).astimezone(tz)
    following = this_week.date() + timedelta(days=7)
    return datetime(following.year, following.month, following.day, tzinfo=tz).astimezone(UTC)


def calendar_day(instant: datetime) -> str:
    """Return the UTC calendar day of an instant as ``YYYY-MM-DD``."""
    return instant.astimezone(UTC).strftime("%Y-%m-%d")


def same_calendar_day(first: datetime | str, second: datetime | str) -> bool:
    """Return True when two instants fall on the same UTC calendar day."""
    first_instant = parse_instant(first) if isinstance(first, str) else first
    second_instant = parse_instant(second) if isinstance(second, str) else second
    return calendar_day(first_instant) == calendar_day(second_instant)


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValidationFailed: If the value is not a timestamp
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationFailed(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_instant(instant: datetime) -> str:
    """Format an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    utc = instant.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
