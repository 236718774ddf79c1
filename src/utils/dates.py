import math
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Windows are inclusive at millisecond resolution, matching the upstream
# ISO-8601 timestamps.
END_OF_DAY = time(23, 59, 59, 999000)
ONE_MS = timedelta(milliseconds=1)
DAY = timedelta(days=1)


def get_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def parse_timestamp(value: object, tz: ZoneInfo) -> datetime | None:
    """
    Parse an upstream timestamp into an aware datetime in ``tz``.

    Returns None when the value is absent (None or blank) and raises
    ValueError when a value is present but cannot be parsed. Naive values
    are read as facility-local wall time.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    try:
        # Elapsed-time math converts through UTC, so both ends must fit
        parsed.astimezone(UTC)
        return parsed.astimezone(tz)
    except OverflowError as exc:
        raise ValueError(f"Timestamp out of range: {value!r}") from exc


def parse_clock(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def to_number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, END_OF_DAY, tzinfo=tz)


def enumerate_days(first: date, last: date) -> list[date]:
    days = []
    cursor = first
    while cursor <= last:
        days.append(cursor)
        cursor += DAY
    return days


def hours_between(start: datetime, end: datetime) -> float:
    # Elapsed time, not wall-clock difference, across DST changes
    return (end.astimezone(UTC) - start.astimezone(UTC)).total_seconds() / 3600


def day_key(day: date) -> str:
    return day.isoformat()


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


def sunday_based_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday, the convention used by operating-hours tables."""
    return (day.weekday() + 1) % 7


def week_key(day: date) -> str:
    return (day - timedelta(days=day.weekday())).isoformat()


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor
