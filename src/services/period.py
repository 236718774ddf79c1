from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from typing import TypeVar
from zoneinfo import ZoneInfo

from src.schemas.analytics import ParkingSession, PeriodPair, TimeWindow
from src.utils.constants import COMPARISON_OFFSET_DAYS, ComparisonMode
from src.utils.dates import end_of_day, enumerate_days, start_of_day

T = TypeVar("T")


def make_window(first: date, last: date, tz: ZoneInfo) -> TimeWindow:
    return TimeWindow(
        from_=start_of_day(first, tz),
        to=end_of_day(last, tz),
        period_days=(last - first).days + 1,
    )


def resolve_period(
    date_from: date | None,
    date_to: date | None,
    now: datetime,
    tz: ZoneInfo,
    default_days: int = 30,
    mode: ComparisonMode = ComparisonMode.PRECEDING,
) -> PeriodPair:
    """
    Build the current window and its comparable previous window.

    Both windows cover whole calendar days in ``tz`` and have the same
    ``period_days``. In ``preceding`` mode the previous window ends 1ms before
    the current one starts; the other modes end it a fixed number of days
    before the current start.
    """
    today = now.astimezone(tz).date()
    span = max(default_days, 1) - 1

    if date_from is None and date_to is None:
        last = today
        first = last - timedelta(days=span)
    elif date_from is None:
        last = date_to
        first = last - timedelta(days=span)
    elif date_to is None:
        first = date_from
        last = max(today, first)
    else:
        first, last = date_from, date_to

    if first > last:
        first, last = last, first

    current = make_window(first, last, tz)
    previous_last = first - timedelta(days=COMPARISON_OFFSET_DAYS[mode] + 1)
    previous = make_window(
        previous_last - timedelta(days=current.period_days - 1), previous_last, tz
    )

    return PeriodPair(current=current, previous=previous, comparison_mode=mode)


def window_days(window: TimeWindow) -> list[date]:
    return enumerate_days(window.from_.date(), window.to.date())


def in_window(instant: datetime | None, window: TimeWindow) -> bool:
    return instant is not None and window.from_ <= instant <= window.to


def overlaps(start: datetime | None, end: datetime | None, window: TimeWindow) -> bool:
    """A record belongs to a window when either timestamp falls inside it or it spans it."""
    if in_window(start, window) or in_window(end, window):
        return True
    return start is not None and end is not None and start < window.from_ and end > window.to


def filter_window(
    items: Iterable[T],
    window: TimeWindow,
    start: Callable[[T], datetime | None],
    end: Callable[[T], datetime | None] | None = None,
) -> list[T]:
    if end is None:
        return [item for item in items if in_window(start(item), window)]
    return [item for item in items if overlaps(start(item), end(item), window)]


def filter_sessions(sessions: Iterable[ParkingSession], window: TimeWindow) -> list[ParkingSession]:
    return filter_window(sessions, window, lambda s: s.entry, lambda s: s.exit)


def present_at(session: ParkingSession, instant: datetime) -> bool:
    """Half-open presence: inside from entry (inclusive) until exit (exclusive)."""
    if session.is_inverted:
        return False
    if session.entry is not None and session.entry > instant:
        return False
    return session.exit is None or instant < session.exit
