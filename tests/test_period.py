from datetime import UTC, date, datetime, timedelta

from src.schemas.analytics import ParkingSession
from src.services.period import filter_sessions, overlaps, present_at, resolve_period
from src.utils.constants import ComparisonMode
from src.utils.dates import ONE_MS


def at(day: int, hour: int = 0, month: int = 1, year: int = 2024) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)


class TestResolvePeriod:
    def test_explicit_range(self, now):
        period = resolve_period(date(2024, 3, 1), date(2024, 3, 10), now, UTC)

        assert period.current.from_ == datetime(2024, 3, 1, tzinfo=UTC)
        assert period.current.to == datetime(2024, 3, 10, 23, 59, 59, 999000, tzinfo=UTC)
        assert period.current.period_days == 10

    def test_previous_window_is_contiguous_and_equal_length(self, now):
        period = resolve_period(date(2024, 3, 1), date(2024, 3, 10), now, UTC)

        assert period.previous.period_days == period.current.period_days
        assert period.previous.to + ONE_MS == period.current.from_
        # 2024 is a leap year
        assert period.previous.from_.date() == date(2024, 2, 20)
        assert period.previous.to.date() == date(2024, 2, 29)

    def test_single_day(self, now):
        period = resolve_period(date(2024, 1, 1), date(2024, 1, 1), now, UTC)

        assert period.current.period_days == 1
        assert period.previous.period_days == 1
        assert period.previous.from_.date() == date(2023, 12, 31)

    def test_inverted_range_is_swapped(self, now):
        period = resolve_period(date(2024, 1, 10), date(2024, 1, 1), now, UTC)

        assert period.current.from_.date() == date(2024, 1, 1)
        assert period.current.to.date() == date(2024, 1, 10)

    def test_default_trailing_window(self):
        now = datetime(2024, 5, 31, 15, tzinfo=UTC)
        period = resolve_period(None, None, now, UTC, default_days=30)

        assert period.current.from_.date() == date(2024, 5, 2)
        assert period.current.to.date() == date(2024, 5, 31)
        assert period.current.period_days == 30

    def test_only_end_date(self, now):
        period = resolve_period(None, date(2024, 1, 7), now, UTC, default_days=7)

        assert period.current.from_.date() == date(2024, 1, 1)

    def test_start_in_the_future_collapses_to_one_day(self, now):
        period = resolve_period(date(2024, 2, 1), None, now, UTC)

        assert period.current.from_.date() == date(2024, 2, 1)
        assert period.current.to.date() == date(2024, 2, 1)

    def test_quarter_mode_ends_90_days_before_start(self, now, week):
        period = resolve_period(*week, now, UTC, mode=ComparisonMode.QUARTER)

        assert period.comparison_mode == ComparisonMode.QUARTER
        assert period.previous.to.date() == week[0] - timedelta(days=91)
        assert period.previous.to.date() == date(2023, 10, 2)
        assert period.previous.from_.date() == date(2023, 9, 26)
        assert period.previous.period_days == 7

    def test_year_mode_ends_365_days_before_start(self, now, week):
        period = resolve_period(*week, now, UTC, mode=ComparisonMode.YEAR)

        assert period.previous.from_.date() == date(2022, 12, 25)
        assert period.previous.to.date() == date(2022, 12, 31)


class TestMembership:
    def test_overlap_rules(self, now, week):
        window = resolve_period(*week, now, UTC).current

        assert overlaps(at(1, 10), None, window)
        assert overlaps(None, at(7, 23), window)
        assert overlaps(at(20, month=12, year=2023), at(10), window)
        assert not overlaps(at(8), at(9), window)
        assert not overlaps(None, None, window)

    def test_window_bounds_are_inclusive(self, now, week):
        window = resolve_period(*week, now, UTC).current
        first = ParkingSession(id="a", entry=window.from_)
        last = ParkingSession(id="b", exit=window.to)
        outside = ParkingSession(id="c", exit=window.to + ONE_MS)

        assert filter_sessions([first, last, outside], window) == [first, last]

    def test_presence_is_half_open(self):
        session = ParkingSession(id="a", entry=at(1, 10), exit=at(1, 12))

        assert present_at(session, at(1, 10))
        assert present_at(session, at(1, 11))
        assert not present_at(session, at(1, 12))
        assert not present_at(session, at(1, 9))

    def test_open_ended_sessions(self):
        still_parked = ParkingSession(id="a", entry=at(1, 10))
        exit_only = ParkingSession(id="b", exit=at(1, 12))

        assert present_at(still_parked, at(5))
        assert present_at(exit_only, at(1, 11))
        assert not present_at(exit_only, at(1, 12))

    def test_inverted_session_is_never_present(self):
        session = ParkingSession(id="a", entry=at(1, 12), exit=at(1, 10))

        assert session.is_inverted
        assert session.duration_hours is None
        assert not present_at(session, at(1, 11))
