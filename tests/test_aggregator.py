from datetime import UTC, datetime

import pytest

from src.schemas.analytics import ParkingSession
from src.services import aggregator
from src.services.period import make_window
from src.utils.constants import STAY_BUCKET_EDGES, STAY_BUCKET_LABELS


def at(day: int, hour: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, tzinfo=UTC)


class TestReductions:
    def test_empty_average_is_zero(self):
        assert aggregator.average([]) == 0.0

    def test_single_session_totals(self):
        sessions = [ParkingSession(id="1", entry=at(1, 10), exit=at(1, 12), fee=100)]

        assert aggregator.count(sessions) == 1
        assert aggregator.total(s.fee for s in sessions) == 100
        assert aggregator.average(s.fee for s in sessions) == 100

    def test_weighted_average(self):
        assert aggregator.weighted_average([(0.1, 100), (0.0, 300)]) == pytest.approx(0.025)
        assert aggregator.weighted_average([(0.5, 0)]) == 0.0

    def test_share_without_whole(self):
        assert aggregator.share(5, 0) == 0.0
        assert aggregator.share(1, 4) == 25.0


class TestBreakdown:
    def test_sorted_by_amount_descending(self):
        rows = [("cash", 10), ("card", 30), ("cash", 5)]
        items = aggregator.breakdown(rows, lambda r: r[0], lambda r: r[1])

        assert [(i.label, i.amount, i.count) for i in items] == [("card", 30, 1), ("cash", 15, 2)]

    def test_ties_keep_first_seen_order(self):
        rows = ["b", "a", "c"]
        items = aggregator.breakdown(rows, lambda r: r, by="count")

        assert [i.label for i in items] == ["b", "a", "c"]


class TestSeries:
    def test_daily_series_fills_gaps(self):
        window = make_window(at(1).date(), at(3).date(), UTC)
        records = [(at(1, 9), 10.0), (at(3, 18), 5.0), (at(4, 1), 99.0)]
        series = aggregator.daily_series(records, window, lambda r: r[0], lambda r: r[1])

        assert [p.label for p in series] == ["2024-01-01", "2024-01-02", "2024-01-03"]
        assert [p.value for p in series] == [10.0, 0.0, 5.0]

    def test_daily_series_counts_without_value(self):
        window = make_window(at(1).date(), at(2).date(), UTC)
        series = aggregator.daily_series([at(1), at(1, 5), None], window, lambda r: r)

        assert [p.value for p in series] == [2.0, 0.0]

    def test_hourly_counts(self):
        counts = aggregator.hourly_counts([at(1, 10), at(2, 10), at(1, 23), None])

        assert len(counts) == 24
        assert counts[10] == 2
        assert counts[23] == 1

    def test_hourly_series_averages_across_days(self):
        window = make_window(at(1).date(), at(2).date(), UTC)
        sessions = [ParkingSession(id="1", entry=at(1, 10), exit=at(1, 12))]
        series = aggregator.hourly_series(sessions, window)

        assert series[10].label == "10:00"
        assert series[10].value == 0.5
        assert series[12].value == 0.0


class TestDistribution:
    def test_even_stays_split_into_quarters(self):
        buckets = aggregator.distribution([0.5, 2, 4, 8], STAY_BUCKET_EDGES, STAY_BUCKET_LABELS)

        assert [b.label for b in buckets] == ["<1h", "1-3h", "3-6h", ">6h"]
        assert [b.percentage for b in buckets] == [25, 25, 25, 25]

    def test_percentages_always_sum_to_100(self):
        assert aggregator.largest_remainder([1, 1, 1]) == [34, 33, 33]
        assert sum(aggregator.largest_remainder([7, 2, 2, 1])) == 100

    def test_empty_distribution_is_all_zero(self):
        buckets = aggregator.distribution([], STAY_BUCKET_EDGES, STAY_BUCKET_LABELS)

        assert [b.percentage for b in buckets] == [0, 0, 0, 0]

    def test_bucket_edges_are_lower_inclusive(self):
        assert aggregator.bucket_index(1.0, STAY_BUCKET_EDGES) == 1
        assert aggregator.bucket_index(6.0, STAY_BUCKET_EDGES) == 3

    def test_label_count_must_match(self):
        with pytest.raises(ValueError):
            aggregator.distribution([1.0], (1.0,), ("only one",))
