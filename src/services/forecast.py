from collections.abc import Sequence
from datetime import timedelta
from typing import NamedTuple

import numpy as np

from src.schemas.analytics import Forecast, ParkingSession, TimeWindow, TrendBucket, TrendPoint
from src.services.aggregator import average
from src.services.period import in_window
from src.utils.constants import CONSERVATIVE_FACTOR, FORECAST_PERIODS, OPTIMISTIC_FACTOR
from src.utils.dates import end_of_day, start_of_day

# (minimum window length in days, bucket span in days), longest first
BUCKET_SPANS = ((120, 21), (90, 14), (60, 10), (35, 7), (21, 5))
DEFAULT_BUCKET_SPAN = 3


class Regression(NamedTuple):
    slope: float
    intercept: float


def bucket_span(period_days: int) -> int:
    for threshold, span in BUCKET_SPANS:
        if period_days > threshold:
            return span
    return DEFAULT_BUCKET_SPAN


def bucket_label(first, last) -> str:
    return f"{first.isoformat()}/{last.isoformat()}"


def build_buckets(
    sessions: Sequence[ParkingSession], window: TimeWindow, span: int
) -> list[TrendBucket]:
    """Consecutive ``span``-day buckets covering the window, keyed on entry time."""
    tz = window.from_.tzinfo
    last_day = window.to.date()
    cursor = window.from_.date()
    entered = [s for s in sessions if in_window(s.entry, window)]

    buckets = []
    while cursor <= last_day:
        bucket_end_day = min(cursor + timedelta(days=span - 1), last_day)
        start = start_of_day(cursor, tz)
        end = end_of_day(bucket_end_day, tz)
        members = [s for s in entered if start <= s.entry <= end]
        stays = [s.duration_hours for s in members if s.duration_hours is not None]
        buckets.append(
            TrendBucket(
                label=bucket_label(cursor, bucket_end_day),
                start=start,
                end=end,
                vehicles=len(members),
                revenue=sum(s.fee for s in members),
                average_stay_hours=average(stays),
            )
        )
        cursor = bucket_end_day + timedelta(days=1)
    return buckets


def linear_fit(values: Sequence[float]) -> Regression:
    """Least-squares line through (index, value); flat at the mean for fewer than two points."""
    if len(values) < 2:
        return Regression(0.0, average(values))
    slope, intercept = np.polyfit(np.arange(len(values), dtype=float), np.asarray(values, dtype=float), 1)
    return Regression(float(slope), float(intercept))


def project(
    values: Sequence[float],
    buckets: Sequence[TrendBucket],
    span: int,
    periods: int = FORECAST_PERIODS,
) -> Forecast:
    if not values or not buckets:
        return Forecast()

    model = linear_fit(values)
    last_day = buckets[-1].end.date()
    base, optimistic, conservative = [], [], []
    for step in range(1, periods + 1):
        first = last_day + timedelta(days=span * (step - 1) + 1)
        label = bucket_label(first, first + timedelta(days=span - 1))
        projection = max(0.0, model.intercept + model.slope * (len(values) - 1 + step))
        base.append(TrendPoint(label=label, value=projection))
        optimistic.append(TrendPoint(label=label, value=projection * OPTIMISTIC_FACTOR))
        conservative.append(TrendPoint(label=label, value=projection * CONSERVATIVE_FACTOR))

    return Forecast(
        slope=model.slope,
        intercept=model.intercept,
        base=base,
        optimistic=optimistic,
        conservative=conservative,
    )
