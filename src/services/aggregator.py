import math
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TypeVar

from src.schemas.analytics import (
    BreakdownItem,
    DistributionBucket,
    ParkingSession,
    TimeWindow,
    TrendPoint,
)
from src.services.period import present_at, window_days
from src.utils.dates import day_key, hour_label, round_half_up

T = TypeVar("T")


def total(values: Iterable[float]) -> float:
    return float(sum(values))


def count(items: Iterable[object]) -> int:
    return sum(1 for _ in items)


def average(values: Iterable[float]) -> float:
    """Arithmetic mean; 0 for an empty input."""
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def weighted_average(pairs: Iterable[tuple[float, float]]) -> float:
    """Mean of ``value`` weighted by ``weight``; 0 when the weights sum to 0."""
    numerator = 0.0
    weights = 0.0
    for value, weight in pairs:
        numerator += value * weight
        weights += weight
    if weights <= 0:
        return 0.0
    return numerator / weights


def share(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return part / whole * 100


def breakdown(
    records: Iterable[T],
    key: Callable[[T], str],
    amount: Callable[[T], float] | None = None,
    by: str = "amount",
) -> list[BreakdownItem]:
    """
    Group records by label accumulating amount and count.

    Sorted by ``by`` descending; equal values keep first-seen order.
    """
    groups: dict[str, list[float]] = {}
    for record in records:
        label = key(record)
        group = groups.setdefault(label, [0.0, 0])
        group[0] += amount(record) if amount else 0.0
        group[1] += 1

    items = [BreakdownItem(label=label, amount=value, count=n) for label, (value, n) in groups.items()]
    # sorted() is stable, so insertion order breaks ties
    return sorted(items, key=lambda item: getattr(item, by), reverse=True)


def daily_series(
    records: Iterable[T],
    window: TimeWindow,
    timestamp: Callable[[T], datetime | None],
    value: Callable[[T], float] | None = None,
) -> list[TrendPoint]:
    """One point per calendar day of the window, zero-filled."""
    buckets = {day_key(day): 0.0 for day in window_days(window)}
    for record in records:
        instant = timestamp(record)
        if instant is None:
            continue
        key = day_key(instant.date())
        if key in buckets:
            buckets[key] += value(record) if value else 1.0
    return [TrendPoint(label=label, value=amount) for label, amount in buckets.items()]


def hourly_counts(timestamps: Iterable[datetime | None]) -> list[int]:
    counts = [0] * 24
    for instant in timestamps:
        if instant is not None:
            counts[instant.hour] += 1
    return counts


def presence_grid(sessions: Sequence[ParkingSession], window: TimeWindow) -> list[tuple[datetime, int]]:
    """Count of sessions present at the top of every hour of every day in the window."""
    tz = window.from_.tzinfo
    grid = []
    for day in window_days(window):
        for hour in range(24):
            instant = datetime(day.year, day.month, day.day, hour, tzinfo=tz)
            grid.append((instant, sum(1 for s in sessions if present_at(s, instant))))
    return grid


def hourly_series(sessions: Sequence[ParkingSession], window: TimeWindow) -> list[TrendPoint]:
    """Average number of vehicles present at each hour of day across the window."""
    totals = [0.0] * 24
    days = 0
    for instant, present in presence_grid(sessions, window):
        totals[instant.hour] += present
        if instant.hour == 0:
            days += 1
    return [
        TrendPoint(label=hour_label(hour), value=totals[hour] / days if days else 0.0)
        for hour in range(24)
    ]


def bucket_index(value: float, edges: Sequence[float]) -> int:
    for index, edge in enumerate(edges):
        if value < edge:
            return index
    return len(edges)


def largest_remainder(counts: Sequence[int]) -> list[int]:
    """Integer percentages of ``counts`` that sum to exactly 100 (or all 0 when empty)."""
    whole = sum(counts)
    if whole <= 0:
        return [0] * len(counts)
    exact = [c * 100 / whole for c in counts]
    floors = [math.floor(value) for value in exact]
    remaining = 100 - sum(floors)
    order = sorted(range(len(counts)), key=lambda i: (-(exact[i] - floors[i]), i))
    for index in order[:remaining]:
        floors[index] += 1
    return floors


def distribution(
    values: Iterable[float], edges: Sequence[float], labels: Sequence[str]
) -> list[DistributionBucket]:
    if len(labels) != len(edges) + 1:
        raise ValueError("Expected one label per bucket (edges + 1)")
    counts = [0] * len(labels)
    for value in values:
        counts[bucket_index(value, edges)] += 1
    percentages = largest_remainder(counts)
    return [
        DistributionBucket(label=label, count=n, percentage=pct)
        for label, n, pct in zip(labels, counts, percentages)
    ]


def rounded(value: float, digits: int = 2) -> float:
    return round_half_up(value, digits)
