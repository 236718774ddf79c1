from collections import Counter
from collections.abc import Sequence
from datetime import datetime
from typing import NamedTuple

from src.schemas.analytics import (
    HeatmapCell,
    OccupancyProfile,
    ParkingSession,
    TimeWindow,
    TrendPoint,
    ZoneOccupancy,
)
from src.schemas.facility import FacilityMetadata
from src.services.aggregator import average
from src.services.period import filter_sessions, present_at, window_days
from src.utils.constants import (
    HIGH_RISK_PCT,
    MEDIUM_RISK_PCT,
    WEEKDAY_LABELS,
    RiskLevel,
)
from src.utils.dates import day_key, hour_label, round_half_up


def occupancy_pct(occupied: float, capacity: int) -> float:
    """Occupied share of capacity in percent; 0 without capacity, capped at 100."""
    if capacity <= 0:
        return 0.0
    return min(100.0, occupied / capacity * 100)


def risk_level(pct: float) -> RiskLevel:
    if pct >= HIGH_RISK_PCT:
        return RiskLevel.HIGH
    if pct >= MEDIUM_RISK_PCT:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class _Sample(NamedTuple):
    instant: datetime
    pct: float
    operating: bool
    zones: Counter


def _sample(
    sessions: Sequence[ParkingSession], facility: FacilityMetadata, window: TimeWindow
) -> list[_Sample]:
    tz = window.from_.tzinfo
    samples = []
    for day in window_days(window):
        for hour in range(24):
            instant = datetime(day.year, day.month, day.day, hour, tzinfo=tz)
            present = [s for s in sessions if present_at(s, instant)]
            occupied = facility.baseline_reserved + len(present)
            samples.append(
                _Sample(
                    instant,
                    occupancy_pct(occupied, facility.total_capacity),
                    facility.is_operating(instant),
                    Counter(s.zone for s in present if s.zone),
                )
            )
    return samples


def _argmax(points: Sequence[TrendPoint]) -> str | None:
    if not points or max(p.value for p in points) <= 0:
        return None
    # max() returns the first maximal element
    return max(points, key=lambda p: p.value).label


def _zone_occupancy(samples: list[_Sample], facility: FacilityMetadata) -> list[ZoneOccupancy]:
    operating = [s for s in samples if s.operating]
    zones = []
    for zone, capacity in facility.zone_capacities.items():
        pct = average(occupancy_pct(s.zones.get(zone, 0), capacity) for s in operating)
        zones.append(
            ZoneOccupancy(
                zone=zone,
                capacity=capacity,
                occupancy=round_half_up(pct, 1),
                risk=risk_level(pct),
            )
        )
    return sorted(zones, key=lambda z: z.occupancy, reverse=True)


def occupancy_profile(
    sessions: Sequence[ParkingSession], facility: FacilityMetadata, window: TimeWindow
) -> OccupancyProfile:
    """
    Hour-by-hour occupancy of the window and its derived profiles.

    Every hour of every day is sampled at its first instant. The overall
    average and the dead hour only consider operating hours; the hour-of-day,
    weekday and heat-map profiles average every sampled hour.
    """
    samples = _sample(filter_sessions(sessions, window), facility, window)

    by_hour: dict[int, list[float]] = {hour: [] for hour in range(24)}
    by_weekday: dict[int, list[float]] = {weekday: [] for weekday in range(7)}
    by_cell: dict[tuple[int, int], list[float]] = {}
    by_day: dict[str, list[float]] = {}
    operating_hours: set[int] = set()

    for sample in samples:
        hour = sample.instant.hour
        weekday = sample.instant.weekday()
        by_hour[hour].append(sample.pct)
        by_weekday[weekday].append(sample.pct)
        by_cell.setdefault((weekday, hour), []).append(sample.pct)
        values = by_day.setdefault(day_key(sample.instant.date()), [])
        if sample.operating:
            values.append(sample.pct)
            operating_hours.add(hour)

    hourly = [
        TrendPoint(label=hour_label(hour), value=round_half_up(average(by_hour[hour]), 1))
        for hour in range(24)
    ]
    weekday_profile = [
        TrendPoint(label=WEEKDAY_LABELS[weekday], value=round_half_up(average(by_weekday[weekday]), 1))
        for weekday in range(7)
    ]
    heatmap = [
        HeatmapCell(
            weekday=WEEKDAY_LABELS[weekday],
            hour=hour_label(hour),
            value=round_half_up(average(by_cell.get((weekday, hour), [])), 1),
        )
        for weekday in range(7)
        for hour in range(24)
    ]
    # Closed days have no operating samples and read as 0
    daily = [TrendPoint(label=key, value=round_half_up(average(values), 1)) for key, values in by_day.items()]

    overall = average(s.pct for s in samples if s.operating)
    dead_candidates = [p for p in hourly if int(p.label[:2]) in operating_hours]
    dead_hour = min(dead_candidates, key=lambda p: p.value).label if dead_candidates else None

    return OccupancyProfile(
        average=round_half_up(overall, 1),
        hourly=hourly,
        weekday=weekday_profile,
        daily=daily,
        heatmap=heatmap,
        zones=_zone_occupancy(samples, facility),
        peak_hour=_argmax(hourly),
        peak_day=_argmax(weekday_profile),
        dead_hour=dead_hour,
        availability=int(round_half_up((1 - overall / 100) * facility.total_capacity)),
    )
