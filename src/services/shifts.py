import math
from collections.abc import Sequence

from src.schemas.analytics import (
    ParkingSession,
    RankingItem,
    ShiftRecord,
    ShiftScore,
    TrendPoint,
)
from src.services.aggregator import average
from src.utils.constants import (
    INCIDENCE_WEIGHT,
    INCOME_WEIGHT,
    MOVE_WEIGHT,
    SHIFT_SLOT_LABELS,
    ShiftSlot,
)
from src.utils.dates import hours_between, round_half_up, week_key


def clamp01(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


def shift_slot(start_hour: int) -> ShiftSlot:
    if 5 <= start_hour < 13:
        return ShiftSlot.MORNING
    if 13 <= start_hour < 21:
        return ShiftSlot.AFTERNOON
    return ShiftSlot.NIGHT


def _measure(shift: ShiftRecord, sessions: Sequence[ParkingSession]) -> dict:
    entries = exits = incidents = 0
    revenue = 0.0
    for session in sessions:
        if session.entry is not None and shift.start <= session.entry < shift.end:
            entries += 1
        if session.exit is not None and shift.start <= session.exit < shift.end:
            exits += 1
            # A completed stay without a fee is an incident
            if session.fee <= 0:
                incidents += 1
            else:
                revenue += session.fee

    operations = entries + exits
    actual_hours = max(0.0, hours_between(shift.start, shift.end))
    expected = shift.expected_duration_hours
    return {
        "entries": entries,
        "exits": exits,
        "operations": operations,
        "revenue": revenue,
        "incidents": incidents,
        "incidence_rate": incidents / max(1, operations),
        "actual_hours": actual_hours,
        "compliance": clamp01(actual_hours / expected) if expected > 0 else 0.0,
    }


def score_shifts(
    shifts: Sequence[ShiftRecord], sessions: Sequence[ParkingSession]
) -> list[ShiftScore]:
    """
    Score every shift relative to the best shift of the same batch.

    The first pass measures operations, revenue and incidents per shift; the
    second normalizes them against the batch maxima. Scores are therefore only
    comparable within one batch: scoring a different subset of shifts changes
    every score.
    """
    measured = [(shift, _measure(shift, sessions)) for shift in shifts]

    # Maxima fall back to 1 so an idle batch scores on incidence alone
    max_operations = max((m["operations"] for _, m in measured), default=0) or 1
    max_revenue = max((m["revenue"] for _, m in measured), default=0) or 1

    scores = []
    for shift, metrics in measured:
        move_score = clamp01(metrics["operations"] / max_operations)
        income_score = clamp01(metrics["revenue"] / max_revenue)
        incidence_score = 1 - clamp01(metrics["incidence_rate"])
        efficiency = (
            MOVE_WEIGHT * move_score + INCOME_WEIGHT * income_score + INCIDENCE_WEIGHT * incidence_score
        )
        scores.append(
            ShiftScore(
                shift_id=shift.id,
                assignee_name=shift.assignee_name,
                slot=shift_slot(shift.start.hour),
                start=shift.start,
                end=shift.end,
                efficiency=int(round_half_up(efficiency * 100)),
                **metrics,
            )
        )
    return scores


def summarize(scores: Sequence[ShiftScore]) -> dict[str, float]:
    return {
        "shifts": len(scores),
        "avg_movements": average(s.operations for s in scores),
        "avg_income": average(s.revenue for s in scores),
        "avg_incidence": average(s.incidence_rate for s in scores) * 100,
        "avg_compliance": average(s.compliance for s in scores) * 100,
        "avg_efficiency": average(s.efficiency for s in scores),
    }


def _rank(scores: Sequence[ShiftScore], key) -> list[RankingItem]:
    groups: dict[str, list[ShiftScore]] = {}
    for score in scores:
        groups.setdefault(key(score), []).append(score)

    items = [
        RankingItem(
            label=label,
            shifts=len(members),
            operations=sum(m.operations for m in members),
            revenue=round_half_up(sum(m.revenue for m in members), 2),
            efficiency=round_half_up(average(m.efficiency for m in members), 1),
        )
        for label, members in groups.items()
    ]
    return sorted(items, key=lambda item: item.efficiency, reverse=True)


def rank_employees(scores: Sequence[ShiftScore]) -> list[RankingItem]:
    return _rank(scores, lambda s: s.assignee_name)


def rank_slots(scores: Sequence[ShiftScore]) -> list[RankingItem]:
    return _rank(scores, lambda s: SHIFT_SLOT_LABELS[s.slot])


def weekly_income(scores: Sequence[ShiftScore]) -> list[TrendPoint]:
    weeks: dict[str, float] = {}
    for score in scores:
        key = week_key(score.start.date())
        weeks[key] = weeks.get(key, 0.0) + score.revenue
    return [TrendPoint(label=key, value=round_half_up(weeks[key], 2)) for key in sorted(weeks)]
