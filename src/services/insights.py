from collections.abc import Sequence

from src.schemas.analytics import (
    BreakdownItem,
    Descriptor,
    DistributionBucket,
    RankingItem,
    TrendPoint,
)
from src.schemas.report import (
    ComparisonKpis,
    IncomeKpis,
    MethodComparison,
    MovementKpis,
    OccupancyKpis,
    PaymentMethodKpis,
    ProfitabilityKpis,
    SegmentProfitability,
    ShiftSummary,
    SubscriptionKpis,
    TrendKpis,
)
from src.services.comparison import descriptor, points_descriptor
from src.utils.constants import INCIDENCE_TARGET_PCT, RiskLevel, VehicleSegment
from src.utils.dates import round_half_up


class InsightBuilder:
    """
    Collects template sentences in the order they are added.

    Sentences past ``limit`` are dropped; earlier templates always keep their
    slot.
    """

    def __init__(self, limit: int):
        self.limit = limit
        self.lines: list[str] = []

    def add(self, sentence: str) -> "InsightBuilder":
        self.lines.append(sentence)
        return self

    def when(self, condition: bool, sentence: str) -> "InsightBuilder":
        if condition:
            self.lines.append(sentence)
        return self

    def either(self, condition: bool, when_true: str, when_false: str) -> "InsightBuilder":
        self.lines.append(when_true if condition else when_false)
        return self

    def build(self) -> list[str]:
        return self.lines[: max(self.limit, 0)]


def format_currency(amount: float, symbol: str = "$") -> str:
    value = round_half_up(amount, 2)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):,.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    return f"{sign}{symbol}{text}"


def format_hours(hours: float) -> str:
    return f"{round_half_up(hours, 1):g}h"


def pct(value: float) -> int:
    return int(round_half_up(value))


def vs_previous(item: Descriptor) -> str:
    return f"{item.label} vs previous period"


def occupancy_insights(
    current: OccupancyKpis,
    average_delta: Descriptor,
    zones_at_risk: Sequence[str],
    total_capacity: int,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if total_capacity <= 0 or current.peak_hour is None:
        return builder.build()

    builder.add(f"Average occupancy reached {current.average_occupancy:g}% ({vs_previous(average_delta)}).")
    builder.when(current.peak_hour is not None, f"Occupancy peaks at {current.peak_hour}.")
    builder.when(current.peak_day is not None, f"{current.peak_day} is the busiest day of the week.")
    builder.when(
        current.dead_hour is not None,
        f"{current.dead_hour} is the quietest operating hour, a good slot for maintenance.",
    )
    builder.either(
        current.risk == RiskLevel.HIGH,
        "Occupancy is at high risk of saturation; consider releasing reserved spots.",
        f"On average {current.availability} spots remain available.",
    )
    builder.when(bool(zones_at_risk), f"Zones at high risk: {', '.join(zones_at_risk)}.")
    return builder.build()


def movement_insights(
    current: MovementKpis,
    entry_peak: TrendPoint | None,
    exit_peak: TrendPoint | None,
    stays: Sequence[DistributionBucket],
    peak_block: TrendPoint | None,
    total_capacity: int,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if current.entries == 0 and current.exits == 0:
        return builder.build()

    if entry_peak is not None:
        builder.add(f"Entries peaked at {entry_peak.label} with {int(entry_peak.value)} vehicles.")
    if exit_peak is not None:
        builder.add(f"Exits peaked at {exit_peak.label} with {int(exit_peak.value)} departures.")

    if stays and sum(bucket.count for bucket in stays):
        short = stays[0].percentage + stays[1].percentage
        long = stays[-1].percentage
        if short >= 60:
            builder.add(f"{short}% of stays ended within 3 hours, a sign of high rotation.")
        elif long >= 40:
            builder.add(f"{long}% of vehicles stayed longer than 6 hours; long stays dominate.")

    if peak_block is not None and peak_block.value > 0 and total_capacity > 0:
        share = pct(peak_block.value / total_capacity * 100)
        builder.add(
            f"Occupancy peaked in the {peak_block.label} block with {int(peak_block.value)} vehicles ({share}% of capacity)."
        )
    builder.when(
        current.dead_hours > 0,
        f"{current.dead_hours} hours had no movements, a good window for internal tasks.",
    )
    builder.when(
        current.reentry_rate > 0,
        f"Returning vehicles made up {pct(current.reentry_rate)}% of identified plates.",
    )
    return builder.build()


def shift_insights(
    summary: ShiftSummary,
    employees: Sequence[RankingItem],
    slots: Sequence[RankingItem],
    currency: str,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if summary.shifts == 0:
        return builder.build()

    busiest = max(employees, key=lambda item: item.operations, default=None)
    if busiest is not None:
        builder.add(f"{busiest.label} handled the most operations with {busiest.operations} movements.")

    by_income = max(slots, key=lambda item: item.revenue / max(1, item.shifts), default=None)
    if by_income is not None and by_income.revenue > 0:
        per_shift = by_income.revenue / max(1, by_income.shifts)
        builder.add(f"{by_income.label} brings in {format_currency(per_shift, currency)} per shift on average.")

    if summary.avg_incidence > INCIDENCE_TARGET_PCT:
        builder.add(
            f"The average incident rate is {summary.avg_incidence:.1f}%, above the {INCIDENCE_TARGET_PCT:g}% target."
        )
    elif summary.avg_income > 0:
        builder.add(f"Average income per shift reached {format_currency(summary.avg_income, currency)}.")
    return builder.build()


def income_insights(
    current: IncomeKpis,
    previous: IncomeKpis,
    breakdown: Sequence[BreakdownItem],
    daily: Sequence[TrendPoint],
    currency: str,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if current.operations == 0 and previous.operations == 0:
        return builder.build()

    total_delta = descriptor(current.total_income, previous.total_income)
    builder.add(f"Total income: {format_currency(current.total_income, currency)} ({vs_previous(total_delta)}).")
    if breakdown and current.total_income > 0:
        top = breakdown[0]
        builder.add(f"{top.label} accounts for {pct(top.amount / current.total_income * 100)}% of income.")
    if len(daily) >= 2:
        trend = descriptor(daily[-1].value, daily[0].value)
        builder.add(f"The daily trend shows {trend.label} between the first and last day.")
    builder.add(f"Average ticket: {format_currency(current.ticket_average, currency)} per operation.")
    return builder.build()


def payment_method_insights(
    current: PaymentMethodKpis,
    previous: PaymentMethodKpis,
    comparison: Sequence[MethodComparison],
    currency: str,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if current.operations == 0:
        return builder.build()

    digital = points_descriptor(current.digital_share, previous.digital_share)
    builder.either(
        digital.label == "stable",
        f"Digital methods make up {pct(current.digital_share)}% of the total, with no relevant change.",
        f"Digital methods make up {pct(current.digital_share)}% of the total ({vs_previous(digital)}).",
    )

    if current.top_method is not None:
        previous_top = next((c for c in comparison if c.label == current.top_method), None)
        previous_share = (
            pct(previous_top.previous_amount / previous.total * 100) if previous_top and previous.total > 0 else 0
        )
        top_delta = points_descriptor(pct(current.top_share), previous_share)
        builder.either(
            top_delta.label == "stable",
            f"{current.top_method} remains the main method with {pct(current.top_share)}% of the total.",
            f"{current.top_method} concentrates {pct(current.top_share)}% ({vs_previous(top_delta)}).",
        )

    growth = sorted(comparison, key=lambda c: c.current_amount - c.previous_amount, reverse=True)
    top_growth = next((c for c in growth if c.current_amount - c.previous_amount > 0), None)
    if top_growth is not None:
        gained = top_growth.current_amount - top_growth.previous_amount
        builder.add(
            f"{top_growth.label} grew the most in absolute terms ({format_currency(gained, currency)} more than the previous period)."
        )
    builder.when(
        current.commission_rate > 0,
        f"Estimated processing fees average {current.commission_rate * 100:.1f}% "
        f"({format_currency(current.commission_amount, currency)}).",
    )
    return builder.build()


def subscription_insights(
    current: SubscriptionKpis,
    deltas: dict[str, Descriptor],
    top_type: str | None,
    expiring_days: int,
    currency: str,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if not (current.active or current.revenue or current.expiring_soon):
        return builder.build()

    builder.add(f"{current.active} active subscriptions ({vs_previous(deltas['active'])}).")
    builder.add(f"Recurring payments totalled {format_currency(current.revenue, currency)} ({deltas['revenue'].label}).")
    builder.either(
        current.new > 0,
        f"{current.new} subscriptions started within the period.",
        "No new subscriptions were detected in the period.",
    )
    builder.either(
        current.renewals > 0,
        f"{current.renewals} renewals were completed through extension payments.",
        "No renewals were recorded in the period.",
    )
    builder.when(
        current.expiring_soon > 0,
        f"{current.expiring_soon} subscriptions expire in the next {expiring_days} days.",
    )
    builder.when(top_type is not None, f"The most adopted type was {top_type}.")
    return builder.build()


def comparison_insights(current: ComparisonKpis, previous: ComparisonKpis, limit: int) -> list[str]:
    builder = InsightBuilder(limit)
    metrics = (
        ("Income", current.income, previous.income),
        ("Vehicle flow", current.movements, previous.movements),
        ("The average ticket", current.ticket_average, previous.ticket_average),
        ("Average stay", current.average_stay_hours, previous.average_stay_hours),
    )
    for name, now, before in metrics:
        if before == 0:
            continue
        change = (now - before) / before * 100
        builder.when(change > 0, f"{name} rose {pct(change)}% against the previous period.")
        builder.when(change < 0, f"{name} fell {pct(abs(change))}% against the previous period.")
    return builder.build()


def trend_insights(
    current: TrendKpis,
    deltas: dict[str, Descriptor],
    horizon_days: int,
    revenue_slope: float,
    currency: str,
    limit: int,
) -> list[str]:
    builder = InsightBuilder(limit)
    if current.last_vehicles == 0 and current.projected_vehicles == 0:
        return builder.build()

    builder.add(f"Revenue in the latest period: {format_currency(current.last_revenue, currency)} ({deltas['revenue'].label}).")
    builder.add(
        f"The base projection estimates {format_currency(current.projected_revenue, currency)} for the next {horizon_days} days."
    )
    builder.add(
        f"{pct(current.projected_vehicles)} movements are expected over the same span ({deltas['vehicles'].label})."
    )
    builder.add(
        f"The optimistic scenario would reach {format_currency(current.optimistic_revenue, currency)} if momentum holds."
    )
    builder.add(f"The latest period recorded {current.last_vehicles:,} movements.")
    builder.when(
        current.average_stay_hours > 0,
        f"Average stay holds at {format_hours(current.average_stay_hours)}, key for capacity planning.",
    )
    if abs(revenue_slope) > 0.01:
        direction = "growth" if revenue_slope > 0 else "contraction"
        builder.add(f"The revenue slope points to {direction} of {revenue_slope:.2f} per period.")
    return builder.build()


def profitability_insights(
    current: ProfitabilityKpis,
    segments: Sequence[SegmentProfitability],
    revenue_delta: Descriptor,
    currency: str,
    limit: int,
) -> list[str]:
    """Sentences for ``segments`` already ranked by revenue per spot, best first."""
    builder = InsightBuilder(limit)
    if current.movements == 0 or not segments:
        return builder.build()

    best, worst = segments[0], segments[-1]
    builder.add(
        f"{best.label} generate the highest revenue per spot: {format_currency(best.revenue_per_spot, currency)}."
    )
    builder.when(
        worst.segment != best.segment,
        f"{worst.label} show the lowest revenue per spot: {format_currency(worst.revenue_per_spot, currency)}.",
    )
    order = list(VehicleSegment)
    busiest = max(sorted(segments, key=lambda s: order.index(s.segment)), key=lambda s: s.occupancy)
    builder.when(
        busiest.occupancy > 0,
        f"{busiest.label} have the highest occupancy: {busiest.occupancy}%.",
    )
    builder.add(
        f"Vehicle types produced {format_currency(current.total_revenue, currency)} "
        f"over {current.movements:,} movements ({vs_previous(revenue_delta)})."
    )
    return builder.build()
