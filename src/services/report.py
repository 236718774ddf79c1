import logging
import math
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from src.config import Settings
from src.schemas.analytics import (
    BreakdownItem,
    ParkingSession,
    PaymentEvent,
    Snapshot,
    SubscriptionRecord,
    TimeWindow,
    TrendPoint,
)
from src.schemas.facility import FacilityMetadata
from src.schemas.report import (
    ComparisonKpis,
    ComparisonReport,
    IncomeKpis,
    IncomeReport,
    MethodComparison,
    MethodSeries,
    MovementKpis,
    MovementsReport,
    OccupancyKpis,
    OccupancyReport,
    PaymentMethodKpis,
    PaymentMethodsReport,
    ProfitabilityKpis,
    ProfitabilityReport,
    QuickMetrics,
    QuickMetricsReport,
    ReportBase,
    ReportContext,
    ReportRequest,
    SegmentProfitability,
    ShiftSummary,
    ShiftsReport,
    SubscriptionKpis,
    SubscriptionsReport,
    TrendKpis,
    TrendsReport,
    UpcomingExpiry,
)
from src.services import aggregator, forecast, insights, normalizer
from src.services.comparison import descriptor, points_descriptor
from src.services.occupancy import occupancy_profile, risk_level
from src.services.period import (
    filter_sessions,
    filter_window,
    in_window,
    present_at,
    resolve_period,
    window_days,
)
from src.services.shifts import rank_employees, rank_slots, score_shifts, summarize, weekly_income
from src.utils.constants import (
    COMMISSION_RATES,
    EXPIRY_BUCKETS,
    FORECAST_PERIODS,
    INCOME_CATEGORY_LABELS,
    PAYMENT_METHOD_LABELS,
    PHYSICAL_METHODS,
    QUICK_MONTHS,
    QUICK_WEEK_DAYS,
    SATURATION_RATIO,
    STAY_BUCKET_EDGES,
    STAY_BUCKET_LABELS,
    SUBSCRIPTION_STATUS_LABELS,
    UPCOMING_EXPIRY_LIMIT,
    VEHICLE_SEGMENT_LABELS,
    ComparisonMode,
    IncomeCategory,
    ReportType,
    RiskLevel,
    SubscriptionStatus,
    VehicleSegment,
)
from src.utils.dates import DAY, end_of_day, get_zone, hour_label, start_of_day

logger = logging.getLogger(__name__)

UPCOMING_EXPIRY_DAYS = 30
SUBSCRIPTION_PAYMENT_TOKENS = ("abono", "extension", "subscription")


def facility_zone(facility: FacilityMetadata, settings: Settings) -> ZoneInfo:
    return get_zone(facility.timezone or settings.timezone)


def build_context(
    report_type: ReportType,
    facility: FacilityMetadata,
    settings: Settings,
    date_from: date | None = None,
    date_to: date | None = None,
    comparison_mode: ComparisonMode = ComparisonMode.PRECEDING,
    segment: VehicleSegment | None = None,
    now: datetime | None = None,
) -> ReportContext:
    tz = facility_zone(facility, settings)
    # Only the comparison report offers alternative comparison windows
    if report_type != ReportType.COMPARISON:
        comparison_mode = ComparisonMode.PRECEDING
    now = now or datetime.now(tz)
    period = resolve_period(
        date_from,
        date_to,
        now,
        tz,
        settings.default_window_days,
        comparison_mode,
    )
    return ReportContext(
        facility=facility,
        period=period,
        generated_at=now,
        segment=segment,
        insight_limit=settings.insight_limit,
        trend_insight_limit=settings.trend_insight_limit,
        expiring_soon_days=settings.expiring_soon_days,
        currency_symbol=settings.currency_symbol,
    )


def _base(report_type: ReportType, snapshot: Snapshot, context: ReportContext) -> dict:
    return {
        "report_type": report_type,
        "facility_id": context.facility.facility_id,
        "window": context.period,
        "source_errors": list(snapshot.errors),
    }


def _rounded(value: float) -> float:
    return aggregator.rounded(value, 2)


def _peak(points: Sequence[TrendPoint]) -> TrendPoint | None:
    best = max(points, key=lambda p: p.value, default=None)
    if best is None or best.value <= 0:
        return None
    return best


# Occupancy


def _occupancy_kpis(sessions: Sequence[ParkingSession], facility: FacilityMetadata, window: TimeWindow):
    profile = occupancy_profile(sessions, facility, window)
    kpis = OccupancyKpis(
        average_occupancy=profile.average,
        peak_hour=profile.peak_hour,
        peak_day=profile.peak_day,
        dead_hour=profile.dead_hour,
        availability=profile.availability,
        risk=risk_level(profile.average),
    )
    return kpis, profile


def occupancy_report(snapshot: Snapshot, context: ReportContext) -> OccupancyReport:
    facility = context.facility
    sessions = snapshot.sessions
    if context.segment is not None:
        sessions = [s for s in sessions if s.segment == context.segment]

    current, profile = _occupancy_kpis(sessions, facility, context.period.current)
    previous, _ = _occupancy_kpis(sessions, facility, context.period.previous)
    deltas = {"average_occupancy": descriptor(current.average_occupancy, previous.average_occupancy)}
    zones_at_risk = [zone.zone for zone in profile.zones if zone.risk == RiskLevel.HIGH]

    return OccupancyReport(
        **_base(ReportType.OCCUPANCY, snapshot, context),
        segment=context.segment,
        total_capacity=facility.total_capacity,
        baseline_reserved=facility.baseline_reserved,
        current=current,
        previous=previous,
        deltas=deltas,
        hourly=profile.hourly,
        weekday=profile.weekday,
        daily=profile.daily,
        heatmap=profile.heatmap,
        zones=profile.zones,
        insights=insights.occupancy_insights(
            current,
            deltas["average_occupancy"],
            zones_at_risk,
            facility.total_capacity,
            context.insight_limit,
        ),
    )


# Movements


def _hour_blocks(sessions: Sequence[ParkingSession], window: TimeWindow) -> list[tuple[str, int, int]]:
    """(label, vehicles inside, movements) for every clock hour of the window."""
    tz = window.from_.tzinfo
    blocks = []
    for day in window_days(window):
        for hour in range(24):
            start = datetime(day.year, day.month, day.day, hour, tzinfo=tz)
            end = start + timedelta(hours=1)
            inside = moves = 0
            for s in sessions:
                if s.is_inverted:
                    continue
                if (s.entry is None or s.entry < end) and (s.exit is None or s.exit > start):
                    inside += 1
                if s.entry is not None and start <= s.entry < end:
                    moves += 1
                if s.exit is not None and start <= s.exit < end:
                    moves += 1
            blocks.append((f"{day.isoformat()} {hour_label(hour)}", inside, moves))
    return blocks


def _movement_kpis(sessions: Sequence[ParkingSession], window: TimeWindow, capacity: int):
    entered = [s for s in sessions if in_window(s.entry, window)]
    exited = [s for s in sessions if in_window(s.exit, window)]
    stays = [s.duration_hours for s in exited if s.duration_hours is not None]
    plates = Counter(s.vehicle_key for s in entered if s.vehicle_key)
    repeat = sum(1 for visits in plates.values() if visits > 1)
    blocks = _hour_blocks(filter_sessions(sessions, window), window)

    kpis = MovementKpis(
        entries=len(entered),
        exits=len(exited),
        unique_vehicles=len(plates),
        repeat_vehicles=repeat,
        reentry_rate=_rounded(aggregator.share(repeat, len(plates))),
        average_stay_hours=_rounded(aggregator.average(stays)),
        rotation_index=(
            _rounded(len(entered) / max(1, capacity * window.period_days)) if capacity > 0 else 0.0
        ),
        saturated_hours=(
            sum(1 for _, inside, _ in blocks if inside / capacity >= SATURATION_RATIO) if capacity > 0 else 0
        ),
        dead_hours=sum(1 for _, _, moves in blocks if moves == 0),
    )
    return kpis, entered, exited, stays, blocks


def movements_report(snapshot: Snapshot, context: ReportContext) -> MovementsReport:
    capacity = context.facility.total_capacity
    window = context.period.current
    sessions = snapshot.sessions

    current, entered, exited, stays, blocks = _movement_kpis(sessions, window, capacity)
    previous, *_ = _movement_kpis(sessions, context.period.previous, capacity)

    entry_flow = [
        TrendPoint(label=hour_label(h), value=n)
        for h, n in enumerate(aggregator.hourly_counts(s.entry for s in entered))
    ]
    exit_flow = [
        TrendPoint(label=hour_label(h), value=n)
        for h, n in enumerate(aggregator.hourly_counts(s.exit for s in exited))
    ]
    stay_distribution = aggregator.distribution(stays, STAY_BUCKET_EDGES, STAY_BUCKET_LABELS)
    peak_block = _peak([TrendPoint(label=label, value=inside) for label, inside, _ in blocks])

    return MovementsReport(
        **_base(ReportType.MOVEMENTS, snapshot, context),
        current=current,
        previous=previous,
        deltas={
            "entries": descriptor(current.entries, previous.entries),
            "exits": descriptor(current.exits, previous.exits),
            "average_stay": descriptor(current.average_stay_hours, previous.average_stay_hours),
            "rotation": descriptor(current.rotation_index, previous.rotation_index),
            "reentry_rate": points_descriptor(current.reentry_rate, previous.reentry_rate),
        },
        stay_distribution=stay_distribution,
        zones=aggregator.breakdown(entered, lambda s: s.zone or "Unassigned", by="count"),
        daily_entries=aggregator.daily_series(entered, window, lambda s: s.entry),
        daily_exits=aggregator.daily_series(exited, window, lambda s: s.exit),
        entry_flow=entry_flow,
        exit_flow=exit_flow,
        presence=[
            TrendPoint(label=p.label, value=_rounded(p.value))
            for p in aggregator.hourly_series(filter_sessions(sessions, window), window)
        ],
        peak_block=peak_block,
        insights=insights.movement_insights(
            current,
            _peak(entry_flow),
            _peak(exit_flow),
            stay_distribution,
            peak_block,
            capacity,
            context.insight_limit,
        ),
    )


# Shifts


def _shift_summary(scores) -> ShiftSummary:
    summary = summarize(scores)
    return ShiftSummary(
        shifts=summary["shifts"],
        **{key: _rounded(value) for key, value in summary.items() if key != "shifts"},
    )


def shifts_report(snapshot: Snapshot, context: ReportContext) -> ShiftsReport:
    sessions = snapshot.sessions
    current_scores = score_shifts(
        filter_window(snapshot.shifts, context.period.current, lambda s: s.start), sessions
    )
    previous_scores = score_shifts(
        filter_window(snapshot.shifts, context.period.previous, lambda s: s.start), sessions
    )
    current = _shift_summary(current_scores)
    previous = _shift_summary(previous_scores)
    employees = rank_employees(current_scores)
    slots = rank_slots(current_scores)

    return ShiftsReport(
        **_base(ReportType.SHIFTS, snapshot, context),
        current=current,
        previous=previous,
        deltas={
            "avg_movements": descriptor(current.avg_movements, previous.avg_movements),
            "avg_income": descriptor(current.avg_income, previous.avg_income),
            "avg_incidence": descriptor(current.avg_incidence, previous.avg_incidence),
            "avg_compliance": descriptor(current.avg_compliance, previous.avg_compliance),
            "avg_efficiency": descriptor(current.avg_efficiency, previous.avg_efficiency),
        },
        shifts=current_scores,
        employees=employees,
        slots=slots,
        weekly_income=weekly_income(current_scores),
        insights=insights.shift_insights(
            current, employees, slots, context.currency_symbol, context.insight_limit
        ),
    )


# Income


def _payments_in(payments: Sequence[PaymentEvent], window: TimeWindow) -> list[PaymentEvent]:
    return filter_window(payments, window, lambda p: p.timestamp)


def _income_kpis(payments: Sequence[PaymentEvent], window: TimeWindow) -> IncomeKpis:
    amount = aggregator.total(p.amount for p in payments)
    operations = len(payments)
    return IncomeKpis(
        total_income=_rounded(amount),
        operations=operations,
        daily_average=_rounded(amount / window.period_days),
        ticket_average=_rounded(amount / operations) if operations else 0.0,
    )


def income_report(snapshot: Snapshot, context: ReportContext) -> IncomeReport:
    window = context.period.current
    current_payments = _payments_in(snapshot.payments, window)
    previous_payments = _payments_in(snapshot.payments, context.period.previous)
    current = _income_kpis(current_payments, window)
    previous = _income_kpis(previous_payments, context.period.previous)

    categories = []
    for category in IncomeCategory:
        members = [p for p in current_payments if p.category == category]
        categories.append(
            BreakdownItem(
                label=INCOME_CATEGORY_LABELS[category],
                amount=_rounded(aggregator.total(p.amount for p in members)),
                count=len(members),
            )
        )
    breakdown = aggregator.breakdown(
        current_payments, lambda p: INCOME_CATEGORY_LABELS[p.category], lambda p: p.amount
    )
    daily = aggregator.daily_series(current_payments, window, lambda p: p.timestamp, lambda p: p.amount)

    return IncomeReport(
        **_base(ReportType.INCOME, snapshot, context),
        current=current,
        previous=previous,
        deltas={
            "total_income": descriptor(current.total_income, previous.total_income),
            "operations": descriptor(current.operations, previous.operations),
            "daily_average": descriptor(current.daily_average, previous.daily_average),
            "ticket_average": descriptor(current.ticket_average, previous.ticket_average),
        },
        categories=categories,
        breakdown=breakdown,
        methods=aggregator.breakdown(
            current_payments, lambda p: PAYMENT_METHOD_LABELS[p.method], lambda p: p.amount
        ),
        daily=daily,
        previous_daily=aggregator.daily_series(
            previous_payments, context.period.previous, lambda p: p.timestamp, lambda p: p.amount
        ),
        insights=insights.income_insights(
            current, previous, breakdown, daily, context.currency_symbol, context.insight_limit
        ),
    )


# Payment methods


def _method_kpis(payments: Sequence[PaymentEvent]) -> tuple[PaymentMethodKpis, list[BreakdownItem]]:
    amount = aggregator.total(p.amount for p in payments)
    digital = aggregator.total(p.amount for p in payments if p.method not in PHYSICAL_METHODS)
    methods = aggregator.breakdown(payments, lambda p: PAYMENT_METHOD_LABELS[p.method], lambda p: p.amount)
    rate = aggregator.weighted_average((COMMISSION_RATES[p.method], p.amount) for p in payments)
    top = methods[0] if methods else None
    kpis = PaymentMethodKpis(
        total=_rounded(amount),
        operations=len(payments),
        digital_share=_rounded(aggregator.share(digital, amount)),
        commission_rate=aggregator.rounded(rate, 4),
        commission_amount=_rounded(sum(p.amount * COMMISSION_RATES[p.method] for p in payments)),
        top_method=top.label if top else None,
        top_share=_rounded(aggregator.share(top.amount, amount)) if top else 0.0,
    )
    return kpis, methods


def payment_methods_report(snapshot: Snapshot, context: ReportContext) -> PaymentMethodsReport:
    window = context.period.current
    current_payments = _payments_in(snapshot.payments, window)
    previous_payments = _payments_in(snapshot.payments, context.period.previous)
    current, methods = _method_kpis(current_payments)
    previous, previous_methods = _method_kpis(previous_payments)

    previous_by_label = {item.label: item for item in previous_methods}
    current_by_label = {item.label: item for item in methods}
    labels = list(current_by_label) + [label for label in previous_by_label if label not in current_by_label]
    empty = BreakdownItem(label="")
    comparison = []
    for label in labels:
        now = current_by_label.get(label, empty)
        before = previous_by_label.get(label, empty)
        comparison.append(
            MethodComparison(
                label=label,
                current_amount=_rounded(now.amount),
                previous_amount=_rounded(before.amount),
                current_count=now.count,
                previous_count=before.count,
                descriptor=descriptor(now.amount, before.amount),
            )
        )

    daily = [
        MethodSeries(
            label=item.label,
            points=aggregator.daily_series(
                [p for p in current_payments if PAYMENT_METHOD_LABELS[p.method] == item.label],
                window,
                lambda p: p.timestamp,
                lambda p: p.amount,
            ),
        )
        for item in methods
    ]

    return PaymentMethodsReport(
        **_base(ReportType.PAYMENT_METHODS, snapshot, context),
        current=current,
        previous=previous,
        deltas={
            "total": descriptor(current.total, previous.total),
            "operations": descriptor(current.operations, previous.operations),
            "digital_share": points_descriptor(current.digital_share, previous.digital_share),
            "commission_rate": points_descriptor(current.commission_rate * 100, previous.commission_rate * 100),
            "top_share": points_descriptor(current.top_share, previous.top_share),
        },
        breakdown=methods,
        comparison=comparison,
        daily=daily,
        insights=insights.payment_method_insights(
            current, previous, comparison, context.currency_symbol, context.insight_limit
        ),
    )


# Subscriptions


def is_subscription_payment(payment: PaymentEvent) -> bool:
    kind = payment.kind.lower()
    return any(token in kind for token in SUBSCRIPTION_PAYMENT_TOKENS)


def is_renewal(payment: PaymentEvent) -> bool:
    return "extension" in payment.kind.lower()


def _days_until(instant: datetime, reference: datetime) -> int:
    return math.ceil((instant - reference) / DAY)


def _subscription_kpis(
    subscriptions: Sequence[SubscriptionRecord],
    payments: Sequence[PaymentEvent],
    window: TimeWindow,
    expiring_days: int,
) -> tuple[SubscriptionKpis, list[SubscriptionRecord]]:
    active = filter_window(subscriptions, window, lambda s: s.start, lambda s: s.end)
    collected = [p for p in _payments_in(payments, window) if is_subscription_payment(p)]
    horizon = window.to + timedelta(days=expiring_days)
    kpis = SubscriptionKpis(
        active=len(active),
        new=sum(1 for s in subscriptions if in_window(s.start, window)),
        revenue=_rounded(aggregator.total(p.amount for p in collected)),
        renewals=sum(1 for p in collected if is_renewal(p)),
        expiring_soon=sum(1 for s in subscriptions if window.to <= s.end <= horizon),
    )
    return kpis, active


def _active_series(subscriptions: Sequence[SubscriptionRecord], window: TimeWindow) -> list[TrendPoint]:
    tz = window.from_.tzinfo
    series = []
    for day in window_days(window):
        opens, closes = start_of_day(day, tz), end_of_day(day, tz)
        active = sum(1 for s in subscriptions if s.start <= closes and s.end >= opens)
        series.append(TrendPoint(label=day.isoformat(), value=active))
    return series


def _expiry_buckets(subscriptions: Sequence[SubscriptionRecord], reference: datetime) -> list[BreakdownItem]:
    counts = {label: 0 for label, _, _ in EXPIRY_BUCKETS}
    for subscription in subscriptions:
        days = _days_until(subscription.end, reference)
        for label, low, high in EXPIRY_BUCKETS:
            if days >= low and (high is None or days <= high):
                counts[label] += 1
                break
    return [BreakdownItem(label=label, count=n) for label, n in counts.items()]


def _upcoming(subscriptions: Sequence[SubscriptionRecord], reference: datetime) -> list[UpcomingExpiry]:
    horizon = reference + timedelta(days=UPCOMING_EXPIRY_DAYS)
    ending = sorted((s for s in subscriptions if reference <= s.end <= horizon), key=lambda s: s.end)
    return [
        UpcomingExpiry(
            id=s.id,
            holder=s.holder,
            zone=s.zone,
            type=s.type,
            end=s.end,
            remaining_days=max(0, _days_until(s.end, reference)),
        )
        for s in ending[:UPCOMING_EXPIRY_LIMIT]
    ]


def subscriptions_report(snapshot: Snapshot, context: ReportContext) -> SubscriptionsReport:
    window = context.period.current
    subscriptions = snapshot.subscriptions
    days = context.expiring_soon_days
    current, active = _subscription_kpis(subscriptions, snapshot.payments, window, days)
    previous, _ = _subscription_kpis(subscriptions, snapshot.payments, context.period.previous, days)

    statuses = [
        BreakdownItem(label=SUBSCRIPTION_STATUS_LABELS[status], count=sum(1 for s in active if s.status == status))
        for status in SubscriptionStatus
    ]
    types = aggregator.breakdown(active, lambda s: s.type, by="count")
    deltas = {
        "active": descriptor(current.active, previous.active),
        "new": descriptor(current.new, previous.new),
        "revenue": descriptor(current.revenue, previous.revenue),
        "renewals": descriptor(current.renewals, previous.renewals),
    }

    return SubscriptionsReport(
        **_base(ReportType.SUBSCRIPTIONS, snapshot, context),
        current=current,
        previous=previous,
        deltas=deltas,
        statuses=statuses,
        types=types,
        active_series=_active_series(subscriptions, window),
        expiry_buckets=_expiry_buckets(subscriptions, window.to),
        upcoming=_upcoming(subscriptions, window.to),
        insights=insights.subscription_insights(
            current,
            deltas,
            types[0].label if types else None,
            days,
            context.currency_symbol,
            context.insight_limit,
        ),
    )


# Period comparison


def _comparison_kpis(
    sessions: Sequence[ParkingSession], facility: FacilityMetadata, window: TimeWindow
) -> tuple[ComparisonKpis, list[ParkingSession]]:
    members = filter_sessions(sessions, window)
    income = aggregator.total(s.fee for s in members)
    stays = [s.duration_hours for s in members if s.duration_hours is not None]
    kpis = ComparisonKpis(
        income=_rounded(income),
        movements=len(members),
        ticket_average=_rounded(income / len(members)) if members else 0.0,
        average_stay_hours=_rounded(aggregator.average(stays)),
        average_occupancy=occupancy_profile(members, facility, window).average,
    )
    return kpis, members


def comparison_report(snapshot: Snapshot, context: ReportContext) -> ComparisonReport:
    window = context.period.current
    current, members = _comparison_kpis(snapshot.sessions, context.facility, window)
    previous, _ = _comparison_kpis(snapshot.sessions, context.facility, context.period.previous)

    def anchor(s: ParkingSession) -> datetime | None:
        return s.entry or s.exit

    return ComparisonReport(
        **_base(ReportType.COMPARISON, snapshot, context),
        current=current,
        previous=previous,
        deltas={
            "income": descriptor(current.income, previous.income),
            "movements": descriptor(current.movements, previous.movements),
            "ticket_average": descriptor(current.ticket_average, previous.ticket_average),
            "average_stay": descriptor(current.average_stay_hours, previous.average_stay_hours),
            "average_occupancy": points_descriptor(current.average_occupancy, previous.average_occupancy),
        },
        daily_income=aggregator.daily_series(members, window, anchor, lambda s: s.fee),
        daily_movements=aggregator.daily_series(members, window, anchor),
        insights=insights.comparison_insights(current, previous, context.insight_limit),
    )


# Trends


def _trend_kpis(
    sessions: Sequence[ParkingSession], window: TimeWindow, span: int
):
    buckets = forecast.build_buckets(sessions, window, span)
    revenue = forecast.project([b.revenue for b in buckets], buckets, span)
    vehicles = forecast.project([b.vehicles for b in buckets], buckets, span)
    last = buckets[-1] if buckets else None
    stays = [
        s.duration_hours for s in sessions if in_window(s.entry, window) and s.duration_hours is not None
    ]
    kpis = TrendKpis(
        last_revenue=_rounded(last.revenue) if last else 0.0,
        last_vehicles=last.vehicles if last else 0,
        average_stay_hours=_rounded(aggregator.average(stays)),
        projected_revenue=_rounded(sum(p.value for p in revenue.base)),
        projected_vehicles=_rounded(sum(p.value for p in vehicles.base)),
        optimistic_revenue=_rounded(sum(p.value for p in revenue.optimistic)),
    )
    return kpis, buckets, revenue, vehicles


def trends_report(snapshot: Snapshot, context: ReportContext) -> TrendsReport:
    window = context.period.current
    span = forecast.bucket_span(window.period_days)
    current, buckets, revenue_forecast, vehicle_forecast = _trend_kpis(snapshot.sessions, window, span)
    previous, previous_buckets, _, _ = _trend_kpis(snapshot.sessions, context.period.previous, span)
    deltas = {
        "revenue": descriptor(current.last_revenue, previous.last_revenue),
        "vehicles": descriptor(current.last_vehicles, previous.last_vehicles),
        "average_stay": descriptor(current.average_stay_hours, previous.average_stay_hours),
    }

    return TrendsReport(
        **_base(ReportType.TRENDS, snapshot, context),
        bucket_span=span,
        current=current,
        previous=previous,
        deltas=deltas,
        buckets=buckets,
        previous_buckets=previous_buckets,
        revenue_forecast=revenue_forecast,
        vehicle_forecast=vehicle_forecast,
        insights=insights.trend_insights(
            current,
            deltas,
            span * FORECAST_PERIODS,
            revenue_forecast.slope,
            context.currency_symbol,
            context.trend_insight_limit,
        ),
    )


# Profitability


def segment_of(session: ParkingSession) -> VehicleSegment:
    # Sessions without a vehicle type are billed as cars
    return session.segment or VehicleSegment.CAR


def _profitability_kpis(
    sessions: Sequence[ParkingSession],
    facility: FacilityMetadata,
    window: TimeWindow,
    segment: VehicleSegment | None,
) -> tuple[ProfitabilityKpis, list[SegmentProfitability]]:
    members = filter_sessions(sessions, window)
    rows = []
    for code in [segment] if segment is not None else list(VehicleSegment):
        group = [s for s in members if segment_of(s) == code]
        revenue = aggregator.total(s.fee for s in group)
        spots = facility.segment_capacities.get(code, 0)
        rows.append(
            SegmentProfitability(
                segment=code,
                label=VEHICLE_SEGMENT_LABELS[code],
                revenue=_rounded(revenue),
                movements=len(group),
                hours=_rounded(aggregator.total(s.duration_hours for s in group if s.duration_hours is not None)),
                spots=spots,
                occupancy=int(aggregator.rounded(aggregator.share(len(group), spots), 0)),
                ticket_average=_rounded(revenue / len(group)) if group else 0.0,
                revenue_per_spot=_rounded(revenue / spots) if spots else 0.0,
            )
        )
    # Stable sort keeps vehicle-type order between equally profitable rows
    rows.sort(key=lambda row: row.revenue_per_spot, reverse=True)

    revenue = aggregator.total(row.revenue for row in rows)
    movements = sum(row.movements for row in rows)
    spots = sum(row.spots for row in rows)
    kpis = ProfitabilityKpis(
        total_revenue=_rounded(revenue),
        movements=movements,
        total_hours=_rounded(aggregator.total(row.hours for row in rows)),
        revenue_per_spot=_rounded(revenue / spots) if spots else 0.0,
        best_segment=rows[0].label if movements else None,
        worst_segment=rows[-1].label if movements and len(rows) > 1 else None,
    )
    return kpis, rows


def profitability_report(snapshot: Snapshot, context: ReportContext) -> ProfitabilityReport:
    facility = context.facility
    current, rows = _profitability_kpis(snapshot.sessions, facility, context.period.current, context.segment)
    previous, _ = _profitability_kpis(snapshot.sessions, facility, context.period.previous, context.segment)
    deltas = {
        "total_revenue": descriptor(current.total_revenue, previous.total_revenue),
        "movements": descriptor(current.movements, previous.movements),
        "revenue_per_spot": descriptor(current.revenue_per_spot, previous.revenue_per_spot),
    }

    return ProfitabilityReport(
        **_base(ReportType.PROFITABILITY, snapshot, context),
        segment=context.segment,
        current=current,
        previous=previous,
        deltas=deltas,
        segments=rows,
        insights=insights.profitability_insights(
            current, rows, deltas["total_revenue"], context.currency_symbol, context.insight_limit
        ),
    )


# Quick metrics


def _income_since(sessions: Sequence[ParkingSession], since: datetime) -> float:
    return _rounded(aggregator.total(s.fee for s in sessions if s.exit is not None and s.exit >= since))


def quick_metrics(
    sessions: Sequence[ParkingSession], facility: FacilityMetadata, reference: datetime
) -> QuickMetrics:
    """
    Running counters for the dashboard header.

    Income is counted by exit time from the start of today, of the day seven
    days back and of the same day last month. The ticket average and the
    vehicle flow cover the last month; occupancy is the share of capacity
    taken at ``reference``.
    """
    today = reference.date()
    tz = reference.tzinfo
    today_start = start_of_day(today, tz)
    month_start = start_of_day(today - relativedelta(months=QUICK_MONTHS), tz)

    month_exits = [s for s in sessions if s.exit is not None and s.exit >= month_start]
    month_entries = sum(1 for s in sessions if s.entry is not None and s.entry >= month_start)
    elapsed_days = max(1, math.ceil((reference - month_start) / DAY))
    inside = sum(1 for s in sessions if present_at(s, reference))

    return QuickMetrics(
        income_today=_income_since(sessions, today_start),
        income_week=_income_since(sessions, start_of_day(today - timedelta(days=QUICK_WEEK_DAYS), tz)),
        income_month=_income_since(sessions, month_start),
        entries_today=sum(1 for s in sessions if s.entry is not None and s.entry >= today_start),
        exits_today=sum(1 for s in sessions if s.exit is not None and s.exit >= today_start),
        ticket_average=_rounded(aggregator.average(s.fee for s in month_exits)),
        vehicle_flow=aggregator.rounded(month_entries / elapsed_days, 1),
        current_occupancy=int(aggregator.rounded(aggregator.share(inside, facility.total_capacity), 0)),
    )


def quick_metrics_report(snapshot: Snapshot, context: ReportContext) -> QuickMetricsReport:
    tz = context.period.current.from_.tzinfo
    reference = context.generated_at.astimezone(tz)
    return QuickMetricsReport(
        **_base(ReportType.QUICK_METRICS, snapshot, context),
        generated_at=reference,
        current=quick_metrics(snapshot.sessions, context.facility, reference),
    )


PIPELINES: dict[ReportType, Callable[[Snapshot, ReportContext], ReportBase]] = {
    ReportType.OCCUPANCY: occupancy_report,
    ReportType.MOVEMENTS: movements_report,
    ReportType.SHIFTS: shifts_report,
    ReportType.INCOME: income_report,
    ReportType.PAYMENT_METHODS: payment_methods_report,
    ReportType.SUBSCRIPTIONS: subscriptions_report,
    ReportType.COMPARISON: comparison_report,
    ReportType.TRENDS: trends_report,
    ReportType.PROFITABILITY: profitability_report,
    ReportType.QUICK_METRICS: quick_metrics_report,
}


def build_report(report_type: ReportType, snapshot: Snapshot, context: ReportContext) -> ReportBase:
    current = context.period.current
    logger.info(
        "Building %s report for facility %s (%s to %s)",
        report_type.value,
        context.facility.facility_id or "-",
        current.from_.date(),
        current.to.date(),
    )
    return PIPELINES[report_type](snapshot, context)


def report_from_request(
    report_type: ReportType, request: ReportRequest, settings: Settings, now: datetime | None = None
) -> ReportBase:
    context = build_context(
        report_type,
        request.facility,
        settings,
        request.date_from,
        request.date_to,
        request.comparison_mode,
        request.segment,
        now,
    )
    snapshot = normalizer.normalize_snapshot(
        facility_zone(request.facility, settings),
        history=request.history,
        subscriptions=request.subscriptions,
        shifts=request.shifts,
        default_shift_hours=settings.default_shift_hours,
    )
    return build_report(report_type, snapshot, context)
