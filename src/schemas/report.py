from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import Field, model_validator

from src.schemas.analytics import (
    BreakdownItem,
    Descriptor,
    DistributionBucket,
    Forecast,
    HeatmapCell,
    PeriodPair,
    RankingItem,
    ShiftScore,
    TrendBucket,
    TrendPoint,
    ZoneOccupancy,
)
from src.schemas.common import BaseSchema, FrozenSchema
from src.schemas.facility import FacilityMetadata
from src.utils.constants import ComparisonMode, ReportType, RiskLevel, VehicleSegment


class ReportRequest(BaseSchema):
    facility: FacilityMetadata = Field(default_factory=FacilityMetadata)
    history: list[dict[str, Any]] = Field(default_factory=list)
    subscriptions: list[dict[str, Any]] = Field(default_factory=list)
    shifts: list[dict[str, Any]] = Field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None
    comparison_mode: ComparisonMode = ComparisonMode.PRECEDING
    segment: VehicleSegment | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "ReportRequest":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class ReportContext(FrozenSchema):
    """Everything a report pipeline needs besides the snapshot itself."""

    facility: FacilityMetadata
    period: PeriodPair
    generated_at: datetime
    segment: VehicleSegment | None = None
    insight_limit: int = 6
    trend_insight_limit: int = 5
    expiring_soon_days: int = 15
    currency_symbol: str = "$"


class ReportBase(FrozenSchema):
    report_type: ReportType
    facility_id: str | None = None
    window: PeriodPair
    deltas: dict[str, Descriptor] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    source_errors: list[str] = Field(default_factory=list)


# Occupancy


class OccupancyKpis(FrozenSchema):
    average_occupancy: float = 0.0
    peak_hour: str | None = None
    peak_day: str | None = None
    dead_hour: str | None = None
    availability: int = 0
    risk: RiskLevel = RiskLevel.LOW


class OccupancyReport(ReportBase):
    report_type: Literal[ReportType.OCCUPANCY] = ReportType.OCCUPANCY
    segment: VehicleSegment | None = None
    total_capacity: int = 0
    baseline_reserved: int = 0
    current: OccupancyKpis
    previous: OccupancyKpis
    hourly: list[TrendPoint] = Field(default_factory=list)
    weekday: list[TrendPoint] = Field(default_factory=list)
    daily: list[TrendPoint] = Field(default_factory=list)
    heatmap: list[HeatmapCell] = Field(default_factory=list)
    zones: list[ZoneOccupancy] = Field(default_factory=list)


# Movements


class MovementKpis(FrozenSchema):
    entries: int = 0
    exits: int = 0
    unique_vehicles: int = 0
    repeat_vehicles: int = 0
    reentry_rate: float = 0.0
    average_stay_hours: float = 0.0
    rotation_index: float = 0.0
    saturated_hours: int = 0
    dead_hours: int = 0


class MovementsReport(ReportBase):
    report_type: Literal[ReportType.MOVEMENTS] = ReportType.MOVEMENTS
    current: MovementKpis
    previous: MovementKpis
    stay_distribution: list[DistributionBucket] = Field(default_factory=list)
    zones: list[BreakdownItem] = Field(default_factory=list)
    daily_entries: list[TrendPoint] = Field(default_factory=list)
    daily_exits: list[TrendPoint] = Field(default_factory=list)
    entry_flow: list[TrendPoint] = Field(default_factory=list)
    exit_flow: list[TrendPoint] = Field(default_factory=list)
    presence: list[TrendPoint] = Field(default_factory=list)
    peak_block: TrendPoint | None = None


# Shifts


class ShiftSummary(FrozenSchema):
    shifts: int = 0
    avg_movements: float = 0.0
    avg_income: float = 0.0
    avg_incidence: float = 0.0
    avg_compliance: float = 0.0
    avg_efficiency: float = 0.0


class ShiftsReport(ReportBase):
    report_type: Literal[ReportType.SHIFTS] = ReportType.SHIFTS
    current: ShiftSummary
    previous: ShiftSummary
    shifts: list[ShiftScore] = Field(default_factory=list)
    employees: list[RankingItem] = Field(default_factory=list)
    slots: list[RankingItem] = Field(default_factory=list)
    weekly_income: list[TrendPoint] = Field(default_factory=list)


# Income


class IncomeKpis(FrozenSchema):
    total_income: float = 0.0
    operations: int = 0
    daily_average: float = 0.0
    ticket_average: float = 0.0


class IncomeReport(ReportBase):
    report_type: Literal[ReportType.INCOME] = ReportType.INCOME
    current: IncomeKpis
    previous: IncomeKpis
    categories: list[BreakdownItem] = Field(default_factory=list)
    breakdown: list[BreakdownItem] = Field(default_factory=list)
    methods: list[BreakdownItem] = Field(default_factory=list)
    daily: list[TrendPoint] = Field(default_factory=list)
    previous_daily: list[TrendPoint] = Field(default_factory=list)


# Payment methods


class PaymentMethodKpis(FrozenSchema):
    total: float = 0.0
    operations: int = 0
    digital_share: float = 0.0
    commission_rate: float = 0.0
    commission_amount: float = 0.0
    top_method: str | None = None
    top_share: float = 0.0


class MethodComparison(FrozenSchema):
    label: str
    current_amount: float = 0.0
    previous_amount: float = 0.0
    current_count: int = 0
    previous_count: int = 0
    descriptor: Descriptor


class MethodSeries(FrozenSchema):
    label: str
    points: list[TrendPoint] = Field(default_factory=list)


class PaymentMethodsReport(ReportBase):
    report_type: Literal[ReportType.PAYMENT_METHODS] = ReportType.PAYMENT_METHODS
    current: PaymentMethodKpis
    previous: PaymentMethodKpis
    breakdown: list[BreakdownItem] = Field(default_factory=list)
    comparison: list[MethodComparison] = Field(default_factory=list)
    daily: list[MethodSeries] = Field(default_factory=list)


# Subscriptions


class SubscriptionKpis(FrozenSchema):
    active: int = 0
    new: int = 0
    revenue: float = 0.0
    renewals: int = 0
    expiring_soon: int = 0


class UpcomingExpiry(FrozenSchema):
    id: str
    holder: str
    zone: str
    type: str
    end: datetime
    remaining_days: int


class SubscriptionsReport(ReportBase):
    report_type: Literal[ReportType.SUBSCRIPTIONS] = ReportType.SUBSCRIPTIONS
    current: SubscriptionKpis
    previous: SubscriptionKpis
    statuses: list[BreakdownItem] = Field(default_factory=list)
    types: list[BreakdownItem] = Field(default_factory=list)
    active_series: list[TrendPoint] = Field(default_factory=list)
    expiry_buckets: list[BreakdownItem] = Field(default_factory=list)
    upcoming: list[UpcomingExpiry] = Field(default_factory=list)


# Period comparison


class ComparisonKpis(FrozenSchema):
    income: float = 0.0
    movements: int = 0
    ticket_average: float = 0.0
    average_stay_hours: float = 0.0
    average_occupancy: float = 0.0


class ComparisonReport(ReportBase):
    report_type: Literal[ReportType.COMPARISON] = ReportType.COMPARISON
    current: ComparisonKpis
    previous: ComparisonKpis
    daily_income: list[TrendPoint] = Field(default_factory=list)
    daily_movements: list[TrendPoint] = Field(default_factory=list)


# Trends


class TrendKpis(FrozenSchema):
    last_revenue: float = 0.0
    last_vehicles: int = 0
    average_stay_hours: float = 0.0
    projected_revenue: float = 0.0
    projected_vehicles: float = 0.0
    optimistic_revenue: float = 0.0


class TrendsReport(ReportBase):
    report_type: Literal[ReportType.TRENDS] = ReportType.TRENDS
    bucket_span: int
    current: TrendKpis
    previous: TrendKpis
    buckets: list[TrendBucket] = Field(default_factory=list)
    previous_buckets: list[TrendBucket] = Field(default_factory=list)
    revenue_forecast: Forecast = Field(default_factory=Forecast)
    vehicle_forecast: Forecast = Field(default_factory=Forecast)


# Profitability per vehicle type


class SegmentProfitability(FrozenSchema):
    segment: VehicleSegment
    label: str
    revenue: float = 0.0
    movements: int = 0
    hours: float = 0.0
    spots: int = 0
    occupancy: int = 0
    ticket_average: float = 0.0
    revenue_per_spot: float = 0.0


class ProfitabilityKpis(FrozenSchema):
    total_revenue: float = 0.0
    movements: int = 0
    total_hours: float = 0.0
    revenue_per_spot: float = 0.0
    best_segment: str | None = None
    worst_segment: str | None = None


class ProfitabilityReport(ReportBase):
    report_type: Literal[ReportType.PROFITABILITY] = ReportType.PROFITABILITY
    segment: VehicleSegment | None = None
    current: ProfitabilityKpis
    previous: ProfitabilityKpis
    segments: list[SegmentProfitability] = Field(default_factory=list)


# Quick metrics


class QuickMetrics(FrozenSchema):
    income_today: float = 0.0
    income_week: float = 0.0
    income_month: float = 0.0
    entries_today: int = 0
    exits_today: int = 0
    ticket_average: float = 0.0
    vehicle_flow: float = Field(default=0.0, description="Entries per day over the last month")
    current_occupancy: int = 0


class QuickMetricsReport(ReportBase):
    """Dashboard counters as of ``generated_at``; the requested window is not used."""

    report_type: Literal[ReportType.QUICK_METRICS] = ReportType.QUICK_METRICS
    generated_at: datetime
    current: QuickMetrics


ReportResponse = Annotated[
    OccupancyReport
    | MovementsReport
    | ShiftsReport
    | IncomeReport
    | PaymentMethodsReport
    | SubscriptionsReport
    | ComparisonReport
    | TrendsReport
    | ProfitabilityReport
    | QuickMetricsReport,
    Field(discriminator="report_type"),
]
