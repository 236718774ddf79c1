from datetime import datetime

from pydantic import Field

from src.schemas.common import FrozenSchema
from src.utils.constants import (
    ComparisonMode,
    IncomeCategory,
    PaymentMethod,
    RiskLevel,
    ShiftSlot,
    SubscriptionStatus,
    Tone,
    VehicleSegment,
)
from src.utils.dates import hours_between


class ParkingSession(FrozenSchema):
    id: str
    entry: datetime | None = None
    exit: datetime | None = None
    fee: float = 0.0
    zone: str | None = None
    vehicle_key: str | None = None
    segment: VehicleSegment | None = None

    @property
    def is_inverted(self) -> bool:
        return self.entry is not None and self.exit is not None and self.exit < self.entry

    @property
    def duration_hours(self) -> float | None:
        """Stay length, or None when either end is missing or the interval is inverted."""
        if self.entry is None or self.exit is None or self.is_inverted:
            return None
        return hours_between(self.entry, self.exit)


class PaymentEvent(FrozenSchema):
    amount: float = Field(gt=0)
    method: PaymentMethod
    timestamp: datetime
    kind: str = ""
    category: IncomeCategory = IncomeCategory.ROTATION


class SubscriptionRecord(FrozenSchema):
    id: str
    holder: str
    document: str = "N/A"
    zone: str = "General"
    spot: int | None = None
    type: str
    start: datetime
    end: datetime
    status: SubscriptionStatus
    remaining_days: int = 0


class ShiftRecord(FrozenSchema):
    id: str
    assignee_id: str | None = None
    assignee_name: str
    start: datetime
    end: datetime
    expected_duration_hours: float
    end_derived: bool = False


class TimeWindow(FrozenSchema):
    from_: datetime = Field(alias="from")
    to: datetime
    period_days: int = Field(ge=1)


class PeriodPair(FrozenSchema):
    current: TimeWindow
    previous: TimeWindow
    comparison_mode: ComparisonMode = ComparisonMode.PRECEDING


class BreakdownItem(FrozenSchema):
    label: str
    amount: float = 0.0
    count: int = 0


class TrendPoint(FrozenSchema):
    label: str
    value: float


class Descriptor(FrozenSchema):
    label: str
    tone: Tone


class DistributionBucket(FrozenSchema):
    label: str
    count: int
    percentage: int


class Snapshot(FrozenSchema):
    """Normalized records for one facility, as fetched for one report view."""

    sessions: list[ParkingSession] = Field(default_factory=list)
    payments: list[PaymentEvent] = Field(default_factory=list)
    subscriptions: list[SubscriptionRecord] = Field(default_factory=list)
    shifts: list[ShiftRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class HeatmapCell(FrozenSchema):
    weekday: str
    hour: str
    value: float


class ZoneOccupancy(FrozenSchema):
    zone: str
    capacity: int
    occupancy: float
    risk: RiskLevel


class OccupancyProfile(FrozenSchema):
    average: float = 0.0
    hourly: list[TrendPoint] = Field(default_factory=list)
    weekday: list[TrendPoint] = Field(default_factory=list)
    daily: list[TrendPoint] = Field(default_factory=list)
    heatmap: list[HeatmapCell] = Field(default_factory=list)
    zones: list[ZoneOccupancy] = Field(default_factory=list)
    peak_hour: str | None = None
    peak_day: str | None = None
    dead_hour: str | None = None
    availability: int = 0


class ShiftScore(FrozenSchema):
    shift_id: str
    assignee_name: str
    slot: ShiftSlot
    start: datetime
    end: datetime
    entries: int = 0
    exits: int = 0
    operations: int = 0
    revenue: float = 0.0
    incidents: int = 0
    incidence_rate: float = 0.0
    actual_hours: float = 0.0
    compliance: float = 0.0
    efficiency: int = 0


class RankingItem(FrozenSchema):
    label: str
    shifts: int
    operations: int
    revenue: float
    efficiency: float


class TrendBucket(FrozenSchema):
    label: str
    start: datetime
    end: datetime
    vehicles: int = 0
    revenue: float = 0.0
    average_stay_hours: float = 0.0


class Forecast(FrozenSchema):
    slope: float = 0.0
    intercept: float = 0.0
    base: list[TrendPoint] = Field(default_factory=list)
    optimistic: list[TrendPoint] = Field(default_factory=list)
    conservative: list[TrendPoint] = Field(default_factory=list)
