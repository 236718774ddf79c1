import re
from collections import Counter
from datetime import datetime, time

from pydantic import Field, field_validator, model_validator

from src.schemas.common import BaseSchema
from src.utils.constants import VehicleSegment
from src.utils.dates import parse_clock, sunday_based_weekday

CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MAX_RANGES_PER_DAY = 3


class OperatingRange(BaseSchema):
    day_of_week: int = Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")
    open: str
    close: str
    order: int = Field(default=1, ge=1, le=MAX_RANGES_PER_DAY)

    @field_validator("open", "close")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        v = v.strip()
        if not CLOCK_PATTERN.match(v):
            raise ValueError("Time must use the HH:MM format")
        return v

    @model_validator(mode="after")
    def validate_order_of_times(self) -> "OperatingRange":
        if parse_clock(self.open) >= parse_clock(self.close):
            raise ValueError("Closing time must be after opening time")
        return self

    def covers(self, instant: time) -> bool:
        return parse_clock(self.open) <= instant < parse_clock(self.close)


class FacilityMetadata(BaseSchema):
    facility_id: str | None = None
    total_capacity: int = Field(default=0, ge=0)
    baseline_reserved: int = Field(default=0, ge=0)
    zone_capacities: dict[str, int] = Field(default_factory=dict)
    segment_capacities: dict[VehicleSegment, int] = Field(default_factory=dict)
    operating_hours: list[OperatingRange] = Field(default_factory=list)
    timezone: str | None = None

    @field_validator("operating_hours")
    @classmethod
    def validate_ranges_per_day(cls, v: list[OperatingRange]) -> list[OperatingRange]:
        per_day = Counter(item.day_of_week for item in v)
        if any(count > MAX_RANGES_PER_DAY for count in per_day.values()):
            raise ValueError(f"At most {MAX_RANGES_PER_DAY} ranges per day are allowed")
        return v

    def is_operating(self, instant: datetime) -> bool:
        """Facilities without an operating-hours table are treated as always open."""
        if not self.operating_hours:
            return True
        weekday = sunday_based_weekday(instant.date())
        clock = instant.time()
        return any(r.day_of_week == weekday and r.covers(clock) for r in self.operating_hours)
