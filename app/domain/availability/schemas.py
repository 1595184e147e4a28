"""Availability domain schemas - typed availability settings and slot previews"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Day names follow datetime weekday order shifted so that Sunday is 0
DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
INDIVIDUAL_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-\d{1,2}$")


def parse_time_to_minutes(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight ("24:00" allowed as end of day)"""
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time '{value}'. Expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid time '{value}'. Expected HH:MM")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_minutes_12h(minutes: int) -> str:
    """9:00 AM style label used by the booking widget"""
    hour, minute = divmod(minutes, 60)
    period = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {period}"


class BreakWindow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v):
        parse_time_to_minutes(v)
        return v.strip()

    @model_validator(mode="after")
    def validate_order(self):
        if self.start_minutes >= self.end_minutes:
            raise ValueError(f"Break start {self.start} must be before end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end)


class DaySchedule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    startTime: str = "09:00"
    endTime: str = "17:00"
    breaks: list[BreakWindow] = Field(default_factory=list)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        parse_time_to_minutes(v)
        return v.strip()

    @field_validator("breaks", mode="before")
    @classmethod
    def default_breaks(cls, v):
        return v or []

    @model_validator(mode="after")
    def validate_hours(self):
        if self.start_minutes >= self.end_minutes:
            raise ValueError(f"startTime {self.startTime} must be before endTime {self.endTime}")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.startTime)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.endTime)


# WeeklySchedule: day name -> DaySchedule. IndividualOverrides: "YYYY-MM-DD-H" -> available
WeeklySchedule = dict[str, DaySchedule]
IndividualOverrides = dict[str, bool]


class ProviderOverrideLayer(BaseModel):
    """Partial schedule for one provider; present days replace workspace days"""

    timesheet: Optional[WeeklySchedule] = None
    individual: Optional[IndividualOverrides] = None


class AvailabilitySettings(BaseModel):
    """Workspace availability as validated at the configuration store boundary"""

    timesheet: WeeklySchedule = Field(default_factory=dict)
    individual: IndividualOverrides = Field(default_factory=dict)
    providers: dict[str, ProviderOverrideLayer] = Field(default_factory=dict)
    timezone: Optional[str] = None
    auto_confirm: bool = False


class EffectiveSchedule(BaseModel):
    """Merged schedule used for exactly one evaluation; never persisted"""

    timesheet: WeeklySchedule = Field(default_factory=dict)
    individual: IndividualOverrides = Field(default_factory=dict)

    def day(self, day_name: str) -> Optional[DaySchedule]:
        return self.timesheet.get(day_name)


class BusyInterval(BaseModel):
    """Occupied interval returned to clients for availability previews"""

    start_at: datetime
    end_at: Optional[datetime] = None


class SlotPreview(BaseModel):
    time: str  # "HH:MM" local
    display: str  # "9:00 AM"
    start_at: datetime
    end_at: datetime
    available: bool
    reason: Optional[str] = None


class DaySlotsResponse(BaseModel):
    date: str
    timezone: Optional[str] = None
    duration_minutes: int
    slots: list[SlotPreview]
