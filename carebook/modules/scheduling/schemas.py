# carebook/modules/scheduling/schemas.py
from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from carebook.core.config import settings
from carebook.modules.scheduling.generator import (
    OVERRIDE_DURATIONS,
    Period,
    is_hhmm,
    to_minutes,
)


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_hhmm(value):
        raise ValueError("time must be HH:MM (24h)")
    return value


class ScheduleSaveRequest(BaseModel):
    """
    One date's schedule. Omitted times fall back to the clinic defaults.
    slot_availability maps display labels ("9:00 AM") to bool; only an
    explicit false removes a slot.
    """
    date: dt.date
    is_day_available: bool = True
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    slot_duration: int = 15
    slot_availability: Dict[str, bool] = Field(default_factory=dict)

    @field_validator("opening_time", "closing_time")
    @classmethod
    def _hhmm(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    @field_validator("slot_duration")
    @classmethod
    def _duration(cls, v: int) -> int:
        if v not in OVERRIDE_DURATIONS:
            raise ValueError("slot_duration must be 15 or 30")
        return v

    def resolved_times(self) -> tuple[str, str]:
        return (
            self.opening_time or settings.DEFAULT_OPENING_TIME,
            self.closing_time or settings.DEFAULT_CLOSING_TIME,
        )


class ScheduleOverridePublic(BaseModel):
    id: UUID
    date: dt.date
    is_day_available: bool
    opening_time: str
    closing_time: str
    slot_duration: int
    slot_availability: Dict[str, bool]

    class Config:
        from_attributes = True


class ScheduleSavedPublic(BaseModel):
    date: dt.date
    is_day_available: bool
    opening_time: str
    closing_time: str
    slot_duration: int
    slots_generated: int


class TemplateSaveRequest(BaseModel):
    is_available: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    periods: List[Period] = Field(default_factory=list)
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None

    @field_validator("start_time", "end_time", "break_start_time", "break_end_time")
    @classmethod
    def _hhmm(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    @model_validator(mode="after")
    def _check_window(self):
        if self.start_time and self.end_time:
            if to_minutes(self.start_time) >= to_minutes(self.end_time):
                raise ValueError("start_time must be before end_time")
        if bool(self.break_start_time) != bool(self.break_end_time):
            raise ValueError("break_start_time and break_end_time go together")
        if self.break_start_time and self.break_end_time:
            bs, be = to_minutes(self.break_start_time), to_minutes(self.break_end_time)
            if bs >= be:
                raise ValueError("break_start_time must be before break_end_time")
            if self.start_time and self.end_time and not (
                to_minutes(self.start_time) <= bs and be <= to_minutes(self.end_time)
            ):
                raise ValueError("break must lie within working hours")
        return self


class TemplatePublic(BaseModel):
    id: UUID
    day_of_week: int
    is_available: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    periods: List[str]
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None

    class Config:
        from_attributes = True
