# carebook/modules/slots/schemas.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from carebook.modules.scheduling.generator import Period


class TimeSlotPublic(BaseModel):
    id: UUID
    doctor_id: UUID
    date: dt.date
    start_time: str
    end_time: str
    period: str
    status: str
    booking_type: Optional[str] = None
    appointment_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class AvailabilityPublic(BaseModel):
    """
    Open slots plus the doctor's availability flag. A doctor with no slots
    and no window simply has nothing configured; a window sets
    is_doctor_available=False and carries its reason.
    """
    available_slots: List[TimeSlotPublic]
    is_doctor_available: bool
    unavailability_reason: Optional[str] = None
    unavailability_type: Optional[str] = None
    message: Optional[str] = None


class GenerateSlotsRequest(BaseModel):
    start_date: dt.date
    end_date: dt.date

    @field_validator("end_date")
    @classmethod
    def _end_after_start(cls, v, info):
        start = info.data.get("start_date")
        if start and v < start:
            raise ValueError("end_date must not be before start_date")
        return v


class GenerateSlotsResult(BaseModel):
    slots_generated: int
    slots_inserted: int
    duplicates_skipped: int
    blocked_dates: List[dt.date] = Field(default_factory=list)
    message: str


class SlotLabel(BaseModel):
    start_time: str
    label: str
    period: Period


class SlotLabelsPublic(BaseModel):
    date: dt.date
    available_slots: List[SlotLabel]
    is_doctor_available: bool
    unavailability_reason: Optional[str] = None
