# carebook/modules/appointments/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from carebook.modules.slots.schemas import TimeSlotPublic


class AppointmentType(str, Enum):
    video_call = "video_call"
    voice_call = "voice_call"
    clinic_visit = "clinic_visit"


class CancelledByValue(str, Enum):
    user = "user"
    doctor = "doctor"
    admin = "admin"


class AppointmentCreateRequest(BaseModel):
    """
    Payload to book a slot.
    - user_id is taken from the authenticated patient, never from the client.
    - the fee is taken from the doctor directory at booking time.
    """
    doctor_id: UUID
    time_slot_id: UUID
    appointment_type: AppointmentType
    notes: str = Field(default="", max_length=2000)


class AppointmentCancelRequest(BaseModel):
    reason: str = Field(default="", max_length=1000)
    cancelled_by: Optional[CancelledByValue] = None


class AppointmentPublic(BaseModel):
    """
    DTO returns a detailed appointment.
    """
    id: UUID
    user_id: UUID
    doctor_id: UUID
    time_slot_id: UUID
    appointment_type: str
    status: str
    notes: str
    consultation_fee: Decimal
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    time_slot: Optional[TimeSlotPublic] = None

    class Config:
        from_attributes = True


class AppointmentListParams(BaseModel):
    status: Optional[str] = Field(default=None, pattern="^(pending|confirmed|cancelled)$")
    on_date: Optional[date] = None
    limit: int = Field(default=10, ge=1, le=50)
    offset: int = Field(default=0, ge=0)


class AppointmentListPage(BaseModel):
    """
    Page of appointments (with pagination).
    """
    items: List[AppointmentPublic]
    total: int
    limit: int
    offset: int
    has_next: bool
