# carebook/modules/unavailability/schemas.py
from __future__ import annotations

import datetime as dt
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class MarkUnavailableRequest(BaseModel):
    start_date: dt.date
    end_date: dt.date
    reason: str = Field(default="", max_length=500)
    type: str = Field(default="other", max_length=50)
    is_recurring: bool = False

    @model_validator(mode="after")
    def _range(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class UnavailabilityPublic(BaseModel):
    id: UUID
    doctor_id: UUID
    start_date: dt.date
    end_date: dt.date
    reason: str
    type: str
    is_recurring: bool

    class Config:
        from_attributes = True


class MarkUnavailableResultPublic(BaseModel):
    unavailability: UnavailabilityPublic
    slots_cancelled: int
    message: str


class UnavailabilityList(BaseModel):
    items: List[UnavailabilityPublic]
