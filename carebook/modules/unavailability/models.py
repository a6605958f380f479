# carebook/modules/unavailability/models.py
from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from carebook.db.base import Base, UUIDPKMixin, TimestampMixin, ReprMixin


class UnavailabilityWindow(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Inclusive date range without bookings. Recurring windows repeat every
    year on the same month/day span.
    """

    __tablename__ = "unavailability_windows"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="other")
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_unavailability_range"),
        Index("ix_unavailability_doctor_range", "doctor_id", "start_date", "end_date"),
    )
