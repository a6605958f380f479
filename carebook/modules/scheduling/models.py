# carebook/modules/scheduling/models.py
from __future__ import annotations

import datetime as dt
import uuid
from typing import Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from carebook.db.base import Base, UUIDPKMixin, TimestampMixin, ReprMixin


class ScheduleTemplate(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Recurring weekly working hours. One row per doctor and day of week
    (0 = Sunday ... 6 = Saturday).
    """

    __tablename__ = "schedule_templates"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    end_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    periods: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    break_start_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    break_end_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)

    __table_args__ = (
        UniqueConstraint("doctor_id", "day_of_week", name="uq_template_doctor_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_template_day_range"),
    )


class ScheduleOverride(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Date-specific schedule. Supersedes the weekly template for its date.
    """

    __tablename__ = "schedule_overrides"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    is_day_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    opening_time: Mapped[str] = mapped_column(String(5), nullable=False)
    closing_time: Mapped[str] = mapped_column(String(5), nullable=False)
    slot_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    # label ("9:00 AM") -> bool; a label that is absent counts as available
    slot_availability: Mapped[Dict[str, bool]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_override_doctor_date"),
        CheckConstraint("slot_duration IN (15, 30)", name="ck_override_slot_duration"),
    )
