# carebook/modules/slots/models.py
from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum as PyEnum
from typing import Dict, List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from carebook.db.base import Base, UUIDPKMixin, TimestampMixin, ReprMixin


class SlotStatus(PyEnum):
    AVAILABLE = "available"
    BOOKED = "booked"
    CANCELLED = "cancelled"


class BookingType(PyEnum):
    VIDEO_CALL = "video_call"
    VOICE_CALL = "voice_call"
    CLINIC_VISIT = "clinic_visit"


class TimeSlot(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    The reservable unit. One row = one slot of one doctor on one date.
    """

    __tablename__ = "time_slots"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SlotStatus.AVAILABLE.value,
        server_default=SlotStatus.AVAILABLE.value,
    )
    booking_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    # plain column: appointments already reference slots, a second FK would be circular
    appointment_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)

    __table_args__ = (
        # Materialization relies on this key to skip duplicates
        UniqueConstraint(
            "doctor_id", "date", "start_time",
            name="uq_slot_doctor_date_start",
        ),
        CheckConstraint(
            "status IN ('available', 'booked', 'cancelled')",
            name="ck_slot_status_valid",
        ),
        CheckConstraint(
            "booking_type IS NULL OR booking_type IN ('video_call', 'voice_call', 'clinic_visit')",
            name="ck_slot_booking_type_valid",
        ),
        Index("ix_slot_doctor_date_status", "doctor_id", "date", "status"),
    )


class SlotLabelCache(UUIDPKMixin, TimestampMixin, Base):
    """
    Display labels of the open slots for one doctor and date.

    Derived data only: every write to the matching time_slots rewrites
    the row in the same transaction. Readers never store.
    """

    __tablename__ = "slot_label_cache"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    labels: Mapped[List[Dict[str, str]]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_label_cache_doctor_date"),
    )
