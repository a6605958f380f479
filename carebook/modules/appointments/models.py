# carebook/modules/appointments/models.py
from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Numeric,
    String,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carebook.db.base import Base, UUIDPKMixin, TimestampMixin, ReprMixin
from carebook.modules.slots.models import TimeSlot
from carebook.modules.users.models import User


class ApptStatus(PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class CancelledBy(PyEnum):
    USER = "user"
    DOCTOR = "doctor"
    ADMIN = "admin"


class Appointment(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Booking of exactly one time slot by one patient.
    """

    __tablename__ = "appointments"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    time_slot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    )

    appointment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ApptStatus.CONFIRMED.value,
        server_default=ApptStatus.CONFIRMED.value,
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # copied from the doctor's fee at booking time, never recomputed
    consultation_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    cancelled_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    patient: Mapped[Optional[User]] = relationship(
        "User",
        foreign_keys=[user_id],
        lazy="joined",
    )
    doctor: Mapped[Optional[User]] = relationship(
        "User",
        foreign_keys=[doctor_id],
        lazy="joined",
    )
    time_slot: Mapped[Optional[TimeSlot]] = relationship(
        "TimeSlot",
        foreign_keys=[time_slot_id],
        lazy="joined",
    )

    __table_args__ = (
        CheckConstraint(
            "appointment_type IN ('video_call', 'voice_call', 'clinic_visit')",
            name="ck_appt_type_valid",
        ),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')",
            name="ck_appt_status_valid",
        ),
        CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('user', 'doctor', 'admin')",
            name="ck_appt_cancelled_by_valid",
        ),
        # Avoid double booking: at most one live appointment per slot
        Index(
            "uq_appt_live_slot",
            "time_slot_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_appt_user_created", "user_id", "created_at"),
        Index("ix_appt_doctor_created", "doctor_id", "created_at"),
    )
