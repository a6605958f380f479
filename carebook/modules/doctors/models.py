# carebook/modules/doctors/models.py
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carebook.db.base import Base, UUIDPKMixin, TimestampMixin, ReprMixin
from carebook.modules.users.models import User


class DoctorProfile(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Directory entry for a doctor account. One row per doctor user.
    """

    __tablename__ = "doctor_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    specialty: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)

    user: Mapped[User] = relationship("User", lazy="joined")

    __table_args__ = (
        CheckConstraint("fee >= 0", name="ck_doctor_fee_non_negative"),
    )

    @property
    def name(self) -> str:
        return self.user.full_name

    @property
    def email(self) -> str | None:
        return self.user.email
