# carebook/modules/doctors/repository.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.errors import DoctorNotFound
from carebook.modules.doctors.models import DoctorProfile


async def get_profile(db: AsyncSession, *, doctor_id: UUID) -> Optional[DoctorProfile]:
    """
    Directory lookup by the doctor's user id (fee, specialty, name, email).
    """
    row = await db.execute(
        select(DoctorProfile).where(DoctorProfile.user_id == doctor_id)
    )
    return row.scalar_one_or_none()


async def require_profile(db: AsyncSession, *, doctor_id: UUID) -> DoctorProfile:
    profile = await get_profile(db, doctor_id=doctor_id)
    if profile is None:
        raise DoctorNotFound()
    return profile
