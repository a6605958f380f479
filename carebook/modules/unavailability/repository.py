# carebook/modules/unavailability/repository.py
from __future__ import annotations

from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.modules.unavailability.models import UnavailabilityWindow


async def create_window(
    db: AsyncSession,
    *,
    doctor_id: UUID,
    start_date: date,
    end_date: date,
    reason: str,
    type: str,
    is_recurring: bool,
) -> UnavailabilityWindow:
    window = UnavailabilityWindow(
        doctor_id=doctor_id,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
        type=type,
        is_recurring=is_recurring,
    )
    db.add(window)
    await db.flush()
    await db.refresh(window)
    return window


async def first_overlapping(
    db: AsyncSession, *, doctor_id: UUID, start: date, end: date
) -> Optional[UnavailabilityWindow]:
    """First window whose literal dates intersect [start, end]."""
    rows = await db.execute(
        select(UnavailabilityWindow)
        .where(
            UnavailabilityWindow.doctor_id == doctor_id,
            UnavailabilityWindow.start_date <= end,
            UnavailabilityWindow.end_date >= start,
        )
        .order_by(UnavailabilityWindow.start_date, UnavailabilityWindow.created_at)
        .limit(1)
    )
    return rows.scalar_one_or_none()


async def list_recurring(
    db: AsyncSession, *, doctor_id: UUID
) -> Sequence[UnavailabilityWindow]:
    rows = await db.execute(
        select(UnavailabilityWindow)
        .where(
            UnavailabilityWindow.doctor_id == doctor_id,
            UnavailabilityWindow.is_recurring.is_(True),
        )
        .order_by(UnavailabilityWindow.start_date)
    )
    return rows.scalars().all()


async def list_by_doctor(
    db: AsyncSession,
    *,
    doctor_id: UUID,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Sequence[UnavailabilityWindow]:
    conditions = [UnavailabilityWindow.doctor_id == doctor_id]
    if start is not None and end is not None:
        conditions.append(UnavailabilityWindow.start_date <= end)
        conditions.append(UnavailabilityWindow.end_date >= start)

    rows = await db.execute(
        select(UnavailabilityWindow)
        .where(*conditions)
        .order_by(UnavailabilityWindow.start_date)
    )
    return rows.scalars().all()
