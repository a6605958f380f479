# carebook/modules/scheduling/repository.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Dict, List, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.db.sql import upsert_insert
from carebook.modules.scheduling.models import ScheduleOverride, ScheduleTemplate


async def _upsert(
    db: AsyncSession, model, *, key: Dict[str, Any], values: Dict[str, Any]
):
    """
    INSERT ... ON CONFLICT (key) DO UPDATE, so concurrent saves of the same
    key both land instead of one hitting the unique constraint.
    """
    stmt = upsert_insert(db, model).values(id=uuid.uuid4(), **key, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(key),
        set_={**{k: getattr(stmt.excluded, k) for k in values}, "updated_at": func.now()},
    )
    await db.execute(stmt)

    conditions: List[Any] = [getattr(model, k) == v for k, v in key.items()]
    row = await db.execute(
        select(model).where(*conditions).execution_options(populate_existing=True)
    )
    return row.scalar_one()


async def templates_by_day(
    db: AsyncSession, *, doctor_id: UUID
) -> Dict[int, ScheduleTemplate]:
    rows = await db.execute(
        select(ScheduleTemplate).where(ScheduleTemplate.doctor_id == doctor_id)
    )
    return {t.day_of_week: t for t in rows.scalars().all()}


async def list_templates(
    db: AsyncSession, *, doctor_id: UUID
) -> Sequence[ScheduleTemplate]:
    rows = await db.execute(
        select(ScheduleTemplate)
        .where(ScheduleTemplate.doctor_id == doctor_id)
        .order_by(ScheduleTemplate.day_of_week)
    )
    return rows.scalars().all()


async def upsert_template(
    db: AsyncSession, *, doctor_id: UUID, day_of_week: int, values: Dict[str, Any]
) -> ScheduleTemplate:
    return await _upsert(
        db,
        ScheduleTemplate,
        key={"doctor_id": doctor_id, "day_of_week": day_of_week},
        values=values,
    )


async def upsert_override(
    db: AsyncSession, *, doctor_id: UUID, day: date, values: Dict[str, Any]
) -> ScheduleOverride:
    return await _upsert(
        db,
        ScheduleOverride,
        key={"doctor_id": doctor_id, "date": day},
        values=values,
    )


async def list_overrides(
    db: AsyncSession, *, doctor_id: UUID, start: date, end: date
) -> Sequence[ScheduleOverride]:
    rows = await db.execute(
        select(ScheduleOverride)
        .where(
            ScheduleOverride.doctor_id == doctor_id,
            ScheduleOverride.date >= start,
            ScheduleOverride.date <= end,
        )
        .order_by(ScheduleOverride.date)
    )
    return rows.scalars().all()
