# carebook/modules/slots/repository.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.db.sql import upsert_insert
from carebook.modules.scheduling.generator import label_for_time
from carebook.modules.slots.models import SlotLabelCache, SlotStatus, TimeSlot

# keeps each multi-row INSERT under SQLite's bound-parameter limit
INSERT_CHUNK_SIZE = 500


async def get_slot(db: AsyncSession, *, slot_id: UUID) -> Optional[TimeSlot]:
    return await db.get(TimeSlot, slot_id)


async def list_slots(
    db: AsyncSession,
    *,
    doctor_id: UUID,
    start: date,
    end: date,
    status: Optional[SlotStatus] = None,
    period: Optional[str] = None,
) -> Sequence[TimeSlot]:
    conditions = [
        TimeSlot.doctor_id == doctor_id,
        TimeSlot.date >= start,
        TimeSlot.date <= end,
    ]
    if status is not None:
        conditions.append(TimeSlot.status == status.value)
    if period:
        conditions.append(TimeSlot.period == period)

    rows = await db.execute(
        select(TimeSlot)
        .where(*conditions)
        .order_by(TimeSlot.date, TimeSlot.start_time)
    )
    return rows.scalars().all()


async def count_for_date(db: AsyncSession, *, doctor_id: UUID, day: date) -> int:
    stmt = select(func.count()).select_from(TimeSlot).where(
        TimeSlot.doctor_id == doctor_id, TimeSlot.date == day
    )
    return (await db.execute(stmt)).scalar_one()


async def has_booked_on(db: AsyncSession, *, doctor_id: UUID, day: date) -> bool:
    stmt = select(func.count()).select_from(TimeSlot).where(
        TimeSlot.doctor_id == doctor_id,
        TimeSlot.date == day,
        TimeSlot.status == SlotStatus.BOOKED.value,
    )
    return (await db.execute(stmt)).scalar_one() > 0


async def delete_for_date(db: AsyncSession, *, doctor_id: UUID, day: date) -> int:
    res = await db.execute(
        delete(TimeSlot)
        .where(TimeSlot.doctor_id == doctor_id, TimeSlot.date == day)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0  # type: ignore


async def bulk_insert_slots(db: AsyncSession, rows: Iterable[Dict[str, Any]]) -> int:
    """
    Insert slot rows, skipping any whose (doctor_id, date, start_time)
    already exists. Returns the number of rows actually inserted; any
    other integrity failure propagates.
    """
    pending: List[Dict[str, Any]] = [{"id": uuid.uuid4(), **row} for row in rows]
    inserted = 0
    for i in range(0, len(pending), INSERT_CHUNK_SIZE):
        chunk = pending[i:i + INSERT_CHUNK_SIZE]
        stmt = (
            upsert_insert(db, TimeSlot)
            .values(chunk)
            .on_conflict_do_nothing(index_elements=["doctor_id", "date", "start_time"])
            .returning(TimeSlot.id)
        )
        result = await db.execute(stmt)
        inserted += len(result.scalars().all())
    return inserted


async def claim_slot(
    db: AsyncSession,
    *,
    slot_id: UUID,
    appointment_id: UUID,
    booking_type: str,
) -> bool:
    """
    Compare-and-set available -> booked. False means another transaction
    got there first.
    """
    res = await db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.status == SlotStatus.AVAILABLE.value,
        )
        .values(
            status=SlotStatus.BOOKED.value,
            appointment_id=appointment_id,
            booking_type=booking_type,
        )
        .execution_options(synchronize_session=False)
    )
    return (res.rowcount or 0) == 1  # type: ignore


async def release_slot(
    db: AsyncSession, *, slot_id: UUID, to: SlotStatus = SlotStatus.AVAILABLE
) -> int:
    res = await db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot_id)
        .values(
            status=to.value,
            appointment_id=None,
            booking_type=None,
        )
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0  # type: ignore


async def cancel_available_in_range(
    db: AsyncSession, *, doctor_id: UUID, start: date, end: date
) -> int:
    """Withdraw open slots; booked ones are left alone."""
    res = await db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.doctor_id == doctor_id,
            TimeSlot.date >= start,
            TimeSlot.date <= end,
            TimeSlot.status == SlotStatus.AVAILABLE.value,
        )
        .values(status=SlotStatus.CANCELLED.value)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0  # type: ignore


# --- label cache ---

def labels_for(slots: Sequence[TimeSlot]) -> List[Dict[str, str]]:
    return [
        {"start_time": s.start_time, "label": label_for_time(s.start_time), "period": s.period}
        for s in slots
    ]


async def get_cached_labels(
    db: AsyncSession, *, doctor_id: UUID, day: date
) -> Optional[List[Dict[str, str]]]:
    row = await db.execute(
        select(SlotLabelCache.labels).where(
            SlotLabelCache.doctor_id == doctor_id, SlotLabelCache.date == day
        )
    )
    return row.scalar_one_or_none()


async def _rewrite_labels(db: AsyncSession, *, doctor_id: UUID, day: date) -> List[Dict[str, str]]:
    # Lock the row before reading time_slots, so a writer that waited here
    # recomputes from everything committed ahead of it.
    stmt = upsert_insert(db, SlotLabelCache).values(
        id=uuid.uuid4(), doctor_id=doctor_id, date=day, labels=[]
    )
    await db.execute(
        stmt.on_conflict_do_update(
            index_elements=["doctor_id", "date"],
            set_={"doctor_id": stmt.excluded.doctor_id},
        )
    )
    labels = labels_for(
        await list_slots(db, doctor_id=doctor_id, start=day, end=day, status=SlotStatus.AVAILABLE)
    )
    await db.execute(
        update(SlotLabelCache)
        .where(SlotLabelCache.doctor_id == doctor_id, SlotLabelCache.date == day)
        .values(labels=labels)
        .execution_options(synchronize_session=False)
    )
    return labels


async def refresh_labels(
    db: AsyncSession, *, doctor_id: UUID, start: date, end: Optional[date] = None
) -> int:
    """
    Rewrite the cached labels of every date in [start, end] that has slots
    or an existing cache row. Call it in the transaction that changed the
    slots; readers never write.
    """
    end = end or start
    slot_days = select(TimeSlot.date).where(
        TimeSlot.doctor_id == doctor_id, TimeSlot.date >= start, TimeSlot.date <= end
    )
    cached_days = select(SlotLabelCache.date).where(
        SlotLabelCache.doctor_id == doctor_id,
        SlotLabelCache.date >= start,
        SlotLabelCache.date <= end,
    )
    days = sorted(set((await db.execute(slot_days.union(cached_days))).scalars().all()))
    for day in days:
        await _rewrite_labels(db, doctor_id=doctor_id, day=day)
    return len(days)
