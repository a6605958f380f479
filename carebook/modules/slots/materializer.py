# carebook/modules/slots/materializer.py
"""
Persist generated slots.

All functions run inside the caller's transaction and never commit.
Inserts go through bulk_insert_slots, which skips rows whose
(doctor_id, date, start_time) already exists, so re-running a range only
adds what is missing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.config import settings
from carebook.core.errors import OverrideConflict, ValidationError
from carebook.modules.doctors import repository as doctors_repo
from carebook.modules.scheduling import repository as schedules_repo
from carebook.modules.scheduling.generator import (
    OverrideDay,
    SlotPlan,
    TemplateDay,
    generate_from_override,
    generate_from_template,
)
from carebook.modules.scheduling.models import ScheduleOverride
from carebook.modules.slots import repository as slots_repo
from carebook.modules.slots.models import SlotStatus
from carebook.modules.unavailability.service import find_blocking_window, iter_days

logger = logging.getLogger(__name__)


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


@dataclass
class MaterializationResult:
    candidates: int = 0
    inserted: int = 0
    blocked_days: List[date] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return self.candidates - self.inserted

    def merge(self, other: "MaterializationResult") -> None:
        self.candidates += other.candidates
        self.inserted += other.inserted
        self.blocked_days.extend(other.blocked_days)


def slot_rows(doctor_id: UUID, day: date, plan: SlotPlan) -> List[Dict[str, Any]]:
    return [
        {
            "doctor_id": doctor_id,
            "date": day,
            "start_time": c.start_time,
            "end_time": c.end_time,
            "period": c.period.value,
            "status": SlotStatus.AVAILABLE.value,
            "booking_type": c.booking_type,
            "appointment_id": None,
        }
        for c in plan
    ]


async def materialize_date(
    session: AsyncSession, *, doctor_id: UUID, day: date, plan: SlotPlan
) -> MaterializationResult:
    window = await find_blocking_window(session, doctor_id=doctor_id, start=day, end=day)
    if window is not None:
        logger.info("Doctor %s unavailable on %s (%s), no slots", doctor_id, day, window.type)
        return MaterializationResult(blocked_days=[day])

    rows = slot_rows(doctor_id, day, plan)
    if not rows:
        return MaterializationResult()

    inserted = await slots_repo.bulk_insert_slots(session, rows)
    await slots_repo.refresh_labels(session, doctor_id=doctor_id, start=day)
    return MaterializationResult(candidates=len(rows), inserted=inserted)


async def materialize_range(
    session: AsyncSession, *, doctor_id: UUID, start: date, end: date
) -> MaterializationResult:
    """
    Materialize every day in [start, end] from the weekly template. A date
    with an override is generated from the override instead.
    """
    if start > end:
        raise ValidationError("invalid_date_range", "start_date must not be after end_date")
    if (end - start).days + 1 > settings.MAX_GENERATION_DAYS:
        raise ValidationError(
            "date_range_too_long",
            f"at most {settings.MAX_GENERATION_DAYS} days can be generated at once",
        )

    await doctors_repo.require_profile(session, doctor_id=doctor_id)

    templates = await schedules_repo.templates_by_day(session, doctor_id=doctor_id)
    overrides = {
        o.date: o
        for o in await schedules_repo.list_overrides(
            session, doctor_id=doctor_id, start=start, end=end
        )
    }

    result = MaterializationResult()
    for day in iter_days(start, end):
        override = overrides.get(day)
        if override is not None:
            plan = generate_from_override(OverrideDay.from_model(override))
        else:
            template = templates.get(day_of_week(day))
            if template is None or not template.is_available:
                continue
            plan = generate_from_template(TemplateDay.from_model(template))
        result.merge(await materialize_date(session, doctor_id=doctor_id, day=day, plan=plan))

    if result.duplicates:
        logger.info("Skipped %d duplicate slots (already exist)", result.duplicates)
    logger.info(
        "Generated %d slots for doctor %s (%s..%s), %d new",
        result.candidates, doctor_id, start, end, result.inserted,
    )
    return result


async def materialize_override(
    session: AsyncSession, *, doctor_id: UUID, override: ScheduleOverride
) -> MaterializationResult:
    """
    Regenerate one date from scratch. Refused while any slot on that date
    is booked, since deleting it would orphan the appointment.
    """
    day = override.date
    if await slots_repo.has_booked_on(session, doctor_id=doctor_id, day=day):
        raise OverrideConflict(
            message=f"{day.isoformat()} has booked appointments; cancel them before changing the schedule",
        )

    deleted = await slots_repo.delete_for_date(session, doctor_id=doctor_id, day=day)
    await slots_repo.refresh_labels(session, doctor_id=doctor_id, start=day)
    logger.info("Cleared %d slots of doctor %s on %s", deleted, doctor_id, day)

    return await materialize_date(
        session,
        doctor_id=doctor_id,
        day=day,
        plan=generate_from_override(OverrideDay.from_model(override)),
    )
