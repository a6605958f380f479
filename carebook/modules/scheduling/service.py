# carebook/modules/scheduling/service.py
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.errors import ScheduleForbidden, ValidationError
from carebook.core.permission import Principal
from carebook.db.sql import transaction
from carebook.modules.doctors import repository as doctors_repo
from carebook.modules.scheduling import repository as repo
from carebook.modules.scheduling.schemas import (
    ScheduleOverridePublic,
    ScheduleSavedPublic,
    ScheduleSaveRequest,
    TemplatePublic,
    TemplateSaveRequest,
)
from carebook.modules.slots import repository as slots_repo
from carebook.modules.slots.materializer import materialize_override

logger = logging.getLogger(__name__)


def _own_doctor_id(principal: Principal) -> UUID:
    if principal.role != "doctor":
        raise ScheduleForbidden("only_doctors_can_manage_schedule")
    return principal.user_id


async def save_doctor_schedule(
    session: AsyncSession,
    principal: Principal,
    payload: ScheduleSaveRequest,
) -> ScheduleSavedPublic:
    """
    Upsert the override for one date and regenerate that date's slots.
    Refused while the date holds booked appointments.
    """
    doctor_id = _own_doctor_id(principal)
    await doctors_repo.require_profile(session, doctor_id=doctor_id)
    opening, closing = payload.resolved_times()

    async with transaction(session, action="SAVE_DOCTOR_SCHEDULE", user_id=doctor_id):
        override = await repo.upsert_override(
            session,
            doctor_id=doctor_id,
            day=payload.date,
            values={
                "is_day_available": payload.is_day_available,
                "opening_time": opening,
                "closing_time": closing,
                "slot_duration": payload.slot_duration,
                "slot_availability": dict(payload.slot_availability),
            },
        )
        await materialize_override(session, doctor_id=doctor_id, override=override)
        slots_generated = await slots_repo.count_for_date(
            session, doctor_id=doctor_id, day=payload.date
        )

    logger.info("Schedule for doctor %s on %s saved, %d slots", doctor_id, payload.date, slots_generated)
    return ScheduleSavedPublic(
        date=override.date,
        is_day_available=override.is_day_available,
        opening_time=override.opening_time,
        closing_time=override.closing_time,
        slot_duration=override.slot_duration,
        slots_generated=slots_generated,
    )


async def get_doctor_schedule(
    session: AsyncSession,
    principal: Principal,
    start_date: date,
    end_date: date,
) -> Dict[str, ScheduleOverridePublic]:
    """Overrides in [start_date, end_date], keyed by ISO date."""
    doctor_id = _own_doctor_id(principal)
    if start_date > end_date:
        raise ValidationError("invalid_date_range", "start_date must not be after end_date")

    overrides = await repo.list_overrides(
        session, doctor_id=doctor_id, start=start_date, end=end_date
    )
    return {o.date.isoformat(): ScheduleOverridePublic.model_validate(o) for o in overrides}


async def save_schedule_template(
    session: AsyncSession,
    principal: Principal,
    day_of_week: int,
    payload: TemplateSaveRequest,
) -> TemplatePublic:
    """
    Weekly hours for one day (0 = Sunday). Existing slots are untouched;
    the new hours apply from the next generation run.
    """
    doctor_id = _own_doctor_id(principal)
    if not 0 <= day_of_week <= 6:
        raise ValidationError("invalid_day_of_week", "day_of_week must be between 0 and 6")
    await doctors_repo.require_profile(session, doctor_id=doctor_id)

    async with transaction(session, action="SAVE_SCHEDULE_TEMPLATE", user_id=doctor_id):
        template = await repo.upsert_template(
            session,
            doctor_id=doctor_id,
            day_of_week=day_of_week,
            values={
                "is_available": payload.is_available,
                "start_time": payload.start_time,
                "end_time": payload.end_time,
                "periods": [p.value for p in payload.periods],
                "break_start_time": payload.break_start_time,
                "break_end_time": payload.break_end_time,
            },
        )
    return TemplatePublic.model_validate(template)


async def list_schedule_templates(
    session: AsyncSession, principal: Principal
) -> List[TemplatePublic]:
    doctor_id = _own_doctor_id(principal)
    templates = await repo.list_templates(session, doctor_id=doctor_id)
    return [TemplatePublic.model_validate(t) for t in templates]
