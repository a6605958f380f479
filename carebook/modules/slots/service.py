# carebook/modules/slots/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.config import settings
from carebook.core.errors import ValidationError
from carebook.core.permission import Principal, ensure_doctor_access
from carebook.db.sql import transaction
from carebook.modules.scheduling.generator import Period
from carebook.modules.slots import repository as repo
from carebook.modules.slots.materializer import materialize_range
from carebook.modules.slots.models import SlotStatus, TimeSlot
from carebook.modules.slots.schemas import (
    AvailabilityPublic,
    GenerateSlotsRequest,
    GenerateSlotsResult,
    SlotLabel,
    SlotLabelsPublic,
    TimeSlotPublic,
)
from carebook.modules.unavailability.models import UnavailabilityWindow
from carebook.modules.unavailability.service import find_blocking_window

logger = logging.getLogger(__name__)


def clinic_today() -> date:
    return datetime.now(ZoneInfo(settings.CLINIC_TIMEZONE)).date()


def _parse_period(period: Optional[str]) -> Optional[str]:
    if not period:
        return None
    try:
        return Period(period).value
    except ValueError:
        raise ValidationError("invalid_period", f"unknown period {period!r}")


@dataclass
class AvailabilityResult:
    slots: Sequence[TimeSlot]
    window: Optional[UnavailabilityWindow]

    @property
    def is_doctor_available(self) -> bool:
        return self.window is None


async def list_available(
    session: AsyncSession,
    *,
    doctor_id: UUID,
    day: Optional[date] = None,
    period: Optional[str] = None,
    today: Optional[date] = None,
) -> AvailabilityResult:
    """
    Open slots for one date, or for [today, today + window] when no date
    is given, ordered by date then start time.
    """
    if day is not None:
        start = end = day
    else:
        start = today or clinic_today()
        end = start + timedelta(days=settings.AVAILABILITY_WINDOW_DAYS)

    slots = await repo.list_slots(
        session,
        doctor_id=doctor_id,
        start=start,
        end=end,
        status=SlotStatus.AVAILABLE,
        period=_parse_period(period),
    )
    window = await find_blocking_window(session, doctor_id=doctor_id, start=start, end=end)
    return AvailabilityResult(slots=slots, window=window)


async def get_doctor_slots(
    session: AsyncSession,
    *,
    doctor_id: UUID,
    day: Optional[date] = None,
    period: Optional[str] = None,
) -> AvailabilityPublic:
    result = await list_available(session, doctor_id=doctor_id, day=day, period=period)
    window = result.window
    return AvailabilityPublic(
        available_slots=[TimeSlotPublic.model_validate(s) for s in result.slots],
        is_doctor_available=result.is_doctor_available,
        unavailability_reason=window.reason if window else None,
        unavailability_type=window.type if window else None,
        message="Doctor is unavailable on this date" if window else None,
    )


async def generate_doctor_slots(
    session: AsyncSession,
    principal: Principal,
    doctor_id: UUID,
    payload: GenerateSlotsRequest,
) -> GenerateSlotsResult:
    ensure_doctor_access(principal, doctor_id)

    async with transaction(session, action="GENERATE_SLOTS", user_id=principal.user_id):
        result = await materialize_range(
            session,
            doctor_id=doctor_id,
            start=payload.start_date,
            end=payload.end_date,
        )

    return GenerateSlotsResult(
        slots_generated=result.candidates,
        slots_inserted=result.inserted,
        duplicates_skipped=result.duplicates,
        blocked_dates=result.blocked_days,
        message=f"Generated {result.candidates} slots for doctor {doctor_id}",
    )


async def get_slot_labels(
    session: AsyncSession, *, doctor_id: UUID, day: Optional[date] = None
) -> SlotLabelsPublic:
    """
    Display labels for a profile page. slot_label_cache is rewritten by
    every slot write; a date without a row is computed from time_slots.
    """
    day = day or clinic_today()
    labels = await repo.get_cached_labels(session, doctor_id=doctor_id, day=day)
    if labels is None:
        slots = await repo.list_slots(
            session, doctor_id=doctor_id, start=day, end=day, status=SlotStatus.AVAILABLE
        )
        labels = repo.labels_for(slots)
    window = await find_blocking_window(session, doctor_id=doctor_id, start=day, end=day)

    return SlotLabelsPublic(
        date=day,
        available_slots=[SlotLabel(**item) for item in labels],
        is_doctor_available=window is None,
        unavailability_reason=window.reason if window else None,
    )
