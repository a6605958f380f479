# carebook/modules/unavailability/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.errors import ValidationError
from carebook.core.permission import Principal, ensure_doctor_access
from carebook.db.sql import transaction
from carebook.modules.doctors import repository as doctors_repo
from carebook.modules.slots import repository as slots_repo
from carebook.modules.unavailability import repository as repo
from carebook.modules.unavailability.models import UnavailabilityWindow
from carebook.modules.unavailability.schemas import (
    MarkUnavailableRequest,
    MarkUnavailableResultPublic,
    UnavailabilityList,
    UnavailabilityPublic,
)

logger = logging.getLogger(__name__)


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def matches_anniversary(window: UnavailabilityWindow, day: date) -> bool:
    """
    Recurring windows repeat yearly over their month/day span, so a
    Dec 24 - Jan 2 holiday also blocks Dec 24 2031 and Jan 1 2032.
    """
    if (window.end_date - window.start_date).days >= 365:
        return True
    first = (window.start_date.month, window.start_date.day)
    last = (window.end_date.month, window.end_date.day)
    key = (day.month, day.day)
    if first <= last:
        return first <= key <= last
    # span wraps over New Year
    return key >= first or key <= last


async def find_blocking_window(
    session: AsyncSession, *, doctor_id: UUID, start: date, end: date
) -> Optional[UnavailabilityWindow]:
    """
    The first window that makes the doctor unavailable somewhere in
    [start, end]: a literal date overlap, or a recurring anniversary.
    """
    window = await repo.first_overlapping(session, doctor_id=doctor_id, start=start, end=end)
    if window is not None:
        return window

    recurring = await repo.list_recurring(session, doctor_id=doctor_id)
    for candidate in recurring:
        if any(matches_anniversary(candidate, day) for day in iter_days(start, end)):
            return candidate
    return None


@dataclass
class MarkUnavailableResult:
    window: UnavailabilityWindow
    slots_cancelled: int


async def mark_unavailable(
    session: AsyncSession,
    *,
    doctor_id: UUID,
    start_date: date,
    end_date: date,
    reason: str = "",
    type: str = "other",
    is_recurring: bool = False,
) -> MarkUnavailableResult:
    """
    Persist a window and withdraw the open slots inside its literal dates.
    Already booked slots (and their appointments) stand.

    Runs inside the caller's transaction.
    """
    if start_date > end_date:
        raise ValidationError("invalid_date_range", "start_date must not be after end_date")

    await doctors_repo.require_profile(session, doctor_id=doctor_id)

    window = await repo.create_window(
        session,
        doctor_id=doctor_id,
        start_date=start_date,
        end_date=end_date,
        reason=reason or "",
        type=type or "other",
        is_recurring=is_recurring,
    )
    cancelled = await slots_repo.cancel_available_in_range(
        session, doctor_id=doctor_id, start=start_date, end=end_date
    )
    await slots_repo.refresh_labels(
        session, doctor_id=doctor_id, start=start_date, end=end_date
    )
    logger.info(
        "Doctor %s unavailable %s..%s (%s), %d open slots withdrawn",
        doctor_id, start_date, end_date, window.type, cancelled,
    )
    return MarkUnavailableResult(window=window, slots_cancelled=cancelled)


async def list_unavailability(
    session: AsyncSession,
    *,
    doctor_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Sequence[UnavailabilityWindow]:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("invalid_date_range", "start_date must not be after end_date")
    return await repo.list_by_doctor(
        session, doctor_id=doctor_id, start=start_date, end=end_date
    )


async def mark_doctor_unavailable(
    session: AsyncSession,
    principal: Principal,
    doctor_id: UUID,
    payload: MarkUnavailableRequest,
) -> MarkUnavailableResultPublic:
    ensure_doctor_access(principal, doctor_id)

    async with transaction(session, action="MARK_UNAVAILABLE", user_id=principal.user_id):
        result = await mark_unavailable(
            session,
            doctor_id=doctor_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            reason=payload.reason,
            type=payload.type,
            is_recurring=payload.is_recurring,
        )

    return MarkUnavailableResultPublic(
        unavailability=UnavailabilityPublic.model_validate(result.window),
        slots_cancelled=result.slots_cancelled,
        message="Doctor marked as unavailable",
    )


async def get_doctor_unavailability(
    session: AsyncSession,
    doctor_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> UnavailabilityList:
    windows = await list_unavailability(
        session, doctor_id=doctor_id, start_date=start_date, end_date=end_date
    )
    return UnavailabilityList(items=[UnavailabilityPublic.model_validate(w) for w in windows])
