# carebook/routers/slots.py
from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.permission import Principal
from carebook.core.responses import ApiResponse, ok
from carebook.db.sql import get_session
from carebook.dependencies import get_current_principal, require_roles
from carebook.modules.slots.schemas import (
    AvailabilityPublic,
    GenerateSlotsRequest,
    GenerateSlotsResult,
)
from carebook.modules.slots.service import generate_doctor_slots, get_doctor_slots
from carebook.modules.unavailability.schemas import (
    MarkUnavailableRequest,
    MarkUnavailableResultPublic,
    UnavailabilityList,
)
from carebook.modules.unavailability.service import (
    get_doctor_unavailability,
    mark_doctor_unavailable,
)

router = APIRouter(prefix="/slots", tags=["slots"])


# Public: open slots of one doctor
@router.get("/{doctor_id}", response_model=ApiResponse[AvailabilityPublic])
async def list_doctor_slots(
    doctor_id: UUID,
    on_date: Optional[date] = Query(None, alias="date"),
    period: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    return ok(await get_doctor_slots(session, doctor_id=doctor_id, day=on_date, period=period))


@router.post(
    "/{doctor_id}/generate",
    response_model=ApiResponse[GenerateSlotsResult],
    status_code=status.HTTP_201_CREATED,
)
async def generate_slots(
    doctor_id: UUID,
    payload: GenerateSlotsRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor", "admin")),
):
    return ok(await generate_doctor_slots(session, principal, doctor_id, payload))


@router.post(
    "/{doctor_id}/unavailable",
    response_model=ApiResponse[MarkUnavailableResultPublic],
    status_code=status.HTTP_201_CREATED,
)
async def mark_unavailable(
    doctor_id: UUID,
    payload: MarkUnavailableRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor", "admin")),
):
    return ok(await mark_doctor_unavailable(session, principal, doctor_id, payload))


@router.get("/{doctor_id}/unavailable", response_model=ApiResponse[UnavailabilityList])
async def list_unavailability(
    doctor_id: UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),  # Bearer required
):
    return ok(
        await get_doctor_unavailability(
            session, doctor_id, start_date=start_date, end_date=end_date
        )
    )
