# carebook/routers/appointments.py
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
from carebook.modules.appointments.schemas import (
    AppointmentCancelRequest,
    AppointmentCreateRequest,
    AppointmentListPage,
    AppointmentListParams,
    AppointmentPublic,
)
from carebook.modules.appointments.service import (
    book_appointment,
    cancel_appointment_svc,
    get_appointment_by_id,
    get_doctor_appointments,
    get_user_appointments,
)
from carebook.modules.notifications.service import get_notifier

router = APIRouter(tags=["appointments"])


def _list_params(
    status_filter: Optional[str] = Query(
        None, alias="status", pattern="^(pending|confirmed|cancelled)$"
    ),
    on_date: Optional[date] = Query(None, alias="date"),
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
) -> AppointmentListParams:
    return AppointmentListParams(status=status_filter, on_date=on_date, limit=limit, offset=offset)


# Implement /appointments (POST)
@router.post(
    "/appointments",
    response_model=ApiResponse[AppointmentPublic],
    status_code=status.HTTP_201_CREATED,
    summary="Book a time slot (transactional execution)",
)
async def appointments_create(
    payload: AppointmentCreateRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("patient")),
):
    return ok(await book_appointment(session, principal, payload, get_notifier()))


# Implement /appointments (GET)
@router.get(
    "/appointments",
    response_model=ApiResponse[AppointmentListPage],
    summary="Retrieve current user's appointments",
)
async def appointments_my(
    params: AppointmentListParams = Depends(_list_params),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await get_user_appointments(session, principal, params))


# Implement /appointments/doctor/{id} (GET)
@router.get(
    "/appointments/doctor/{doctor_id}",
    response_model=ApiResponse[AppointmentListPage],
    summary="Doctor views their appointments",
)
async def appointments_for_doctor(
    doctor_id: UUID,
    params: AppointmentListParams = Depends(_list_params),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor", "admin")),
):
    return ok(await get_doctor_appointments(session, principal, doctor_id, params))


@router.get(
    "/appointments/{appointment_id}",
    response_model=ApiResponse[AppointmentPublic],
)
async def appointments_get(
    appointment_id: UUID,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await get_appointment_by_id(session, principal, appointment_id))


# Implement /appointments/{id}/cancel (PATCH)
@router.patch(
    "/appointments/{appointment_id}/cancel",
    response_model=ApiResponse[AppointmentPublic],
    summary="Cancel an appointment and release its slot",
)
async def appointments_cancel(
    appointment_id: UUID,
    payload: Optional[AppointmentCancelRequest] = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    return ok(
        await cancel_appointment_svc(
            session, principal, appointment_id, payload or AppointmentCancelRequest()
        )
    )
