# carebook/routers/doctor_schedule.py
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.permission import Principal
from carebook.core.responses import ApiResponse, ok
from carebook.db.sql import get_session
from carebook.dependencies import require_roles
from carebook.modules.scheduling.schemas import (
    ScheduleOverridePublic,
    ScheduleSavedPublic,
    ScheduleSaveRequest,
    TemplatePublic,
    TemplateSaveRequest,
)
from carebook.modules.scheduling.service import (
    get_doctor_schedule,
    list_schedule_templates,
    save_doctor_schedule,
    save_schedule_template,
)
from carebook.modules.slots.schemas import SlotLabelsPublic
from carebook.modules.slots.service import get_slot_labels

router = APIRouter(prefix="/doctor", tags=["doctor-schedule"])


@router.post("/schedule", response_model=ApiResponse[ScheduleSavedPublic])
async def save_schedule(
    payload: ScheduleSaveRequest,
    db: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor")),
):
    return ok(await save_doctor_schedule(db, principal, payload))


@router.get("/schedule", response_model=ApiResponse[Dict[str, ScheduleOverridePublic]])
async def get_schedule(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor")),
):
    return ok(await get_doctor_schedule(db, principal, start_date, end_date))


# Public: display labels for a doctor's profile page
@router.get("/slots/{doctor_id}", response_model=ApiResponse[SlotLabelsPublic])
async def get_labels(
    doctor_id: UUID,
    on_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_session),
):
    return ok(await get_slot_labels(db, doctor_id=doctor_id, day=on_date))


@router.put("/templates/{day_of_week}", response_model=ApiResponse[TemplatePublic])
async def save_template(
    payload: TemplateSaveRequest,
    day_of_week: int = Path(..., ge=0, le=6),
    db: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor")),
):
    return ok(await save_schedule_template(db, principal, day_of_week, payload))


@router.get("/templates", response_model=ApiResponse[List[TemplatePublic]])
async def list_templates(
    db: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_roles("doctor")),
):
    return ok(await list_schedule_templates(db, principal))
