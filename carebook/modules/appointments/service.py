# carebook/modules/appointments/service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, time
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.config import settings
from carebook.core.errors import (
    AlreadyCancelled,
    AppointmentForbidden,
    AppointmentNotFound,
    PastSlot,
    PatientNotFound,
    SlotMismatch,
    SlotNotFound,
    SlotUnavailable,
)
from carebook.core.permission import Principal, ensure_doctor_access
from carebook.db.sql import transaction
from carebook.modules.appointments.models import Appointment, ApptStatus, CancelledBy
from carebook.modules.appointments.schemas import (
    AppointmentCancelRequest,
    AppointmentCreateRequest,
    AppointmentListPage,
    AppointmentListParams,
    AppointmentPublic,
)
from carebook.modules.doctors import repository as doctors_repo
from carebook.modules.notifications.service import (
    BookingDetails,
    Notifier,
    send_booking_confirmations,
)
from carebook.modules.scheduling.generator import label_for_time, to_minutes
from carebook.modules.slots import repository as slots_repo
from carebook.modules.slots.models import SlotStatus, TimeSlot
from carebook.modules.unavailability.service import find_blocking_window
from carebook.modules.users import repository as users_repo

logger = logging.getLogger(__name__)

_CANCELLED_BY_ROLE = {
    "admin": CancelledBy.ADMIN.value,
    "patient": CancelledBy.USER.value,
    "doctor": CancelledBy.DOCTOR.value,
}


def _to_public(appt: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(appt)


def _clinic_now(now: Optional[datetime] = None) -> datetime:
    tz = ZoneInfo(settings.CLINIC_TIMEZONE)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def slot_starts_at(slot: TimeSlot) -> datetime:
    """Wall-clock start of a slot in the clinic's timezone."""
    minutes = to_minutes(slot.start_time)
    return datetime.combine(
        slot.date,
        time(minutes // 60, minutes % 60),
        tzinfo=ZoneInfo(settings.CLINIC_TIMEZONE),
    )


def _can_access(principal: Principal, appt: Appointment) -> bool:
    return (
        principal.is_admin
        or appt.user_id == principal.user_id
        or appt.doctor_id == principal.user_id
    )


# RESERVE
async def reserve_slot(
    session: AsyncSession,
    *,
    user_id: UUID,
    doctor_id: UUID,
    time_slot_id: UUID,
    appointment_type: str,
    consultation_fee: Decimal,
    notes: str = "",
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Claim an available slot and create its appointment.

    The claim is a conditional UPDATE on status='available'; when two
    bookings race, the loser sees zero affected rows and gets
    SlotUnavailable. Runs inside the caller's transaction, so a failure
    after the claim rolls the slot back too.
    """
    slot = await slots_repo.get_slot(session, slot_id=time_slot_id)
    if slot is None:
        raise SlotNotFound()
    if slot.status != SlotStatus.AVAILABLE.value:
        raise SlotUnavailable(message="This time slot is no longer available")
    if slot.doctor_id != doctor_id:
        raise SlotMismatch(message="Time slot does not belong to this doctor")
    if slot_starts_at(slot) < _clinic_now(now):
        raise PastSlot(message="Cannot book a time slot in the past")

    appointment_id = uuid.uuid4()
    claimed = await slots_repo.claim_slot(
        session,
        slot_id=slot.id,
        appointment_id=appointment_id,
        booking_type=appointment_type,
    )
    if not claimed:
        raise SlotUnavailable(message="This time slot is no longer available")
    await session.refresh(slot)

    appt = Appointment(
        id=appointment_id,
        user_id=user_id,
        doctor_id=doctor_id,
        time_slot_id=slot.id,
        appointment_type=appointment_type,
        status=ApptStatus.CONFIRMED.value,
        notes=notes or "",
        consultation_fee=consultation_fee,
    )
    session.add(appt)
    await session.flush()
    await session.refresh(appt)

    await slots_repo.refresh_labels(session, doctor_id=doctor_id, start=slot.date)
    logger.info(
        "Slot %s (%s %s) booked by %s, appointment %s",
        slot.id, slot.date, slot.start_time, user_id, appt.id,
    )
    return appt


# CANCEL
async def cancel_appointment(
    session: AsyncSession,
    *,
    appointment_id: UUID,
    principal: Principal,
    reason: str = "",
    cancelled_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Cancel an appointment and put its slot back on offer, unless the
    doctor has since been marked unavailable on that date.
    - patient can only cancel his own appointment
    - doctor can only cancel appointments in which he is the doctor
    - admin cancels all
    """
    appt = await session.get(Appointment, appointment_id)
    if appt is None:
        raise AppointmentNotFound()
    if not _can_access(principal, appt):
        raise AppointmentForbidden(message="You can only cancel your own appointments")
    if appt.status == ApptStatus.CANCELLED.value:
        raise AlreadyCancelled(message="Appointment is already cancelled")

    appt.status = ApptStatus.CANCELLED.value
    appt.cancelled_at = _clinic_now(now)
    appt.cancelled_by = cancelled_by or _CANCELLED_BY_ROLE.get(
        principal.role, CancelledBy.USER.value
    )
    appt.cancellation_reason = reason or ""

    slot = await slots_repo.get_slot(session, slot_id=appt.time_slot_id)
    if slot is None:
        logger.warning(
            "Time slot %s of appointment %s not found, cancelling anyway",
            appt.time_slot_id, appt.id,
        )
    else:
        # inside an unavailability window the slot is withdrawn, not reopened
        window = await find_blocking_window(
            session, doctor_id=slot.doctor_id, start=slot.date, end=slot.date
        )
        released_to = SlotStatus.CANCELLED if window is not None else SlotStatus.AVAILABLE
        await slots_repo.release_slot(session, slot_id=slot.id, to=released_to)
        await slots_repo.refresh_labels(session, doctor_id=slot.doctor_id, start=slot.date)
        await session.refresh(slot)

    await session.flush()
    await session.refresh(appt)
    logger.info("Appointment %s cancelled by %s", appt.id, appt.cancelled_by)
    return appt


def _booking_details(appt: Appointment, patient, profile, slot: TimeSlot) -> BookingDetails:
    return BookingDetails(
        patient_name=patient.full_name,
        patient_email=patient.email,
        doctor_name=profile.name,
        doctor_email=profile.email,
        specialty=profile.specialty or "",
        date_label=slot.date.strftime("%A, %B %d, %Y"),
        start_time=label_for_time(slot.start_time),
        end_time=label_for_time(slot.end_time),
        appointment_type=appt.appointment_type,
        fee=f"${appt.consultation_fee}",
        notes=appt.notes,
    )


# CREATE
async def book_appointment(
    session: AsyncSession,
    principal: Principal,
    payload: AppointmentCreateRequest,
    notifier: Optional[Notifier] = None,
) -> AppointmentPublic:
    """
    Book a slot for the authenticated patient.

    Logic:
    - Only allow role 'patient' to book.
    - user_id = principal.user_id, fee = doctor's current fee.
    - Emails go out after the commit; their failures never undo a booking.
    """
    if principal.role != "patient":
        raise AppointmentForbidden("only_patients_can_book", "Only patients can book appointments")

    profile = await doctors_repo.require_profile(session, doctor_id=payload.doctor_id)
    patient = await users_repo.get_by_id(session, principal.user_id)
    if patient is None:
        raise PatientNotFound()

    async with transaction(session, action="BOOK_APPOINTMENT", user_id=principal.user_id):
        appt = await reserve_slot(
            session,
            user_id=patient.id,
            doctor_id=payload.doctor_id,
            time_slot_id=payload.time_slot_id,
            appointment_type=payload.appointment_type.value,
            consultation_fee=profile.fee,
            notes=payload.notes,
        )

    await send_booking_confirmations(
        _booking_details(appt, patient, profile, appt.time_slot), notifier
    )
    return _to_public(appt)


async def cancel_appointment_svc(
    session: AsyncSession,
    principal: Principal,
    appointment_id: UUID,
    payload: AppointmentCancelRequest,
) -> AppointmentPublic:
    async with transaction(session, action="CANCEL_APPOINTMENT", user_id=principal.user_id):
        appt = await cancel_appointment(
            session,
            appointment_id=appointment_id,
            principal=principal,
            reason=payload.reason,
            cancelled_by=payload.cancelled_by.value if payload.cancelled_by else None,
        )
    return _to_public(appt)


async def _page(
    session: AsyncSession,
    conditions: list,
    params: AppointmentListParams,
    order_by,
) -> AppointmentListPage:
    if params.status:
        conditions.append(Appointment.status == params.status)
    if params.on_date:
        conditions.append(TimeSlot.date == params.on_date)

    # Count total
    total_stmt = (
        select(func.count())
        .select_from(Appointment)
        .join(TimeSlot, Appointment.time_slot_id == TimeSlot.id)
        .where(*conditions)
    )
    total = (await session.execute(total_stmt)).scalar_one()

    # Page
    stmt = (
        select(Appointment)
        .join(TimeSlot, Appointment.time_slot_id == TimeSlot.id)
        .where(*conditions)
        .order_by(*order_by)
        .limit(params.limit)
        .offset(params.offset)
    )
    rows: List[Appointment] = (await session.execute(stmt)).scalars().all()
    return AppointmentListPage(
        items=[_to_public(a) for a in rows],
        total=total,
        limit=params.limit,
        offset=params.offset,
        has_next=params.offset + params.limit < total,
    )


# MY APPOINTMENTS
async def get_user_appointments(
    session: AsyncSession,
    principal: Principal,
    params: AppointmentListParams,
) -> AppointmentListPage:
    """
    - patient => appointments where user is patient
    - doctor => appointments where user is doctor
    - admin => all
    """
    conditions = []
    if principal.role == "patient":
        conditions.append(Appointment.user_id == principal.user_id)
    elif principal.role == "doctor":
        conditions.append(Appointment.doctor_id == principal.user_id)

    return await _page(
        session, conditions, params, (Appointment.created_at.desc(),)
    )


# DOCTOR VIEW
async def get_doctor_appointments(
    session: AsyncSession,
    principal: Principal,
    doctor_id: UUID,
    params: AppointmentListParams,
) -> AppointmentListPage:
    ensure_doctor_access(principal, doctor_id)
    return await _page(
        session,
        [Appointment.doctor_id == doctor_id],
        params,
        (TimeSlot.date, TimeSlot.start_time),
    )


async def get_appointment_by_id(
    session: AsyncSession,
    principal: Principal,
    appointment_id: UUID,
) -> AppointmentPublic:
    appt = await session.get(Appointment, appointment_id)
    if appt is None:
        raise AppointmentNotFound()
    if not _can_access(principal, appt):
        raise AppointmentForbidden(message="You do not have access to this appointment")
    return _to_public(appt)
