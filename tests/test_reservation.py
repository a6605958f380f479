"""Tests for reserving and cancelling slots."""

import asyncio
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from carebook.core.errors import (
    AlreadyCancelled,
    AppointmentForbidden,
    DependencyError,
    DoctorNotFound,
    PastSlot,
    ScheduleForbidden,
    SlotMismatch,
    SlotNotFound,
    SlotUnavailable,
)
from carebook.db.sql import transaction
from carebook.modules.appointments.models import Appointment
from carebook.modules.appointments.schemas import (
    AppointmentCancelRequest,
    AppointmentCreateRequest,
    AppointmentListParams,
    AppointmentType,
)
from carebook.modules.appointments.service import (
    book_appointment,
    cancel_appointment,
    cancel_appointment_svc,
    get_appointment_by_id,
    get_doctor_appointments,
    get_user_appointments,
    reserve_slot,
)
from carebook.modules.slots.models import SlotStatus, TimeSlot
from carebook.modules.unavailability.service import mark_unavailable
from carebook.modules.users.models import AuditLog

FEE = Decimal("150.00")


async def _reserve(session, people, slot_id, **kwargs):
    async with transaction(session, action="BOOK_APPOINTMENT", user_id=people.patient):
        return await reserve_slot(
            session,
            user_id=kwargs.pop("user_id", people.patient),
            doctor_id=kwargs.pop("doctor_id", people.doctor),
            time_slot_id=slot_id,
            appointment_type="video_call",
            consultation_fee=FEE,
            **kwargs,
        )


async def _slot(session_factory, slot_id) -> TimeSlot:
    async with session_factory() as s:
        return await s.get(TimeSlot, slot_id)


async def _appointment_count(session_factory) -> int:
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(Appointment))).scalar_one()


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, recipient, template_data):
        self.sent.append((recipient, template_data["subject"]))
        if self.fail:
            raise DependencyError("email_delivery_failed", "smtp down")
        return True


class TestReserveSlot:
    @pytest.mark.asyncio
    async def test_reserve_books_slot(self, session, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)

        appt = await _reserve(session, people, slot_id, notes="first visit")

        assert appt.status == "confirmed"
        assert appt.consultation_fee == FEE
        assert appt.notes == "first visit"
        slot = await _slot(session_factory, slot_id)
        assert slot.status == SlotStatus.BOOKED.value
        assert slot.appointment_id == appt.id
        assert slot.booking_type == "video_call"

    @pytest.mark.asyncio
    async def test_unknown_slot(self, session, people):
        with pytest.raises(SlotNotFound):
            await _reserve(session, people, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_booked_slot(self, session, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)
        await _reserve(session, people, slot_id)

        async with session_factory() as other:
            with pytest.raises(SlotUnavailable):
                await _reserve(other, people, slot_id, user_id=people.other_patient)
        assert await _appointment_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_slot_of_another_doctor(self, session, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.other_doctor, future_day)

        with pytest.raises(SlotMismatch):
            await _reserve(session, people, slot_id)
        assert (await _slot(session_factory, slot_id)).status == SlotStatus.AVAILABLE.value

    @pytest.mark.asyncio
    async def test_past_slot_creates_nothing(self, session, session_factory, people, add_slot):
        slot_id = await add_slot(people.doctor, date.today() - timedelta(days=1))

        with pytest.raises(PastSlot):
            await _reserve(session, people, slot_id)

        assert await _appointment_count(session_factory) == 0
        assert (await _slot(session_factory, slot_id)).status == SlotStatus.AVAILABLE.value

    @pytest.mark.asyncio
    async def test_past_is_judged_against_given_clock(self, session, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day, "10:00", "10:30")
        just_after = datetime.combine(future_day, time(10, 1), tzinfo=timezone.utc)

        with pytest.raises(PastSlot):
            await _reserve(session, people, slot_id, now=just_after)

    @pytest.mark.asyncio
    async def test_concurrent_reserves_have_one_winner(self, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)

        async def attempt():
            async with session_factory() as s:
                await _reserve(s, people, slot_id)
            return True

        results = await asyncio.gather(*(attempt() for _ in range(5)), return_exceptions=True)

        assert results.count(True) == 1
        assert sum(isinstance(r, SlotUnavailable) for r in results) == 4
        assert await _appointment_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_failed_reserve_is_audited(self, session, session_factory, people):
        with pytest.raises(SlotNotFound):
            await _reserve(session, people, uuid.uuid4())

        async with session_factory() as s:
            actions = (await s.execute(select(AuditLog.action))).scalars().all()
        assert actions == ["BOOK_APPOINTMENT ROLLBACK"]


class TestCancelAppointment:
    @pytest.mark.asyncio
    async def test_round_trip_restores_slot(self, session, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)
        appt = await _reserve(session, people, slot_id)

        async with transaction(session, action="CANCEL_APPOINTMENT"):
            cancelled = await cancel_appointment(
                session,
                appointment_id=appt.id,
                principal=people.principal("patient"),
                reason="feeling better",
            )

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == "user"
        assert cancelled.cancellation_reason == "feeling better"
        assert cancelled.cancelled_at is not None
        slot = await _slot(session_factory, slot_id)
        assert slot.status == SlotStatus.AVAILABLE.value
        assert slot.booking_type is None
        assert slot.appointment_id is None

    @pytest.mark.asyncio
    async def test_released_slot_can_be_booked_again(self, session, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)
        appt = await _reserve(session, people, slot_id)
        await cancel_appointment_svc(
            session, people.principal("patient"), appt.id, AppointmentCancelRequest()
        )

        async with session_factory() as other:
            again = await _reserve(other, people, slot_id, user_id=people.other_patient)
        assert again.user_id == people.other_patient

    @pytest.mark.asyncio
    async def test_cancel_inside_unavailability_withdraws_slot(
        self, session, session_factory, people, future_day, add_slot
    ):
        slot_id = await add_slot(people.doctor, future_day)
        appt = await _reserve(session, people, slot_id)
        async with transaction(session, action="MARK_UNAVAILABLE"):
            await mark_unavailable(
                session,
                doctor_id=people.doctor,
                start_date=future_day,
                end_date=future_day,
                reason="Sick leave",
                type="sick",
            )

        await cancel_appointment_svc(
            session, people.principal("patient"), appt.id, AppointmentCancelRequest()
        )

        slot = await _slot(session_factory, slot_id)
        assert slot.status == SlotStatus.CANCELLED.value
        assert slot.appointment_id is None
        async with session_factory() as other:
            with pytest.raises(SlotUnavailable):
                await _reserve(other, people, slot_id, user_id=people.other_patient)

    @pytest.mark.asyncio
    async def test_unrelated_user_cannot_cancel(self, session, session_factory, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)
        appt = await _reserve(session, people, slot_id)

        async with session_factory() as other:
            with pytest.raises(AppointmentForbidden):
                await cancel_appointment_svc(
                    other, people.principal("other_patient"), appt.id, AppointmentCancelRequest()
                )

        assert (await _slot(session_factory, slot_id)).status == SlotStatus.BOOKED.value

    @pytest.mark.asyncio
    async def test_cancelled_by_follows_role(self, session, people, future_day, add_slot):
        first = await _reserve(session, people, await add_slot(people.doctor, future_day, "10:00", "10:30"))
        second = await _reserve(session, people, await add_slot(people.doctor, future_day, "11:00", "11:30"))

        by_admin = await cancel_appointment_svc(
            session, people.principal("admin"), first.id, AppointmentCancelRequest()
        )
        by_doctor = await cancel_appointment_svc(
            session, people.principal("doctor"), second.id, AppointmentCancelRequest(reason="sick")
        )

        assert by_admin.cancelled_by == "admin"
        assert by_doctor.cancelled_by == "doctor"

    @pytest.mark.asyncio
    async def test_cannot_cancel_twice(self, session, people, future_day, add_slot):
        appt = await _reserve(session, people, await add_slot(people.doctor, future_day))
        await cancel_appointment_svc(session, people.principal("patient"), appt.id, AppointmentCancelRequest())

        with pytest.raises(AlreadyCancelled):
            await cancel_appointment_svc(
                session, people.principal("patient"), appt.id, AppointmentCancelRequest()
            )


class TestBookAppointment:
    def _payload(self, people, slot_id):
        return AppointmentCreateRequest(
            doctor_id=people.doctor,
            time_slot_id=slot_id,
            appointment_type=AppointmentType.clinic_visit,
            notes="back pain",
        )

    @pytest.mark.asyncio
    async def test_books_and_notifies_both_sides(self, session, people, future_day, add_slot):
        notifier = RecordingNotifier()
        slot_id = await add_slot(people.doctor, future_day)

        appt = await book_appointment(
            session, people.principal("patient"), self._payload(people, slot_id), notifier
        )

        assert appt.status == "confirmed"
        assert appt.consultation_fee == FEE
        assert appt.time_slot.status == SlotStatus.BOOKED.value
        assert [r for r, _ in notifier.sent] == ["pat@example.com", "house@example.com"]

    @pytest.mark.asyncio
    async def test_notifier_failure_keeps_booking(self, session, session_factory, people, future_day, add_slot):
        notifier = RecordingNotifier(fail=True)
        slot_id = await add_slot(people.doctor, future_day)

        appt = await book_appointment(
            session, people.principal("patient"), self._payload(people, slot_id), notifier
        )

        assert len(notifier.sent) == 2
        assert (await _slot(session_factory, slot_id)).appointment_id == appt.id

    @pytest.mark.asyncio
    async def test_only_patients_book(self, session, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)
        with pytest.raises(AppointmentForbidden):
            await book_appointment(session, people.principal("doctor"), self._payload(people, slot_id))

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, session, people, future_day, add_slot):
        slot_id = await add_slot(people.doctor, future_day)
        payload = self._payload(people, slot_id).model_copy(update={"doctor_id": uuid.uuid4()})
        with pytest.raises(DoctorNotFound):
            await book_appointment(session, people.principal("patient"), payload)


class TestAppointmentQueries:
    @pytest.mark.asyncio
    async def test_lists_are_scoped(self, session, people, future_day, add_slot):
        appt = await _reserve(session, people, await add_slot(people.doctor, future_day))
        params = AppointmentListParams()

        mine = await get_user_appointments(session, people.principal("patient"), params)
        theirs = await get_user_appointments(session, people.principal("other_patient"), params)
        doctor_view = await get_doctor_appointments(session, people.principal("doctor"), people.doctor, params)

        assert [a.id for a in mine.items] == [appt.id]
        assert theirs.total == 0
        assert doctor_view.total == 1
        assert mine.items[0].time_slot.date == future_day

    @pytest.mark.asyncio
    async def test_filters(self, session, people, future_day, add_slot):
        await _reserve(session, people, await add_slot(people.doctor, future_day))
        principal = people.principal("doctor")

        by_status = await get_doctor_appointments(
            session, principal, people.doctor, AppointmentListParams(status="cancelled")
        )
        by_date = await get_doctor_appointments(
            session, principal, people.doctor, AppointmentListParams(on_date=future_day)
        )
        assert by_status.total == 0
        assert by_date.total == 1

    @pytest.mark.asyncio
    async def test_other_doctor_cannot_list(self, session, people):
        with pytest.raises(ScheduleForbidden):
            await get_doctor_appointments(
                session, people.principal("other_doctor"), people.doctor, AppointmentListParams()
            )

    @pytest.mark.asyncio
    async def test_get_by_id_checks_access(self, session, people, future_day, add_slot):
        appt = await _reserve(session, people, await add_slot(people.doctor, future_day))

        found = await get_appointment_by_id(session, people.principal("doctor"), appt.id)
        assert found.id == appt.id
        with pytest.raises(AppointmentForbidden):
            await get_appointment_by_id(session, people.principal("other_patient"), appt.id)
