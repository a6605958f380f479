"""Tests for slot materialization from templates and overrides."""

import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from carebook.core.errors import DoctorNotFound, OverrideConflict, ValidationError
from carebook.modules.scheduling import repository as schedules_repo
from carebook.modules.slots.materializer import (
    day_of_week,
    materialize_override,
    materialize_range,
)
from carebook.modules.slots.models import SlotStatus, TimeSlot
from carebook.modules.unavailability import repository as windows_repo

MONDAY = 1


async def _monday_template(session, doctor_id, start="09:00", end="10:00"):
    await schedules_repo.upsert_template(
        session,
        doctor_id=doctor_id,
        day_of_week=MONDAY,
        values={
            "is_available": True,
            "start_time": start,
            "end_time": end,
            "periods": ["Morning"],
        },
    )


async def _slot_count(session, doctor_id, day=None):
    stmt = select(func.count()).select_from(TimeSlot).where(TimeSlot.doctor_id == doctor_id)
    if day is not None:
        stmt = stmt.where(TimeSlot.date == day)
    return (await session.execute(stmt)).scalar_one()


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2030, 1, 6)) == 0  # Sunday
    assert day_of_week(date(2030, 1, 7)) == 1
    assert day_of_week(date(2030, 1, 12)) == 6


class TestMaterializeRange:
    @pytest.mark.asyncio
    async def test_week_materializes_only_template_days(self, session, people, next_monday):
        await _monday_template(session, people.doctor)

        result = await materialize_range(
            session, doctor_id=people.doctor, start=next_monday, end=next_monday + timedelta(days=6)
        )
        await session.commit()

        assert result.candidates == 2
        assert result.inserted == 2
        assert await _slot_count(session, people.doctor) == 2
        rows = (await session.execute(select(TimeSlot).order_by(TimeSlot.start_time))).scalars().all()
        assert [(s.date, s.start_time, s.end_time) for s in rows] == [
            (next_monday, "09:00", "09:30"),
            (next_monday, "09:30", "10:00"),
        ]
        assert all(s.status == SlotStatus.AVAILABLE.value for s in rows)

    @pytest.mark.asyncio
    async def test_second_run_inserts_nothing(self, session, people, next_monday):
        await _monday_template(session, people.doctor)
        end = next_monday + timedelta(days=13)

        await materialize_range(session, doctor_id=people.doctor, start=next_monday, end=end)
        again = await materialize_range(session, doctor_id=people.doctor, start=next_monday, end=end)
        await session.commit()

        assert again.candidates == 4
        assert again.inserted == 0
        assert again.duplicates == 4
        assert await _slot_count(session, people.doctor) == 4

    @pytest.mark.asyncio
    async def test_one_off_window_blocks_date(self, session, people, next_monday):
        await _monday_template(session, people.doctor)
        await windows_repo.create_window(
            session,
            doctor_id=people.doctor,
            start_date=next_monday,
            end_date=next_monday,
            reason="Conference",
            type="conference",
            is_recurring=False,
        )

        result = await materialize_range(
            session, doctor_id=people.doctor, start=next_monday, end=next_monday + timedelta(days=7)
        )

        assert result.blocked_days == [next_monday]
        assert await _slot_count(session, people.doctor, next_monday) == 0
        assert await _slot_count(session, people.doctor, next_monday + timedelta(days=7)) == 2

    @pytest.mark.asyncio
    async def test_recurring_window_blocks_anniversary(self, session, people, next_monday):
        await _monday_template(session, people.doctor)
        # 2000 is a leap year, so any month/day exists
        first_year = date(2000, next_monday.month, next_monday.day)
        await windows_repo.create_window(
            session,
            doctor_id=people.doctor,
            start_date=first_year,
            end_date=first_year,
            reason="Yearly holiday",
            type="holiday",
            is_recurring=True,
        )

        result = await materialize_range(
            session, doctor_id=people.doctor, start=next_monday, end=next_monday
        )
        assert result.inserted == 0
        assert result.blocked_days == [next_monday]

    @pytest.mark.asyncio
    async def test_override_supersedes_template(self, session, people, next_monday):
        await _monday_template(session, people.doctor)
        await schedules_repo.upsert_override(
            session,
            doctor_id=people.doctor,
            day=next_monday,
            values={"opening_time": "14:00", "closing_time": "15:00", "slot_duration": 15},
        )

        await materialize_range(session, doctor_id=people.doctor, start=next_monday, end=next_monday)

        rows = (await session.execute(select(TimeSlot.start_time).order_by(TimeSlot.start_time))).scalars().all()
        assert rows == ["14:00", "14:15", "14:30", "14:45"]

    @pytest.mark.asyncio
    async def test_invalid_ranges(self, session, people, next_monday):
        with pytest.raises(ValidationError):
            await materialize_range(
                session, doctor_id=people.doctor, start=next_monday, end=next_monday - timedelta(days=1)
            )
        with pytest.raises(ValidationError) as exc:
            await materialize_range(
                session, doctor_id=people.doctor, start=next_monday, end=next_monday + timedelta(days=400)
            )
        assert exc.value.code == "date_range_too_long"

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, session, people, next_monday):
        with pytest.raises(DoctorNotFound):
            await materialize_range(session, doctor_id=uuid.uuid4(), start=next_monday, end=next_monday)


class TestMaterializeOverride:
    @pytest.mark.asyncio
    async def test_regenerates_date(self, session, people, next_monday):
        override = await schedules_repo.upsert_override(
            session,
            doctor_id=people.doctor,
            day=next_monday,
            values={"opening_time": "09:00", "closing_time": "10:00", "slot_duration": 30},
        )
        first = await materialize_override(session, doctor_id=people.doctor, override=override)
        assert first.inserted == 2

        override = await schedules_repo.upsert_override(
            session,
            doctor_id=people.doctor,
            day=next_monday,
            values={"slot_duration": 15, "slot_availability": {"9:45 AM": False}},
        )
        second = await materialize_override(session, doctor_id=people.doctor, override=override)

        assert second.inserted == 3
        starts = (await session.execute(
            select(TimeSlot.start_time).where(TimeSlot.date == next_monday).order_by(TimeSlot.start_time)
        )).scalars().all()
        assert starts == ["09:00", "09:15", "09:30"]

    @pytest.mark.asyncio
    async def test_day_off_clears_date(self, session, people, next_monday):
        override = await schedules_repo.upsert_override(
            session,
            doctor_id=people.doctor,
            day=next_monday,
            values={"opening_time": "09:00", "closing_time": "10:00", "slot_duration": 30},
        )
        await materialize_override(session, doctor_id=people.doctor, override=override)
        override = await schedules_repo.upsert_override(
            session, doctor_id=people.doctor, day=next_monday, values={"is_day_available": False}
        )
        await materialize_override(session, doctor_id=people.doctor, override=override)

        assert await _slot_count(session, people.doctor, next_monday) == 0

    @pytest.mark.asyncio
    async def test_refused_while_date_has_bookings(self, session, people, next_monday, add_slot):
        await add_slot(people.doctor, next_monday, "11:00", "11:30", status=SlotStatus.BOOKED)
        override = await schedules_repo.upsert_override(
            session,
            doctor_id=people.doctor,
            day=next_monday,
            values={"opening_time": "09:00", "closing_time": "10:00", "slot_duration": 30},
        )

        with pytest.raises(OverrideConflict):
            await materialize_override(session, doctor_id=people.doctor, override=override)
        await session.rollback()

        assert await _slot_count(session, people.doctor, next_monday) == 1
