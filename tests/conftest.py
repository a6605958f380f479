"""Shared fixtures: a file-backed SQLite database per test, seeded people, slot helpers."""

import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carebook.core.permission import Principal
from carebook.db.base import Base
from carebook.db.sql import import_models
from carebook.modules.doctors.models import DoctorProfile
from carebook.modules.slots.models import SlotStatus, TimeSlot
from carebook.modules.users.models import User


@dataclass
class People:
    patient: uuid.UUID
    other_patient: uuid.UUID
    doctor: uuid.UUID
    other_doctor: uuid.UUID
    admin: uuid.UUID

    def principal(self, who: str) -> Principal:
        role = {
            "patient": "patient",
            "other_patient": "patient",
            "doctor": "doctor",
            "other_doctor": "doctor",
            "admin": "admin",
        }[who]
        return Principal(user_id=getattr(self, who), role=role)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Separate connections share one file, so concurrent sessions really race."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'carebook_test.db'}")
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def people(session_factory) -> People:
    ids = {name: uuid.uuid4() for name in People.__dataclass_fields__}
    async with session_factory() as s:
        s.add_all([
            User(id=ids["patient"], email="pat@example.com", first_name="Pat", last_name="Lee", role="patient"),
            User(id=ids["other_patient"], email="sam@example.com", first_name="Sam", last_name="Ray", role="patient"),
            User(id=ids["doctor"], email="house@example.com", first_name="Greg", last_name="House", role="doctor"),
            User(id=ids["other_doctor"], email="wilson@example.com", first_name="James", last_name="Wilson", role="doctor"),
            User(id=ids["admin"], email="admin@example.com", first_name="Ada", last_name="Admin", role="admin"),
        ])
        await s.flush()
        s.add_all([
            DoctorProfile(user_id=ids["doctor"], specialty="Diagnostics", fee=Decimal("150.00")),
            DoctorProfile(user_id=ids["other_doctor"], specialty="Oncology", fee=Decimal("90.00")),
        ])
        await s.commit()
    return People(**ids)


@pytest.fixture
def future_day() -> date:
    return date.today() + timedelta(days=3)


@pytest.fixture
def next_monday() -> date:
    """A Monday at least a week ahead."""
    day = date.today() + timedelta(days=7)
    return day + timedelta(days=(7 - day.weekday()) % 7)


AddSlot = Callable[..., Awaitable[uuid.UUID]]


@pytest.fixture
def add_slot(session_factory) -> AddSlot:
    async def _add(
        doctor_id: uuid.UUID,
        day: date,
        start: str = "10:00",
        end: str = "10:30",
        period: str = "Morning",
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> uuid.UUID:
        async with session_factory() as s:
            slot = TimeSlot(
                doctor_id=doctor_id,
                date=day,
                start_time=start,
                end_time=end,
                period=period,
                status=status.value,
            )
            s.add(slot)
            await s.commit()
            return slot.id

    return _add
