# carebook/db/sql.py
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy import insert, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carebook.core.config import settings
from carebook.db.base import Base
from carebook.modules.users.models import AuditLog

logger = logging.getLogger(__name__)


def _engine_kwargs(dsn: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    # SQLite (dev/test) uses its own pool classes, which reject sizing options
    if not dsn.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    return kwargs


engine = create_async_engine(settings.SQL_DSN, **_engine_kwargs(settings.SQL_DSN))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    class_=AsyncSession,
)


_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def upsert_insert(session: AsyncSession, model):
    """INSERT construct that supports ON CONFLICT on the session's dialect."""
    dialect = session.get_bind().dialect.name
    try:
        return _UPSERT_INSERTS[dialect](model)
    except KeyError:
        raise NotImplementedError(f"ON CONFLICT inserts are not supported on {dialect}")


async def write_audit_log(
    session: AsyncSession,
    user_id: uuid.UUID | None,
    action: str,
    details: str | None = None,
) -> None:
    """
    Write an audit log entry, e.g. action="BOOK_APPOINTMENT COMMIT".
    """
    stmt = insert(AuditLog).values(user_id=user_id, action=action, details=details)
    await session.execute(stmt)


@asynccontextmanager
async def transaction(
    session: AsyncSession,
    *,
    action: str,
    user_id: uuid.UUID | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Unit of work: COMMIT when the block finishes, full ROLLBACK on any
    exception. Both outcomes leave an audit row.
    """
    try:
        yield session
        await write_audit_log(
            session, user_id, f"{action} COMMIT", "Operation completed successfully"
        )
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.info("%s rolled back: %r", action, exc)
        # If logging fails, report it but keep the original error
        try:
            await write_audit_log(session, user_id, f"{action} ROLLBACK", str(exc))
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.exception("Audit log write failed for %s", action)
        raise


async def get_session() -> AsyncIterator[AsyncSession]:
    """
    Provide a DB session for each request. Services own their commit
    boundaries through transaction(); anything left open is rolled back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def ping_db() -> bool:
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))
        return True


def import_models() -> None:
    """Import every model module so Base.metadata knows all tables."""
    from carebook.modules.users import models as _users  # noqa: F401
    from carebook.modules.doctors import models as _doctors  # noqa: F401
    from carebook.modules.scheduling import models as _scheduling  # noqa: F401
    from carebook.modules.unavailability import models as _unavailability  # noqa: F401
    from carebook.modules.slots import models as _slots  # noqa: F401
    from carebook.modules.appointments import models as _appointments  # noqa: F401


async def init_db() -> None:
    """
    Initialize database tables
    """
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
