# carebook/routers/health.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from carebook.core.responses import ApiResponse, ok
from carebook.db.sql import get_session

router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict])
async def health_root():
    return ok({"status": "ok"})


@router.get("/health/db", response_model=ApiResponse[dict])
async def health_db(session: AsyncSession = Depends(get_session)):
    """
    Validates database connectivity with SELECT 1.
    Returns 503 if no connectivity (useful for readiness/liveness checks).
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        # Don't expose internal details
        raise HTTPException(status_code=503, detail="database_unavailable") from exc
    dialect = session.get_bind().dialect.name
    return ok({"status": "ok", "database": dialect})
