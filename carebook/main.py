# carebook/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from carebook.core.config import settings
from carebook.core.errors import CarebookError
from carebook.core.logging import configure_logging
from carebook.core.responses import error_response
from carebook.db.sql import init_db
from carebook.routers import health, appointments, slots, doctor_schedule

configure_logging()
logger = logging.getLogger(__name__)


# Define lifespan event
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables if they don't exist, then serve.
    """
    await init_db()
    logger.info("Carebook API started (%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="Carebook Appointment Scheduling API",
    lifespan=lifespan,
)


@app.exception_handler(CarebookError)
async def carebook_error_handler(request: Request, exc: CarebookError):
    return error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = exc.detail if isinstance(exc.detail, str) else "http_error"
    return error_response(exc.status_code, code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "invalid request"))
    return error_response(status.HTTP_400_BAD_REQUEST, "validation_error", message)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal server error"
    )


# Routing
app.include_router(health.router, prefix=settings.API_PREFIX, tags=["health"])
app.include_router(appointments.router, prefix=settings.API_PREFIX, tags=["appointments"])
app.include_router(slots.router, prefix=settings.API_PREFIX, tags=["slots"])
app.include_router(doctor_schedule.router, prefix=settings.API_PREFIX, tags=["doctor-schedule"])


@app.get("/")
def root():
    return {"success": True, "data": {"message": "Carebook API running successfully"}}
