# carebook/core/responses.py
from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel
from starlette.responses import JSONResponse

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    Success envelope: {"success": true, "data": ...}
    """
    success: bool = True
    data: Optional[T] = None


class ApiError(BaseModel):
    success: bool = False
    error: str
    message: str


def ok(data: T) -> ApiResponse[T]:
    return ApiResponse(success=True, data=data)


def error_response(status_code: int, code: str, message: Optional[str] = None) -> JSONResponse:
    body = ApiError(error=code, message=message or code.replace("_", " "))
    return JSONResponse(body.model_dump(), status_code=status_code)
