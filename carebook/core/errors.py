# carebook/core/errors.py
from __future__ import annotations

from starlette import status


class CarebookError(Exception):
    """
    Base class for domain errors. Routers never catch these one by one;
    the exception handlers in main.py turn them into the error envelope.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "internal_error"

    def __init__(self, code: str | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.code)


# --- taxonomy ---

class ValidationError(CarebookError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "validation_error"


class NotFoundError(CarebookError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class ConflictError(CarebookError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


class ForbiddenError(CarebookError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "forbidden"


class DependencyError(CarebookError):
    """
    An external collaborator (mail server, identity provider) failed.
    Logged by the caller, never surfaced from booking or cancellation.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "dependency_error"


# --- concrete errors ---

class SlotNotFound(NotFoundError):
    default_code = "slot_not_found"


class AppointmentNotFound(NotFoundError):
    default_code = "appointment_not_found"


class DoctorNotFound(NotFoundError):
    default_code = "doctor_not_found"


class PatientNotFound(NotFoundError):
    default_code = "patient_not_found"


class SlotUnavailable(ConflictError):
    default_code = "slot_unavailable"


class AlreadyCancelled(ConflictError):
    default_code = "appointment_already_cancelled"


class OverrideConflict(ConflictError):
    """Date still holds booked slots, so it cannot be regenerated."""

    default_code = "date_has_booked_slots"


class SlotMismatch(ValidationError):
    default_code = "slot_doctor_mismatch"


class PastSlot(ValidationError):
    default_code = "slot_in_past"


class AppointmentForbidden(ForbiddenError):
    default_code = "not_allowed_for_appointment"


class ScheduleForbidden(ForbiddenError):
    default_code = "not_allowed_for_doctor"
