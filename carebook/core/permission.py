# carebook/core/permission.py
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from carebook.core.errors import ScheduleForbidden


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as resolved by the identity service."""

    user_id: UUID
    role: str  # "patient" | "doctor" | "admin"
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def ensure_doctor_access(principal: Principal, doctor_id: UUID) -> None:
    """
    Doctor-scoped writes (slot generation, unavailability): the doctor
    themself or an admin.
    """
    if principal.is_admin:
        return
    if principal.role == "doctor" and principal.user_id == doctor_id:
        return
    raise ScheduleForbidden()
