# carebook/routers/__init__.py
from . import health
from . import appointments
from . import slots
from . import doctor_schedule

__all__ = ["health", "appointments", "slots", "doctor_schedule"]
