"""Scheduling domain - Slot grid, availability and appointment lifecycle"""

from .router import router
from .service import AppointmentService

__all__ = ["router", "AppointmentService"]
