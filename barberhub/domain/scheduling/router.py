"""Scheduling router - FastAPI endpoints for appointments and the day grid"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_profile, require_admin
from ...database import get_db
from ...models import Profile
from ...shared.enums import AppointmentStatus
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    AvailabilityResponse,
    CancelRequest,
    DayGridResponse,
    StatusChange,
)
from .service import AppointmentService, to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


# ============================================================================
# GRID AND AVAILABILITY
# ============================================================================


@router.get("/grid", response_model=DayGridResponse)
async def get_day_grid(
    day: date = Query(..., alias="date"),
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Barbers as columns, slots as rows, each cell start/covered/free"""
    return service.get_day_grid(current_profile.barbershop_id, day)


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    barber_id: int,
    day: date = Query(..., alias="date"),
    service_id: Optional[int] = None,
    duration: Optional[int] = Query(None, gt=0),
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Start times at which the service fits for the barber"""
    duration_minutes, times = service.available_times(
        current_profile.barbershop_id, barber_id, day, service_id, duration
    )
    return AvailabilityResponse(
        barber_id=barber_id, date=day, duration_minutes=duration_minutes, times=times
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[AppointmentResponse])
async def list_appointments(
    start: date,
    end: Optional[date] = None,
    barber_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.list_appointments(
        current_profile.barbershop_id, start, end, barber_id, status
    )
    return [to_response(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment_detail(appointment_id, current_profile.barbershop_id)


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book an appointment (409 when the barber is already busy)"""
    appointment = service.create_appointment(current_profile.barbershop_id, data)
    return to_response(appointment)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.update_appointment(appointment_id, current_profile.barbershop_id, data)
    return to_response(appointment)


# ============================================================================
# STATUS TRANSITIONS
# ============================================================================


@router.post("/{appointment_id}/status", response_model=AppointmentResponse)
async def change_status(
    appointment_id: int,
    data: StatusChange,
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.change_status(appointment_id, current_profile.barbershop_id, data.status)
    return to_response(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: Optional[CancelRequest] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: AppointmentService = Depends(get_appointment_service),
):
    reason = data.reason if data else None
    appointment = service.cancel_appointment(appointment_id, current_profile.barbershop_id, reason)
    return to_response(appointment)


@router.delete("/{appointment_id}")
async def delete_appointment_permanently(
    appointment_id: int,
    current_profile: Profile = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Physically remove the appointment (admins only, audited)"""
    return service.delete_permanently(appointment_id, current_profile.barbershop_id, current_profile)
