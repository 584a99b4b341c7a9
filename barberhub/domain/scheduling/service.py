"""Appointment service - Business logic for booking and the schedule grid"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import appointment_key, cache, day_grid_key, invalidate_appointment
from ...models import Appointment, AuditLog, Barbershop, Command, Profile
from ...shared.enums import APPOINTMENT_TRANSITIONS, AppointmentStatus
from . import slots
from .repository import AppointmentRepository
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    DayGridResponse,
    GridCellResponse,
    GridColumnResponse,
)

logger = logging.getLogger(__name__)


def to_response(appointment: Appointment) -> AppointmentResponse:
    response = AppointmentResponse.model_validate(appointment)
    response.client_name = appointment.client.name if appointment.client else None
    response.barber_name = appointment.barber.full_name if appointment.barber else None
    response.service_name = appointment.service.name if appointment.service else None
    return response


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_barbershop(self, barbershop_id: int) -> Barbershop:
        barbershop = self.repo.get_barbershop(self.db, barbershop_id)
        if not barbershop:
            raise HTTPException(status_code=404, detail="Barbershop not found")
        return barbershop

    def get_appointment(self, appointment_id: int, barbershop_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id, barbershop_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    def get_appointment_detail(self, appointment_id: int, barbershop_id: int) -> dict:
        """Appointment as a JSON-ready dict, served from cache when possible"""
        key = appointment_key(appointment_id)
        cached = cache.get(key)
        if cached is not None and cached.get("barbershop_id") == barbershop_id:
            return cached["appointment"]

        payload = to_response(self.get_appointment(appointment_id, barbershop_id)).model_dump(mode="json")
        cache.set(key, {"barbershop_id": barbershop_id, "appointment": payload})
        return payload

    def list_appointments(
        self,
        barbershop_id: int,
        start: date,
        end: Optional[date] = None,
        barber_id: Optional[int] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> list[Appointment]:
        end = end or start
        if end < start:
            raise HTTPException(status_code=400, detail="end date must not be before start date")
        return self.repo.list_for_range(self.db, barbershop_id, start, end, barber_id, status)

    # ------------------------------------------------------------------
    # Grid and availability
    # ------------------------------------------------------------------

    def get_day_grid(self, barbershop_id: int, day: date) -> dict:
        """Multi-barber grid for one day, cached per barbershop and date"""
        key = day_grid_key(barbershop_id, day)
        cached = cache.get(key)
        if cached is not None:
            return cached

        barbershop = self.get_barbershop(barbershop_id)
        barbers = self.repo.list_barbers(self.db, barbershop_id)
        appointments = self.repo.list_for_range(self.db, barbershop_id, day, day)
        grid = slots.build_grid(
            day, barbers, appointments, barbershop.opening_hours, barbershop.slot_interval_minutes
        )

        response = DayGridResponse(
            date=day,
            interval=grid.interval,
            slots=grid.slots,
            columns=[
                GridColumnResponse(
                    barber_id=column.barber_id,
                    barber_name=column.barber_name,
                    cells=[
                        GridCellResponse(
                            time=label,
                            kind=state.kind,
                            appointment_id=state.appointment_id,
                            span=state.span,
                        )
                        for label, state in column.cells
                    ],
                )
                for column in grid.columns
            ],
            appointments=[to_response(a) for a in appointments],
        )
        payload = response.model_dump(mode="json")
        cache.set(key, payload)
        return payload

    def available_times(
        self,
        barbershop_id: int,
        barber_id: int,
        day: date,
        service_id: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[int, list[str]]:
        """Free start times for a barber on a day; returns (duration, times)"""
        barbershop = self.get_barbershop(barbershop_id)
        if not self.repo.get_barber(self.db, barber_id, barbershop_id):
            raise HTTPException(status_code=404, detail="Barber not found")

        if service_id is not None:
            service = self.repo.get_service(self.db, service_id, barbershop_id)
            if not service:
                raise HTTPException(status_code=404, detail="Service not found")
            duration_minutes = service.duration_minutes
        if not duration_minutes or duration_minutes <= 0:
            raise HTTPException(status_code=400, detail="A service or a positive duration is required")

        busy = self.repo.busy_ranges(self.db, barbershop_id, barber_id, day)
        times = slots.available_start_times(
            day,
            barbershop.opening_hours,
            duration_minutes,
            busy,
            barbershop.slot_interval_minutes,
            now=now or datetime.now(),
        )
        return duration_minutes, times

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _check_slot(
        self,
        barbershop: Barbershop,
        barber_id: int,
        day: date,
        start_label: str,
        duration_minutes: int,
        exclude_id: Optional[int] = None,
    ):
        """Derive (start, end) times and reject out-of-hours or overlapping bookings"""
        start_minute = slots.time_to_minutes(start_label)
        end_minute = start_minute + max(duration_minutes, 1)

        window = slots.working_window(day, barbershop.opening_hours)
        if window is None:
            raise HTTPException(status_code=400, detail="Barbershop is closed on this day")
        open_minute, close_minute = window
        if start_minute < open_minute or end_minute > close_minute:
            raise HTTPException(status_code=400, detail="Appointment is outside working hours")
        interval = barbershop.slot_interval_minutes or slots.DEFAULT_SLOT_INTERVAL
        if (start_minute - open_minute) % interval != 0:
            raise HTTPException(
                status_code=400, detail=f"Start time must fall on the {interval}-minute schedule grid"
            )

        if end_minute >= slots.MINUTES_PER_DAY:
            raise HTTPException(status_code=400, detail="Appointment must end before midnight")
        start = slots.label_to_time(slots.minutes_to_time(start_minute))
        end = slots.label_to_time(slots.minutes_to_time(end_minute))

        conflict = self.repo.find_conflict(
            self.db, barbershop.id, barber_id, day, start, end, exclude_id=exclude_id
        )
        if conflict:
            logger.warning(
                f"⚠️ Double booking rejected for barber {barber_id} on {day} {start_label} "
                f"(conflicts with appointment {conflict.id})"
            )
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Barber already has an appointment at this time",
                    "conflicting_appointment_id": conflict.id,
                },
            )
        return start, end

    def create_appointment(self, barbershop_id: int, data: AppointmentCreate) -> Appointment:
        """Book an appointment; end time is derived from the service duration"""
        barbershop = self.get_barbershop(barbershop_id)

        if not self.repo.get_client(self.db, data.client_id, barbershop_id):
            raise HTTPException(status_code=404, detail="Client not found")
        if not self.repo.get_barber(self.db, data.barber_id, barbershop_id):
            raise HTTPException(status_code=404, detail="Barber not found")
        service = self.repo.get_service(self.db, data.service_id, barbershop_id)
        if not service or not service.is_active:
            raise HTTPException(status_code=404, detail="Service not found")

        start, end = self._check_slot(
            barbershop, data.barber_id, data.appointment_date, data.start_time, service.duration_minutes
        )

        appointment = Appointment(
            barbershop_id=barbershop_id,
            client_id=data.client_id,
            barber_id=data.barber_id,
            service_id=data.service_id,
            appointment_date=data.appointment_date,
            start_time=start,
            end_time=end,
            price=data.price if data.price is not None else service.price,
            status=AppointmentStatus.SCHEDULED,
            source=data.source,
            notes=data.notes,
        )
        appointment = self.repo.add(self.db, appointment)
        invalidate_appointment(barbershop_id, appointment.id, appointment.appointment_date)
        logger.info(
            f"📅 Appointment {appointment.id} booked: barber {appointment.barber_id} "
            f"on {appointment.appointment_date} {data.start_time}"
        )
        return appointment

    def update_appointment(
        self, appointment_id: int, barbershop_id: int, data: AppointmentUpdate
    ) -> Appointment:
        """Reschedule or edit; end time is recomputed when start or service changes"""
        appointment = self.get_appointment(appointment_id, barbershop_id)
        status = AppointmentStatus(appointment.status)
        if status.is_terminal:
            raise HTTPException(
                status_code=400, detail=f"Cannot edit a {status.value} appointment"
            )

        old_date = appointment.appointment_date
        barber_id = data.barber_id if data.barber_id is not None else appointment.barber_id
        day = data.appointment_date or appointment.appointment_date
        start_label = data.start_time or slots.normalize_time(appointment.start_time)

        service = appointment.service
        if data.service_id is not None and data.service_id != appointment.service_id:
            service = self.repo.get_service(self.db, data.service_id, barbershop_id)
            if not service or not service.is_active:
                raise HTTPException(status_code=404, detail="Service not found")
        if data.barber_id is not None and not self.repo.get_barber(self.db, barber_id, barbershop_id):
            raise HTTPException(status_code=404, detail="Barber not found")

        timing_changed = (
            barber_id != appointment.barber_id
            or day != appointment.appointment_date
            or start_label != slots.normalize_time(appointment.start_time)
            or service.id != appointment.service_id
        )
        if timing_changed:
            barbershop = self.get_barbershop(barbershop_id)
            start, end = self._check_slot(
                barbershop, barber_id, day, start_label, service.duration_minutes,
                exclude_id=appointment.id,
            )
            appointment.barber_id = barber_id
            appointment.appointment_date = day
            appointment.start_time = start
            appointment.end_time = end
            if service.id != appointment.service_id:
                appointment.service_id = service.id
                appointment.price = service.price

        if data.price is not None:
            appointment.price = data.price
        if data.notes is not None:
            appointment.notes = data.notes

        appointment = self.repo.save(self.db, appointment)
        invalidate_appointment(barbershop_id, appointment.id, old_date, appointment.appointment_date)
        return appointment

    def change_status(
        self, appointment_id: int, barbershop_id: int, new_status: AppointmentStatus
    ) -> Appointment:
        appointment = self.get_appointment(appointment_id, barbershop_id)
        current = AppointmentStatus(appointment.status)

        if new_status == current:
            return appointment
        if new_status not in APPOINTMENT_TRANSITIONS[current]:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot change appointment from {current.value} to {new_status.value}",
            )

        appointment.status = new_status
        appointment = self.repo.save(self.db, appointment)
        invalidate_appointment(barbershop_id, appointment.id, appointment.appointment_date)
        logger.info(f"🔁 Appointment {appointment.id}: {current.value} -> {new_status.value}")
        return appointment

    def cancel_appointment(
        self, appointment_id: int, barbershop_id: int, reason: Optional[str] = None
    ) -> Appointment:
        appointment = self.change_status(appointment_id, barbershop_id, AppointmentStatus.CANCELLED)
        if reason:
            note = f"Cancelled: {reason}"
            appointment.notes = f"{appointment.notes}\n{note}" if appointment.notes else note
            appointment = self.repo.save(self.db, appointment)
        return appointment

    def delete_permanently(self, appointment_id: int, barbershop_id: int, actor: Profile) -> dict:
        """Physically remove an appointment, leaving an audit trail"""
        appointment = self.get_appointment(appointment_id, barbershop_id)

        has_command = (
            self.db.query(Command.id).filter(Command.appointment_id == appointment.id).first()
        )
        if has_command:
            raise HTTPException(
                status_code=409, detail="Appointment has a command and cannot be deleted"
            )

        day = appointment.appointment_date
        audit = AuditLog(
            barbershop_id=barbershop_id,
            actor_id=actor.id,
            action="appointment.permanent_delete",
            entity_type="appointment",
            entity_id=appointment.id,
            details={
                "client_id": appointment.client_id,
                "barber_id": appointment.barber_id,
                "service_id": appointment.service_id,
                "date": day.isoformat(),
                "start_time": slots.normalize_time(appointment.start_time),
                "status": AppointmentStatus(appointment.status).value,
            },
        )
        self.repo.delete_with_audit(self.db, appointment, audit)
        invalidate_appointment(barbershop_id, appointment_id, day)
        logger.info(f"🗑️ Appointment {appointment_id} permanently deleted by profile {actor.id}")
        return {"message": "Appointment deleted"}
