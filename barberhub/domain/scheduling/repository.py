"""Appointment repository - Database operations for scheduling"""

from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, AuditLog, Barbershop, Client, Profile, Service
from ...shared.enums import AppointmentStatus, ProfileRole


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_barbershop(db: Session, barbershop_id: int) -> Optional[Barbershop]:
        return db.query(Barbershop).filter(Barbershop.id == barbershop_id).first()

    @staticmethod
    def get_appointment(db: Session, appointment_id: int, barbershop_id: int) -> Optional[Appointment]:
        """Get a specific appointment scoped to the barbershop"""
        return (
            db.query(Appointment)
            .options(
                joinedload(Appointment.client),
                joinedload(Appointment.barber),
                joinedload(Appointment.service),
            )
            .filter(Appointment.id == appointment_id, Appointment.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def list_for_range(
        db: Session,
        barbershop_id: int,
        start: date,
        end: date,
        barber_id: Optional[int] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> list[Appointment]:
        """Appointments between two dates inclusive, ordered by day and start time"""
        query = db.query(Appointment).filter(
            Appointment.barbershop_id == barbershop_id,
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
        )
        if barber_id is not None:
            query = query.filter(Appointment.barber_id == barber_id)
        if status is not None:
            query = query.filter(Appointment.status == status)
        return query.order_by(
            Appointment.appointment_date, Appointment.start_time, Appointment.id
        ).all()

    @staticmethod
    def busy_ranges(
        db: Session,
        barbershop_id: int,
        barber_id: int,
        day: date,
        exclude_id: Optional[int] = None,
    ) -> list[tuple[time, time]]:
        """(start, end) of the barber's non-cancelled appointments on a day"""
        query = db.query(Appointment.start_time, Appointment.end_time).filter(
            Appointment.barbershop_id == barbershop_id,
            Appointment.barber_id == barber_id,
            Appointment.appointment_date == day,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return [(row.start_time, row.end_time) for row in query.all()]

    @staticmethod
    def find_conflict(
        db: Session,
        barbershop_id: int,
        barber_id: int,
        day: date,
        start: time,
        end: time,
        exclude_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """First non-cancelled appointment of the barber overlapping [start, end)"""
        query = db.query(Appointment).filter(
            Appointment.barbershop_id == barbershop_id,
            Appointment.barber_id == barber_id,
            Appointment.appointment_date == day,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time, Appointment.id).first()

    @staticmethod
    def get_barber(db: Session, barber_id: int, barbershop_id: int) -> Optional[Profile]:
        return (
            db.query(Profile)
            .filter(
                Profile.id == barber_id,
                Profile.barbershop_id == barbershop_id,
                Profile.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def list_barbers(db: Session, barbershop_id: int) -> list[Profile]:
        """Active staff who take appointments (barbers and admins who cut)"""
        return (
            db.query(Profile)
            .filter(
                Profile.barbershop_id == barbershop_id,
                Profile.is_active.is_(True),
                Profile.role.in_([ProfileRole.BARBER, ProfileRole.ADMIN]),
            )
            .order_by(Profile.full_name)
            .all()
        )

    @staticmethod
    def get_service(db: Session, service_id: int, barbershop_id: int) -> Optional[Service]:
        return (
            db.query(Service)
            .filter(Service.id == service_id, Service.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def get_client(db: Session, client_id: int, barbershop_id: int) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def add(db: Session, appointment: Appointment) -> Appointment:
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def delete_with_audit(db: Session, appointment: Appointment, audit: AuditLog) -> None:
        """Physically remove an appointment and record who did it, in one transaction"""
        try:
            db.add(audit)
            db.delete(appointment)
            db.commit()
        except Exception:
            db.rollback()
            raise
