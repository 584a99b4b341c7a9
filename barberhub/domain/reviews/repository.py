"""Review repository - Database operations for public client reviews"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, Client, Profile, PublicClientReview


class ReviewRepository:
    """Repository for review database operations"""

    @staticmethod
    def get_barber(db: Session, barber_id: int, barbershop_id: int) -> Optional[Profile]:
        return (
            db.query(Profile)
            .filter(Profile.id == barber_id, Profile.barbershop_id == barbershop_id)
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
    def get_appointment(db: Session, appointment_id: int, barbershop_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def list_reviews(
        db: Session,
        barbershop_id: int,
        barber_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ):
        query = db.query(PublicClientReview).filter(PublicClientReview.barbershop_id == barbershop_id)
        if barber_id:
            query = query.filter(PublicClientReview.barber_id == barber_id)
        if start:
            query = query.filter(PublicClientReview.created_at >= start)
        if end:
            query = query.filter(PublicClientReview.created_at < end)
        return query.order_by(PublicClientReview.created_at.desc(), PublicClientReview.id.desc())

    @staticmethod
    def create(db: Session, review: PublicClientReview) -> PublicClientReview:
        db.add(review)
        db.commit()
        db.refresh(review)
        return review
