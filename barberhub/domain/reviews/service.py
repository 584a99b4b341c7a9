"""Review service - Public NPS collection and the dashboard summary"""

import logging
from typing import Iterable, Optional
from urllib.parse import urlencode

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import FRONTEND_URL
from ...models import Barbershop, PublicClientReview
from ...services.evolution_service import EvolutionService
from ...shared.enums import AppointmentStatus, InstanceStatus
from ...shared.validators import to_whatsapp_number
from ..catalog.repository import CatalogRepository
from ..whatsapp.recovery import REMOTE_ERRORS
from ..whatsapp.repository import WhatsAppRepository
from .repository import ReviewRepository
from .schemas import NPSSummary, PublicBarbershopInfo, ReviewCreate

logger = logging.getLogger(__name__)

REVIEW_REQUEST_TEMPLATE = (
    "Olá {client}! Obrigado por visitar a {barbershop}. "
    "Conte pra gente como foi seu atendimento com {barber}: {link}"
)


def nps_summary(scores: Iterable[int], stars: Iterable[Optional[int]] = ()) -> NPSSummary:
    """Promoters score 9-10, passives 7-8, detractors 0-6; NPS = %promoters - %detractors"""
    scores = list(scores)
    total = len(scores)
    promoters = sum(1 for s in scores if s >= 9)
    detractors = sum(1 for s in scores if s <= 6)
    passives = total - promoters - detractors
    nps = round((promoters - detractors) / total * 100, 1) if total else 0.0

    rated = [s for s in stars if s is not None]
    average_stars = round(sum(rated) / len(rated), 2) if rated else None
    return NPSSummary(
        total=total,
        promoters=promoters,
        passives=passives,
        detractors=detractors,
        nps=nps,
        average_stars=average_stars,
    )


def review_link(barbershop: Barbershop, client_id: int, barber_id: int, appointment_id: int) -> str:
    query = urlencode({"client": client_id, "barber": barber_id, "appointment": appointment_id})
    return f"{FRONTEND_URL.rstrip('/')}/review/{barbershop.slug}?{query}"


class ReviewService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = ReviewRepository()

    def _barbershop(self, slug: str) -> Barbershop:
        barbershop = CatalogRepository.get_barbershop_by_slug(self.db, slug)
        if not barbershop:
            raise HTTPException(status_code=404, detail="Barbershop not found")
        return barbershop

    def public_info(self, slug: str, barber_id: Optional[int] = None) -> PublicBarbershopInfo:
        barbershop = self._barbershop(slug)
        barber = self.repo.get_barber(self.db, barber_id, barbershop.id) if barber_id else None
        return PublicBarbershopInfo(
            name=barbershop.name,
            slug=barbershop.slug,
            address=barbershop.address,
            barber_name=barber.full_name if barber else None,
        )

    def submit(
        self,
        slug: str,
        data: ReviewCreate,
        client_id: Optional[int] = None,
        barber_id: Optional[int] = None,
        appointment_id: Optional[int] = None,
    ) -> PublicClientReview:
        """Store a review; link parameters from another tenant are dropped"""
        barbershop = self._barbershop(slug)

        if barber_id and not self.repo.get_barber(self.db, barber_id, barbershop.id):
            logger.warning(f"⚠️ Review for {slug} referenced foreign barber {barber_id}; ignored")
            barber_id = None
        if client_id and not self.repo.get_client(self.db, client_id, barbershop.id):
            logger.warning(f"⚠️ Review for {slug} referenced foreign client {client_id}; ignored")
            client_id = None
        if appointment_id and not self.repo.get_appointment(self.db, appointment_id, barbershop.id):
            logger.warning(f"⚠️ Review for {slug} referenced foreign appointment {appointment_id}; ignored")
            appointment_id = None

        review = self.repo.create(
            self.db,
            PublicClientReview(
                barbershop_id=barbershop.id,
                barber_id=barber_id,
                appointment_id=appointment_id,
                client_id=client_id,
                client_name=data.client_name,
                client_phone=data.client_phone,
                nps_score=data.nps_score,
                star_rating=data.star_rating,
                review_text=data.comment,
            ),
        )
        logger.info(f"⭐ Review {review.id} received for {slug} (NPS {review.nps_score})")
        return review

    def list_reviews(self, barbershop_id: int, barber_id: Optional[int] = None, start=None, end=None):
        return self.repo.list_reviews(self.db, barbershop_id, barber_id, start, end).all()

    def summary(self, barbershop_id: int, barber_id: Optional[int] = None, start=None, end=None) -> NPSSummary:
        reviews = self.list_reviews(barbershop_id, barber_id, start, end)
        return nps_summary((r.nps_score for r in reviews), (r.star_rating for r in reviews))

    async def request_review(
        self, appointment_id: int, barbershop_id: int, evolution: EvolutionService
    ) -> dict:
        """Send the review link for a completed appointment over WhatsApp"""
        appointment = self.repo.get_appointment(self.db, appointment_id, barbershop_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        if AppointmentStatus(appointment.status) is not AppointmentStatus.COMPLETED:
            raise HTTPException(status_code=400, detail="Reviews can only be requested for completed appointments")
        if not appointment.client.phone:
            raise HTTPException(status_code=400, detail="Client has no phone number")

        barbershop = self.db.get(Barbershop, barbershop_id)
        link = review_link(barbershop, appointment.client_id, appointment.barber_id, appointment.id)

        instance = WhatsAppRepository.get_instance(self.db, barbershop_id)
        if not instance or instance.status != InstanceStatus.CONNECTED:
            logger.info(f"📎 No connected WhatsApp for barbershop {barbershop_id}; returning link only")
            return {"success": True, "review_link": link, "sent": False}

        text = REVIEW_REQUEST_TEMPLATE.format(
            client=appointment.client.name.split(" ")[0],
            barbershop=barbershop.name,
            barber=appointment.barber.full_name,
            link=link,
        )
        try:
            await evolution.send_text(instance.instance_name, to_whatsapp_number(appointment.client.phone), text)
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Review request for appointment {appointment_id} failed: {str(e)}")
            raise HTTPException(status_code=502, detail="Could not send the review request") from e

        logger.info(f"📤 Review request sent for appointment {appointment_id}")
        return {"success": True, "review_link": link, "sent": True}
