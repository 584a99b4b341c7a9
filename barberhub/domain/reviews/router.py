"""Reviews router - Public review page and the barbershop's NPS dashboard"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_profile, require_front_desk
from ...database import get_db
from ...models import Profile
from ...rate_limiter import create_rate_limiter
from ...services.evolution_service import EvolutionService
from ..whatsapp.router import get_evolution_service
from .schemas import NPSSummary, PublicBarbershopInfo, ReviewCreate, ReviewRequestResult, ReviewResponse
from .service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reviews"])

review_rate_limit = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="public_review")


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    """Dependency injection for ReviewService"""
    return ReviewService(db)


# ============================================================================
# PUBLIC (no authentication)
# ============================================================================


@router.get("/review/{slug}", response_model=PublicBarbershopInfo)
async def get_review_page(
    slug: str,
    barber: Optional[int] = None,
    service: ReviewService = Depends(get_review_service),
):
    return service.public_info(slug, barber)


@router.post("/review/{slug}", response_model=ReviewResponse, status_code=201)
async def submit_review(
    slug: str,
    data: ReviewCreate,
    client: Optional[int] = None,
    barber: Optional[int] = None,
    appointment: Optional[int] = None,
    _: None = Depends(review_rate_limit),
    service: ReviewService = Depends(get_review_service),
):
    return service.submit(slug, data, client_id=client, barber_id=barber, appointment_id=appointment)


# ============================================================================
# DASHBOARD
# ============================================================================


@router.get("/reviews", response_model=list[ReviewResponse])
async def list_reviews(
    barber_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: ReviewService = Depends(get_review_service),
):
    return service.list_reviews(current_profile.barbershop_id, barber_id, start, end)


@router.get("/reviews/summary", response_model=NPSSummary)
async def review_summary(
    barber_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: ReviewService = Depends(get_review_service),
):
    return service.summary(current_profile.barbershop_id, barber_id, start, end)


@router.post("/reviews/request/{appointment_id}", response_model=ReviewRequestResult)
async def request_review(
    appointment_id: int,
    current_profile: Profile = Depends(require_front_desk),
    service: ReviewService = Depends(get_review_service),
    evolution: EvolutionService = Depends(get_evolution_service),
):
    """Send the review link to the client of a completed appointment"""
    return await service.request_review(appointment_id, current_profile.barbershop_id, evolution)
