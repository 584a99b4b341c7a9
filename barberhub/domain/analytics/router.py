"""Analytics router - Churn and revenue predictions"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import Profile
from .schemas import AnalyticsRequest, AnalyticsResponse
from .service import AnalyticsService, predict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    """Dependency injection for AnalyticsService"""
    return AnalyticsService(db)


@router.post("/ai", response_model=AnalyticsResponse)
async def ai_analytics(
    data: AnalyticsRequest,
    current_profile: Profile = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Predictions from supplied patterns, or from stored appointments when none are sent"""
    if data.barbershop_id != current_profile.barbershop_id:
        raise HTTPException(status_code=403, detail="Access denied to this barbershop")

    client_patterns = data.client_patterns
    if client_patterns is None:
        client_patterns = service.client_patterns(data.barbershop_id)
    schedule_insights = data.schedule_insights
    if schedule_insights is None:
        schedule_insights = service.schedule_insights(data.barbershop_id)

    logger.info(
        f"📊 Analytics for barbershop {data.barbershop_id}: "
        f"{len(client_patterns)} client pattern(s), {len(schedule_insights)} schedule insight(s)"
    )
    return AnalyticsResponse(
        predictions=predict(client_patterns, schedule_insights),
        client_patterns=client_patterns,
        schedule_insights=schedule_insights,
    )
