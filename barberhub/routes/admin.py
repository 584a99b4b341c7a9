"""
Admin Routes
Synthetic historical data for demos and load checks
"""

import logging
import random
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import Profile
from ..services.historical_data import GeneratorConfig, HistoricalDataGenerator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class HistoricalDataConfig(BaseModel):
    barbershop_id: int = Field(..., alias="barbershopId")
    clients_to_create: int = Field(..., alias="clientsToCreate", ge=0, le=5000)
    appointments_to_create: int = Field(..., alias="appointmentsToCreate", ge=0, le=50000)
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    preserve_existing: bool = Field(True, alias="preserveExisting")
    seed: Optional[int] = None

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class HistoricalDataRequest(BaseModel):
    config: HistoricalDataConfig


@router.post("/historical-data")
async def generate_historical_data(
    data: HistoricalDataRequest,
    current_profile: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Seed the caller's barbershop with generated clients, appointments and sales"""
    config = data.config
    if config.barbershop_id != current_profile.barbershop_id:
        raise HTTPException(status_code=403, detail="Access denied to this barbershop")

    logger.info(f"🏭 Historical data requested by profile {current_profile.id}: {config.model_dump()}")

    generator = HistoricalDataGenerator(db, rng=random.Random(config.seed))
    report = generator.run(
        GeneratorConfig(
            barbershop_id=config.barbershop_id,
            clients_to_create=config.clients_to_create,
            appointments_to_create=config.appointments_to_create,
            start_date=config.start_date,
            end_date=config.end_date,
            preserve_existing=config.preserve_existing,
        )
    )
    return {"testConfig": config.model_dump(by_alias=True, mode="json"), **report}
