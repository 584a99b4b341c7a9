"""Review schemas - Public submission and dashboard listings"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_br_phone


class PublicBarbershopInfo(BaseModel):
    name: str
    slug: str
    address: Optional[str] = None
    barber_name: Optional[str] = None


class ReviewCreate(BaseModel):
    """Schema for a public review submission"""

    nps_score: int = Field(..., ge=0, le=10)
    star_rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)
    client_name: str = Field(..., min_length=1, max_length=255)
    client_phone: str

    @field_validator("client_phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_br_phone(v)

    @field_validator("client_name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class ReviewResponse(BaseModel):
    id: int
    barber_id: Optional[int] = None
    appointment_id: Optional[int] = None
    client_id: Optional[int] = None
    client_name: str
    client_phone: str
    nps_score: int
    star_rating: Optional[int] = None
    review_text: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NPSSummary(BaseModel):
    total: int
    promoters: int
    passives: int
    detractors: int
    nps: float
    average_stars: Optional[float] = None


class ReviewRequestResult(BaseModel):
    success: bool
    review_link: str
    sent: bool
