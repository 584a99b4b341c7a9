"""Catalog domain schemas - Barbershop settings, staff, services, products and clients"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.enums import ProfileRole
from ...shared.validators import validate_br_phone, validate_email, validate_slug, validate_time_label
from ..scheduling.slots import WEEKDAYS


class DayHours(BaseModel):
    open: str = "09:00"
    close: str = "18:00"
    closed: bool = False

    @field_validator("open", "close")
    @classmethod
    def validate_label(cls, v):
        return validate_time_label(v)


def check_weekdays(hours):
    if hours is None:
        return hours
    unknown = set(hours) - set(WEEKDAYS)
    if unknown:
        raise ValueError(f"Unknown weekdays: {', '.join(sorted(unknown))}")
    return hours


class BarbershopCreate(BaseModel):
    """Onboarding: creates the barbershop and the caller's admin profile"""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str
    owner_name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[dict[str, DayHours]] = None
    slot_interval_minutes: int = Field(15, ge=5, le=120)

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v):
        return validate_slug(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_br_phone(v) if v else v

    @field_validator("opening_hours")
    @classmethod
    def check_hours(cls, v):
        return check_weekdays(v)


class BarbershopUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[dict[str, DayHours]] = None
    slot_interval_minutes: Optional[int] = Field(None, ge=5, le=120)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_br_phone(v) if v else v

    @field_validator("opening_hours")
    @classmethod
    def check_hours(cls, v):
        return check_weekdays(v)


class BarbershopResponse(BaseModel):
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[dict] = None
    slot_interval_minutes: int

    class Config:
        from_attributes = True


class StaffCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    role: ProfileRole = ProfileRole.BARBER
    commission_rate: Decimal = Field(Decimal("0"), ge=0, le=100)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_br_phone(v) if v else v


class StaffUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: Optional[ProfileRole] = None
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class StaffResponse(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: ProfileRole
    commission_rate: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    duration_minutes: int = Field(..., gt=0, le=600)
    price: Decimal = Field(..., ge=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=600)
    price: Optional[Decimal] = Field(None, ge=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: Decimal
    commission_rate: Optional[Decimal] = None
    is_active: bool

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    stock_quantity: int = Field(0, ge=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[Decimal] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    stock_quantity: int
    commission_rate: Optional[Decimal] = None
    is_active: bool

    class Config:
        from_attributes = True


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_br_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class ClientUpdate(BaseModel):
    """Schema for updating an existing client"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_br_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
