"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.enums import AppointmentSource, AppointmentStatus
from ...shared.validators import validate_time_label
from .slots import SlotKind


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment"""

    client_id: int
    barber_id: int
    service_id: int
    appointment_date: date
    start_time: str
    notes: Optional[str] = None
    price: Optional[Decimal] = None  # defaults to the service price
    source: AppointmentSource = AppointmentSource.MANUAL

    @field_validator("start_time")
    @classmethod
    def validate_start(cls, v):
        return validate_time_label(v)


class AppointmentUpdate(BaseModel):
    """Schema for rescheduling or editing an appointment"""

    barber_id: Optional[int] = None
    service_id: Optional[int] = None
    appointment_date: Optional[date] = None
    start_time: Optional[str] = None
    notes: Optional[str] = None
    price: Optional[Decimal] = None

    @field_validator("start_time")
    @classmethod
    def validate_start(cls, v):
        return validate_time_label(v)


class StatusChange(BaseModel):
    status: AppointmentStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    id: int
    client_id: int
    client_name: Optional[str] = None
    barber_id: int
    barber_name: Optional[str] = None
    service_id: int
    service_name: Optional[str] = None
    appointment_date: date
    start_time: time
    end_time: time
    price: Decimal
    status: AppointmentStatus
    source: AppointmentSource
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    barber_id: int
    date: date
    duration_minutes: int
    times: list[str]


class GridCellResponse(BaseModel):
    time: str
    kind: SlotKind
    appointment_id: Optional[int] = None
    span: int = 1


class GridColumnResponse(BaseModel):
    barber_id: int
    barber_name: str
    cells: list[GridCellResponse]


class DayGridResponse(BaseModel):
    date: date
    interval: int
    slots: list[str]
    columns: list[GridColumnResponse]
    appointments: list[AppointmentResponse]
