"""Subscription domain schemas - Pydantic models for validation"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ...shared.enums import SubscriptionStatus


class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    monthly_price: Decimal = Field(..., ge=0)
    included_services_count: int = Field(..., ge=0)
    enabled_service_ids: list[int] = Field(default_factory=list)
    commission_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    monthly_price: Optional[Decimal] = Field(None, ge=0)
    included_services_count: Optional[int] = Field(None, ge=0)
    enabled_service_ids: Optional[list[int]] = None
    commission_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class PlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    monthly_price: Decimal
    included_services_count: int
    enabled_service_ids: list[int]
    commission_percentage: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class SubscribeRequest(BaseModel):
    client_id: int
    plan_id: int
    start_date: Optional[date] = None
    months: Optional[int] = Field(None, ge=1, le=36)  # None = open-ended


class ClientSubscriptionResponse(BaseModel):
    id: int
    client_id: int
    plan_id: int
    plan_name: Optional[str] = None
    status: SubscriptionStatus
    remaining_services: int
    start_date: date
    end_date: Optional[date] = None
    next_billing_date: Optional[date] = None

    class Config:
        from_attributes = True


class FinancialRecordResponse(BaseModel):
    id: int
    subscription_id: int
    amount: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    billing_date: date

    class Config:
        from_attributes = True


class AutomationSummary(BaseModel):
    reset_services: int
    expired: int
    financial_records: int
