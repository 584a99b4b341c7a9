"""Ledger domain schemas - Commands, sales, commissions and cash registers"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ...shared.enums import (
    CashMovementType,
    CashRegisterStatus,
    CommandStatus,
    CommissionStatus,
    ItemType,
    PaymentMethod,
    PaymentStatus,
)


class CommandCreate(BaseModel):
    """Open a command for an appointment, or a walk-in command for client + barber"""

    appointment_id: Optional[int] = None
    client_id: Optional[int] = None
    barber_id: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.appointment_id is None and (self.client_id is None or self.barber_id is None):
            raise ValueError("Provide appointment_id, or both client_id and barber_id")
        return self


class CommandItemCreate(BaseModel):
    item_type: ItemType
    service_id: Optional[int] = None
    product_id: Optional[int] = None
    quantity: int = Field(1, ge=1, le=100)
    unit_price: Optional[Decimal] = Field(None, ge=0)  # override catalog price
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)

    @model_validator(mode="after")
    def check_reference(self):
        if self.item_type == ItemType.SERVICE and self.service_id is None:
            raise ValueError("service_id is required for service items")
        if self.item_type == ItemType.PRODUCT and self.product_id is None:
            raise ValueError("product_id is required for product items")
        return self


class CommandItemResponse(BaseModel):
    id: int
    item_type: ItemType
    service_id: Optional[int] = None
    product_id: Optional[int] = None
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    subscription_id: Optional[int] = None

    class Config:
        from_attributes = True


class CommandResponse(BaseModel):
    id: int
    command_number: int
    appointment_id: Optional[int] = None
    client_id: int
    barber_id: int
    status: CommandStatus
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: PaymentStatus
    notes: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: list[CommandItemResponse] = []

    class Config:
        from_attributes = True


class CloseCommandRequest(BaseModel):
    payment_method: PaymentMethod
    discount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class SaleItemResponse(BaseModel):
    id: int
    item_type: ItemType
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    commission_rate: Decimal
    commission_amount: Decimal

    class Config:
        from_attributes = True


class CommissionResponse(BaseModel):
    id: int
    barber_id: int
    sale_id: int
    sale_item_id: int
    commission_type: ItemType
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: CommissionStatus
    paid_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SaleResponse(BaseModel):
    id: int
    command_id: Optional[int] = None
    client_id: Optional[int] = None
    barber_id: Optional[int] = None
    cash_register_id: Optional[int] = None
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    items: list[SaleItemResponse] = []
    commissions: list[CommissionResponse] = []

    class Config:
        from_attributes = True


class MarkCommissionsPaid(BaseModel):
    commission_ids: list[int] = Field(..., min_length=1)


class OpenRegisterRequest(BaseModel):
    opening_balance: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class CloseRegisterRequest(BaseModel):
    closing_balance: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class CashRegisterResponse(BaseModel):
    id: int
    status: CashRegisterStatus
    opening_balance: Decimal
    closing_balance: Optional[Decimal] = None
    total_sales: Decimal
    total_cash: Decimal
    total_card: Decimal
    total_pix: Decimal
    total_multiple: Decimal
    sales_count: int
    total_entries: Decimal = Decimal("0")
    total_exits: Decimal = Decimal("0")
    notes: Optional[str] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RegisterClosingSummary(BaseModel):
    register: CashRegisterResponse
    expected_cash: Decimal
    difference: Decimal
    total_entries: Decimal
    total_exits: Decimal


class CashMovementCreate(BaseModel):
    movement_type: CashMovementType = Field(..., alias="type")
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class CashMovementResponse(BaseModel):
    id: int
    cash_register_id: int
    type: CashMovementType = Field(..., validation_alias="movement_type")
    description: str
    amount: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CashFeedItem(BaseModel):
    """One line of the register statement: a manual movement or a sale taken in"""

    id: int
    source: str
    type: CashMovementType
    description: str
    amount: Decimal
    notes: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    created_at: Optional[datetime] = None
