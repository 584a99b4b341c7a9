"""Ledger router - Commands, sales, commissions and cash register endpoints"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import get_current_profile, require_admin, require_front_desk
from ...database import get_db
from ...models import Profile
from ...shared.enums import CommandStatus, CommissionStatus, ProfileRole
from .cash_register_service import CashRegisterService
from .command_service import CommandService
from .schemas import (
    CashFeedItem,
    CashMovementCreate,
    CashMovementResponse,
    CashRegisterResponse,
    CloseCommandRequest,
    CloseRegisterRequest,
    CommandCreate,
    CommandItemCreate,
    CommandResponse,
    CommissionResponse,
    MarkCommissionsPaid,
    OpenRegisterRequest,
    RegisterClosingSummary,
    SaleResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ledger"])


def get_command_service(db: Session = Depends(get_db)) -> CommandService:
    """Dependency injection for CommandService"""
    return CommandService(db)


def get_cash_register_service(db: Session = Depends(get_db)) -> CashRegisterService:
    """Dependency injection for CashRegisterService"""
    return CashRegisterService(db)


# ============================================================================
# COMMANDS
# ============================================================================


@router.get("/commands", response_model=list[CommandResponse])
async def list_commands(
    status: Optional[CommandStatus] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: CommandService = Depends(get_command_service),
):
    return service.list_commands(current_profile.barbershop_id, status)


@router.post("/commands", response_model=CommandResponse, status_code=201)
async def open_command(
    data: CommandCreate,
    current_profile: Profile = Depends(get_current_profile),
    service: CommandService = Depends(get_command_service),
):
    """Open a command (returns the existing one when the appointment already has it)"""
    return service.open_command(current_profile.barbershop_id, data)


@router.get("/commands/{command_id}", response_model=CommandResponse)
async def get_command(
    command_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: CommandService = Depends(get_command_service),
):
    return service.get_command(command_id, current_profile.barbershop_id)


@router.post("/commands/{command_id}/items", response_model=CommandResponse, status_code=201)
async def add_command_item(
    command_id: int,
    data: CommandItemCreate,
    current_profile: Profile = Depends(get_current_profile),
    service: CommandService = Depends(get_command_service),
):
    return service.add_item(command_id, current_profile.barbershop_id, data)


@router.delete("/commands/{command_id}/items/{item_id}", response_model=CommandResponse)
async def remove_command_item(
    command_id: int,
    item_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: CommandService = Depends(get_command_service),
):
    return service.remove_item(command_id, current_profile.barbershop_id, item_id)


@router.post("/commands/{command_id}/close", response_model=SaleResponse)
async def close_command(
    command_id: int,
    data: CloseCommandRequest,
    current_profile: Profile = Depends(require_front_desk),
    service: CommandService = Depends(get_command_service),
):
    """Close the command into a sale; repeating the call returns the same sale"""
    return service.close_command(command_id, current_profile.barbershop_id, data, current_profile)


# ============================================================================
# SALES AND COMMISSIONS
# ============================================================================


@router.get("/sales", response_model=list[SaleResponse])
async def list_sales(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    current_profile: Profile = Depends(require_front_desk),
    service: CommandService = Depends(get_command_service),
):
    return service.list_sales(current_profile.barbershop_id, start, end)


@router.get("/commissions", response_model=list[CommissionResponse])
async def list_commissions(
    barber_id: Optional[int] = None,
    status: Optional[CommissionStatus] = None,
    current_profile: Profile = Depends(get_current_profile),
    service: CommandService = Depends(get_command_service),
):
    """Barbers only see their own commissions"""
    if current_profile.role is ProfileRole.BARBER:
        if barber_id is not None and barber_id != current_profile.id:
            raise HTTPException(status_code=403, detail="Barbers can only see their own commissions")
        barber_id = current_profile.id
    return service.list_commissions(current_profile.barbershop_id, barber_id, status)


@router.post("/commissions/pay", response_model=list[CommissionResponse])
async def pay_commissions(
    data: MarkCommissionsPaid,
    current_profile: Profile = Depends(require_admin),
    service: CommandService = Depends(get_command_service),
):
    return service.mark_commissions_paid(current_profile.barbershop_id, data.commission_ids)


# ============================================================================
# CASH REGISTER
# ============================================================================


@router.get("/cash-register/current", response_model=Optional[CashRegisterResponse])
async def current_register(
    current_profile: Profile = Depends(require_front_desk),
    service: CashRegisterService = Depends(get_cash_register_service),
):
    return service.current(current_profile.barbershop_id)


@router.get("/cash-register/history", response_model=list[CashRegisterResponse])
async def register_history(
    current_profile: Profile = Depends(require_front_desk),
    service: CashRegisterService = Depends(get_cash_register_service),
):
    return service.history(current_profile.barbershop_id)


@router.post("/cash-register/open", response_model=CashRegisterResponse, status_code=201)
async def open_register(
    data: OpenRegisterRequest,
    current_profile: Profile = Depends(require_front_desk),
    service: CashRegisterService = Depends(get_cash_register_service),
):
    return service.open_register(
        current_profile.barbershop_id, current_profile, data.opening_balance, data.notes
    )


@router.post("/cash-register/close", response_model=RegisterClosingSummary)
async def close_register(
    data: CloseRegisterRequest,
    current_profile: Profile = Depends(require_front_desk),
    service: CashRegisterService = Depends(get_cash_register_service),
):
    register, expected, difference = service.close_register(
        current_profile.barbershop_id, current_profile, data.closing_balance, data.notes
    )
    return RegisterClosingSummary(
        register=CashRegisterResponse.model_validate(register),
        expected_cash=expected,
        difference=difference,
        total_entries=register.total_entries,
        total_exits=register.total_exits,
    )


@router.get("/cash-register/movements", response_model=list[CashFeedItem])
async def list_movements(
    register_id: Optional[int] = None,
    current_profile: Profile = Depends(require_front_desk),
    service: CashRegisterService = Depends(get_cash_register_service),
):
    """Statement of the open register, or of a past one by id"""
    return service.list_movements(current_profile.barbershop_id, register_id)


@router.post("/cash-register/movements", response_model=CashMovementResponse, status_code=201)
async def add_movement(
    data: CashMovementCreate,
    current_profile: Profile = Depends(require_front_desk),
    service: CashRegisterService = Depends(get_cash_register_service),
):
    return service.add_movement(
        current_profile.barbershop_id,
        current_profile,
        data.movement_type,
        data.amount,
        data.description,
        data.notes,
    )
