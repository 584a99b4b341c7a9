"""Cash register service - Shift sessions and running totals"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import CashMovement, CashRegister, Profile, Sale
from ...shared.enums import CashMovementType, CashRegisterStatus, PaymentMethod
from .repository import LedgerRepository

logger = logging.getLogger(__name__)

# Running-total column fed by each payment method
PAYMENT_BUCKETS: dict[PaymentMethod, str] = {
    PaymentMethod.CASH: "total_cash",
    PaymentMethod.CARD: "total_card",
    PaymentMethod.PIX: "total_pix",
    PaymentMethod.MULTIPLE: "total_multiple",
}


def apply_sale(register: CashRegister, sale: Sale) -> None:
    """Add a sale to the register's running totals; caller commits"""
    amount = Decimal(sale.final_amount)
    bucket = PAYMENT_BUCKETS[PaymentMethod(sale.payment_method)]
    setattr(register, bucket, Decimal(getattr(register, bucket) or 0) + amount)
    register.total_sales = Decimal(register.total_sales or 0) + amount
    register.sales_count = (register.sales_count or 0) + 1


def expected_cash(register: CashRegister) -> Decimal:
    """Opening float plus cash sales and manual entries, less manual exits"""
    return (
        Decimal(register.opening_balance or 0)
        + Decimal(register.total_cash or 0)
        + Decimal(register.total_entries or 0)
        - Decimal(register.total_exits or 0)
    )


class CashRegisterService:
    """Service layer for cash register sessions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = LedgerRepository()

    def current(self, barbershop_id: int) -> Optional[CashRegister]:
        return self.repo.get_open_register(self.db, barbershop_id)

    def history(self, barbershop_id: int) -> list[CashRegister]:
        return self.repo.list_registers(self.db, barbershop_id)

    def open_register(
        self, barbershop_id: int, actor: Profile, opening_balance: Decimal, notes: Optional[str] = None
    ) -> CashRegister:
        if self.repo.get_open_register(self.db, barbershop_id):
            raise HTTPException(status_code=409, detail="A cash register is already open")

        register = CashRegister(
            barbershop_id=barbershop_id,
            opened_by=actor.id,
            status=CashRegisterStatus.OPEN,
            opening_balance=opening_balance,
            notes=notes,
            opened_at=datetime.now(),
        )
        self.db.add(register)
        self.db.commit()
        self.db.refresh(register)
        logger.info(f"💵 Cash register {register.id} opened by profile {actor.id}")
        return register

    def close_register(
        self, barbershop_id: int, actor: Profile, closing_balance: Decimal, notes: Optional[str] = None
    ) -> tuple[CashRegister, Decimal, Decimal]:
        """Close the open register; returns (register, expected cash, difference)"""
        register = self.repo.get_open_register(self.db, barbershop_id, for_update=True)
        if not register:
            raise HTTPException(status_code=404, detail="No open cash register")

        expected = expected_cash(register)
        register.closing_balance = closing_balance
        register.closed_by = actor.id
        register.closed_at = datetime.now()
        register.status = CashRegisterStatus.CLOSED
        if notes:
            register.notes = f"{register.notes}\n{notes}" if register.notes else notes
        self.db.commit()
        self.db.refresh(register)

        difference = Decimal(closing_balance) - expected
        if difference != 0:
            logger.warning(f"⚠️ Cash register {register.id} closed with difference {difference}")
        else:
            logger.info(f"💵 Cash register {register.id} closed balanced")
        return register, expected, difference

    # ------------------------------------------------------------------
    # Manual movements
    # ------------------------------------------------------------------

    def add_movement(
        self,
        barbershop_id: int,
        actor: Profile,
        movement_type: CashMovementType,
        amount: Decimal,
        description: str,
        notes: Optional[str] = None,
    ) -> CashMovement:
        """Record cash put into or taken out of the open register"""
        register = self.repo.get_open_register(self.db, barbershop_id, for_update=True)
        if not register:
            raise HTTPException(status_code=404, detail="No open cash register")
        amount = Decimal(amount)
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Amount must be greater than zero")
        if movement_type is CashMovementType.EXIT and amount > expected_cash(register):
            raise HTTPException(status_code=400, detail="Exit is larger than the cash in the register")

        movement = CashMovement(
            barbershop_id=barbershop_id,
            cash_register_id=register.id,
            movement_type=movement_type,
            description=description,
            amount=amount,
            notes=notes,
            created_by=actor.id,
            created_at=datetime.now(),
        )
        try:
            self.db.add(movement)
            if movement_type is CashMovementType.ENTRY:
                register.total_entries = Decimal(register.total_entries or 0) + amount
            else:
                register.total_exits = Decimal(register.total_exits or 0) + amount
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"❌ Cash movement on register {register.id} failed; rolled back")
            raise

        self.db.refresh(movement)
        logger.info(f"💵 Cash {movement_type.value} of {amount} on register {register.id}: {description}")
        return movement

    def list_movements(self, barbershop_id: int, register_id: Optional[int] = None) -> list[dict]:
        """Register statement, newest first: manual movements plus the sales taken in"""
        if register_id is None:
            register = self.repo.get_open_register(self.db, barbershop_id)
        else:
            register = self.repo.get_register(self.db, register_id, barbershop_id)
        if not register:
            raise HTTPException(status_code=404, detail="Cash register not found")

        feed = [
            {
                "id": m.id,
                "source": "manual",
                "type": m.movement_type,
                "description": m.description,
                "amount": m.amount,
                "notes": m.notes,
                "created_at": m.created_at,
            }
            for m in self.repo.list_movements(self.db, register.id)
        ]
        for sale, client_name in self.repo.list_register_sales(self.db, register.id):
            feed.append(
                {
                    "id": sale.id,
                    "source": "sale",
                    "type": CashMovementType.ENTRY,
                    "description": f"Venda - {client_name or 'Cliente não identificado'}",
                    "amount": sale.final_amount,
                    "payment_method": sale.payment_method,
                    "created_at": sale.created_at,
                }
            )
        feed.sort(key=lambda item: item["created_at"] or datetime.min, reverse=True)
        return feed
