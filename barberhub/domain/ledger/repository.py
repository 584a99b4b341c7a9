"""Ledger repository - Database operations for commands, sales and cash registers"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ...models import (
    Appointment,
    CashMovement,
    CashRegister,
    Client,
    Command,
    CommandItem,
    Commission,
    Product,
    Profile,
    Sale,
    Service,
)
from ...shared.enums import CashRegisterStatus, CommandStatus, CommissionStatus


class LedgerRepository:
    """Repository for ledger database operations"""

    # Commands

    @staticmethod
    def get_command(db: Session, command_id: int, barbershop_id: int, for_update: bool = False) -> Optional[Command]:
        query = (
            db.query(Command)
            .options(selectinload(Command.items))
            .filter(Command.id == command_id, Command.barbershop_id == barbershop_id)
        )
        if for_update:
            query = query.with_for_update(of=Command)
        return query.first()

    @staticmethod
    def get_command_for_appointment(db: Session, appointment_id: int) -> Optional[Command]:
        return db.query(Command).filter(Command.appointment_id == appointment_id).first()

    @staticmethod
    def list_commands(
        db: Session, barbershop_id: int, status: Optional[CommandStatus] = None, limit: int = 100
    ) -> list[Command]:
        query = db.query(Command).filter(Command.barbershop_id == barbershop_id)
        if status is not None:
            query = query.filter(Command.status == status)
        return query.order_by(Command.created_at.desc(), Command.id.desc()).limit(limit).all()

    @staticmethod
    def next_command_number(db: Session, barbershop_id: int) -> int:
        current = (
            db.query(func.max(Command.command_number))
            .filter(Command.barbershop_id == barbershop_id)
            .scalar()
        )
        return (current or 0) + 1

    @staticmethod
    def get_item(db: Session, item_id: int, command_id: int) -> Optional[CommandItem]:
        return (
            db.query(CommandItem)
            .filter(CommandItem.id == item_id, CommandItem.command_id == command_id)
            .first()
        )

    # Catalog

    @staticmethod
    def get_appointment(db: Session, appointment_id: int, barbershop_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def get_service(db: Session, service_id: int, barbershop_id: int) -> Optional[Service]:
        return (
            db.query(Service)
            .filter(Service.id == service_id, Service.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def get_product(db: Session, product_id: int, barbershop_id: int) -> Optional[Product]:
        return (
            db.query(Product)
            .filter(Product.id == product_id, Product.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def get_profile(db: Session, profile_id: int, barbershop_id: int) -> Optional[Profile]:
        return (
            db.query(Profile)
            .filter(Profile.id == profile_id, Profile.barbershop_id == barbershop_id)
            .first()
        )

    # Sales and commissions

    @staticmethod
    def get_sale_for_command(db: Session, command_id: int) -> Optional[Sale]:
        return (
            db.query(Sale)
            .options(selectinload(Sale.items), selectinload(Sale.commissions))
            .filter(Sale.command_id == command_id)
            .first()
        )

    @staticmethod
    def list_sales(
        db: Session, barbershop_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[Sale]:
        query = db.query(Sale).filter(Sale.barbershop_id == barbershop_id)
        if start is not None:
            query = query.filter(Sale.created_at >= start)
        if end is not None:
            query = query.filter(Sale.created_at < end)
        return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    @staticmethod
    def list_commissions(
        db: Session,
        barbershop_id: int,
        barber_id: Optional[int] = None,
        status: Optional[CommissionStatus] = None,
    ) -> list[Commission]:
        query = db.query(Commission).filter(Commission.barbershop_id == barbershop_id)
        if barber_id is not None:
            query = query.filter(Commission.barber_id == barber_id)
        if status is not None:
            query = query.filter(Commission.status == status)
        return query.order_by(Commission.created_at.desc(), Commission.id.desc()).all()

    @staticmethod
    def get_commissions(db: Session, barbershop_id: int, ids: list[int]) -> list[Commission]:
        return (
            db.query(Commission)
            .filter(Commission.barbershop_id == barbershop_id, Commission.id.in_(ids))
            .all()
        )

    # Cash registers

    @staticmethod
    def get_open_register(db: Session, barbershop_id: int, for_update: bool = False) -> Optional[CashRegister]:
        query = db.query(CashRegister).filter(
            CashRegister.barbershop_id == barbershop_id,
            CashRegister.status == CashRegisterStatus.OPEN,
        )
        if for_update:
            query = query.with_for_update()
        return query.order_by(CashRegister.opened_at.desc(), CashRegister.id.desc()).first()

    @staticmethod
    def get_register(db: Session, register_id: int, barbershop_id: int) -> Optional[CashRegister]:
        return (
            db.query(CashRegister)
            .filter(CashRegister.id == register_id, CashRegister.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def list_registers(db: Session, barbershop_id: int, limit: int = 50) -> list[CashRegister]:
        return (
            db.query(CashRegister)
            .filter(CashRegister.barbershop_id == barbershop_id)
            .order_by(CashRegister.opened_at.desc(), CashRegister.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_movements(db: Session, register_id: int) -> list[CashMovement]:
        return (
            db.query(CashMovement)
            .filter(CashMovement.cash_register_id == register_id)
            .order_by(CashMovement.created_at.desc(), CashMovement.id.desc())
            .all()
        )

    @staticmethod
    def list_register_sales(db: Session, register_id: int) -> list[tuple[Sale, Optional[str]]]:
        """Sales taken into a register, with the client's name when there is one"""
        return (
            db.query(Sale, Client.name)
            .outerjoin(Client, Sale.client_id == Client.id)
            .filter(Sale.cash_register_id == register_id)
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .all()
        )
