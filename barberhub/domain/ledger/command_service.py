"""Command service - Tabs, line items and closing a tab into a sale"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Command, CommandItem, Commission, Profile, Sale, SaleItem
from ...shared.enums import CommandStatus, CommissionStatus, ItemType, PaymentStatus
from ..subscriptions.service import SubscriptionService
from .cash_register_service import apply_sale
from .repository import LedgerRepository
from .schemas import CloseCommandRequest, CommandCreate, CommandItemCreate

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value or 0).quantize(CENTS)


def commission_for(total_price: Decimal, rate: Decimal) -> Decimal:
    """Barber's share of an item: total * rate / 100, to the cent"""
    return money(Decimal(total_price) * Decimal(rate) / 100)


def recompute_total(command: Command) -> Decimal:
    """Re-sum the items into the denormalized command total"""
    command.total_amount = money(sum((Decimal(i.total_price) for i in command.items), Decimal("0")))
    return command.total_amount


class CommandService:
    """Service layer for commands and their conversion into sales"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = LedgerRepository()
        self.subscriptions = SubscriptionService(db)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def get_command(self, command_id: int, barbershop_id: int) -> Command:
        command = self.repo.get_command(self.db, command_id, barbershop_id)
        if not command:
            raise HTTPException(status_code=404, detail="Command not found")
        return command

    def list_commands(self, barbershop_id: int, status: Optional[CommandStatus] = None) -> list[Command]:
        return self.repo.list_commands(self.db, barbershop_id, status)

    def open_command(self, barbershop_id: int, data: CommandCreate) -> Command:
        """
        Open a command.

        For an appointment the command is created lazily: an existing command for
        that appointment is returned as is.
        """
        if data.appointment_id is not None:
            appointment = self.repo.get_appointment(self.db, data.appointment_id, barbershop_id)
            if not appointment:
                raise HTTPException(status_code=404, detail="Appointment not found")
            existing = self.repo.get_command_for_appointment(self.db, appointment.id)
            if existing:
                return existing
            client_id, barber_id = appointment.client_id, appointment.barber_id
        else:
            client_id, barber_id = data.client_id, data.barber_id
            if not self.repo.get_profile(self.db, barber_id, barbershop_id):
                raise HTTPException(status_code=404, detail="Barber not found")
            if not self.subscriptions.repo.get_client(self.db, client_id, barbershop_id):
                raise HTTPException(status_code=404, detail="Client not found")

        command = Command(
            barbershop_id=barbershop_id,
            appointment_id=data.appointment_id,
            client_id=client_id,
            barber_id=barber_id,
            command_number=self.repo.next_command_number(self.db, barbershop_id),
            status=CommandStatus.OPEN,
            total_amount=Decimal("0"),
            discount_amount=Decimal("0"),
            payment_status=PaymentStatus.PENDING,
            notes=data.notes,
        )
        try:
            self.db.add(command)
            self.db.commit()
        except IntegrityError:
            # Another request opened the same appointment's command first
            self.db.rollback()
            if data.appointment_id is not None:
                existing = self.repo.get_command_for_appointment(self.db, data.appointment_id)
                if existing:
                    return existing
            raise
        self.db.refresh(command)
        logger.info(f"🧾 Command #{command.command_number} opened (id={command.id})")
        return command

    def _require_open(self, command_id: int, barbershop_id: int) -> Command:
        command = self.repo.get_command(self.db, command_id, barbershop_id, for_update=True)
        if not command:
            raise HTTPException(status_code=404, detail="Command not found")
        if CommandStatus(command.status) is CommandStatus.CLOSED:
            raise HTTPException(status_code=400, detail="Command is closed")
        return command

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def _build_item(self, command: Command, data: CommandItemCreate) -> CommandItem:
        barber = self.repo.get_profile(self.db, command.barber_id, command.barbershop_id)
        barber_rate = Decimal(barber.commission_rate) if barber else Decimal("0")

        if data.item_type is ItemType.SERVICE:
            catalog = self.repo.get_service(self.db, data.service_id, command.barbershop_id)
            if not catalog:
                raise HTTPException(status_code=404, detail="Service not found")
        else:
            catalog = self.repo.get_product(self.db, data.product_id, command.barbershop_id)
            if not catalog:
                raise HTTPException(status_code=404, detail="Product not found")

        if data.commission_rate is not None:
            rate = Decimal(data.commission_rate)
        elif catalog.commission_rate is not None:
            rate = Decimal(catalog.commission_rate)
        else:
            rate = barber_rate

        unit_price = money(data.unit_price if data.unit_price is not None else catalog.price)
        return CommandItem(
            item_type=data.item_type,
            service_id=data.service_id if data.item_type is ItemType.SERVICE else None,
            product_id=data.product_id if data.item_type is ItemType.PRODUCT else None,
            name=catalog.name,
            quantity=data.quantity,
            unit_price=unit_price,
            commission_rate=rate,
        )

    def add_item(self, command_id: int, barbershop_id: int, data: CommandItemCreate) -> Command:
        """
        Append an item and recompute the total.

        A service covered by an active subscription with enough remaining quota is
        charged zero and consumes the quota. Insert, quota and total are committed
        together.
        """
        command = self._require_open(command_id, barbershop_id)
        item = self._build_item(command, data)

        try:
            if item.item_type is ItemType.SERVICE:
                subscription = self.subscriptions.find_covering_subscription(
                    command.client_id, barbershop_id, item.service_id, item.quantity
                )
                if subscription:
                    self.subscriptions.consume(subscription, item.quantity)
                    item.unit_price = Decimal("0.00")
                    item.subscription_id = subscription.id
                    logger.info(
                        f"🎟️ Subscription {subscription.id} covers '{item.name}' "
                        f"({subscription.remaining_services} left)"
                    )

            item.total_price = money(Decimal(item.unit_price) * item.quantity)
            item.commission_amount = commission_for(item.total_price, item.commission_rate)
            command.items.append(item)
            recompute_total(command)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"❌ Failed to add item to command {command_id}; rolled back")
            raise

        self.db.refresh(command)
        return command

    def remove_item(self, command_id: int, barbershop_id: int, item_id: int) -> Command:
        """Delete an item, giving back any subscription quota, and recompute the total"""
        command = self._require_open(command_id, barbershop_id)
        item = next((i for i in command.items if i.id == item_id), None)
        if item is None:
            raise HTTPException(status_code=404, detail="Item not found")

        try:
            if item.subscription_id is not None:
                self.subscriptions.restore(item.subscription_id, item.quantity)
            command.items.remove(item)
            recompute_total(command)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"❌ Failed to remove item {item_id} from command {command_id}; rolled back")
            raise

        self.db.refresh(command)
        return command

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close_command(
        self,
        command_id: int,
        barbershop_id: int,
        data: CloseCommandRequest,
        actor: Optional[Profile] = None,
        closed_at: Optional[datetime] = None,
        use_register: bool = True,
    ) -> Sale:
        """
        Close a command into a sale.

        Command status, sale, sale items, commissions and the open register's
        totals are written in one transaction. Closing an already closed command
        returns its existing sale and writes nothing.

        closed_at and use_register=False let backfilled sales keep their
        historical date and stay out of the current register.
        """
        command = self.repo.get_command(self.db, command_id, barbershop_id, for_update=True)
        if not command:
            raise HTTPException(status_code=404, detail="Command not found")

        if CommandStatus(command.status) is CommandStatus.CLOSED:
            existing = self.repo.get_sale_for_command(self.db, command.id)
            if existing:
                logger.info(f"↩️ Command {command.id} already closed; returning sale {existing.id}")
                return existing
            raise HTTPException(status_code=409, detail="Command is closed but has no sale")

        total = recompute_total(command)
        discount = money(data.discount)
        if discount > total:
            raise HTTPException(status_code=400, detail="Discount cannot exceed the command total")
        final = total - discount
        now = closed_at or datetime.now()

        try:
            command.status = CommandStatus.CLOSED
            command.payment_method = data.payment_method
            command.payment_status = PaymentStatus.PAID
            command.discount_amount = discount
            command.final_amount = final
            command.closed_at = now

            sale = Sale(
                barbershop_id=barbershop_id,
                command_id=command.id,
                client_id=command.client_id,
                barber_id=command.barber_id,
                total_amount=total,
                discount_amount=discount,
                final_amount=final,
                payment_method=data.payment_method,
                payment_status=PaymentStatus.PAID,
                notes=data.notes,
                created_by=actor.id if actor else None,
                created_at=now,
            )
            self.db.add(sale)
            self.db.flush()

            for item in command.items:
                sale_item = SaleItem(
                    sale_id=sale.id,
                    item_type=item.item_type,
                    service_id=item.service_id,
                    product_id=item.product_id,
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    commission_rate=item.commission_rate,
                    commission_amount=item.commission_amount,
                )
                self.db.add(sale_item)
                self.db.flush()
                self.db.add(
                    Commission(
                        barbershop_id=barbershop_id,
                        barber_id=command.barber_id,
                        sale_id=sale.id,
                        sale_item_id=sale_item.id,
                        commission_type=item.item_type,
                        base_amount=item.total_price,
                        commission_rate=item.commission_rate,
                        commission_amount=commission_for(item.total_price, item.commission_rate),
                        status=CommissionStatus.PENDING,
                    )
                )

            register = (
                self.repo.get_open_register(self.db, barbershop_id, for_update=True)
                if use_register
                else None
            )
            if register:
                apply_sale(register, sale)
                sale.cash_register_id = register.id

            self.db.commit()
        except IntegrityError:
            # A concurrent close won the unique sale-per-command constraint
            self.db.rollback()
            existing = self.repo.get_sale_for_command(self.db, command_id)
            if existing:
                return existing
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"❌ Closing command {command_id} failed; nothing was written")
            raise

        self.db.refresh(sale)
        logger.info(
            f"✅ Command #{command.command_number} closed: sale {sale.id} "
            f"final={final} via {data.payment_method.value}"
        )
        return sale

    # ------------------------------------------------------------------
    # Sales and commissions
    # ------------------------------------------------------------------

    def list_sales(self, barbershop_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None):
        return self.repo.list_sales(self.db, barbershop_id, start, end)

    def list_commissions(self, barbershop_id: int, barber_id: Optional[int] = None, status=None):
        return self.repo.list_commissions(self.db, barbershop_id, barber_id, status)

    def mark_commissions_paid(self, barbershop_id: int, commission_ids: list[int]):
        commissions = self.repo.get_commissions(self.db, barbershop_id, commission_ids)
        if len(commissions) != len(set(commission_ids)):
            raise HTTPException(status_code=404, detail="One or more commissions not found")

        now = datetime.now()
        for commission in commissions:
            if CommissionStatus(commission.status) is CommissionStatus.PENDING:
                commission.status = CommissionStatus.PAID
                commission.paid_at = now
        self.db.commit()
        return commissions
