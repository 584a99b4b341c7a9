"""Subscription repository - Database operations for plans and client subscriptions"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import (
    Client,
    ClientSubscription,
    SubscriptionFinancialRecord,
    SubscriptionPlan,
)
from ...shared.enums import SubscriptionStatus


class SubscriptionRepository:
    """Repository for subscription database operations"""

    @staticmethod
    def list_plans(db: Session, barbershop_id: int, active_only: bool = False) -> list[SubscriptionPlan]:
        query = db.query(SubscriptionPlan).filter(SubscriptionPlan.barbershop_id == barbershop_id)
        if active_only:
            query = query.filter(SubscriptionPlan.is_active.is_(True))
        return query.order_by(SubscriptionPlan.monthly_price).all()

    @staticmethod
    def get_plan(db: Session, plan_id: int, barbershop_id: int) -> Optional[SubscriptionPlan]:
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.id == plan_id, SubscriptionPlan.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def get_client(db: Session, client_id: int, barbershop_id: int) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.barbershop_id == barbershop_id)
            .first()
        )

    @staticmethod
    def get_subscription(
        db: Session, subscription_id: int, barbershop_id: int
    ) -> Optional[ClientSubscription]:
        return (
            db.query(ClientSubscription)
            .options(joinedload(ClientSubscription.plan))
            .filter(
                ClientSubscription.id == subscription_id,
                ClientSubscription.barbershop_id == barbershop_id,
            )
            .first()
        )

    @staticmethod
    def list_for_client(db: Session, client_id: int, barbershop_id: int) -> list[ClientSubscription]:
        return (
            db.query(ClientSubscription)
            .options(joinedload(ClientSubscription.plan))
            .filter(
                ClientSubscription.client_id == client_id,
                ClientSubscription.barbershop_id == barbershop_id,
            )
            .order_by(ClientSubscription.start_date.desc(), ClientSubscription.id.desc())
            .all()
        )

    @staticmethod
    def active_for_client(db: Session, client_id: int, barbershop_id: int) -> list[ClientSubscription]:
        return (
            db.query(ClientSubscription)
            .options(joinedload(ClientSubscription.plan))
            .filter(
                ClientSubscription.client_id == client_id,
                ClientSubscription.barbershop_id == barbershop_id,
                ClientSubscription.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(ClientSubscription.id)
            .all()
        )

    @staticmethod
    def due_for_billing(db: Session, today: date, barbershop_id: Optional[int] = None) -> list[ClientSubscription]:
        """Active subscriptions whose next billing date has arrived"""
        query = (
            db.query(ClientSubscription)
            .options(joinedload(ClientSubscription.plan))
            .filter(
                ClientSubscription.status == SubscriptionStatus.ACTIVE,
                ClientSubscription.next_billing_date.isnot(None),
                ClientSubscription.next_billing_date <= today,
            )
        )
        if barbershop_id is not None:
            query = query.filter(ClientSubscription.barbershop_id == barbershop_id)
        return query.order_by(ClientSubscription.id).all()

    @staticmethod
    def overdue(db: Session, today: date, barbershop_id: Optional[int] = None) -> list[ClientSubscription]:
        """Active subscriptions whose end date has passed"""
        query = db.query(ClientSubscription).filter(
            ClientSubscription.status == SubscriptionStatus.ACTIVE,
            ClientSubscription.end_date.isnot(None),
            ClientSubscription.end_date < today,
        )
        if barbershop_id is not None:
            query = query.filter(ClientSubscription.barbershop_id == barbershop_id)
        return query.all()

    @staticmethod
    def financial_record_exists(db: Session, subscription_id: int, billing_date: date) -> bool:
        return (
            db.query(SubscriptionFinancialRecord.id)
            .filter(
                SubscriptionFinancialRecord.subscription_id == subscription_id,
                SubscriptionFinancialRecord.billing_date == billing_date,
            )
            .first()
            is not None
        )

    @staticmethod
    def list_financial_records(db: Session, barbershop_id: int) -> list[SubscriptionFinancialRecord]:
        return (
            db.query(SubscriptionFinancialRecord)
            .filter(SubscriptionFinancialRecord.barbershop_id == barbershop_id)
            .order_by(SubscriptionFinancialRecord.billing_date.desc())
            .all()
        )
