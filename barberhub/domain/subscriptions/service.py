"""Subscription service - Plans, client subscriptions and service consumption"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import ClientSubscription, SubscriptionFinancialRecord, SubscriptionPlan
from ...shared.enums import PaymentStatus, SubscriptionStatus
from .repository import SubscriptionRepository
from .schemas import PlanCreate, PlanUpdate, SubscribeRequest

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class SubscriptionService:
    """Service layer for subscription plans and client subscriptions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SubscriptionRepository()

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def list_plans(self, barbershop_id: int, active_only: bool = False) -> list[SubscriptionPlan]:
        return self.repo.list_plans(self.db, barbershop_id, active_only)

    def get_plan(self, plan_id: int, barbershop_id: int) -> SubscriptionPlan:
        plan = self.repo.get_plan(self.db, plan_id, barbershop_id)
        if not plan:
            raise HTTPException(status_code=404, detail="Subscription plan not found")
        return plan

    def create_plan(self, barbershop_id: int, data: PlanCreate) -> SubscriptionPlan:
        plan = SubscriptionPlan(barbershop_id=barbershop_id, **data.model_dump())
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"✅ Plan {plan.id} '{plan.name}' created for barbershop {barbershop_id}")
        return plan

    def update_plan(self, plan_id: int, barbershop_id: int, data: PlanUpdate) -> SubscriptionPlan:
        plan = self.get_plan(plan_id, barbershop_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(plan, key, value)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def deactivate_plan(self, plan_id: int, barbershop_id: int) -> SubscriptionPlan:
        """Plans are never deleted; existing subscribers keep their terms"""
        plan = self.get_plan(plan_id, barbershop_id)
        plan.is_active = False
        self.db.commit()
        self.db.refresh(plan)
        return plan

    # ------------------------------------------------------------------
    # Client subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, barbershop_id: int, data: SubscribeRequest) -> ClientSubscription:
        plan = self.get_plan(data.plan_id, barbershop_id)
        if not plan.is_active:
            raise HTTPException(status_code=400, detail="Subscription plan is inactive")
        if not self.repo.get_client(self.db, data.client_id, barbershop_id):
            raise HTTPException(status_code=404, detail="Client not found")

        for existing in self.repo.active_for_client(self.db, data.client_id, barbershop_id):
            if existing.plan_id == plan.id:
                raise HTTPException(
                    status_code=409, detail="Client already has an active subscription to this plan"
                )

        start = data.start_date or date.today()
        subscription = ClientSubscription(
            barbershop_id=barbershop_id,
            client_id=data.client_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            remaining_services=plan.included_services_count,
            start_date=start,
            end_date=start + relativedelta(months=data.months) if data.months else None,
            next_billing_date=start + relativedelta(months=1),
        )
        self.db.add(subscription)
        self.db.commit()
        self.db.refresh(subscription)
        logger.info(f"✅ Client {data.client_id} subscribed to plan {plan.id}")
        return subscription

    def cancel(self, subscription_id: int, barbershop_id: int) -> ClientSubscription:
        subscription = self.repo.get_subscription(self.db, subscription_id, barbershop_id)
        if not subscription:
            raise HTTPException(status_code=404, detail="Subscription not found")

        status = SubscriptionStatus(subscription.status)
        if status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
            return subscription
        subscription.status = SubscriptionStatus.CANCELLED
        subscription.cancelled_at = datetime.now()
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def list_for_client(self, client_id: int, barbershop_id: int) -> list[ClientSubscription]:
        return self.repo.list_for_client(self.db, client_id, barbershop_id)

    def list_financial_records(self, barbershop_id: int) -> list[SubscriptionFinancialRecord]:
        return self.repo.list_financial_records(self.db, barbershop_id)

    # ------------------------------------------------------------------
    # Consumption (called from the ledger inside its transaction)
    # ------------------------------------------------------------------

    def find_covering_subscription(
        self, client_id: int, barbershop_id: int, service_id: int, quantity: int = 1
    ) -> Optional[ClientSubscription]:
        """Active subscription whose plan enables the service and still has quota for quantity"""
        for subscription in self.repo.active_for_client(self.db, client_id, barbershop_id):
            plan = subscription.plan
            if not plan or service_id not in (plan.enabled_service_ids or []):
                continue
            if subscription.remaining_services >= quantity:
                return subscription
        return None

    @staticmethod
    def consume(subscription: ClientSubscription, quantity: int = 1) -> None:
        """Use included services; caller commits"""
        if subscription.remaining_services < quantity:
            raise HTTPException(status_code=400, detail="Not enough included services left")
        subscription.remaining_services -= quantity

    def restore(self, subscription_id: int, quantity: int = 1) -> None:
        """Give back included services when a covered item is removed; caller commits"""
        subscription = self.db.get(ClientSubscription, subscription_id)
        if subscription is None:
            return
        restored = subscription.remaining_services + quantity
        if subscription.plan:
            restored = min(restored, subscription.plan.included_services_count)
        subscription.remaining_services = restored

    # ------------------------------------------------------------------
    # Monthly automations
    # ------------------------------------------------------------------

    def reset_monthly_services(self, today: Optional[date] = None, barbershop_id: Optional[int] = None) -> int:
        """Refill included services for subscriptions entering a new billing month"""
        today = today or date.today()
        count = 0
        for subscription in self.repo.due_for_billing(self.db, today, barbershop_id):
            if subscription.plan:
                subscription.remaining_services = subscription.plan.included_services_count
                count += 1
        self.db.commit()
        logger.info(f"🔄 Reset included services for {count} subscriptions")
        return count

    def process_overdue(self, today: Optional[date] = None, barbershop_id: Optional[int] = None) -> int:
        """Expire subscriptions whose end date has passed"""
        today = today or date.today()
        expired = self.repo.overdue(self.db, today, barbershop_id)
        for subscription in expired:
            subscription.status = SubscriptionStatus.EXPIRED
        self.db.commit()
        if expired:
            logger.info(f"⌛ Expired {len(expired)} subscriptions")
        return len(expired)

    def generate_financial_records(
        self, today: Optional[date] = None, barbershop_id: Optional[int] = None
    ) -> int:
        """
        Bill every due subscription once and advance its next billing date.

        Re-running on the same day creates nothing new: billed subscriptions
        move their next billing date forward, and a record for an already billed
        date is never duplicated.
        """
        today = today or date.today()
        created = 0
        for subscription in self.repo.due_for_billing(self.db, today, barbershop_id):
            plan = subscription.plan
            if not plan:
                continue
            billing_date = subscription.next_billing_date
            if not self.repo.financial_record_exists(self.db, subscription.id, billing_date):
                amount = Decimal(plan.monthly_price)
                commission = (amount * Decimal(plan.commission_percentage) / 100).quantize(CENTS)
                self.db.add(
                    SubscriptionFinancialRecord(
                        barbershop_id=subscription.barbershop_id,
                        subscription_id=subscription.id,
                        amount=amount,
                        commission_amount=commission,
                        net_amount=amount - commission,
                        billing_date=billing_date,
                        status=PaymentStatus.PENDING,
                    )
                )
                created += 1
            subscription.next_billing_date = billing_date + relativedelta(months=1)
        self.db.commit()
        logger.info(f"💰 Generated {created} subscription financial records")
        return created

    def run_automations(self, today: Optional[date] = None, barbershop_id: Optional[int] = None) -> dict:
        """Reset quotas before billing advances the dates they depend on"""
        today = today or date.today()
        expired = self.process_overdue(today, barbershop_id)
        reset = self.reset_monthly_services(today, barbershop_id)
        records = self.generate_financial_records(today, barbershop_id)
        return {"reset_services": reset, "expired": expired, "financial_records": records}
