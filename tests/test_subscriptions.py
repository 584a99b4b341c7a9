from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from barberhub.domain.subscriptions import SubscriptionService
from barberhub.domain.subscriptions.schemas import PlanCreate, SubscribeRequest
from barberhub.models import SubscriptionFinancialRecord
from barberhub.shared.enums import SubscriptionStatus
from conftest import auth_headers


@pytest.fixture
def subscriptions(db):
    return SubscriptionService(db)


@pytest.fixture
def plan(subscriptions, shop, haircut):
    return subscriptions.create_plan(
        shop.id,
        PlanCreate(
            name="Clube do Corte",
            monthly_price=Decimal("100.00"),
            included_services_count=4,
            enabled_service_ids=[haircut.id],
            commission_percentage=Decimal("20"),
        ),
    )


def subscribe(subscriptions, shop, customer, plan, **kwargs):
    return subscriptions.subscribe(
        shop.id, SubscribeRequest(client_id=customer.id, plan_id=plan.id, **kwargs)
    )


def test_subscription_starts_with_full_quota_and_billing_a_month_out(subscriptions, shop, customer, plan):
    subscription = subscribe(subscriptions, shop, customer, plan, start_date=date(2030, 1, 15), months=6)

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.remaining_services == 4
    assert subscription.next_billing_date == date(2030, 2, 15)
    assert subscription.end_date == date(2030, 7, 15)


def test_duplicate_active_subscription_is_rejected(subscriptions, shop, customer, plan):
    subscribe(subscriptions, shop, customer, plan)
    with pytest.raises(HTTPException) as exc:
        subscribe(subscriptions, shop, customer, plan)
    assert exc.value.status_code == 409


def test_inactive_plan_cannot_be_subscribed(subscriptions, shop, customer, plan):
    subscriptions.deactivate_plan(plan.id, shop.id)
    with pytest.raises(HTTPException) as exc:
        subscribe(subscriptions, shop, customer, plan)
    assert exc.value.status_code == 400


def test_automations_reset_quota_and_bill_once(db, subscriptions, shop, customer, plan):
    subscription = subscribe(subscriptions, shop, customer, plan, start_date=date(2030, 1, 15))
    subscription.remaining_services = 1
    db.commit()

    summary = subscriptions.run_automations(today=date(2030, 2, 15))

    assert summary == {"reset_services": 1, "expired": 0, "financial_records": 1}
    db.refresh(subscription)
    assert subscription.remaining_services == 4
    assert subscription.next_billing_date == date(2030, 3, 15)

    record = db.query(SubscriptionFinancialRecord).one()
    assert record.amount == Decimal("100.00")
    assert record.commission_amount == Decimal("20.00")
    assert record.net_amount == Decimal("80.00")
    assert record.billing_date == date(2030, 2, 15)

    again = subscriptions.run_automations(today=date(2030, 2, 15))
    assert again == {"reset_services": 0, "expired": 0, "financial_records": 0}
    assert db.query(SubscriptionFinancialRecord).count() == 1


def test_automations_expire_ended_subscriptions(db, subscriptions, shop, customer, plan):
    subscription = subscribe(subscriptions, shop, customer, plan, start_date=date(2030, 1, 1), months=1)

    summary = subscriptions.run_automations(today=date(2030, 2, 2))

    assert summary["expired"] == 1
    db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.EXPIRED
    assert db.query(SubscriptionFinancialRecord).count() == 0


def test_cancel_is_idempotent(subscriptions, shop, customer, plan):
    subscription = subscribe(subscriptions, shop, customer, plan)

    first = subscriptions.cancel(subscription.id, shop.id)
    second = subscriptions.cancel(subscription.id, shop.id)

    assert first.status == SubscriptionStatus.CANCELLED
    assert second.cancelled_at == first.cancelled_at


def test_plans_endpoint_requires_admin_for_writes(client, shop, barber, admin):
    payload = {"name": "Plano Barba", "monthly_price": "60.00", "included_services_count": 2}

    denied = client.post("/subscriptions/plans", json=payload, headers=auth_headers(barber))
    assert denied.status_code == 403

    created = client.post("/subscriptions/plans", json=payload, headers=auth_headers(admin))
    assert created.status_code == 201
    assert created.json()["included_services_count"] == 2
