"""Subscription router - Plans, client subscriptions and billing automations"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_profile, require_admin
from ...database import get_db
from ...models import ClientSubscription, Profile
from .schemas import (
    AutomationSummary,
    ClientSubscriptionResponse,
    FinancialRecordResponse,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
    SubscribeRequest,
)
from .service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db)


def _subscription_response(subscription: ClientSubscription) -> ClientSubscriptionResponse:
    response = ClientSubscriptionResponse.model_validate(subscription)
    response.plan_name = subscription.plan.name if subscription.plan else None
    return response


# ============================================================================
# PLANS
# ============================================================================


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(
    active_only: bool = False,
    current_profile: Profile = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.list_plans(current_profile.barbershop_id, active_only)


@router.post("/plans", response_model=PlanResponse, status_code=201)
async def create_plan(
    data: PlanCreate,
    current_profile: Profile = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.create_plan(current_profile.barbershop_id, data)


@router.patch("/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    data: PlanUpdate,
    current_profile: Profile = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.update_plan(plan_id, current_profile.barbershop_id, data)


@router.delete("/plans/{plan_id}", response_model=PlanResponse)
async def deactivate_plan(
    plan_id: int,
    current_profile: Profile = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Deactivate a plan (subscribers keep their current terms)"""
    return service.deactivate_plan(plan_id, current_profile.barbershop_id)


# ============================================================================
# CLIENT SUBSCRIPTIONS
# ============================================================================


@router.post("", response_model=ClientSubscriptionResponse, status_code=201)
async def subscribe_client(
    data: SubscribeRequest,
    current_profile: Profile = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return _subscription_response(service.subscribe(current_profile.barbershop_id, data))


@router.get("/clients/{client_id}", response_model=list[ClientSubscriptionResponse])
async def list_client_subscriptions(
    client_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    subscriptions = service.list_for_client(client_id, current_profile.barbershop_id)
    return [_subscription_response(s) for s in subscriptions]


@router.post("/{subscription_id}/cancel", response_model=ClientSubscriptionResponse)
async def cancel_subscription(
    subscription_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return _subscription_response(service.cancel(subscription_id, current_profile.barbershop_id))


# ============================================================================
# AUTOMATIONS AND BILLING
# ============================================================================


@router.get("/financial-records", response_model=list[FinancialRecordResponse])
async def list_financial_records(
    current_profile: Profile = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.list_financial_records(current_profile.barbershop_id)


@router.post("/automations/run", response_model=AutomationSummary)
async def run_automations(
    current_profile: Profile = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Run the monthly automations now for this barbershop (the worker runs them daily)"""
    summary = service.run_automations(barbershop_id=current_profile.barbershop_id)
    logger.info(f"📊 Subscription automations for barbershop {current_profile.barbershop_id}: {summary}")
    return summary
