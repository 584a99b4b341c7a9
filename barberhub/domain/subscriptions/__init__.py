"""Subscriptions domain - Plans, client subscriptions and monthly billing automations"""

from .router import router
from .service import SubscriptionService

__all__ = ["router", "SubscriptionService"]
