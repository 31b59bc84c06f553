"""Billing and subscription management module."""

from billing.stripe_client import StripeService
from billing.pricing import PRICING, PlanPricing, get_plan
from billing.webhook_handler import (
    handle_billing_event,
    handle_connect_event,
)

__all__ = [
    "StripeService",
    "PRICING",
    "PlanPricing",
    "get_plan",
    "handle_billing_event",
    "handle_connect_event",
]
