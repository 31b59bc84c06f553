"""Billing API endpoints."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.auth import get_admin_user
from api.schemas import (
    BillingSubscribeRequest,
    CancelResponse,
    CheckResponse,
    PackageResponse,
    ProrateResponse,
    SubscribeResponse,
    SubscriptionResponse,
    UrlResponse,
)
from billing.stripe_client import StripeService
from config.settings import get_settings
from db import get_db, User
from services import MessagesService, OrganizationService, SubscriptionService
from utils.metrics import get_metrics_collector


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db)


def get_stripe_service(db: Session = Depends(get_db)) -> StripeService:
    """Build the Stripe façade over request-scoped persistence services."""
    return StripeService(
        SubscriptionService(db),
        OrganizationService(db),
        MessagesService(db),
    )


def require_billing_enabled() -> None:
    if not get_settings().is_billing_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Billing is disabled")


router = APIRouter(
    prefix="/billing",
    tags=["billing"],
    dependencies=[Depends(require_billing_enabled)],
)


@router.get("/", response_model=Dict[str, List[PackageResponse]])
async def get_packages(
    current_user: User = Depends(get_admin_user),
    service: StripeService = Depends(get_stripe_service)
):
    """Pricing-page packages grouped by recurring interval."""
    return service.get_packages()


@router.get("/subscription", response_model=Optional[SubscriptionResponse])
async def get_subscription(
    current_user: User = Depends(get_admin_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service)
):
    """Current subscription of the user's organization, null on the free tier."""
    subscription = subscriptions.get_subscription(current_user.organization_id)
    return subscription.to_dict() if subscription else None


@router.get("/check/{identifier}", response_model=CheckResponse)
async def check_subscription(
    identifier: str,
    current_user: User = Depends(get_admin_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service)
):
    """Whether Stripe has confirmed the subscribe/cancel request tagged with this id."""
    return {"status": subscriptions.check_subscription(current_user.organization_id, identifier)}


@router.post("/subscribe", response_model=SubscribeResponse, response_model_exclude_none=True)
async def subscribe(
    body: BillingSubscribeRequest,
    current_user: User = Depends(get_admin_user),
    service: StripeService = Depends(get_stripe_service)
):
    """Start a checkout, or switch the current plan in place."""
    result = service.subscribe(current_user.organization_id, body)
    if "url" in result:
        get_metrics_collector().record_checkout("subscription")
    return result


@router.post("/prorate", response_model=ProrateResponse)
async def prorate(
    body: BillingSubscribeRequest,
    current_user: User = Depends(get_admin_user),
    service: StripeService = Depends(get_stripe_service)
):
    """Amount due now when switching to the given plan."""
    return service.prorate(current_user.organization_id, body)


@router.post("/cancel", response_model=CancelResponse)
async def cancel(
    current_user: User = Depends(get_admin_user),
    service: StripeService = Depends(get_stripe_service)
):
    """Toggle cancellation of the subscription at the end of the period."""
    return service.set_to_cancel(current_user.organization_id)


@router.get("/portal", response_model=UrlResponse)
async def billing_portal(
    current_user: User = Depends(get_admin_user),
    service: StripeService = Depends(get_stripe_service)
):
    """Billing portal link to update the payment method."""
    customer = service.get_customer_by_organization_id(current_user.organization_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No billing account yet")

    portal = service.create_billing_portal_link(customer)
    return {"url": portal["url"]}
