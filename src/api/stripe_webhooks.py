"""Stripe webhook endpoints."""

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
import stripe

from api.billing import get_stripe_service
from billing.stripe_client import StripeService
from billing.webhook_handler import handle_billing_event, handle_connect_event
from config.settings import get_settings

router = APIRouter(prefix="/stripe", tags=["stripe"])


def _verify(service: StripeService, payload: bytes, signature: str, secret: str):
    try:
        return service.validate_request(payload, signature, secret)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.warning("Rejected Stripe webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")


@router.post("")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    service: StripeService = Depends(get_stripe_service)
):
    """Handle subscription and checkout events of the platform account."""
    payload = await request.body()
    event = _verify(service, payload, stripe_signature, get_settings().stripe_signing_key)
    return handle_billing_event(service, event)


@router.post("/connect")
async def stripe_connect_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    service: StripeService = Depends(get_stripe_service)
):
    """Handle events of sellers' connected accounts."""
    payload = await request.body()
    event = _verify(service, payload, stripe_signature, get_settings().stripe_signing_key_connect)
    return handle_connect_event(service, event)
