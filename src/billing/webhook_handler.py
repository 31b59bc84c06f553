"""Stripe webhook event routing."""

from typing import Any, Callable, Dict, Optional

from loguru import logger

from billing.stripe_client import StripeService
from utils.metrics import get_metrics_collector


def _billing_handlers(service: StripeService) -> Dict[str, Callable[[Any], Any]]:
    return {
        "checkout.session.completed": service.update_order,
        "customer.subscription.created": service.create_subscription,
        "customer.subscription.updated": service.update_subscription,
        "customer.subscription.deleted": service.delete_subscription,
    }


def _connect_handlers(service: StripeService) -> Dict[str, Callable[[Any], Any]]:
    return {
        "account.updated": service.update_account,
    }


def _dispatch(handlers: Dict[str, Callable[[Any], Any]], event) -> Optional[dict]:
    event_type = event["type"]
    get_metrics_collector().record_webhook_event(event_type)

    handler = handlers.get(event_type)
    if handler is None:
        logger.debug(f"Ignoring Stripe event {event_type} ({event['id']})")
        return {"ok": True}

    logger.info(f"Handling Stripe event {event_type} ({event['id']})")
    result = handler(event)
    return result if isinstance(result, dict) else {"ok": True}


def handle_billing_event(service: StripeService, event) -> Optional[dict]:
    """
    Route a platform-account event to the Stripe service.

    Events created by other services sharing the Stripe account are
    acknowledged without being handled.
    """
    metadata = event["data"]["object"].get("metadata") or {}
    if metadata.get("service") != service.service_name:
        logger.debug(f"Ignoring Stripe event {event['type']} from service {metadata.get('service')!r}")
        return {"ok": True}

    return _dispatch(_billing_handlers(service), event)


def handle_connect_event(service: StripeService, event) -> Optional[dict]:
    """Route a connected-account event to the Stripe service."""
    return _dispatch(_connect_handlers(service), event)
