"""Stripe service wrapper for subscriptions, checkout and marketplace payouts."""

import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import stripe
from loguru import logger

from billing.marketplace import build_line_items, order_total, to_cents
from billing.pricing import PACKAGE_LOOKUP_KEYS, get_plan, recurring_interval
from config.logging_config import log_function_call
from config.settings import Settings, get_settings
from core.exceptions import (
    MissingAPIKeyError,
    OrganizationNotFoundError,
    SubscriptionNotFoundError,
)
from db.models import Organization, OrderStatus, User
from services import MessagesService, OrganizationService, SubscriptionService
from utils.ids import make_id


class StripeService:
    """
    Façade over the Stripe API.

    Shapes request payloads, calls Stripe, and forwards webhook events to
    the persistence services. Stripe errors propagate to the caller except
    where a method documents a fallback.
    """

    def __init__(
        self,
        subscription_service: SubscriptionService,
        organization_service: OrganizationService,
        messages_service: MessagesService,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        if not self.settings.stripe_secret_key:
            raise MissingAPIKeyError("GITROOM_STRIPE_SECRET_KEY environment variable is required")

        stripe.api_key = self.settings.stripe_secret_key
        stripe.api_version = self.settings.stripe_api_version
        stripe.max_network_retries = self.settings.stripe_max_network_retries

        self._subscriptions = subscription_service
        self._organizations = organization_service
        self._messages = messages_service

    @property
    def service_name(self) -> str:
        return self.settings.service_name

    def _url(self, path: str) -> str:
        return f"{self.settings.frontend_url}{path}"

    def _get_org(self, organization_id: str) -> Organization:
        org = self._organizations.get_org_by_id(organization_id)
        if org is None:
            raise OrganizationNotFoundError(organization_id)
        return org

    @staticmethod
    def _event_object(event) -> Dict[str, Any]:
        return event["data"]["object"]

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def validate_request(self, raw_body: bytes, signature: str, endpoint_secret: str) -> stripe.Event:
        """
        Verify a webhook payload and build the event.

        Raises:
            ValueError: Payload is not valid JSON
            stripe.SignatureVerificationError: Signature does not match the secret
        """
        return stripe.Webhook.construct_event(raw_body, signature, endpoint_secret)

    def update_account(self, event) -> None:
        """Handle account.updated: record whether the connected account can be paid."""
        account = event.get("account")
        if not account:
            return

        data = self._event_object(event)
        requirements = data.get("requirements") or {}
        can_receive = bool(
            data.get("payouts_enabled")
            and data.get("charges_enabled")
            and not requirements.get("disabled_reason")
        )
        self._subscriptions.update_connected_status(account, can_receive)

    def _upsert_subscription(self, event):
        data = self._event_object(event)
        metadata = data.get("metadata") or {}
        billing = metadata["billing"]

        # Checkout sessions tag the subscription with uniqueId, updates with id
        identifier = metadata.get("id") or metadata.get("uniqueId")

        return self._subscriptions.create_or_update_subscription(
            identifier,
            data["customer"],
            get_plan(billing).channel,
            billing,
            metadata["period"],
            data.get("cancel_at")
        )

    def create_subscription(self, event):
        """Handle customer.subscription.created."""
        return self._upsert_subscription(event)

    def update_subscription(self, event):
        """Handle customer.subscription.updated."""
        return self._upsert_subscription(event)

    def delete_subscription(self, event) -> None:
        """Handle customer.subscription.deleted."""
        self._subscriptions.delete_subscription(self._event_object(event)["customer"])

    def update_order(self, event) -> Optional[Dict[str, bool]]:
        """
        Handle checkout.session.completed for marketplace orders.

        Accepts the order and records the charge so it can be paid out
        to the seller later. Orders that are no longer pending are left
        untouched. Subscription checkouts are acknowledged and
        left to the subscription events.
        """
        session = self._event_object(event)
        metadata = session.get("metadata") or {}
        if metadata.get("type") != "marketplace":
            return {"ok": True}

        order_id = metadata.get("orderId")
        if not order_id:
            return None

        # Stripe may deliver the event again after the order moved on
        order = self._messages.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            logger.info(f"Order {order_id} already {order.status.value}, checkout event ignored")
            return {"ok": True}

        payment_intent = stripe.PaymentIntent.retrieve(session["payment_intent"])
        charge = payment_intent.get("latest_charge")
        charge_id = charge if isinstance(charge, str) else (charge or {}).get("id")

        self._messages.change_order_status(order_id, "ACCEPTED", charge_id)
        return {"ok": True}

    # ------------------------------------------------------------------
    # Customers and prices
    # ------------------------------------------------------------------

    def create_or_get_customer(self, organization: Organization) -> str:
        """Get the organization's Stripe customer id, creating the customer on first use."""
        if organization.payment_id:
            return organization.payment_id

        customer = stripe.Customer.create(
            name=organization.name,
            metadata={"service": self.service_name, "organization_id": organization.id}
        )
        self._subscriptions.update_customer_id(organization.id, customer["id"])
        logger.info(f"Created Stripe customer {customer['id']} for organization {organization.id}")
        return customer["id"]

    def get_customer_by_organization_id(self, organization_id: str) -> Optional[str]:
        return self._get_org(organization_id).payment_id

    def get_packages(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        List the pricing-page packages grouped by recurring interval.

        Returns:
            {"month": [{"name", "recurring", "price"}], "year": [...]}
        """
        prices = stripe.Price.list(
            active=True,
            expand=["data.tiers", "data.product"],
            lookup_keys=PACKAGE_LOOKUP_KEYS,
        )

        packages: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for price in prices["data"]:
            product = price.get("product")
            interval = (price.get("recurring") or {}).get("interval")
            tiers = price.get("tiers") or []
            unit_amount = tiers[0].get("unit_amount") if tiers else None

            packages[interval].append({
                "name": product.get("name") if isinstance(product, dict) else None,
                "recurring": interval,
                "price": unit_amount / 100 if unit_amount is not None else None,
            })

        return dict(packages)

    def find_or_create_price(self, billing: str, period: str):
        """
        Find the Stripe price matching a tier and period, creating what is missing.

        The product is matched by name (case-insensitive), the price by
        recurring interval and unit amount from the local price list.
        """
        plan = get_plan(billing)
        interval = recurring_interval(period)
        unit_amount = plan.unit_amount(period)

        products = stripe.Product.list(active=True, limit=100)
        product = next(
            (p for p in products["data"] if p["name"].upper() == billing.upper()),
            None
        )
        if product is None:
            product = stripe.Product.create(
                active=True,
                name=billing,
                metadata={"service": self.service_name}
            )
            logger.info(f"Created Stripe product {product['id']} for {billing}")

        prices = stripe.Price.list(active=True, product=product["id"])
        price = next(
            (
                p for p in prices["data"]
                if ((p.get("recurring") or {}).get("interval") or "").lower() == interval
                and p.get("unit_amount") == unit_amount
            ),
            None
        )
        if price is None:
            price = stripe.Price.create(
                active=True,
                product=product["id"],
                currency="usd",
                nickname=f"{billing} {period}",
                unit_amount=unit_amount,
                recurring={"interval": interval},
            )
            logger.info(f"Created Stripe price {price['id']} for {billing} {period}")

        return price

    def _active_subscriptions(self, customer: str) -> list:
        return stripe.Subscription.list(customer=customer, status="active")["data"]

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def prorate(self, organization_id: str, body) -> Dict[str, float]:
        """
        Preview the amount due when switching the active subscription to a new plan.

        Returns {"price": 0} when there is nothing to prorate or Stripe
        refuses the preview.
        """
        org = self._get_org(organization_id)
        customer = self.create_or_get_customer(org)
        price = self.find_or_create_price(body.billing, body.period)
        proration_date = int(time.time())

        subscriptions = self._active_subscriptions(customer)
        if not subscriptions:
            return {"price": 0}
        current = subscriptions[0]

        try:
            invoice = stripe.Invoice.upcoming(
                customer=customer,
                subscription=current["id"],
                subscription_proration_behavior="create_prorations",
                subscription_billing_cycle_anchor="now",
                subscription_items=[{
                    "id": current["items"]["data"][0]["id"],
                    "price": price["id"],
                    "quantity": 1,
                }],
                subscription_proration_date=proration_date,
            )
        except stripe.StripeError as e:
            logger.warning(f"Proration preview failed for organization {organization_id}: {e}")
            return {"price": 0}

        amount_remaining = invoice.get("amount_remaining")
        return {"price": amount_remaining / 100 if amount_remaining else 0}

    def set_to_cancel(self, organization_id: str) -> Dict[str, Any]:
        """
        Toggle cancellation at period end of the active subscription.

        Returns:
            {"id": metadata id to poll, "cancel_at": UTC datetime or None}
        """
        identifier = make_id(10)
        org = self._get_org(organization_id)
        customer = self.create_or_get_customer(org)

        subscriptions = self._active_subscriptions(customer)
        if not subscriptions:
            raise SubscriptionNotFoundError(
                f"No active subscription for organization {organization_id}",
                {"organization_id": organization_id}
            )
        current = subscriptions[0]

        updated = stripe.Subscription.modify(
            current["id"],
            cancel_at_period_end=not current["cancel_at_period_end"],
            metadata={"service": self.service_name, "id": identifier},
        )

        cancel_at = updated.get("cancel_at")
        logger.info(
            f"Organization {organization_id} subscription "
            f"{'set to cancel' if cancel_at else 'renewed'}"
        )
        return {
            "id": identifier,
            "cancel_at": datetime.fromtimestamp(cancel_at, tz=timezone.utc) if cancel_at else None,
        }

    def create_billing_portal_link(self, customer: str):
        """Billing portal session that lets the customer update their payment method."""
        return stripe.billing_portal.Session.create(
            customer=customer,
            flow_data={
                "after_completion": {
                    "type": "redirect",
                    "redirect": {"return_url": self._url("/billing")},
                },
                "type": "payment_method_update",
            },
        )

    def _create_checkout_session(self, unique_id: str, customer: str, body, price: str) -> Dict[str, str]:
        session = stripe.checkout.Session.create(
            customer=customer,
            success_url=self._url(f"/billing?check={unique_id}"),
            mode="subscription",
            subscription_data={
                "metadata": {
                    "service": self.service_name,
                    "billing": body.billing,
                    "period": body.period,
                    "uniqueId": unique_id,
                },
            },
            allow_promotion_codes=True,
            line_items=[{"price": price, "quantity": 1}],
        )
        return {"url": session["url"]}

    @log_function_call
    def subscribe(self, organization_id: str, body) -> Dict[str, str]:
        """
        Subscribe an organization to a plan, or switch its current plan.

        Returns:
            {"url"} checkout link when there is no active subscription,
            {"id"} metadata id to poll after an in-place plan change,
            {"portal"} billing-portal link when the change was refused
        """
        identifier = make_id(10)
        org = self._get_org(organization_id)
        customer = self.create_or_get_customer(org)
        price = self.find_or_create_price(body.billing, body.period)

        subscriptions = self._active_subscriptions(customer)
        if not subscriptions:
            return self._create_checkout_session(identifier, customer, body, price["id"])
        current = subscriptions[0]

        try:
            stripe.Subscription.modify(
                current["id"],
                cancel_at_period_end=False,
                metadata={
                    "service": self.service_name,
                    "billing": body.billing,
                    "period": body.period,
                    "id": identifier,
                },
                proration_behavior="always_invoice",
                items=[{
                    "id": current["items"]["data"][0]["id"],
                    "price": price["id"],
                    "quantity": 1,
                }],
            )
        except stripe.StripeError as e:
            logger.warning(f"Plan change refused for organization {organization_id}, sending portal link: {e}")
            portal = self.create_billing_portal_link(customer)
            return {"portal": portal["url"]}

        logger.info(f"Organization {organization_id} switched to {body.billing} {body.period}")
        return {"id": identifier}

    # ------------------------------------------------------------------
    # Marketplace
    # ------------------------------------------------------------------

    def create_account_process(self, user_id: str, email: str) -> Dict[str, str]:
        """Onboarding link for a seller, creating their connected account if needed."""
        user = self._subscriptions.get_user_account(user_id)
        account = (user.account if user else None) or self.create_account(user_id, email)
        return {"url": self.add_bank_account(account)}

    @log_function_call
    def create_account(self, user_id: str, email: str) -> str:
        """Create an Express connected account whose fees and losses the platform covers."""
        account = stripe.Account.create(
            controller={
                "stripe_dashboard": {"type": "express"},
                "fees": {"payer": "application"},
                "losses": {"payments": "application"},
            },
            metadata={"service": self.service_name},
            email=email,
        )
        self._subscriptions.update_account(user_id, account["id"])
        logger.info(f"Created connected account {account['id']} for user {user_id}")
        return account["id"]

    def add_bank_account(self, account: str) -> str:
        account_link = stripe.AccountLink.create(
            account=account,
            refresh_url=self._url("/marketplace/seller"),
            return_url=self._url("/marketplace/seller"),
            type="account_onboarding",
        )
        return account_link["url"]

    def pay_account_step_one(
        self,
        user_id: str,
        organization: Organization,
        seller: User,
        order_id: str,
        order_items: Sequence[Dict[str, Any]],
        group_id: str
    ) -> Dict[str, str]:
        """
        Checkout link for the buyer of a marketplace order.

        The platform fee is added on top of the order total. The payment is
        grouped by order id so the seller transfer can be linked to it.
        """
        customer = self.create_or_get_customer(organization)

        session = stripe.checkout.Session.create(
            customer=customer,
            mode="payment",
            currency="usd",
            success_url=self._url(f"/messages/{group_id}"),
            metadata={
                "orderId": order_id,
                "service": self.service_name,
                "type": "marketplace",
            },
            line_items=build_line_items(
                order_items,
                fee_amount=self.settings.fee_amount,
                service_name=self.service_name,
            ),
            payment_intent_data={"transfer_group": order_id},
        )

        logger.info(
            f"User {user_id} started payment of order {order_id} "
            f"({order_total(order_items)} USD) to seller {seller.id}"
        )
        return {"url": session["url"]}

    @log_function_call
    def payout(self, order_id: str, charge: str, account: str, price: float):
        """Transfer the order price to the seller's connected account."""
        return stripe.Transfer.create(
            amount=to_cents(price),
            currency="usd",
            destination=account,
            source_transaction=charge,
            transfer_group=order_id,
            idempotency_key=f"payout-{order_id}",
        )
