"""
Tests for the Stripe façade.

Stripe SDK calls are patched; persistence collaborators are mocks.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from billing.stripe_client import StripeService
from db import OrderStatus
from core.exceptions import (
    MissingAPIKeyError,
    OrganizationNotFoundError,
    SubscriptionNotFoundError,
)


def _org(payment_id="cus_123"):
    return SimpleNamespace(id="org_1", name="Acme", payment_id=payment_id)


def _body(billing="PRO", period="MONTHLY"):
    return SimpleNamespace(billing=billing, period=period)


def _event(event_type, obj, **extra):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}, **extra}


ACTIVE_SUBSCRIPTION = {
    "id": "sub_1",
    "cancel_at_period_end": False,
    "items": {"data": [{"id": "si_1"}]},
}


@pytest.fixture
def org_lookup(collaborators):
    org = _org()
    collaborators["organization_service"].get_org_by_id.return_value = org
    return org


@pytest.fixture
def existing_price():
    """Stripe already has the PRO product with a matching monthly price."""
    with patch.object(stripe.Product, "list", return_value={"data": [{"id": "prod_pro", "name": "Pro"}]}), \
            patch.object(stripe.Price, "list", return_value={"data": [
                {"id": "price_year", "unit_amount": 38400, "recurring": {"interval": "year"}},
                {"id": "price_month", "unit_amount": 4000, "recurring": {"interval": "month"}},
            ]}):
        yield


def test_requires_secret_key(collaborators, settings):
    no_key = settings.model_copy(update={"stripe_secret_key": ""})
    with pytest.raises(MissingAPIKeyError):
        StripeService(settings=no_key, **collaborators)


def test_configures_sdk(stripe_service, settings):
    assert stripe.api_key == settings.stripe_secret_key
    assert stripe.api_version == "2024-04-10"


# ==================== Webhook events ====================

def test_validate_request_delegates_to_sdk(stripe_service):
    with patch.object(stripe.Webhook, "construct_event", return_value="event") as construct:
        assert stripe_service.validate_request(b"{}", "sig", "whsec") == "event"
    construct.assert_called_once_with(b"{}", "sig", "whsec")


@pytest.mark.parametrize("obj,expected", [
    ({"payouts_enabled": True, "charges_enabled": True, "requirements": {"disabled_reason": None}}, True),
    ({"payouts_enabled": True, "charges_enabled": False, "requirements": {}}, False),
    ({"payouts_enabled": True, "charges_enabled": True, "requirements": {"disabled_reason": "rejected.fraud"}}, False),
    ({"payouts_enabled": True, "charges_enabled": True}, True),
])
def test_update_account_status(stripe_service, collaborators, obj, expected):
    stripe_service.update_account(_event("account.updated", obj, account="acct_1"))
    collaborators["subscription_service"].update_connected_status.assert_called_once_with("acct_1", expected)


def test_update_account_without_account_is_noop(stripe_service, collaborators):
    stripe_service.update_account(_event("account.updated", {"payouts_enabled": True}))
    collaborators["subscription_service"].update_connected_status.assert_not_called()


def test_create_subscription_uses_tier_channels(stripe_service, collaborators):
    event = _event("customer.subscription.created", {
        "customer": "cus_123",
        "cancel_at": None,
        "metadata": {"service": "gitroom", "billing": "STANDARD", "period": "YEARLY", "uniqueId": "abc"},
    })
    stripe_service.create_subscription(event)
    collaborators["subscription_service"].create_or_update_subscription.assert_called_once_with(
        "abc", "cus_123", 5, "STANDARD", "YEARLY", None
    )


def test_update_subscription_prefers_metadata_id(stripe_service, collaborators):
    event = _event("customer.subscription.updated", {
        "customer": "cus_123",
        "cancel_at": 1767225600,
        "metadata": {"billing": "PRO", "period": "MONTHLY", "id": "new", "uniqueId": "old"},
    })
    stripe_service.update_subscription(event)
    collaborators["subscription_service"].create_or_update_subscription.assert_called_once_with(
        "new", "cus_123", 8, "PRO", "MONTHLY", 1767225600
    )


def test_delete_subscription(stripe_service, collaborators):
    stripe_service.delete_subscription(_event("customer.subscription.deleted", {"customer": "cus_123"}))
    collaborators["subscription_service"].delete_subscription.assert_called_once_with("cus_123")


def test_update_order_ignores_subscription_checkouts(stripe_service, collaborators):
    result = stripe_service.update_order(_event("checkout.session.completed", {"metadata": {"service": "gitroom"}}))
    assert result == {"ok": True}
    collaborators["messages_service"].change_order_status.assert_not_called()


def test_update_order_without_order_id(stripe_service, collaborators):
    result = stripe_service.update_order(_event("checkout.session.completed", {"metadata": {"type": "marketplace"}}))
    assert result is None
    collaborators["messages_service"].change_order_status.assert_not_called()


@pytest.mark.parametrize("latest_charge", ["ch_1", {"id": "ch_1", "object": "charge"}])
def test_update_order_accepts_with_charge(stripe_service, collaborators, latest_charge):
    collaborators["messages_service"].get_order.return_value = SimpleNamespace(status=OrderStatus.PENDING)
    event = _event("checkout.session.completed", {
        "payment_intent": "pi_1",
        "metadata": {"type": "marketplace", "orderId": "order_1", "service": "gitroom"},
    })
    with patch.object(stripe.PaymentIntent, "retrieve", return_value={"latest_charge": latest_charge}) as retrieve:
        assert stripe_service.update_order(event) == {"ok": True}

    retrieve.assert_called_once_with("pi_1")
    collaborators["messages_service"].change_order_status.assert_called_once_with("order_1", "ACCEPTED", "ch_1")


@pytest.mark.parametrize("status", [OrderStatus.ACCEPTED, OrderStatus.COMPLETED, OrderStatus.CANCELED])
def test_update_order_ignores_redelivery(stripe_service, collaborators, status):
    collaborators["messages_service"].get_order.return_value = SimpleNamespace(status=status)
    event = _event("checkout.session.completed", {
        "payment_intent": "pi_1",
        "metadata": {"type": "marketplace", "orderId": "order_1", "service": "gitroom"},
    })
    with patch.object(stripe.PaymentIntent, "retrieve") as retrieve:
        assert stripe_service.update_order(event) == {"ok": True}

    retrieve.assert_not_called()
    collaborators["messages_service"].change_order_status.assert_not_called()


# ==================== Customers and prices ====================

def test_create_or_get_customer_reuses_payment_id(stripe_service, collaborators):
    with patch.object(stripe.Customer, "create") as create:
        assert stripe_service.create_or_get_customer(_org("cus_existing")) == "cus_existing"
    create.assert_not_called()


def test_create_or_get_customer_creates_and_stores(stripe_service, collaborators):
    with patch.object(stripe.Customer, "create", return_value={"id": "cus_new"}):
        assert stripe_service.create_or_get_customer(_org(None)) == "cus_new"
    collaborators["subscription_service"].update_customer_id.assert_called_once_with("org_1", "cus_new")


def test_get_customer_by_organization_id_missing_org(stripe_service, collaborators):
    collaborators["organization_service"].get_org_by_id.return_value = None
    with pytest.raises(OrganizationNotFoundError):
        stripe_service.get_customer_by_organization_id("missing")


def test_get_packages_groups_by_interval(stripe_service):
    prices = {"data": [
        {"product": {"name": "Standard"}, "recurring": {"interval": "month"}, "tiers": [{"unit_amount": 3000}]},
        {"product": {"name": "Pro"}, "recurring": {"interval": "month"}, "tiers": [{"unit_amount": 4000}]},
        {"product": {"name": "Pro"}, "recurring": {"interval": "year"}, "tiers": [{"unit_amount": 38400}]},
    ]}
    with patch.object(stripe.Price, "list", return_value=prices) as list_prices:
        packages = stripe_service.get_packages()

    assert packages == {
        "month": [
            {"name": "Standard", "recurring": "month", "price": 30.0},
            {"name": "Pro", "recurring": "month", "price": 40.0},
        ],
        "year": [{"name": "Pro", "recurring": "year", "price": 384.0}],
    }
    assert list_prices.call_args.kwargs["lookup_keys"] == [
        "standard_monthly", "standard_yearly", "pro_monthly", "pro_yearly"
    ]


def test_find_or_create_price_reuses_existing(stripe_service, existing_price):
    with patch.object(stripe.Product, "create") as create_product, \
            patch.object(stripe.Price, "create") as create_price:
        price = stripe_service.find_or_create_price("PRO", "MONTHLY")

    assert price["id"] == "price_month"
    create_product.assert_not_called()
    create_price.assert_not_called()


def test_find_or_create_price_creates_missing(stripe_service):
    with patch.object(stripe.Product, "list", return_value={"data": [{"id": "prod_x", "name": "Other"}]}), \
            patch.object(stripe.Product, "create", return_value={"id": "prod_std"}) as create_product, \
            patch.object(stripe.Price, "list", return_value={"data": [
                {"id": "old", "unit_amount": 2500, "recurring": {"interval": "month"}},
            ]}), \
            patch.object(stripe.Price, "create", return_value={"id": "price_new"}) as create_price:
        price = stripe_service.find_or_create_price("STANDARD", "MONTHLY")

    assert price["id"] == "price_new"
    assert create_product.call_args.kwargs["name"] == "STANDARD"
    create_price.assert_called_once_with(
        active=True,
        product="prod_std",
        currency="usd",
        nickname="STANDARD MONTHLY",
        unit_amount=3000,
        recurring={"interval": "month"},
    )


def test_find_or_create_price_rejects_unknown_tier(stripe_service):
    with pytest.raises(ValueError):
        stripe_service.find_or_create_price("ENTERPRISE", "MONTHLY")


# ==================== Subscriptions ====================

def test_subscribe_without_subscription_opens_checkout(stripe_service, org_lookup, existing_price):
    with patch.object(stripe.Subscription, "list", return_value={"data": []}), \
            patch.object(stripe.checkout.Session, "create", return_value={"url": "https://checkout"}) as create, \
            patch("billing.stripe_client.make_id", return_value="uniq123456"):
        result = stripe_service.subscribe("org_1", _body())

    assert result == {"url": "https://checkout"}
    kwargs = create.call_args.kwargs
    assert kwargs["customer"] == "cus_123"
    assert kwargs["mode"] == "subscription"
    assert kwargs["success_url"] == "https://app.gitroom.test/billing?check=uniq123456"
    assert kwargs["allow_promotion_codes"] is True
    assert kwargs["line_items"] == [{"price": "price_month", "quantity": 1}]
    assert kwargs["subscription_data"]["metadata"] == {
        "service": "gitroom", "billing": "PRO", "period": "MONTHLY", "uniqueId": "uniq123456"
    }


def test_subscribe_changes_active_subscription(stripe_service, org_lookup, existing_price):
    with patch.object(stripe.Subscription, "list", return_value={"data": [ACTIVE_SUBSCRIPTION]}), \
            patch.object(stripe.Subscription, "modify") as modify, \
            patch("billing.stripe_client.make_id", return_value="chg1234567"):
        result = stripe_service.subscribe("org_1", _body())

    assert result == {"id": "chg1234567"}
    modify.assert_called_once_with(
        "sub_1",
        cancel_at_period_end=False,
        metadata={"service": "gitroom", "billing": "PRO", "period": "MONTHLY", "id": "chg1234567"},
        proration_behavior="always_invoice",
        items=[{"id": "si_1", "price": "price_month", "quantity": 1}],
    )


def test_subscribe_falls_back_to_portal(stripe_service, org_lookup, existing_price):
    refused = stripe.CardError("Your card was declined.", None, "card_declined")
    with patch.object(stripe.Subscription, "list", return_value={"data": [ACTIVE_SUBSCRIPTION]}), \
            patch.object(stripe.Subscription, "modify", side_effect=refused), \
            patch.object(stripe.billing_portal.Session, "create", return_value={"url": "https://portal"}) as portal:
        result = stripe_service.subscribe("org_1", _body())

    assert result == {"portal": "https://portal"}
    flow = portal.call_args.kwargs["flow_data"]
    assert flow["type"] == "payment_method_update"
    assert flow["after_completion"]["redirect"]["return_url"] == "https://app.gitroom.test/billing"


def test_subscribe_unknown_organization(stripe_service, collaborators):
    collaborators["organization_service"].get_org_by_id.return_value = None
    with pytest.raises(OrganizationNotFoundError):
        stripe_service.subscribe("missing", _body())


def test_prorate_returns_amount_remaining(stripe_service, org_lookup, existing_price):
    with patch.object(stripe.Subscription, "list", return_value={"data": [ACTIVE_SUBSCRIPTION]}), \
            patch.object(stripe.Invoice, "upcoming", return_value={"amount_remaining": 1250}) as upcoming:
        assert stripe_service.prorate("org_1", _body()) == {"price": 12.5}

    kwargs = upcoming.call_args.kwargs
    assert kwargs["subscription"] == "sub_1"
    assert kwargs["subscription_proration_behavior"] == "create_prorations"
    assert kwargs["subscription_billing_cycle_anchor"] == "now"
    assert kwargs["subscription_items"] == [{"id": "si_1", "price": "price_month", "quantity": 1}]
    assert isinstance(kwargs["subscription_proration_date"], int)


def test_prorate_is_zero_when_stripe_refuses(stripe_service, org_lookup, existing_price):
    error = stripe.InvalidRequestError("No upcoming invoice", "subscription")
    with patch.object(stripe.Subscription, "list", return_value={"data": [ACTIVE_SUBSCRIPTION]}), \
            patch.object(stripe.Invoice, "upcoming", side_effect=error):
        assert stripe_service.prorate("org_1", _body()) == {"price": 0}


def test_prorate_is_zero_without_subscription(stripe_service, org_lookup, existing_price):
    with patch.object(stripe.Subscription, "list", return_value={"data": []}), \
            patch.object(stripe.Invoice, "upcoming") as upcoming:
        assert stripe_service.prorate("org_1", _body()) == {"price": 0}
    upcoming.assert_not_called()


def test_set_to_cancel_toggles_period_end(stripe_service, org_lookup):
    with patch.object(stripe.Subscription, "list", return_value={"data": [ACTIVE_SUBSCRIPTION]}), \
            patch.object(stripe.Subscription, "modify", return_value={"cancel_at": 1767225600}) as modify, \
            patch("billing.stripe_client.make_id", return_value="cancel1234"):
        result = stripe_service.set_to_cancel("org_1")

    modify.assert_called_once_with(
        "sub_1",
        cancel_at_period_end=True,
        metadata={"service": "gitroom", "id": "cancel1234"},
    )
    assert result == {
        "id": "cancel1234",
        "cancel_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }


def test_set_to_cancel_renewal_has_no_date(stripe_service, org_lookup):
    cancelling = {**ACTIVE_SUBSCRIPTION, "cancel_at_period_end": True}
    with patch.object(stripe.Subscription, "list", return_value={"data": [cancelling]}), \
            patch.object(stripe.Subscription, "modify", return_value={"cancel_at": None}) as modify:
        result = stripe_service.set_to_cancel("org_1")

    assert modify.call_args.kwargs["cancel_at_period_end"] is False
    assert result["cancel_at"] is None


def test_set_to_cancel_without_subscription(stripe_service, org_lookup):
    with patch.object(stripe.Subscription, "list", return_value={"data": []}):
        with pytest.raises(SubscriptionNotFoundError):
            stripe_service.set_to_cancel("org_1")


def test_other_stripe_errors_propagate(stripe_service, org_lookup, existing_price):
    with patch.object(stripe.Subscription, "list", side_effect=stripe.APIConnectionError("network down")):
        with pytest.raises(stripe.APIConnectionError):
            stripe_service.subscribe("org_1", _body())


# ==================== Marketplace ====================

def test_create_account_process_reuses_account(stripe_service, collaborators):
    collaborators["subscription_service"].get_user_account.return_value = SimpleNamespace(account="acct_1")
    with patch.object(stripe.Account, "create") as create, \
            patch.object(stripe.AccountLink, "create", return_value={"url": "https://onboard"}) as link:
        assert stripe_service.create_account_process("user_1", "s@x.test") == {"url": "https://onboard"}

    create.assert_not_called()
    assert link.call_args.kwargs["account"] == "acct_1"
    assert link.call_args.kwargs["type"] == "account_onboarding"
    assert link.call_args.kwargs["refresh_url"] == "https://app.gitroom.test/marketplace/seller"


def test_create_account_process_creates_account(stripe_service, collaborators):
    collaborators["subscription_service"].get_user_account.return_value = SimpleNamespace(account=None)
    with patch.object(stripe.Account, "create", return_value={"id": "acct_new"}) as create, \
            patch.object(stripe.AccountLink, "create", return_value={"url": "https://onboard"}):
        stripe_service.create_account_process("user_1", "s@x.test")

    kwargs = create.call_args.kwargs
    assert kwargs["email"] == "s@x.test"
    assert kwargs["controller"]["stripe_dashboard"] == {"type": "express"}
    assert kwargs["controller"]["fees"] == {"payer": "application"}
    collaborators["subscription_service"].update_account.assert_called_once_with("user_1", "acct_new")


def test_pay_account_step_one_adds_fee(stripe_service):
    items = [
        {"integration_type": "twitter", "quantity": 2, "price": 50},
        {"integration_type": "setup", "quantity": 1, "price": 0},
    ]
    with patch.object(stripe.checkout.Session, "create", return_value={"url": "https://pay"}) as create:
        result = stripe_service.pay_account_step_one(
            "user_1", _org(), SimpleNamespace(id="seller_1"), "order_1", items, "group_1"
        )

    assert result == {"url": "https://pay"}
    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "payment"
    assert kwargs["customer"] == "cus_123"
    assert kwargs["success_url"] == "https://app.gitroom.test/messages/group_1"
    assert kwargs["metadata"] == {"orderId": "order_1", "service": "gitroom", "type": "marketplace"}
    assert kwargs["payment_intent_data"] == {"transfer_group": "order_1"}

    names = [line["price_data"]["product_data"]["name"] for line in kwargs["line_items"]]
    amounts = [line["price_data"]["unit_amount"] for line in kwargs["line_items"]]
    assert names == ["Twitter", "Platform: Setup", "Gitroom fee (5%)"]
    assert amounts == [5000, 0, 500]


def test_payout_transfers_cents(stripe_service):
    with patch.object(stripe.Transfer, "create", return_value={"id": "tr_1"}) as create:
        assert stripe_service.payout("order_1", "ch_1", "acct_1", 100) == {"id": "tr_1"}

    create.assert_called_once_with(
        amount=10000,
        currency="usd",
        destination="acct_1",
        source_transaction="ch_1",
        transfer_group="order_1",
        idempotency_key="payout-order_1",
    )
