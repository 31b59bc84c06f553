"""
Shared fixtures: in-memory database, seeded organizations and users, API client.
"""

import hashlib
import hmac
import json
import os
import time

# Settings are read at import time by the database module
os.environ["GITROOM_JWT_SECRET"] = "k3y-for-tests-0123456789abcdefghijklmnop"
os.environ["GITROOM_DATABASE_URL"] = "sqlite://"
os.environ["GITROOM_STRIPE_SECRET_KEY"] = "sk_test_gitroom"
os.environ["GITROOM_STRIPE_SIGNING_KEY"] = "whsec_billing_test"
os.environ["GITROOM_STRIPE_SIGNING_KEY_CONNECT"] = "whsec_connect_test"
os.environ["GITROOM_FRONTEND_URL"] = "https://app.gitroom.test"
os.environ["GITROOM_FEE_AMOUNT"] = "0.05"

import pytest
from unittest.mock import MagicMock

from config.settings import get_settings, reload_settings
from db import Base, engine, SessionLocal, get_db, Organization, User, Role


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def organization(db_session):
    org = Organization(name="Acme")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def customer_organization(db_session):
    """Organization that already has a Stripe customer."""
    org = Organization(name="Globex", payment_id="cus_globex")
    db_session.add(org)
    db_session.commit()
    return org


def _make_user(db_session, org, email, role, **kwargs):
    user = User(
        email=email,
        password_hash="not-a-real-hash",
        name=email.split("@")[0],
        organization_id=org.id,
        role=role,
        **kwargs
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def admin_user(db_session, customer_organization):
    return _make_user(db_session, customer_organization, "admin@globex.test", Role.ADMIN)


@pytest.fixture
def member_user(db_session, customer_organization):
    return _make_user(db_session, customer_organization, "member@globex.test", Role.USER)


@pytest.fixture
def seller(db_session, organization):
    return _make_user(
        db_session,
        organization,
        "seller@acme.test",
        Role.USER,
        account="acct_seller",
        connected_account=True,
    )


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def collaborators():
    """Mocked persistence services for unit-testing the Stripe façade."""
    return {
        "subscription_service": MagicMock(),
        "organization_service": MagicMock(),
        "messages_service": MagicMock(),
    }


@pytest.fixture
def stripe_service(collaborators, settings):
    from billing.stripe_client import StripeService
    return StripeService(settings=settings, **collaborators)


@pytest.fixture
def app(db_session):
    from api.app import app as fastapi_app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def auth_headers():
    from api.auth import create_access_token

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
def billing_disabled(monkeypatch):
    monkeypatch.setenv("GITROOM_IS_BILLING_ENABLED", "false")
    reload_settings()
    yield
    monkeypatch.delenv("GITROOM_IS_BILLING_ENABLED")
    reload_settings()


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhooks."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def signed_event():
    """Serialize an event and sign it with the given webhook secret."""

    def _signed(event: dict, secret: str):
        payload = json.dumps(event).encode("utf-8")
        return payload, {"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"}

    return _signed
